"""
CSV export for back-office reports.
"""

import csv
import io
from typing import Iterable, Mapping

from errors import ValidationFailed


def to_csv(records: Iterable[Mapping]) -> str:
    """Comma separated document with a header row taken from the first record's keys.

    Values containing a comma are quoted and None becomes an empty field.
    """
    records = list(records)
    if not records:
        raise ValidationFailed("No data to export")
    headers = list(records[0].keys())
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerow(headers)
    for record in records:
        writer.writerow(["" if record.get(h) is None else record.get(h) for h in headers])
    return buf.getvalue()
