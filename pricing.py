"""
Pricing policy: which unit price a buyer pays, and how an order total is built.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

import config
from schemas import Product, CartItem


def unit_price(product: Product, role: Optional[str]) -> float:
    """Distributors pay the wholesale price; everyone else pays MRP."""
    if role == "DISTRIBUTOR":
        return product.distributor_price
    return product.mrp


def order_type_price(product: Product, order_type: str) -> float:
    """Unit price an already placed order was charged, from its RETAIL/WHOLESALE type."""
    return unit_price(product, "DISTRIBUTOR" if order_type == "WHOLESALE" else None)


def round_amount(value: float) -> int:
    # half-up, so 472.5 becomes 473 rather than the banker's 472
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_one_decimal(value: float) -> float:
    return float(Decimal(repr(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def subtotal(items: Iterable[CartItem], role: Optional[str]) -> float:
    return sum(unit_price(item, role) * item.quantity for item in items)


def order_totals(items: Iterable[CartItem], role: Optional[str], tax_rate: float = None) -> Tuple[int, int]:
    """Return (total_amount, tax_amount) for a list of lines.

    Tax is charged on the unrounded subtotal and rounding is applied to the
    final figures only, never per line.
    """
    rate = config.TAX_RATE if tax_rate is None else tax_rate
    sub = subtotal(items, role)
    tax = sub * rate
    return round_amount(sub + tax), round_amount(tax)
