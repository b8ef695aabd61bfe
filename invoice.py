"""
Tax invoice rendering.

A pure function of an order and the invoice settings; nothing in the store
is read or changed while printing.
"""

from typing import List

from pricing import order_type_price
from schemas import DEFAULT_HSN_CODE, InvoiceSettings, Order

WIDTH = 72


def invoice_lines(order: Order) -> List[dict]:
    rows = []
    for item in order.items:
        price = order_type_price(item, order.type)
        rows.append({
            "item": item.name,
            "weight": item.weight,
            "hsn": item.hsn_code or DEFAULT_HSN_CODE,
            "quantity": item.quantity,
            "price": price,
            "total": price * item.quantity,
        })
    return rows


def _money(value: float) -> str:
    return f"Rs.{value:,.2f}"


def render_invoice(order: Order, settings: InvoiceSettings) -> str:
    """Print-ready plain text invoice.

    Subtotal is derived as total minus tax, and the 5% GST is split evenly
    into CGST and SGST.
    """
    out = [
        "=" * WIDTH,
        settings.company_name.upper(),
        settings.address_line1,
        settings.address_line2,
        f"GSTIN: {settings.gstin}",
    ]
    if settings.email:
        out.append(f"Email: {settings.email}")
    if settings.phone:
        out.append(f"Phone: {settings.phone}")
    out += [
        "-" * WIDTH,
        f"TAX INVOICE #{order.invoice_number or order.id}",
        f"Date: {order.date}",
        f"Payment: {order.payment_status.upper()}",
        "-" * WIDTH,
        "BILL TO",
        order.user_name,
        order.user_address or "Address not provided",
        f"Role: {order.type}",
    ]
    if order.user_gst:
        out.append(f"GST: {order.user_gst}")

    out += ["-" * WIDTH, f"{'Item':<30}{'HSN':>6}{'Qty':>6}{'Price':>14}{'Total':>16}", "-" * WIDTH]
    for row in invoice_lines(order):
        label = f"{row['item']} ({row['weight']})" if row["weight"] else row["item"]
        out.append(f"{label[:30]:<30}{row['hsn']:>6}{row['quantity']:>6}"
                   f"{_money(row['price']):>14}{_money(row['total']):>16}")

    half_tax = order.tax_amount / 2
    out += [
        "-" * WIDTH,
        f"{'Subtotal:':<56}{_money(order.total_amount - order.tax_amount):>16}",
        f"{'CGST (2.5%):':<56}{_money(half_tax):>16}",
        f"{'SGST (2.5%):':<56}{_money(half_tax):>16}",
        f"{'Grand Total:':<56}{_money(order.total_amount):>16}",
        "=" * WIDTH,
        "This is a computer generated invoice.",
        settings.footer_note,
    ]
    return "\n".join(out) + "\n"
