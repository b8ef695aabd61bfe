"""
Back-office reports.

Everything here is recomputed from the current order, product and review
collections on every call; nothing is cached or stored.
"""

from typing import Dict, Iterable, List

from pydantic import BaseModel

from pricing import order_type_price, round_one_decimal
from schemas import Order, Product, Review

ONLINE_SETTLEMENT_RATE = 0.98  # gateway keeps 2%


class ProfitAndLoss(BaseModel):
    total_revenue: float
    total_cogs: float
    gross_profit: float
    profit_margin: float


class PaymentSummary(BaseModel):
    online_orders: int
    online_revenue: float
    cod_total: float
    settlement_estimate: float


class ProductSales(BaseModel):
    name: str
    sales: float


class SalesOverview(BaseModel):
    total_sales: float
    order_count: int
    low_stock_count: int
    product_sales: List[ProductSales]


def delivered_orders(orders: Iterable[Order]) -> List[Order]:
    return [o for o in orders if o.status == "Delivered"]


def _cost_prices(products: Iterable[Product]) -> Dict[str, float]:
    return {p.id: p.cost_price for p in products}


def profit_and_loss_rows(orders: Iterable[Order], products: Iterable[Product]) -> List[dict]:
    """One row per delivered line item, in the shape of the P&L CSV export.

    Lines whose product has since been deleted are costed at 0.
    """
    costs = _cost_prices(products)
    rows = []
    for order in delivered_orders(orders):
        for item in order.items:
            revenue = order_type_price(item, order.type) * item.quantity
            cogs = costs.get(item.id, 0) * item.quantity
            rows.append({
                "Date": order.date,
                "OrderId": order.id,
                "Product": item.name,
                "Quantity": item.quantity,
                "Revenue": revenue,
                "COGS": cogs,
                "Profit": revenue - cogs,
            })
    return rows


def profit_and_loss(orders: Iterable[Order], products: Iterable[Product]) -> ProfitAndLoss:
    rows = profit_and_loss_rows(orders, products)
    revenue = sum(r["Revenue"] for r in rows)
    cogs = sum(r["COGS"] for r in rows)
    gross = revenue - cogs
    margin = round_one_decimal(gross / revenue * 100) if revenue > 0 else 0.0
    return ProfitAndLoss(total_revenue=revenue, total_cogs=cogs, gross_profit=gross, profit_margin=margin)


def low_stock(products: Iterable[Product]) -> List[Product]:
    return [p for p in products if p.stock <= p.low_stock_threshold]


def online_orders(orders: Iterable[Order]) -> List[Order]:
    """Orders settled through the gateway: not cash on delivery, and paid."""
    return [o for o in orders if o.payment_method != "COD" and o.payment_status == "Paid"]


def payment_summary(orders: Iterable[Order]) -> PaymentSummary:
    orders = list(orders)
    online = online_orders(orders)
    online_revenue = sum(o.total_amount for o in online)
    cod_total = sum(o.total_amount for o in orders if o.payment_method == "COD")
    return PaymentSummary(
        online_orders=len(online),
        online_revenue=online_revenue,
        cod_total=cod_total,
        settlement_estimate=online_revenue * ONLINE_SETTLEMENT_RATE,
    )


def payment_rows(orders: Iterable[Order]) -> List[dict]:
    return [
        {
            "Date": o.date,
            "PaymentID": o.transaction_id or "N/A",
            "OrderID": o.id,
            "Method": o.payment_method,
            "Amount": o.total_amount,
            "Status": "Captured",
        }
        for o in online_orders(orders)
    ]


def _short_name(name: str) -> str:
    # "Amrit Assam Gold - Family Pack" -> "Family Pack"
    parts = name.split("-")
    if len(parts) > 1 and parts[1].strip():
        return parts[1].strip()
    return name


def sales_overview(orders: Iterable[Order], products: Iterable[Product]) -> SalesOverview:
    """Headline numbers for the admin overview, over orders of every status.

    Per-product sales are valued at MRP regardless of order type.
    """
    orders = list(orders)
    products = list(products)
    volume: Dict[str, float] = {}
    for order in orders:
        for item in order.items:
            volume[item.id] = volume.get(item.id, 0) + item.quantity * item.mrp
    return SalesOverview(
        total_sales=sum(o.total_amount for o in orders),
        order_count=len(orders),
        low_stock_count=len(low_stock(products)),
        product_sales=[ProductSales(name=_short_name(p.name), sales=volume.get(p.id, 0)) for p in products],
    )


def average_rating(reviews: Iterable[Review], product_id: str) -> float:
    ratings = [r.rating for r in reviews if r.product_id == product_id]
    if not ratings:
        return 0
    return round_one_decimal(sum(ratings) / len(ratings))
