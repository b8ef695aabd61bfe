import pytest

from pricing import order_totals, round_amount, round_one_decimal, unit_price
from schemas import CartItem, Product

P = Product(id="p", name="Family Pack", mrp=120, distributor_price=90, cost_price=65, stock=10)


@pytest.mark.parametrize("role,expected", [
    ("DISTRIBUTOR", 90),
    ("CUSTOMER", 120),
    ("ADMIN", 120),
    (None, 120),
])
def test_unit_price_by_role(role, expected):
    assert unit_price(P, role) == expected


def test_totals_for_customer():
    items = [CartItem(**P.model_dump(), quantity=2)]
    assert order_totals(items, "CUSTOMER", 0.05) == (252, 12)


def test_totals_round_half_up_on_final_amount_only():
    items = [CartItem(**P.model_dump(), quantity=5)]
    # 450 + 22.5 = 472.5
    assert order_totals(items, "DISTRIBUTOR", 0.05) == (473, 23)


def test_totals_sum_unrounded_lines():
    sachet = Product(id="s", name="Sachet", mrp=10, distributor_price=7.5, stock=100)
    items = [CartItem(**sachet.model_dump(), quantity=3), CartItem(**P.model_dump(), quantity=1)]
    # 22.5 + 90 = 112.5, tax 5.625, total 118.125
    assert order_totals(items, "DISTRIBUTOR", 0.05) == (118, 6)


def test_rounding_helpers():
    assert round_amount(2.5) == 3
    assert round_amount(2.49) == 2
    assert round_one_decimal(45.8333) == 45.8
    assert round_one_decimal(4.25) == 4.3
