from cart import Cart
from schemas import Product

TEA = Product(id="p1", name="Sachet", mrp=10, distributor_price=7.5, stock=3)
DUST = Product(id="p4", name="Dust", mrp=400, distributor_price=320, stock=1)


def test_add_merges_quantity_for_same_product():
    cart = Cart()
    cart.add(TEA, 2)
    cart.add(TEA, 5)
    assert len(cart) == 1
    assert cart.items[0].quantity == 7


def test_add_does_not_check_stock():
    cart = Cart()
    cart.add(DUST, 10)
    assert cart.items[0].quantity == 10


def test_remove_drops_whole_line():
    cart = Cart()
    cart.add(TEA, 4)
    cart.add(DUST, 1)
    cart.remove("p1")
    assert [item.id for item in cart] == ["p4"]


def test_clear():
    cart = Cart()
    cart.add(TEA, 1)
    cart.clear()
    assert cart.is_empty()
