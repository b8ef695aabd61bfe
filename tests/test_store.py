import threading
import time

import pytest

from errors import (
    AccountNotFound,
    AlreadyExists,
    ApprovalPending,
    InsufficientStock,
    NotAuthenticated,
    NotFound,
    PersistenceError,
    ValidationFailed,
    WrongPassword,
)
from persistence import SnapshotPersistence
from store import Store

from conftest import ADMIN, CUSTOMER, DISTRIBUTOR


class FlakyPersistence(SnapshotPersistence):
    """Snapshot backend whose writes can be made to fail."""

    failing = False

    def _flush(self, state):
        if self.failing:
            raise PersistenceError("disk full")
        super()._flush(state)


def stock_of(store, product_id):
    return store.get_product(product_id).stock


# --- checkout -------------------------------------------------------------

def test_customer_cod_order(store):
    store.login(*CUSTOMER)
    store.add_to_cart("p2", 2)
    order = store.place_order("COD", "Flat 102, Shanti Nagar")

    assert order.total_amount == 252
    assert order.tax_amount == 12
    assert order.status == "Processing"
    assert order.payment_status == "Pending"
    assert order.type == "RETAIL"
    assert order.id.startswith("ORD-")
    assert order.invoice_number.startswith("INV-")
    assert order.id[4:] == order.invoice_number[4:]
    assert stock_of(store, "p2") == 8
    assert store.orders[0] == order
    assert store.cart.is_empty()


def test_distributor_pays_wholesale(store):
    store.login(*DISTRIBUTOR)
    store.add_to_cart("p2", 5)
    order = store.place_order("UPI", "Shop 4, APMC Market", "Paid", "pay_123")

    assert order.total_amount == 473
    assert order.type == "WHOLESALE"
    assert order.payment_status == "Paid"
    assert order.transaction_id == "pay_123"
    assert stock_of(store, "p2") == 5


def test_insufficient_stock_aborts_whole_order(store):
    store.login(*CUSTOMER)
    store.add_to_cart("p1", 2)
    store.add_to_cart("p2", 11)
    orders_before = list(store.orders)

    with pytest.raises(InsufficientStock) as exc:
        store.place_order("COD", "Somewhere")

    assert exc.value.product_name == "Amrit Assam Gold - Family Pack"
    assert exc.value.available == 10
    assert stock_of(store, "p1") == 5000
    assert stock_of(store, "p2") == 10
    assert store.orders == orders_before
    assert len(store.cart) == 2


def test_merged_cart_quantity_is_checked_against_stock(store):
    store.login(*CUSTOMER)
    store.add_to_cart("p2", 6)
    store.add_to_cart("p2", 6)
    with pytest.raises(InsufficientStock):
        store.place_order("COD", "Somewhere")


def test_place_order_requires_session_address_and_items(store):
    store.add_to_cart("p2", 1)
    with pytest.raises(NotAuthenticated):
        store.place_order("COD", "Somewhere")
    store.login(*CUSTOMER)
    with pytest.raises(ValidationFailed):
        store.place_order("COD", "   ")
    store.clear_cart()
    with pytest.raises(ValidationFailed):
        store.place_order("COD", "Somewhere")


def test_order_ids_are_unique_within_the_same_millisecond(store):
    store.login(*CUSTOMER)
    ids = set()
    for _ in range(3):
        store.add_to_cart("p1", 1)
        ids.add(store.place_order("COD", "Somewhere").id)
    assert len(ids) == 3


def test_failed_write_leaves_store_unchanged(snapshot_path):
    persistence = FlakyPersistence(snapshot_path)
    store = Store(persistence, tax_rate=0.05)
    store.login(*CUSTOMER)
    store.add_to_cart("p2", 2)
    orders_before = list(store.orders)

    persistence.failing = True
    with pytest.raises(PersistenceError):
        store.place_order("COD", "Somewhere")

    assert store.orders == orders_before
    assert stock_of(store, "p2") == 1000
    assert len(store.cart) == 1


# --- order maintenance ----------------------------------------------------

def test_manual_order_is_delivered_cash_sale(store):
    order = store.create_manual_order("dist1", [("p3", 2), ("p3", 1)])

    assert order.status == "Delivered"
    assert order.payment_status == "Paid"
    assert order.payment_method == "Cash"
    assert order.user_address == "Shop 4, APMC Market, Vashi"
    assert order.type == "WHOLESALE"
    # 3 x 175 = 525, +5% = 551.25
    assert order.total_amount == 551
    assert stock_of(store, "p3") == 797
    assert store.cart.is_empty()


def test_manual_order_for_walk_in_uses_counter_sale_address(store):
    admin = store.get_user("admin1")
    order = store.create_manual_order(admin.id, [("p1", 10)])
    assert order.user_address == "Counter Sale"
    assert order.type == "RETAIL"
    assert order.total_amount == 105


def test_add_order_checks_stock(store):
    with pytest.raises(InsufficientStock):
        store.create_manual_order("cust1", [("p4", 201)])
    assert stock_of(store, "p4") == 200


def test_status_change_does_not_restock_by_default(store):
    store.login(*CUSTOMER)
    store.add_to_cart("p2", 4)
    order = store.place_order("COD", "Somewhere")

    updated = store.update_order_status(order.id, "Cancelled")
    assert updated.status == "Cancelled"
    assert stock_of(store, "p2") == 6

    store.delete_order(order.id)
    assert stock_of(store, "p2") == 6
    with pytest.raises(NotFound):
        store.get_order(order.id)


def test_restock_on_cancel_when_enabled(snapshot_path):
    store = Store(SnapshotPersistence(snapshot_path), restock_on_cancel=True, tax_rate=0.05)
    store.login(*CUSTOMER)
    store.add_to_cart("p2", 4)
    order = store.place_order("COD", "Somewhere")
    assert stock_of(store, "p2") == 996

    store.update_order_status(order.id, "Cancelled")
    assert stock_of(store, "p2") == 1000
    store.update_order_status(order.id, "Cancelled")
    assert stock_of(store, "p2") == 1000
    store.update_order_status(order.id, "Processing")
    assert stock_of(store, "p2") == 996


def test_any_status_may_follow_any_other(store):
    order = store.update_order_status("ORD-001", "Processing")
    assert order.status == "Processing"
    with pytest.raises(ValidationFailed):
        store.update_order_status("ORD-001", "Lost")


def test_payment_status_update(store):
    order = store.update_payment_status("ORD-002", "Paid")
    assert order.payment_status == "Paid"
    assert store.get_order("ORD-002").payment_status == "Paid"


def test_clear_online_orders(store):
    assert store.clear_online_orders() == 1
    assert [o.id for o in store.orders] == ["ORD-002"]


# --- purchase orders ------------------------------------------------------

def test_purchase_order_receipt_is_idempotent(store):
    po = store.add_purchase_order("Assam Gardens", [{"product_id": "p2", "quantity": 100, "unit_cost": 65}])
    assert po.total_amount == 6500
    assert po.status == "Pending"
    assert po.items[0].product_name == "Amrit Assam Gold - Family Pack"
    assert po.items[0].total_cost == 6500
    assert stock_of(store, "p2") == 10

    received = store.receive_purchase_order(po.id)
    assert received.status == "Received"
    assert stock_of(store, "p2") == 110

    store.receive_purchase_order(po.id)
    assert stock_of(store, "p2") == 110


def test_purchase_order_validation(store):
    with pytest.raises(ValidationFailed):
        store.add_purchase_order("", [{"product_id": "p2", "quantity": 1, "unit_cost": 1}])
    with pytest.raises(ValidationFailed):
        store.add_purchase_order("Supplier", [])
    with pytest.raises(NotFound):
        store.add_purchase_order("Supplier", [{"product_id": "nope", "quantity": 1, "unit_cost": 1}])


def test_purchase_order_defaults_unit_cost_and_number(store):
    po = store.add_purchase_order("Supplier", [{"product_id": "p4", "quantity": 2}])
    assert po.items[0].unit_cost == 250
    assert po.po_number.startswith("PO-")


def test_deleting_received_po_keeps_stock(store):
    po = store.add_purchase_order("Supplier", [{"product_id": "p2", "quantity": 5, "unit_cost": 60}])
    store.receive_purchase_order(po.id)
    store.delete_purchase_order(po.id)
    assert stock_of(store, "p2") == 15
    assert all(p.id != po.id for p in store.purchase_orders)


# --- accounts -------------------------------------------------------------

def test_login_distinguishes_unknown_account_from_wrong_password(store):
    with pytest.raises(WrongPassword):
        store.login(CUSTOMER[0], "nope")
    assert store.current_user is None

    with pytest.raises(AccountNotFound):
        store.login("9999999999", "123")
    assert store.current_user is None


def test_login_with_expected_role(store):
    with pytest.raises(AccountNotFound):
        store.login(*CUSTOMER, expected_role="DISTRIBUTOR")
    user = store.login(*CUSTOMER, expected_role="CUSTOMER")
    assert store.current_user == user


def test_distributor_needs_approval(store):
    user = store.register("Pune Tea Traders", "9000000001", "secret", "DISTRIBUTOR", "Pune")
    assert user.approved is False
    assert store.current_user is None

    with pytest.raises(ApprovalPending):
        store.login("9000000001", "secret")

    store.approve_distributor(user.id)
    assert store.login("9000000001", "secret").id == user.id


def test_customer_registration_logs_in(store):
    user = store.register("Neha", "9000000002", "pw")
    assert user.approved is True
    assert store.current_user == user


def test_registration_validation(store):
    with pytest.raises(AlreadyExists):
        store.register("Again", CUSTOMER[0], "pw")
    with pytest.raises(ValidationFailed):
        store.register("Short", "12345", "pw")
    with pytest.raises(ValidationFailed):
        store.register("No Password", "9000000003", "")


def test_admin_created_user_is_approved_with_default_password(store):
    user = store.add_user("Counter Dist", "9000000004", role="DISTRIBUTOR")
    assert user.approved is True
    assert store.login("9000000004", "123456").id == user.id
    with pytest.raises(AlreadyExists):
        store.add_user("Dup", "9000000004")


def test_password_change(store):
    store.update_user_password("cust1", "newpass")
    with pytest.raises(WrongPassword):
        store.login(CUSTOMER[0], "123")
    assert store.login(CUSTOMER[0], "newpass").id == "cust1"
    with pytest.raises(ValidationFailed):
        store.update_user_password("cust1", "")


def test_logout_clears_session_and_cart(store):
    store.login(*CUSTOMER)
    store.add_to_cart("p1", 3)
    store.logout()
    assert store.current_user is None
    assert store.cart.is_empty()


# --- catalog --------------------------------------------------------------

def test_product_crud(store):
    product = store.add_product(name="Masala Chai", mrp=150, distributor_price=110, cost_price=80,
                                stock=40, low_stock_threshold=10, category="Pouch")
    assert product.id.startswith("p-")
    updated = store.update_product(product.id, mrp=160)
    assert updated.mrp == 160
    assert updated.distributor_price == 110
    store.delete_product(product.id)
    with pytest.raises(NotFound):
        store.get_product(product.id)


def test_stock_correction_rejects_negative(store):
    with pytest.raises(ValidationFailed):
        store.update_stock("p1", -1)
    assert store.update_stock("p1", 42).stock == 42


# --- reviews --------------------------------------------------------------

def test_reviews_and_rating(store):
    assert store.product_rating("p3") == {"average": 0, "count": 0}
    with pytest.raises(NotAuthenticated):
        store.add_review("p1", 4, "Nice")

    store.login(*CUSTOMER)
    with pytest.raises(ValidationFailed):
        store.add_review("p1", 4, "   ")
    review = store.add_review("p1", 4, "Good everyday tea")
    assert review.user_id == "cust1"
    assert store.product_rating("p1") == {"average": 4.5, "count": 2}


def test_admin_review_management(store):
    review = store.add_manual_review("p3", "Walk-in buyer", 3, "Decent", "2024-01-05")
    assert review.user_id == ""
    store.update_review(review.id, rating=5, product_id="p1")
    assert store.get_review(review.id).rating == 5
    assert store.get_review(review.id).product_id == "p3"
    assert store.product_rating("p3")["average"] == 5
    store.delete_review(review.id)
    assert store.product_rating("p3")["count"] == 0


# --- persistence ----------------------------------------------------------

def test_state_survives_restart(snapshot_path, store):
    store.login(*CUSTOMER)
    store.add_to_cart("p2", 2)
    order = store.place_order("COD", "Somewhere")
    store.update_invoice_settings(store.invoice_settings.model_copy(update={"company_name": "New Name"}))

    reopened = Store(SnapshotPersistence(snapshot_path))
    assert reopened.get_order(order.id).total_amount == 252
    assert reopened.get_product("p2").stock == 8
    assert reopened.current_user.id == "cust1"
    assert reopened.invoice_settings.company_name == "New Name"
    assert reopened.cart.is_empty()


def test_settings_are_overwritten_wholesale(store):
    from schemas import BrandAssets, PaymentSettings

    store.update_payment_settings(PaymentSettings(razorpay_key_id="rzp_live_x"))
    store.update_brand_assets(BrandAssets(logo="data:image/png;base64,AAA"))
    assert store.payment_settings.razorpay_key_id == "rzp_live_x"
    assert store.brand_assets.hero_image is None


def test_stock_correction_rejects_non_numbers(store):
    with pytest.raises(ValidationFailed):
        store.update_stock("p1", "lots")
    with pytest.raises(ValidationFailed):
        store.update_stock("p1", None)
    assert store.update_stock("p1", "7").stock == 7


# --- sessions and concurrency ---------------------------------------------

class SlowOrderPersistence(SnapshotPersistence):
    def insert_order(self, row):
        time.sleep(0.2)
        super().insert_order(row)


def test_concurrent_checkouts_cannot_oversell(snapshot_path):
    store = Store(SlowOrderPersistence(snapshot_path), tax_rate=0.05)
    store.update_stock("p2", 2)
    buyers = []
    for credentials in (CUSTOMER, DISTRIBUTOR):
        session = store.open_session()
        store.login(*credentials, session=session)
        store.add_to_cart("p2", 2, session=session)
        buyers.append(session)

    placed, refused = [], []

    def buy(session):
        try:
            placed.append(store.place_order("COD", "Somewhere", session=session))
        except InsufficientStock as e:
            refused.append(e)

    threads = [threading.Thread(target=buy, args=(s,)) for s in buyers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(placed) == 1
    assert len(refused) == 1
    assert refused[0].available == 0
    assert stock_of(store, "p2") == 0


def test_sessions_keep_their_own_user_and_cart(store):
    admin = store.open_session()
    buyer = store.open_session()
    store.login(*ADMIN, session=admin)
    store.login(*CUSTOMER, session=buyer)
    store.add_to_cart("p1", 2, session=buyer)

    assert admin.user.role == "ADMIN"
    assert buyer.user.id == "cust1"
    assert admin.cart.is_empty()
    assert store.cart.is_empty()
    assert store.current_user is None
    assert store.cart_summary(buyer)["total_amount"] == 21

    store.logout(buyer)
    assert buyer.user is None
    assert admin.user.role == "ADMIN"


def test_token_sessions_are_not_persisted(snapshot_path, store):
    session = store.open_session()
    store.login(*CUSTOMER, session=session)
    assert Store(SnapshotPersistence(snapshot_path)).current_user is None


def test_unknown_token_is_rejected(store):
    session = store.open_session()
    assert store.get_session(session.token) is session
    store.close_session(session.token)
    with pytest.raises(NotAuthenticated):
        store.get_session(session.token)


def test_password_change_reaches_open_sessions(store):
    session = store.open_session()
    store.login(*CUSTOMER, session=session)
    store.update_user_password("cust1", "changed")
    assert session.user.password == "changed"
