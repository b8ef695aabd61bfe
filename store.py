"""
The Store owns every collection of the storefront and is the only place
state changes.

Each mutation validates first, then writes through the persistence
collaborator, and only after the write succeeds advances the in-memory
copy. A PersistenceError therefore leaves the Store exactly as it was for
that step. Mutations run one at a time under the store lock, so a stock
check and the decrement that follows it cannot interleave with another
checkout.

Sessions hold the logged-in user and the cart. Callers that pass no
session act on the default one, whose user is persisted as current_user
and restored on restart; API clients each get their own by token.
"""

import functools
import hmac
import logging
import random
import re
import threading
import time
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

import config
import fixtures
import reporting
from errors import (
    AccountNotFound,
    AlreadyExists,
    ApprovalPending,
    InsufficientStock,
    NotAuthenticated,
    NotFound,
    ValidationFailed,
    WrongPassword,
)
from pricing import order_totals, unit_price
from schemas import (
    BrandAssets,
    CartItem,
    InvoiceSettings,
    Order,
    PaymentSettings,
    Product,
    PurchaseItem,
    PurchaseOrder,
    Review,
    User,
)
from session import Session

logger = logging.getLogger(__name__)

ROLES = ("ADMIN", "DISTRIBUTOR", "CUSTOMER")
ORDER_STATUSES = ("Processing", "Shipped", "Delivered", "Cancelled")
PAYMENT_STATUSES = ("Pending", "Paid")
DEFAULT_PASSWORD = "123456"
MOBILE_RE = re.compile(r"\d{10}")


def _locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def _build(model, **fields):
    try:
        return model(**fields)
    except ValidationError as e:
        raise ValidationFailed(str(e))


def _find(rows, row_id):
    return next((row for row in rows if row.id == row_id), None)


def _replace(rows, new_row):
    return [new_row if row.id == new_row.id else row for row in rows]


def _today() -> str:
    return date.today().isoformat()


def _millis() -> int:
    return int(time.time() * 1000)


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed(message)
    return str(value).strip()


class Store:
    def __init__(self, persistence, restock_on_cancel: bool = None, tax_rate: float = None):
        self.persistence = persistence
        self.restock_on_cancel = config.RESTOCK_ON_CANCEL if restock_on_cancel is None else restock_on_cancel
        self.tax_rate = config.TAX_RATE if tax_rate is None else tax_rate
        # reentrant: composite operations call other locked ones
        self._lock = threading.RLock()
        self.default_session = Session()
        self.sessions: Dict[str, Session] = {}
        self.reload()

    @property
    def current_user(self) -> Optional[User]:
        return self.default_session.user

    @property
    def cart(self):
        return self.default_session.cart

    def _session(self, session: Optional[Session]) -> Session:
        return self.default_session if session is None else session

    @_locked
    def reload(self) -> None:
        """Rehydrate every collection from the backend."""
        p = self.persistence
        self.products: List[Product] = [Product(**r) for r in p.fetch_all("products")]
        self.orders: List[Order] = [Order(**r) for r in p.fetch_orders()]
        self.purchase_orders: List[PurchaseOrder] = [PurchaseOrder(**r) for r in p.fetch_all("purchase_orders")]
        self.users: List[User] = [User(**r) for r in p.fetch_all("users")]
        self.reviews: List[Review] = [Review(**r) for r in p.fetch_all("reviews")]
        self.invoice_settings = InvoiceSettings(**self._setting("invoice_settings"))
        self.payment_settings = PaymentSettings(**self._setting("payment_settings"))
        self.brand_assets = BrandAssets(**self._setting("brand_assets"))
        saved = p.load_setting("current_user")
        self.default_session.user = User(**saved) if saved else None

    def _setting(self, key):
        value = self.persistence.load_setting(key)
        return value if value is not None else dict(fixtures.SETTING_DEFAULTS[key])

    def _save_setting(self, key: str, value: Optional[BaseModel]) -> None:
        self.persistence.save_setting(key, value.model_dump() if value is not None else None)

    def _unique_suffix(self, taken: Iterable[str], tail: int = 6) -> str:
        taken = set(taken)
        stamp = _millis()
        while True:
            suffix = str(stamp)[-tail:]
            if suffix not in taken:
                return suffix
            stamp += 1

    def _new_id(self, prefix: str, rows) -> str:
        return f"{prefix}{self._unique_suffix((r.id[len(prefix):] for r in rows if r.id.startswith(prefix)), tail=13)}"

    # ---------------------------------------------------------------- lookups

    def get_product(self, product_id: str) -> Product:
        product = _find(self.products, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        return product

    def get_user(self, user_id: str) -> User:
        user = _find(self.users, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def get_order(self, order_id: str) -> Order:
        order = _find(self.orders, order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get_purchase_order(self, po_id: str) -> PurchaseOrder:
        po = _find(self.purchase_orders, po_id)
        if po is None:
            raise NotFound(f"Purchase order {po_id} not found")
        return po

    def get_review(self, review_id: str) -> Review:
        review = _find(self.reviews, review_id)
        if review is None:
            raise NotFound(f"Review {review_id} not found")
        return review

    def find_user_by_mobile(self, mobile: str) -> Optional[User]:
        return next((u for u in self.users if u.mobile == mobile), None)

    # ----------------------------------------------------------- auth & users

    @_locked
    def open_session(self) -> Session:
        session = Session()
        self.sessions[session.token] = session
        return session

    def get_session(self, token: str) -> Session:
        session = self.sessions.get(token)
        if session is None:
            raise NotAuthenticated("Session expired. Please login again.")
        return session

    @_locked
    def close_session(self, token: str) -> None:
        self.sessions.pop(token, None)

    def _set_session(self, session: Session, user: Optional[User]) -> None:
        if session is self.default_session:
            self._save_setting("current_user", user)
        session.user = user

    def require_session(self, session: Optional[Session] = None) -> User:
        user = self._session(session).user
        if user is None:
            raise NotAuthenticated("Please login first")
        return user

    @_locked
    def login(self, mobile: str, password: str, expected_role: Optional[str] = None,
              session: Optional[Session] = None) -> User:
        """Look the account up by mobile, then check role, password and approval.

        Unknown mobile (or a role other than the one asked for) is reported as
        AccountNotFound, a bad password as WrongPassword. Session state only
        changes on success.
        """
        user = self.find_user_by_mobile(mobile)
        if user is None or (expected_role and user.role != expected_role):
            logger.warning(f"Login refused for {mobile}: no such account")
            raise AccountNotFound("Account not found. Please Register first.")
        if not hmac.compare_digest(user.password.encode(), (password or "").encode()):
            logger.warning(f"Login refused for {mobile}: wrong password")
            raise WrongPassword("Incorrect password.")
        if user.role == "DISTRIBUTOR" and not user.approved:
            logger.warning(f"Login refused for {mobile}: distributor not approved")
            raise ApprovalPending("Your distributor account is pending approval.")
        self._set_session(self._session(session), user)
        logger.info(f"{user.role} {user.id} logged in")
        return user

    @_locked
    def logout(self, session: Optional[Session] = None) -> None:
        session = self._session(session)
        self._set_session(session, None)
        session.cart.clear()

    def _validate_account(self, name: str, mobile: str, role: str) -> None:
        _require_text(name, "Name is required")
        if not mobile or not MOBILE_RE.fullmatch(mobile):
            raise ValidationFailed("Please enter a valid 10-digit mobile number")
        if role not in ROLES:
            raise ValidationFailed(f"Unknown role {role}")
        if self.find_user_by_mobile(mobile) is not None:
            raise AlreadyExists("User already exists. Please Login.")

    def _insert_user(self, user: User) -> User:
        self.persistence.insert("users", user.model_dump())
        self.users.append(user)
        return user

    @_locked
    def register(self, name: str, mobile: str, password: str, role: str = "CUSTOMER",
                 territory: Optional[str] = None, session: Optional[Session] = None) -> User:
        """Self-registration. Distributors wait for approval; others are logged straight in."""
        self._validate_account(name, mobile, role)
        _require_text(password, "Please enter a password")
        user = _build(
            User,
            id=self._unique_suffix((u.id for u in self.users), tail=13),
            name=name.strip(),
            mobile=mobile,
            password=password,
            role=role,
            approved=role != "DISTRIBUTOR",
            territory=territory,
            address="",
            gst_number="",
        )
        self._insert_user(user)
        logger.info(f"Registered {role} {user.id} ({'approved' if user.approved else 'awaiting approval'})")
        if user.approved:
            self._set_session(self._session(session), user)
        return user

    @_locked
    def add_user(self, name: str, mobile: str, role: str = "CUSTOMER", password: Optional[str] = None,
                 territory: Optional[str] = None, address: Optional[str] = None,
                 gst_number: Optional[str] = None) -> User:
        """Account created from the back office; always approved."""
        self._validate_account(name, mobile, role)
        user = _build(
            User,
            id=self._unique_suffix((u.id for u in self.users), tail=13),
            name=name.strip(),
            mobile=mobile,
            password=password or DEFAULT_PASSWORD,
            role=role,
            approved=True,
            territory=territory,
            address=address or "",
            gst_number=gst_number or "",
        )
        self._insert_user(user)
        logger.info(f"Admin created {role} {user.id}")
        return user

    def _update_user(self, user: User, **changes) -> User:
        self.persistence.update("users", user.id, changes)
        updated = user.model_copy(update=changes)
        self.users = _replace(self.users, updated)
        for session in [self.default_session, *self.sessions.values()]:
            if session.user is not None and session.user.id == updated.id:
                self._set_session(session, updated)
        return updated

    @_locked
    def approve_distributor(self, user_id: str) -> User:
        user = self._update_user(self.get_user(user_id), approved=True)
        logger.info(f"Distributor {user_id} approved")
        return user

    @_locked
    def update_user_password(self, user_id: str, new_password: str) -> User:
        _require_text(new_password, "Password cannot be empty")
        return self._update_user(self.get_user(user_id), password=new_password)

    # ---------------------------------------------------------------- catalog

    @_locked
    def add_product(self, **fields) -> Product:
        if not fields.get("id"):
            fields["id"] = self._new_id("p-", self.products)
        elif _find(self.products, fields["id"]) is not None:
            raise AlreadyExists(f"Product {fields['id']} already exists")
        product = _build(Product, **fields)
        self.persistence.insert("products", product.model_dump())
        self.products.append(product)
        logger.info(f"Product {product.id} added")
        return product

    @_locked
    def update_product(self, product_id: str, **changes) -> Product:
        current = self.get_product(product_id)
        changes.pop("id", None)
        updated = _build(Product, **{**current.model_dump(), **changes})
        self.persistence.update("products", product_id, updated.model_dump())
        self.products = _replace(self.products, updated)
        return updated

    @_locked
    def delete_product(self, product_id: str) -> None:
        self.get_product(product_id)
        self.persistence.delete("products", product_id)
        self.products = [p for p in self.products if p.id != product_id]
        logger.info(f"Product {product_id} deleted")

    def _set_stock(self, product: Product, stock: int) -> Product:
        self.persistence.update("products", product.id, {"stock": stock})
        updated = product.model_copy(update={"stock": stock})
        self.products = _replace(self.products, updated)
        return updated

    @_locked
    def update_stock(self, product_id: str, new_stock: int) -> Product:
        """Direct stock correction from the inventory screen."""
        try:
            new_stock = int(new_stock)
        except (TypeError, ValueError):
            raise ValidationFailed(f"Stock must be a whole number, got {new_stock!r}")
        if new_stock < 0:
            raise ValidationFailed("Stock cannot be negative")
        product = self.get_product(product_id)
        logger.info(f"Stock of {product_id} corrected from {product.stock} to {new_stock}")
        return self._set_stock(product, new_stock)

    # ------------------------------------------------------------------- cart

    @_locked
    def add_to_cart(self, product_id: str, quantity: int = 1, session: Optional[Session] = None) -> CartItem:
        if quantity is None or quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")
        return self._session(session).cart.add(self.get_product(product_id), quantity)

    @_locked
    def remove_from_cart(self, product_id: str, session: Optional[Session] = None) -> None:
        self._session(session).cart.remove(product_id)

    @_locked
    def clear_cart(self, session: Optional[Session] = None) -> None:
        self._session(session).cart.clear()

    def cart_summary(self, session: Optional[Session] = None) -> dict:
        session = self._session(session)
        role = session.user.role if session.user else None
        items = list(session.cart)
        lines = [
            {"product_id": item.id, "name": item.name, "quantity": item.quantity,
             "unit_price": unit_price(item, role), "line_total": unit_price(item, role) * item.quantity}
            for item in items
        ]
        total, tax = order_totals(items, role, self.tax_rate)
        return {"items": lines, "tax_amount": tax, "total_amount": total}

    # ----------------------------------------------------------------- orders

    @staticmethod
    def _quantities(items: Iterable[CartItem]) -> Dict[str, Tuple[str, int]]:
        totals: Dict[str, Tuple[str, int]] = {}
        for item in items:
            name, qty = totals.get(item.id, (item.name, 0))
            totals[item.id] = (name, qty + item.quantity)
        return totals

    def check_stock(self, items: Iterable[CartItem]) -> None:
        """Refuse the whole order if any product lacks stock for its lines.

        Lines whose product is no longer in the catalog are not checked.
        """
        for product_id, (name, qty) in self._quantities(items).items():
            product = _find(self.products, product_id)
            if product is not None and product.stock < qty:
                logger.warning(f"Order refused: {qty} x {product_id} requested, {product.stock} available")
                raise InsufficientStock(name, product.stock)

    def _adjust_stock(self, items: Iterable[CartItem], sign: int) -> None:
        for product_id, (_, qty) in self._quantities(items).items():
            product = _find(self.products, product_id)
            if product is not None:
                self._set_stock(product, product.stock + sign * qty)

    def _order_suffix(self) -> str:
        taken = set()
        for o in self.orders:
            taken.add(o.id.rsplit("-", 1)[-1])
            if o.invoice_number:
                taken.add(o.invoice_number.rsplit("-", 1)[-1])
        return self._unique_suffix(taken)

    def _commit_order(self, order: Order) -> Order:
        if _find(self.orders, order.id) is not None:
            raise AlreadyExists(f"Order {order.id} already exists")
        self.persistence.insert_order(order.model_dump())
        self.orders.insert(0, order)
        self._adjust_stock(order.items, -1)
        return order

    @_locked
    def prepare_checkout(self, address: str, session: Optional[Session] = None) -> Tuple[User, str]:
        """Everything that must hold before money is taken: session, address, cart, stock."""
        session = self._session(session)
        user = self.require_session(session)
        address = _require_text(address, "Address is required")
        if session.cart.is_empty():
            raise ValidationFailed("Cart is empty")
        self.check_stock(session.cart)
        return user, address

    @_locked
    def place_order(self, payment_method: str, address: str, payment_status: str = "Pending",
                    transaction_id: Optional[str] = None, session: Optional[Session] = None) -> Order:
        """Turn the session cart into a Processing order and take its stock."""
        session = self._session(session)
        user, address = self.prepare_checkout(address, session)
        items = list(session.cart)

        total, tax = order_totals(items, user.role, self.tax_rate)
        suffix = self._order_suffix()
        order = _build(
            Order,
            id=f"ORD-{suffix}",
            user_id=user.id,
            user_name=user.name,
            user_address=address,
            user_gst=user.gst_number or None,
            items=items,
            total_amount=total,
            tax_amount=tax,
            status="Processing",
            payment_method=payment_method,
            payment_status=payment_status,
            transaction_id=transaction_id,
            date=_today(),
            type="WHOLESALE" if user.role == "DISTRIBUTOR" else "RETAIL",
            invoice_number=f"INV-{suffix}",
        )
        self._commit_order(order)
        session.cart.clear()
        logger.info(f"Order {order.id} placed by {user.id}: {total} ({payment_method}, {payment_status})")
        return order

    @_locked
    def add_order(self, order: Order) -> Order:
        """Record an order built elsewhere, taking stock the same way checkout does."""
        self.check_stock(order.items)
        self._commit_order(order)
        logger.info(f"Order {order.id} added manually for {order.user_id}")
        return order

    @_locked
    def create_manual_order(self, user_id: str, lines: Sequence[Tuple[str, int]]) -> Order:
        """Counter sale: delivered and paid in cash at the moment it is entered."""
        user = self.get_user(user_id)
        if not lines:
            raise ValidationFailed("Add at least one item")
        items = []
        for product_id, quantity in lines:
            if quantity < 1:
                raise ValidationFailed("Quantity must be at least 1")
            items.append(CartItem(**self.get_product(product_id).model_dump(), quantity=quantity))
        total, tax = order_totals(items, user.role, self.tax_rate)
        suffix = self._order_suffix()
        order = _build(
            Order,
            id=f"ORD-{suffix}",
            user_id=user.id,
            user_name=user.name,
            user_address=user.address or "Counter Sale",
            user_gst=user.gst_number or None,
            items=items,
            total_amount=total,
            tax_amount=tax,
            status="Delivered",
            payment_method="Cash",
            payment_status="Paid",
            date=_today(),
            type="WHOLESALE" if user.role == "DISTRIBUTOR" else "RETAIL",
            invoice_number=f"INV-{suffix}",
        )
        return self.add_order(order)

    @_locked
    def update_order_status(self, order_id: str, status: str) -> Order:
        """Any status may follow any other. Stock moves only when restock_on_cancel is on."""
        if status not in ORDER_STATUSES:
            raise ValidationFailed(f"Unknown order status {status}")
        order = self.get_order(order_id)
        if self.restock_on_cancel and status != order.status:
            if status == "Cancelled":
                self._adjust_stock(order.items, +1)
            elif order.status == "Cancelled":
                self.check_stock(order.items)
                self._adjust_stock(order.items, -1)
        self.persistence.update("orders", order_id, {"status": status})
        updated = order.model_copy(update={"status": status})
        self.orders = _replace(self.orders, updated)
        logger.info(f"Order {order_id} status {order.status} -> {status}")
        return updated

    @_locked
    def update_payment_status(self, order_id: str, status: str) -> Order:
        if status not in PAYMENT_STATUSES:
            raise ValidationFailed(f"Unknown payment status {status}")
        order = self.get_order(order_id)
        self.persistence.update("orders", order_id, {"payment_status": status})
        updated = order.model_copy(update={"payment_status": status})
        self.orders = _replace(self.orders, updated)
        return updated

    @_locked
    def delete_order(self, order_id: str) -> None:
        """Remove the order for good. Stock already taken is not given back."""
        self.get_order(order_id)
        self.persistence.delete("orders", order_id)
        self.orders = [o for o in self.orders if o.id != order_id]
        logger.info(f"Order {order_id} deleted")

    @_locked
    def clear_online_orders(self) -> int:
        """Reset the online payment history by deleting every gateway-paid order."""
        online = reporting.online_orders(self.orders)
        for order in online:
            self.persistence.delete("orders", order.id)
            self.orders = [o for o in self.orders if o.id != order.id]
        logger.info(f"Cleared {len(online)} online orders")
        return len(online)

    def orders_for_user(self, user_id: str) -> List[Order]:
        return [o for o in self.orders if o.user_id == user_id]

    # -------------------------------------------------------- purchase orders

    @_locked
    def add_purchase_order(self, supplier_name: str, items: Sequence[dict],
                           po_number: Optional[str] = None) -> PurchaseOrder:
        """Raise a Pending PO. Each item needs product_id, quantity and unit_cost."""
        supplier_name = _require_text(supplier_name, "Supplier name is required")
        if not items:
            raise ValidationFailed("Add at least one item")
        lines = []
        for item in items:
            product = self.get_product(item.get("product_id"))
            quantity = item.get("quantity", 0)
            unit_cost = item.get("unit_cost", product.cost_price)
            lines.append(_build(
                PurchaseItem,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_cost=unit_cost,
                total_cost=quantity * unit_cost,
            ))
        po = _build(
            PurchaseOrder,
            id=self._new_id("po-", self.purchase_orders),
            po_number=po_number or f"PO-{date.today().year}-{random.randint(0, 999)}",
            supplier_name=supplier_name,
            date=_today(),
            status="Pending",
            items=lines,
            total_amount=sum(line.total_cost for line in lines),
        )
        self.persistence.insert("purchase_orders", po.model_dump())
        self.purchase_orders.insert(0, po)
        logger.info(f"Purchase order {po.po_number} raised with {supplier_name}: {po.total_amount}")
        return po

    @_locked
    def receive_purchase_order(self, po_id: str) -> PurchaseOrder:
        """Mark the PO Received and add its quantities to stock, once only."""
        po = self.get_purchase_order(po_id)
        if po.status == "Received":
            logger.info(f"Purchase order {po.po_number} already received")
            return po
        self.persistence.update("purchase_orders", po_id, {"status": "Received"})
        received = po.model_copy(update={"status": "Received"})
        self.purchase_orders = _replace(self.purchase_orders, received)
        for item in po.items:
            product = _find(self.products, item.product_id)
            if product is not None:
                self._set_stock(product, product.stock + item.quantity)
        logger.info(f"Purchase order {po.po_number} received")
        return received

    @_locked
    def delete_purchase_order(self, po_id: str) -> None:
        self.get_purchase_order(po_id)
        self.persistence.delete("purchase_orders", po_id)
        self.purchase_orders = [p for p in self.purchase_orders if p.id != po_id]

    # ---------------------------------------------------------------- reviews

    def _insert_review(self, review: Review) -> Review:
        self.persistence.insert("reviews", review.model_dump())
        self.reviews.insert(0, review)
        return review

    @_locked
    def add_review(self, product_id: str, rating: int, comment: str, session: Optional[Session] = None) -> Review:
        user = self._session(session).user
        if user is None:
            raise NotAuthenticated("Please login to submit a review")
        self.get_product(product_id)
        comment = _require_text(comment, "Please write a comment")
        review = _build(
            Review,
            id=self._new_id("r-", self.reviews),
            product_id=product_id,
            user_id=user.id,
            user_name=user.name,
            rating=rating,
            comment=comment,
            date=_today(),
        )
        return self._insert_review(review)

    @_locked
    def add_manual_review(self, product_id: str, user_name: str, rating: int, comment: str,
                          review_date: Optional[str] = None) -> Review:
        """Review typed in by an admin on a customer's behalf; carries no user id."""
        self.get_product(product_id)
        review = _build(
            Review,
            id=self._new_id("r-", self.reviews),
            product_id=product_id,
            user_id="",
            user_name=_require_text(user_name, "Reviewer name is required"),
            rating=rating,
            comment=_require_text(comment, "Please write a comment"),
            date=review_date or _today(),
        )
        return self._insert_review(review)

    @_locked
    def update_review(self, review_id: str, **changes) -> Review:
        """Edit name, rating, comment or date. The product cannot change."""
        current = self.get_review(review_id)
        changes = {k: v for k, v in changes.items() if k in ("user_name", "rating", "comment", "date")}
        updated = _build(Review, **{**current.model_dump(), **changes})
        self.persistence.update("reviews", review_id, changes)
        self.reviews = _replace(self.reviews, updated)
        return updated

    @_locked
    def delete_review(self, review_id: str) -> None:
        self.get_review(review_id)
        self.persistence.delete("reviews", review_id)
        self.reviews = [r for r in self.reviews if r.id != review_id]

    def reviews_for_product(self, product_id: str) -> List[Review]:
        return [r for r in self.reviews if r.product_id == product_id]

    def product_rating(self, product_id: str) -> dict:
        return {
            "average": reporting.average_rating(self.reviews, product_id),
            "count": len(self.reviews_for_product(product_id)),
        }

    # --------------------------------------------------------------- settings

    @_locked
    def update_invoice_settings(self, settings: InvoiceSettings) -> InvoiceSettings:
        self._save_setting("invoice_settings", settings)
        self.invoice_settings = settings
        return settings

    @_locked
    def update_payment_settings(self, settings: PaymentSettings) -> PaymentSettings:
        self._save_setting("payment_settings", settings)
        self.payment_settings = settings
        return settings

    @_locked
    def update_brand_assets(self, assets: BrandAssets) -> BrandAssets:
        self._save_setting("brand_assets", assets)
        self.brand_assets = assets
        return assets
