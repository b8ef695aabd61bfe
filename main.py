import logging
import os
from typing import List, Optional, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field

import config
import reporting
from csv_export import to_csv
from errors import StoreError
from invoice import render_invoice
from payments import build_gateway, checkout
from persistence import MongoPersistence, build_persistence
from pricing import unit_price
from schemas import BrandAssets, Category, InvoiceSettings, Order, PaymentSettings, Product, User
from session import Session
from store import Store

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Amrit Assam Tea Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: Optional[Store] = None
_gateway = None


def get_store() -> Store:
    global _store
    if _store is None:
        _store = Store(build_persistence())
    return _store


def get_gateway():
    global _gateway
    if _gateway is None:
        _gateway = build_gateway()
    return _gateway


def get_session(
    x_session_token: Optional[str] = Header(None),
    store: Store = Depends(get_store),
) -> Session:
    if not x_session_token:
        raise HTTPException(status_code=401, detail="Please login first")
    return store.get_session(x_session_token)


def optional_session(
    x_session_token: Optional[str] = Header(None),
    store: Store = Depends(get_store),
) -> Optional[Session]:
    return store.sessions.get(x_session_token) if x_session_token else None


def current_user(session: Session = Depends(get_session)) -> User:
    if session.user is None:
        raise HTTPException(status_code=401, detail="Please login first")
    return session.user


def viewer(session: Optional[Session] = Depends(optional_session)) -> Optional[User]:
    return session.user if session else None


def require_admin(user: User = Depends(current_user)) -> User:
    if user.role != "ADMIN":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": type(exc).__name__})


# Helpers
def public_user(user: User) -> dict:
    return user.model_dump(exclude={"password"})


def public_product(product: Product, viewer: Optional[User]) -> dict:
    """Cost price is for admins only; everyone sees the price they would pay."""
    role = viewer.role if viewer else None
    data = product.model_dump()
    if role != "ADMIN":
        data.pop("cost_price", None)
    data["unit_price"] = unit_price(product, role)
    return data


def public_order(order: Order, viewer: User) -> dict:
    data = order.model_dump()
    if viewer.role != "ADMIN":
        for item in data["items"]:
            item.pop("cost_price", None)
    return data


def csv_response(records: List[dict], filename: str) -> Response:
    return Response(
        content=to_csv(records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/")
def read_root():
    return {"message": "Tea Store Backend Ready"}


@app.get("/schema")
def get_schema():
    """Expose basic schema info for the database viewer."""
    return {
        "collections": [
            "products", "orders", "order_item", "purchase_orders", "users", "reviews", "settings"
        ]
    }


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "store_backend": config.STORE_BACKEND,
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    if config.STORE_BACKEND != "mongo":
        response["database"] = f"Local snapshot at {config.SNAPSHOT_PATH}"
        return response
    try:
        import database
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth
def _client_session(store: Store, existing: Optional[Session]) -> Session:
    """Keep the caller's guest session, cart included, or start a fresh one."""
    return existing if existing is not None else store.open_session()


@app.post("/auth/session", status_code=201)
def open_guest_session(store: Store = Depends(get_store)):
    return {"token": store.open_session().token}


class RegisterIn(BaseModel):
    name: str
    mobile: str
    password: str
    role: Literal["CUSTOMER", "DISTRIBUTOR"] = "CUSTOMER"
    territory: Optional[str] = None


@app.post("/auth/register", status_code=201)
def register(payload: RegisterIn, store: Store = Depends(get_store),
             existing: Optional[Session] = Depends(optional_session)):
    session = _client_session(store, existing)
    user = store.register(payload.name, payload.mobile, payload.password, payload.role, payload.territory,
                          session=session)
    message = "Registration successful!" if user.approved else \
        "Registration successful! Please wait for Admin approval."
    return {"user": public_user(user), "logged_in": user.approved, "message": message, "token": session.token}


class LoginIn(BaseModel):
    mobile: str
    password: str
    role: Optional[Literal["ADMIN", "DISTRIBUTOR", "CUSTOMER"]] = None


@app.post("/auth/login")
def login(payload: LoginIn, store: Store = Depends(get_store),
          existing: Optional[Session] = Depends(optional_session)):
    session = _client_session(store, existing)
    user = store.login(payload.mobile, payload.password, payload.role, session=session)
    return {"user": public_user(user), "token": session.token}


@app.post("/auth/logout")
def logout(store: Store = Depends(get_store), session: Session = Depends(get_session)):
    store.logout(session)
    store.close_session(session.token)
    return {"ok": True}


@app.get("/auth/me")
def me(user: User = Depends(current_user)):
    return public_user(user)


# Products
@app.get("/products")
def list_products(
    q: Optional[str] = None,
    category: Optional[Category] = None,
    store: Store = Depends(get_store),
    user: Optional[User] = Depends(viewer),
):
    items = store.products
    if q:
        needle = q.lower()
        items = [p for p in items if needle in p.name.lower() or needle in p.description.lower()]
    if category:
        items = [p for p in items if p.category == category]
    return [public_product(p, user) for p in items]


@app.get("/products/{product_id}")
def get_product(product_id: str, store: Store = Depends(get_store), user: Optional[User] = Depends(viewer)):
    return public_product(store.get_product(product_id), user)


class ProductIn(BaseModel):
    id: Optional[str] = None
    name: str
    description: str = ""
    image: str = ""
    weight: str = ""
    mrp: float = Field(..., ge=0)
    distributor_price: float = Field(..., ge=0)
    cost_price: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    low_stock_threshold: int = Field(50, ge=0)
    category: Category = "Pouch"
    hsn_code: Optional[str] = "0902"


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    weight: Optional[str] = None
    mrp: Optional[float] = Field(None, ge=0)
    distributor_price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    category: Optional[Category] = None
    hsn_code: Optional[str] = None


@app.post("/products", status_code=201)
def create_product(prod: ProductIn, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.add_product(**prod.model_dump(exclude_none=True))


@app.put("/products/{product_id}")
def update_product(product_id: str, changes: ProductUpdate, store: Store = Depends(get_store),
                   admin: User = Depends(require_admin)):
    return store.update_product(product_id, **changes.model_dump(exclude_unset=True))


@app.delete("/products/{product_id}")
def delete_product(product_id: str, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    store.delete_product(product_id)
    return {"ok": True}


class StockIn(BaseModel):
    stock: int = Field(..., ge=0)


@app.patch("/products/{product_id}/stock")
def update_stock(product_id: str, payload: StockIn, store: Store = Depends(get_store),
                 admin: User = Depends(require_admin)):
    return store.update_stock(product_id, payload.stock)


# Reviews
@app.get("/products/{product_id}/reviews")
def product_reviews(product_id: str, store: Store = Depends(get_store)):
    store.get_product(product_id)
    return {**store.product_rating(product_id), "reviews": store.reviews_for_product(product_id)}


class ReviewIn(BaseModel):
    rating: int = Field(5, ge=1, le=5)
    comment: str


@app.post("/products/{product_id}/reviews", status_code=201)
def add_review(product_id: str, rev: ReviewIn, store: Store = Depends(get_store),
               session: Session = Depends(get_session)):
    return store.add_review(product_id, rev.rating, rev.comment, session=session)


@app.get("/reviews")
def list_reviews(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.reviews


class ManualReviewIn(BaseModel):
    product_id: str
    user_name: str
    rating: int = Field(5, ge=1, le=5)
    comment: str
    date: Optional[str] = None


@app.post("/reviews", status_code=201)
def add_manual_review(rev: ManualReviewIn, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.add_manual_review(rev.product_id, rev.user_name, rev.rating, rev.comment, rev.date)


class ReviewUpdate(BaseModel):
    user_name: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None
    date: Optional[str] = None


@app.put("/reviews/{review_id}")
def update_review(review_id: str, changes: ReviewUpdate, store: Store = Depends(get_store),
                  admin: User = Depends(require_admin)):
    return store.update_review(review_id, **changes.model_dump(exclude_unset=True))


@app.delete("/reviews/{review_id}")
def delete_review(review_id: str, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    store.delete_review(review_id)
    return {"ok": True}


# Cart
@app.get("/cart")
def get_cart(store: Store = Depends(get_store), session: Session = Depends(get_session)):
    return store.cart_summary(session)


class CartAdd(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


@app.post("/cart")
def add_to_cart(item: CartAdd, store: Store = Depends(get_store), session: Session = Depends(get_session)):
    store.add_to_cart(item.product_id, item.quantity, session=session)
    return store.cart_summary(session)


@app.delete("/cart/{product_id}")
def remove_cart(product_id: str, store: Store = Depends(get_store), session: Session = Depends(get_session)):
    store.remove_from_cart(product_id, session=session)
    return store.cart_summary(session)


@app.delete("/cart")
def clear_cart(store: Store = Depends(get_store), session: Session = Depends(get_session)):
    store.clear_cart(session=session)
    return store.cart_summary(session)


# Orders
class CheckoutIn(BaseModel):
    payment_method: Literal["UPI", "Card", "COD"]
    address: str
    payment_reference: Optional[str] = Field(None, description="Gateway payment id returned to the client")


@app.post("/checkout")
def place_order(payload: CheckoutIn, store: Store = Depends(get_store), gateway=Depends(get_gateway),
                session: Session = Depends(get_session), user: User = Depends(current_user)):
    order = checkout(store, gateway, payload.payment_method, payload.address, payload.payment_reference,
                     session=session)
    if order is None:
        return {"ok": False, "cancelled": True, "message": "Payment Cancelled. Order not placed."}
    return {"ok": True, "order": public_order(order, user)}


@app.get("/orders")
def list_orders(user: User = Depends(current_user), store: Store = Depends(get_store)):
    if user.role == "ADMIN":
        return store.orders
    return [public_order(o, user) for o in store.orders_for_user(user.id)]


class OrderLineIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class ManualOrderIn(BaseModel):
    user_id: str
    items: List[OrderLineIn]


@app.post("/orders/manual", status_code=201)
def create_manual_order(payload: ManualOrderIn, store: Store = Depends(get_store),
                        admin: User = Depends(require_admin)):
    return store.create_manual_order(payload.user_id, [(i.product_id, i.quantity) for i in payload.items])


class StatusIn(BaseModel):
    status: Literal["Processing", "Shipped", "Delivered", "Cancelled"]


class PaymentStatusIn(BaseModel):
    status: Literal["Pending", "Paid"]


@app.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusIn, store: Store = Depends(get_store),
                        admin: User = Depends(require_admin)):
    return store.update_order_status(order_id, payload.status)


@app.patch("/orders/{order_id}/payment-status")
def update_payment_status(order_id: str, payload: PaymentStatusIn, store: Store = Depends(get_store),
                          admin: User = Depends(require_admin)):
    return store.update_payment_status(order_id, payload.status)


@app.delete("/orders/{order_id}")
def delete_order(order_id: str, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    store.delete_order(order_id)
    return {"ok": True}


@app.get("/orders/{order_id}/invoice", response_class=PlainTextResponse)
def order_invoice(order_id: str, user: User = Depends(current_user), store: Store = Depends(get_store)):
    order = store.get_order(order_id)
    if user.role != "ADMIN" and order.user_id != user.id:
        raise HTTPException(status_code=404, detail="Order not found")
    return render_invoice(order, store.invoice_settings)


@app.post("/payments/reset")
def clear_online_orders(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return {"ok": True, "deleted": store.clear_online_orders()}


# Purchase orders
class PurchaseItemIn(BaseModel):
    product_id: str
    quantity: int = Field(100, ge=1)
    unit_cost: Optional[float] = Field(None, ge=0)


class PurchaseOrderIn(BaseModel):
    supplier_name: str
    po_number: Optional[str] = None
    items: List[PurchaseItemIn]


@app.get("/purchase-orders")
def list_purchase_orders(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.purchase_orders


@app.post("/purchase-orders", status_code=201)
def create_purchase_order(payload: PurchaseOrderIn, store: Store = Depends(get_store),
                          admin: User = Depends(require_admin)):
    items = [i.model_dump(exclude_none=True) for i in payload.items]
    return store.add_purchase_order(payload.supplier_name, items, payload.po_number)


@app.post("/purchase-orders/{po_id}/receive")
def receive_purchase_order(po_id: str, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.receive_purchase_order(po_id)


@app.delete("/purchase-orders/{po_id}")
def delete_purchase_order(po_id: str, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    store.delete_purchase_order(po_id)
    return {"ok": True}


# Users
@app.get("/users")
def list_users(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return [public_user(u) for u in store.users]


class UserIn(BaseModel):
    name: str
    mobile: str
    role: Literal["ADMIN", "DISTRIBUTOR", "CUSTOMER"] = "CUSTOMER"
    password: Optional[str] = None
    territory: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


@app.post("/users", status_code=201)
def create_user(payload: UserIn, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return public_user(store.add_user(**payload.model_dump()))


@app.post("/users/{user_id}/approve")
def approve_distributor(user_id: str, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return public_user(store.approve_distributor(user_id))


class PasswordIn(BaseModel):
    password: str


@app.put("/users/{user_id}/password")
def update_password(user_id: str, payload: PasswordIn, store: Store = Depends(get_store),
                    admin: User = Depends(require_admin)):
    store.update_user_password(user_id, payload.password)
    return {"ok": True}


# Reports
@app.get("/reports/overview")
def overview(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return reporting.sales_overview(store.orders, store.products)


@app.get("/reports/profit-loss")
def profit_loss(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return reporting.profit_and_loss(store.orders, store.products)


@app.get("/reports/low-stock")
def low_stock(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return reporting.low_stock(store.products)


@app.get("/reports/payments")
def payments(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return {
        **reporting.payment_summary(store.orders).model_dump(),
        "orders": reporting.online_orders(store.orders),
    }


@app.get("/exports/profit-loss.csv")
def export_profit_loss(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return csv_response(reporting.profit_and_loss_rows(store.orders, store.products), "Profit_Loss_Statement.csv")


@app.get("/exports/payments.csv")
def export_payments(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return csv_response(reporting.payment_rows(store.orders), "payments_export.csv")


# Settings
@app.get("/settings/invoice")
def get_invoice_settings(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.invoice_settings


@app.put("/settings/invoice")
def put_invoice_settings(settings: InvoiceSettings, store: Store = Depends(get_store),
                         admin: User = Depends(require_admin)):
    return store.update_invoice_settings(settings)


@app.get("/settings/payment")
def get_payment_settings(store: Store = Depends(get_store)):
    return store.payment_settings


@app.put("/settings/payment")
def put_payment_settings(settings: PaymentSettings, store: Store = Depends(get_store),
                         admin: User = Depends(require_admin)):
    return store.update_payment_settings(settings)


@app.get("/settings/brand")
def get_brand_assets(store: Store = Depends(get_store)):
    return store.brand_assets


@app.put("/settings/brand")
def put_brand_assets(assets: BrandAssets, store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    return store.update_brand_assets(assets)


# Seed demo data if database empty
@app.post("/seed")
def seed_data(store: Store = Depends(get_store), admin: User = Depends(require_admin)):
    if not isinstance(store.persistence, MongoPersistence):
        return {"ok": True, "message": "Local snapshot is seeded on first start"}
    inserted = store.persistence.seed()
    if not inserted:
        return {"ok": True, "message": "Already seeded"}
    store.reload()
    return {"ok": True, "inserted": inserted}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
