"""
Store Schemas

Pydantic models for every record the tea storefront keeps.
These schemas validate data coming in over the API and define the shape
of the rows written to the persistence backend.

Each model maps to one collection:
- User -> "users"
- Product -> "products"
- Order -> "orders" (line items live in "order_item" on the row store)
- PurchaseOrder -> "purchase_orders"
- Review -> "reviews"
Settings models are singletons stored under their own key.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal

Role = Literal["ADMIN", "DISTRIBUTOR", "CUSTOMER"]
Category = Literal["Sachet", "Pouch", "Bulk"]
OrderStatus = Literal["Processing", "Shipped", "Delivered", "Cancelled"]
PaymentMethod = Literal["UPI", "Card", "COD", "Cash"]
PaymentStatus = Literal["Pending", "Paid"]
OrderType = Literal["RETAIL", "WHOLESALE"]
PurchaseOrderStatus = Literal["Pending", "Received", "Cancelled"]

DEFAULT_HSN_CODE = "0902"


class User(BaseModel):
    id: str
    name: str = Field(..., min_length=1, description="Full name or firm name")
    mobile: str = Field(..., pattern=r"^\d{10}$", description="10 digit mobile, unique")
    password: str = Field(..., min_length=1, description="Opaque credential")
    role: Role = Field("CUSTOMER", description="Account role")
    approved: bool = Field(True, description="Distributors need admin approval")
    territory: Optional[str] = Field(None, description="Distributor territory")
    address: Optional[str] = None
    gst_number: Optional[str] = None


class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    image: str = ""
    weight: str = Field("", description="Pack size label, e.g. 250g")
    mrp: float = Field(..., ge=0, description="Retail unit price")
    distributor_price: float = Field(..., ge=0, description="Wholesale unit price")
    cost_price: float = Field(0, ge=0, description="Purchase cost, admin only")
    stock: int = Field(0, ge=0)
    low_stock_threshold: int = Field(0, ge=0)
    category: Category = "Pouch"
    hsn_code: Optional[str] = DEFAULT_HSN_CODE


class CartItem(Product):
    quantity: int = Field(1, ge=1)


class Order(BaseModel):
    id: str
    user_id: str
    user_name: str
    user_address: Optional[str] = None
    user_gst: Optional[str] = None
    items: List[CartItem] = []
    total_amount: float = Field(..., ge=0)
    tax_amount: float = Field(..., ge=0)
    status: OrderStatus = "Processing"
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "Pending"
    transaction_id: Optional[str] = None
    date: str = Field(..., description="ISO date, YYYY-MM-DD")
    type: OrderType = "RETAIL"
    invoice_number: Optional[str] = None


class PurchaseItem(BaseModel):
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    unit_cost: float = Field(..., ge=0)
    total_cost: float = Field(0, ge=0)


class PurchaseOrder(BaseModel):
    id: str
    po_number: str
    supplier_name: str
    date: str
    status: PurchaseOrderStatus = "Pending"
    items: List[PurchaseItem] = []
    total_amount: float = 0


class Review(BaseModel):
    id: str
    product_id: str
    user_id: str = Field("", description="Empty for reviews entered by an admin")
    user_name: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)
    date: str


class InvoiceSettings(BaseModel):
    company_name: str
    address_line1: str = ""
    address_line2: str = ""
    gstin: str = ""
    phone: str = ""
    email: Optional[str] = None
    footer_note: str = ""


class PaymentSettings(BaseModel):
    razorpay_key_id: str = ""


class BrandAssets(BaseModel):
    logo: Optional[str] = None
    hero_image: Optional[str] = None
