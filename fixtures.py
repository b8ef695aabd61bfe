"""
Starter data: the tea catalog, demo accounts, a couple of historic orders,
one received purchase order, a few reviews and the default settings.

Used to seed an empty snapshot file and the /seed route.
"""

import copy

PRODUCTS = [
    {
        "id": "p1",
        "name": "Amrit Assam Gold - Sachet",
        "description": "Perfect for single use. Kadak taste instantly.",
        "image": "https://picsum.photos/seed/tea1/400/400",
        "weight": "20g",
        "mrp": 10,
        "distributor_price": 7.5,
        "cost_price": 5,
        "stock": 5000,
        "low_stock_threshold": 500,
        "category": "Sachet",
    },
    {
        "id": "p2",
        "name": "Amrit Assam Gold - Family Pack",
        "description": "The standard choice for every Indian household. Rich color and aroma.",
        "image": "https://picsum.photos/seed/tea2/400/400",
        "weight": "250g",
        "mrp": 120,
        "distributor_price": 90,
        "cost_price": 65,
        "stock": 1000,
        "low_stock_threshold": 100,
        "category": "Pouch",
    },
    {
        "id": "p3",
        "name": "Amrit Assam Gold - Jumbo Pack",
        "description": "Best value for large families and tea stalls.",
        "image": "https://picsum.photos/seed/tea3/400/400",
        "weight": "500g",
        "mrp": 230,
        "distributor_price": 175,
        "cost_price": 130,
        "stock": 800,
        "low_stock_threshold": 100,
        "category": "Pouch",
    },
    {
        "id": "p4",
        "name": "Hotel Special Dust",
        "description": "Extra strong dust tea specifically for tapris and hotels.",
        "image": "https://picsum.photos/seed/tea4/400/400",
        "weight": "1kg",
        "mrp": 400,
        "distributor_price": 320,
        "cost_price": 250,
        "stock": 200,
        "low_stock_threshold": 50,
        "category": "Bulk",
    },
]

USERS = [
    {
        "id": "admin1",
        "name": "Super Admin",
        "mobile": "8898750419",
        "password": "admin",
        "role": "ADMIN",
        "approved": True,
    },
    {
        "id": "dist1",
        "name": "Rajesh Traders",
        "mobile": "6913228416",
        "password": "123",
        "role": "DISTRIBUTOR",
        "territory": "Navi Mumbai - Vashi",
        "approved": True,
        "address": "Shop 4, APMC Market, Vashi",
    },
    {
        "id": "cust1",
        "name": "Amit Sharma",
        "mobile": "9324270409",
        "password": "123",
        "role": "CUSTOMER",
        "approved": True,
        "address": "Flat 102, Shanti Nagar, Mumbai",
    },
]


def _line(product_index, quantity):
    return dict(PRODUCTS[product_index], quantity=quantity)


ORDERS = [
    {
        "id": "ORD-001",
        "user_id": "cust1",
        "user_name": "Amit Sharma",
        "items": [_line(1, 2)],
        "total_amount": 252,
        "tax_amount": 12,
        "status": "Delivered",
        "payment_method": "UPI",
        "payment_status": "Paid",
        "transaction_id": "pay_M3k29sl29dJ",
        "date": "2023-10-15",
        "type": "RETAIL",
    },
    {
        "id": "ORD-002",
        "user_id": "dist1",
        "user_name": "Rajesh Traders",
        "items": [_line(2, 50), _line(3, 10)],
        "total_amount": 12548,
        "tax_amount": 598,
        "status": "Processing",
        "payment_method": "UPI",
        "payment_status": "Pending",
        "date": "2023-10-20",
        "type": "WHOLESALE",
    },
]

PURCHASE_ORDERS = [
    {
        "id": "po1",
        "po_number": "PO-2023-001",
        "supplier_name": "Assam Gardens Pvt Ltd",
        "date": "2023-10-01",
        "status": "Received",
        "total_amount": 38000,
        "items": [
            {"product_id": "p4", "product_name": "Hotel Special Dust", "quantity": 100,
             "unit_cost": 250, "total_cost": 25000},
            {"product_id": "p3", "product_name": "Amrit Assam Gold - Jumbo Pack", "quantity": 100,
             "unit_cost": 130, "total_cost": 13000},
        ],
    },
]

REVIEWS = [
    {
        "id": "r1",
        "product_id": "p1",
        "user_id": "cust1",
        "user_name": "Amit Sharma",
        "rating": 5,
        "comment": "Absolutely love the strong taste! Perfect for my morning routine.",
        "date": "2023-10-12",
    },
    {
        "id": "r2",
        "product_id": "p2",
        "user_id": "u2",
        "user_name": "Priya Patel",
        "rating": 4,
        "comment": "Great value for money. The color is very rich.",
        "date": "2023-10-15",
    },
    {
        "id": "r3",
        "product_id": "p4",
        "user_id": "dist1",
        "user_name": "Rajesh Traders",
        "rating": 5,
        "comment": "My hotel clients are very happy with the dust tea quality. Highly recommended for business.",
        "date": "2023-10-18",
    },
]

INVOICE_SETTINGS = {
    "company_name": "Amrit Assam Gold Tea",
    "address_line1": "Office No. 45, Grain Market, APMC Vashi",
    "address_line2": "Navi Mumbai - 400705",
    "gstin": "27AAAAA0000A1Z5",
    "phone": "+91 93242 70409",
    "footer_note": "Thank you for choosing Amrit Assam Gold Tea. Goods once sold will not be taken back.",
}

PAYMENT_SETTINGS = {"razorpay_key_id": "rzp_test_1DP5mmOlF5G5ag"}

BRAND_ASSETS = {"logo": None, "hero_image": None}

SETTING_DEFAULTS = {
    "invoice_settings": INVOICE_SETTINGS,
    "payment_settings": PAYMENT_SETTINGS,
    "brand_assets": BRAND_ASSETS,
    "current_user": None,
}


def default_state():
    """A fresh, independent copy of every seeded collection and setting."""
    return copy.deepcopy({
        "products": PRODUCTS,
        "orders": ORDERS,
        "purchase_orders": PURCHASE_ORDERS,
        "users": USERS,
        "reviews": REVIEWS,
        **SETTING_DEFAULTS,
    })
