"""
Application configuration, read once from the environment at startup.
"""

import os

STORE_BACKEND = os.getenv("STORE_BACKEND", "local")  # "local" or "mongo"
SNAPSHOT_PATH = os.getenv("SNAPSHOT_PATH", "teashop_state.json")

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

TAX_RATE = float(os.getenv("TAX_RATE", "0.05"))
CURRENCY = os.getenv("CURRENCY", "INR")

# Cancelling an order leaves stock untouched unless this is switched on.
RESTOCK_ON_CANCEL = os.getenv("RESTOCK_ON_CANCEL", "0") == "1"

PAYMENT_MODE = os.getenv("PAYMENT_MODE", "simulated")  # "simulated" or "razorpay"
RAZORPAY_API_URL = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
PAYMENT_TIMEOUT = int(os.getenv("PAYMENT_TIMEOUT", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
