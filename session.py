"""
Per-client session: who is logged in and what is in their cart.
"""

import secrets
from typing import Optional

from cart import Cart
from schemas import User


class Session:
    def __init__(self, user: Optional[User] = None):
        self.token = secrets.token_urlsafe(24)
        self.user = user
        self.cart = Cart()
