"""
Domain errors raised by the store.

Each error knows the HTTP status the API answers with, so route handlers
can let them propagate to the single exception handler in main.py.
"""


class StoreError(Exception):
    """Base class for every refusal the store reports to a caller."""
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationFailed(StoreError):
    """Raised when a required field is empty or malformed."""
    status_code = 422


class AlreadyExists(StoreError):
    """Raised when registering a mobile number that is already taken."""
    status_code = 409


class NotFound(StoreError):
    status_code = 404


class AccountNotFound(NotFound):
    """Raised when no account matches the mobile number at login."""


class WrongPassword(StoreError):
    status_code = 401


class ApprovalPending(StoreError):
    """Raised when an unapproved distributor tries to log in."""
    status_code = 403


class NotAuthenticated(StoreError):
    status_code = 401


class InsufficientStock(StoreError):
    status_code = 409

    def __init__(self, product_name, available):
        super().__init__(f"Insufficient stock for {product_name}. Available: {available}")
        self.product_name = product_name
        self.available = available


class PaymentFailed(StoreError):
    """Raised when the payment gateway reports a failure or cannot be reached."""
    status_code = 402

    def __init__(self, reason):
        super().__init__(f"Payment Failed: {reason}")
        self.reason = reason


class PersistenceError(StoreError):
    """Raised when the backend rejects a read or write."""
    status_code = 503
