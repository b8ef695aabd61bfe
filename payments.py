"""
Payment collaborator and the checkout flow around it.

A gateway reports exactly one outcome per attempt: success with a
transaction id, failure with a reason, or cancelled by the buyer. Checkout
maps those to a paid order, a PaymentFailed error, or no order at all.
The cart survives anything but success.
"""

import logging
import time
from typing import Any, Dict, Literal, Optional

import requests
from pydantic import BaseModel

import config
from errors import PaymentFailed
from schemas import Order

logger = logging.getLogger(__name__)


class PaymentOutcome(BaseModel):
    status: Literal["success", "failure", "cancelled"]
    transaction_id: Optional[str] = None
    reason: Optional[str] = None


class SimulatedGateway:
    """Stands in for the hosted checkout when no gateway is wired up."""

    def __init__(self, outcome: str = "success", reason: str = "Simulated decline"):
        self.outcome = outcome
        self.reason = reason

    def collect(self, amount: float, currency: str, metadata: Dict[str, Any]) -> PaymentOutcome:
        logger.info(f"[SIMULATED] {self.outcome} for {amount} {currency}")
        if self.outcome == "success":
            return PaymentOutcome(status="success", transaction_id=f"pay_Sim{int(time.time() * 1000)}")
        if self.outcome == "failure":
            return PaymentOutcome(status="failure", reason=self.reason)
        return PaymentOutcome(status="cancelled")


class RazorpayGateway:
    """Verifies a payment the buyer completed in Razorpay's hosted checkout.

    The client hands back the payment id it received; no id means the buyer
    closed the checkout without paying.
    """

    def __init__(self, key_id: str, key_secret: str, api_url: str = None, timeout: int = None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = (api_url or config.RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout or config.PAYMENT_TIMEOUT

    def collect(self, amount: float, currency: str, metadata: Dict[str, Any]) -> PaymentOutcome:
        payment_id = metadata.get("payment_id")
        if not payment_id:
            return PaymentOutcome(status="cancelled")
        if not self.key_id or not self.key_secret:
            return PaymentOutcome(status="failure",
                                  reason="Payment gateway is not configured. Please check the key in Admin Settings.")
        try:
            response = requests.get(
                f"{self.api_url}/payments/{payment_id}",
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Razorpay unreachable: {e}")
            return PaymentOutcome(status="failure", reason="Unable to connect to payment service. Please try again.")

        if not response.ok:
            logger.error(f"Razorpay answered {response.status_code} for {payment_id}")
            return PaymentOutcome(status="failure", reason="Payment service is temporarily unavailable. Please try again later.")

        data = response.json()
        status = data.get("status")
        if status == "failed":
            return PaymentOutcome(status="failure", reason=data.get("error_description") or "Payment declined")
        if status not in ("authorized", "captured"):
            return PaymentOutcome(status="failure", reason=f"Payment is {status}")
        # amounts travel in paise
        if data.get("amount") != int(round(amount * 100)) or data.get("currency", currency) != currency:
            return PaymentOutcome(status="failure", reason="Paid amount does not match the order total")
        return PaymentOutcome(status="success", transaction_id=payment_id)


def build_gateway():
    if config.PAYMENT_MODE == "razorpay":
        return RazorpayGateway(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET)
    return SimulatedGateway()


def checkout(store, gateway, payment_method: str, address: str,
             payment_reference: Optional[str] = None, session=None) -> Optional[Order]:
    """Place the session cart as an order, collecting payment first unless it is COD.

    Returns None when the buyer cancelled the payment.
    """
    if payment_method == "COD":
        return store.place_order("COD", address, "Pending", session=session)

    user, address = store.prepare_checkout(address, session)
    amount = store.cart_summary(session)["total_amount"]
    outcome = gateway.collect(amount, config.CURRENCY, {
        "user_id": user.id,
        "name": user.name,
        "contact": user.mobile,
        "payment_method": payment_method,
        "payment_id": payment_reference,
    })
    if outcome.status == "success":
        # stock is checked again under the store lock
        return store.place_order(payment_method, address, "Paid", outcome.transaction_id, session=session)
    if outcome.status == "failure":
        logger.error(f"Payment failed for {user.id}: {outcome.reason}")
        raise PaymentFailed(outcome.reason)
    logger.info(f"Payment cancelled by {user.id}, order not placed")
    return None
