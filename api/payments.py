import logging
import secrets

import razorpay
from django.conf import settings

logger = logging.getLogger(__name__)

CURRENCY = "INR"
PLACEHOLDER_KEY = "rzp_test_your_key_id"


def gateway_configured():
    key_id = settings.RAZORPAY_KEY_ID
    return bool(key_id and settings.RAZORPAY_KEY_SECRET and PLACEHOLDER_KEY not in key_id)


def create_order(amount):
    """Create a payment order for `amount` rupees. Falls back to a mock order without credentials."""
    paise = int(round(float(amount) * 100))
    receipt = f"receipt_{secrets.token_hex(4)}"

    if not gateway_configured():
        logger.info("Using mock payment mode")
        return {
            "orderId": f"order_mock_{secrets.token_hex(4)}",
            "amount": paise,
            "currency": CURRENCY,
            "isMock": True,
        }

    client = razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))
    order = client.order.create({"amount": paise, "currency": CURRENCY, "receipt": receipt})
    return {
        "orderId": order["id"],
        "amount": order["amount"],
        "currency": order["currency"],
        "isMock": False,
    }
