"""Request builders shared by the API tests."""

import hashlib
import hmac
import json
import time
from decimal import Decimal

from app.core.config import settings


WALLET_ADDRESS = "0xF4a9%2Fb7C%2B12e"


def paygate_query(invoice, status, amount="29.99", currency="USD", secret=None):
    """Callback parameters signed the way PayGate signs them."""
    secret = settings.paygate_callback_secret if secret is None else secret
    message = f"{invoice}:{status}:{amount}:{currency}"
    signature = hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()
    return {
        "invoice": invoice,
        "status": status,
        "amount": amount,
        "currency": currency,
        "hash": signature,
    }


def stripe_event(event_type, session, event_id="evt_test_1"):
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": {"object": "checkout.session", **session}},
        }
    ).encode()


def stripe_headers(payload, secret=None):
    """`Stripe-Signature` header for `payload` (scheme v1, HMAC-SHA256)."""
    secret = settings.stripe_webhook_secret if secret is None else secret
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return {
        "Stripe-Signature": f"t={timestamp},v1={signature}",
        "Content-Type": "application/json",
    }


def money(value):
    return Decimal(str(value))


def error_code(response):
    return response.json()["error"]["code"]
