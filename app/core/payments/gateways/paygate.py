from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from app.core.config import settings
from app.core.payments.gateway_config import GatewayConfig
from app.response.errors import ConfigurationError, UpstreamError


OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_PENDING = "pending"

_COMPLETED_TOKENS = frozenset({"paid", "completed", "confirmed"})
_FAILED_TOKENS = frozenset({"failed", "cancelled", "canceled", "expired"})

WALLET_GUIDANCE = (
    "Provision a receiving wallet in Admin > Payment gateway "
    "(POST /api/v1/admin/gateway/wallet) before accepting crypto payments."
)


def map_paygate_status(token: Optional[str]) -> str:
    """Unrecognised tokens never complete or fail a transaction."""
    normalized = (token or "").strip().lower()
    if normalized in _COMPLETED_TOKENS:
        return OUTCOME_COMPLETED
    if normalized in _FAILED_TOKENS:
        return OUTCOME_FAILED
    return OUTCOME_PENDING


def compute_paygate_hash(
    secret: str,
    invoice: str,
    status: str,
    amount: str,
    currency: str,
) -> str:
    message = f"{invoice}:{status}:{amount}:{currency}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_paygate_hash(
    secret: str,
    invoice: str,
    status: str,
    amount: str,
    currency: str,
    signature: Optional[str],
) -> bool:
    if not secret or not signature:
        return False
    expected = compute_paygate_hash(secret, invoice, status, amount, currency)
    return hmac.compare_digest(expected, signature.strip().lower())


def require_wallet(gateway: GatewayConfig) -> str:
    if not gateway.is_configured:
        raise ConfigurationError(
            code="PAYMENT_GATEWAY_NOT_CONFIGURED",
            message="Crypto payments are not configured yet",
            guidance=WALLET_GUIDANCE,
        )
    return gateway.wallet_address


def build_payment_url(
    gateway: GatewayConfig,
    *,
    amount: Decimal,
    currency: str,
    email: str,
) -> str:
    """
    The wallet address comes back from the wallet API already percent-encoded
    and goes into the URL as-is. Encoding it again breaks the checkout page.
    """
    wallet = require_wallet(gateway)
    url = (
        f"{settings.paygate_checkout_url}"
        f"?address={wallet}"
        f"&amount={Decimal(amount):.2f}"
        f"&currency={quote(currency, safe='')}"
        f"&email={quote(email, safe='')}"
    )
    if gateway.payment_provider and gateway.payment_provider != "auto":
        url += f"&provider={quote(gateway.payment_provider, safe='')}"
    return url


def provision_wallet(
    payout_address: str,
    callback_url: str,
    *,
    affiliate_address: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> Dict[str, Any]:
    """Asks the PayGate control API for a receiving wallet bound to `payout_address`."""
    params = {"address": payout_address, "callback": callback_url}
    if affiliate_address:
        params["affiliate"] = affiliate_address

    owns_client = client is None
    http = client or httpx.Client(timeout=settings.paygate_timeout_seconds)
    try:
        response = http.get(settings.paygate_wallet_api_url, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("PayGate wallet provisioning failed: {!r}", exc)
        raise UpstreamError(
            code="PAYMENT_GATEWAY_WALLET_FAILED",
            message="Could not provision a receiving wallet",
            details={"reason": str(exc)},
        ) from exc
    finally:
        if owns_client:
            http.close()

    if not isinstance(data, dict) or not data.get("address_in"):
        raise UpstreamError(
            code="PAYMENT_GATEWAY_WALLET_FAILED",
            message="Wallet API returned no receiving address",
            details={"response": data},
        )
    return data


__all__ = [
    "OUTCOME_COMPLETED",
    "OUTCOME_FAILED",
    "OUTCOME_PENDING",
    "WALLET_GUIDANCE",
    "map_paygate_status",
    "compute_paygate_hash",
    "verify_paygate_hash",
    "require_wallet",
    "build_payment_url",
    "provision_wallet",
]
