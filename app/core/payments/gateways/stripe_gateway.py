from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe
from loguru import logger

from app.core.config import settings
from app.response.errors import ConfigurationError, UnauthorizedError, UpstreamError


OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"

EVENT_SESSION_COMPLETED = "checkout.session.completed"
EVENT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
EVENT_ASYNC_FAILED = "checkout.session.async_payment_failed"
EVENT_SESSION_EXPIRED = "checkout.session.expired"

STRIPE_GUIDANCE = "Set STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET to accept card payments."


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str
    payment_intent_id: Optional[str] = None


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _api_key() -> str:
    if not settings.stripe_secret_key:
        raise ConfigurationError(
            code="PAYMENT_STRIPE_NOT_CONFIGURED",
            message="Card payments are not configured",
            guidance=STRIPE_GUIDANCE,
        )
    return settings.stripe_secret_key


def create_checkout_session(
    *,
    transaction_id: str,
    plan_id: str,
    plan_name: str,
    amount: Decimal,
    currency: str,
    email: str,
    promo_code: Optional[str] = None,
    affiliate_code: Optional[str] = None,
) -> CheckoutSession:
    base_url = settings.app_public_url.rstrip("/")
    metadata = {
        "transaction_id": transaction_id,
        "plan_id": plan_id,
        "promo_code": promo_code or "",
        "affiliate_code": affiliate_code or "",
    }
    try:
        session = stripe.checkout.Session.create(
            api_key=_api_key(),
            mode="payment",
            payment_method_types=["card"],
            customer_email=email,
            client_reference_id=transaction_id,
            line_items=[
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": to_cents(amount),
                        "product_data": {"name": plan_name},
                    },
                    "quantity": 1,
                }
            ],
            metadata=metadata,
            success_url=(
                f"{base_url}{settings.stripe_success_path}"
                f"?transactionId={transaction_id}"
            ),
            cancel_url=(
                f"{base_url}{settings.stripe_cancel_path}"
                f"?transactionId={transaction_id}"
            ),
        )
    except stripe.StripeError as exc:
        logger.error("Stripe checkout session failed: {!r}", exc)
        raise UpstreamError(
            code="PAYMENT_GATEWAY_ERROR",
            message="Card processor rejected the checkout request",
            details={"reason": getattr(exc, "user_message", None) or str(exc)},
        ) from exc

    return CheckoutSession(
        session_id=session.id,
        url=session.url,
        payment_intent_id=getattr(session, "payment_intent", None),
    )


def retrieve_checkout_session(session_id: str) -> Dict[str, Any]:
    try:
        session = stripe.checkout.Session.retrieve(session_id, api_key=_api_key())
    except stripe.StripeError as exc:
        logger.error("Stripe session lookup failed: {!r}", exc)
        raise UpstreamError(
            code="PAYMENT_GATEWAY_ERROR",
            message="Could not reach the card processor",
            details={"reason": str(exc)},
        ) from exc
    metadata = getattr(session, "metadata", None)
    return {
        "id": session.id,
        "status": getattr(session, "status", None),
        "payment_status": getattr(session, "payment_status", None),
        "payment_intent": getattr(session, "payment_intent", None),
        "metadata": metadata.to_dict() if metadata else {},
    }


def construct_event(payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """Verifies the `Stripe-Signature` header and parses the event as a plain dict."""
    if not settings.stripe_webhook_secret:
        raise ConfigurationError(
            code="PAYMENT_STRIPE_NOT_CONFIGURED",
            message="Stripe webhook secret is not configured",
            guidance=STRIPE_GUIDANCE,
        )
    if not signature:
        raise UnauthorizedError(
            code="WEBHOOK_SIGNATURE_MISSING",
            message="Missing Stripe-Signature header",
        )
    try:
        text = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            text,
            signature,
            settings.stripe_webhook_secret,
            tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
        )
        event = json.loads(text)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Stripe webhook rejected: {!r}", exc)
        raise UnauthorizedError(
            code="WEBHOOK_SIGNATURE_INVALID",
            message="Invalid Stripe webhook signature",
        ) from exc

    if not isinstance(event, dict):
        raise UnauthorizedError(
            code="WEBHOOK_PAYLOAD_INVALID",
            message="Stripe webhook payload is not an event object",
        )
    return event


def session_outcome(event_type: str, session: Dict[str, Any]) -> Optional[str]:
    """
    Maps a checkout-session event to a ledger outcome. Anything outside the
    allow-list maps to None and is acknowledged without effect.
    """
    if event_type == EVENT_SESSION_COMPLETED:
        if session.get("payment_status") == "paid":
            return OUTCOME_COMPLETED
        return None
    if event_type == EVENT_ASYNC_SUCCEEDED:
        return OUTCOME_COMPLETED
    if event_type in (EVENT_ASYNC_FAILED, EVENT_SESSION_EXPIRED):
        return OUTCOME_FAILED
    return None


def retrieved_session_outcome(session: Dict[str, Any]) -> Optional[str]:
    if session.get("payment_status") == "paid":
        return OUTCOME_COMPLETED
    if session.get("status") == "expired":
        return OUTCOME_FAILED
    return None


def create_refund(
    *,
    payment_intent_id: str,
    amount: Decimal,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "payment_intent": payment_intent_id,
        "amount": to_cents(amount),
    }
    if reason:
        params["reason"] = reason
    try:
        refund = stripe.Refund.create(api_key=_api_key(), **params)
    except stripe.StripeError as exc:
        logger.error("Stripe refund failed: {!r}", exc)
        raise UpstreamError(
            code="PAYMENT_REFUND_FAILED",
            message="Card processor rejected the refund",
            details={"reason": getattr(exc, "user_message", None) or str(exc)},
        ) from exc
    return {
        "id": refund.id,
        "status": getattr(refund, "status", None),
        "amount": getattr(refund, "amount", None),
    }


__all__ = [
    "OUTCOME_COMPLETED",
    "OUTCOME_FAILED",
    "EVENT_SESSION_COMPLETED",
    "EVENT_ASYNC_SUCCEEDED",
    "EVENT_ASYNC_FAILED",
    "EVENT_SESSION_EXPIRED",
    "CheckoutSession",
    "to_cents",
    "create_checkout_session",
    "retrieve_checkout_session",
    "construct_event",
    "session_outcome",
    "retrieved_session_outcome",
    "create_refund",
]
