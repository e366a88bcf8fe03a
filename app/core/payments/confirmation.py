from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.audit.services import log_event
from app.core.config import settings
from app.core.payments.gateways import paygate, stripe_gateway
from app.core.payments.ledger import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    get_transaction,
    get_transaction_by_reference,
    mark_completed_if_pending,
    mark_failed_if_pending,
    record_pending_callback,
)
from app.core.payments.models import PaymentTransaction
from app.core.payments.schemas import (
    CardGatewayData,
    CryptoGatewayData,
    dump_gateway_data,
    read_gateway_data,
)
from app.core.subscriptions.models import Subscription
from app.core.subscriptions.services import activate_subscription, dispatch_confirmation
from app.response.errors import (
    ConfigurationError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.utils.dates import utc_now


PAYGATE_SECRET_GUIDANCE = (
    "Set PAYGATE_CALLBACK_SECRET to the secret shared with PayGate so "
    "callbacks can be authenticated."
)


@dataclass(frozen=True)
class ConfirmationResult:
    transaction: PaymentTransaction
    status: str
    changed: bool
    subscription: Optional[Subscription] = None


def confirm_transaction(
    db: Session,
    transaction: PaymentTransaction,
    outcome: str,
    *,
    gateway_response: Optional[Dict[str, Any]] = None,
) -> ConfirmationResult:
    """
    Single convergence point for webhooks and verification. Only the caller
    that moves the row out of `pending` runs side effects; everyone else
    gets the current state back.
    """
    now = utc_now()

    if outcome == STATUS_COMPLETED:
        won = mark_completed_if_pending(
            db,
            transaction.id,
            gateway_response=gateway_response,
            now=now,
        )
        if not won:
            db.rollback()
            db.refresh(transaction)
            logger.info(
                "Completion ignored, transaction already settled",
                transaction_id=str(transaction.id),
                status=transaction.status,
            )
            return ConfirmationResult(transaction, transaction.status, False)

        db.refresh(transaction)
        try:
            activation = activate_subscription(db, transaction, now)
            db.commit()
        except Exception as exc:
            db.rollback()
            log_event(
                "error",
                "payment",
                "Subscription activation failed",
                {"transaction_id": str(transaction.id), "error": str(exc)},
            )
            raise

        db.refresh(transaction)
        subscription = activation.subscription
        if activation.failed_steps:
            log_event(
                "error",
                "payment",
                "Completion bookkeeping failed",
                {
                    "transaction_id": str(transaction.id),
                    "failed_steps": activation.failed_steps,
                },
            )
        plan_name = transaction.plan.name if transaction.plan else "VistraTV"
        dispatch_confirmation(transaction, subscription, plan_name)
        log_event(
            "info",
            "payment",
            "Payment completed",
            {
                "transaction_id": str(transaction.id),
                "amount": str(transaction.final_amount),
                "method": transaction.payment_method,
                "invoice_number": transaction.invoice_number,
            },
        )
        return ConfirmationResult(transaction, STATUS_COMPLETED, True, subscription)

    if outcome == STATUS_FAILED:
        won = mark_failed_if_pending(
            db,
            transaction.id,
            gateway_response=gateway_response,
            now=now,
        )
        db.commit()
        db.refresh(transaction)
        if won:
            log_event(
                "warn",
                "payment",
                "Payment failed",
                {"transaction_id": str(transaction.id), "method": transaction.payment_method},
            )
        return ConfirmationResult(transaction, transaction.status, won)

    if gateway_response is not None:
        record_pending_callback(db, transaction.id, gateway_response, now=now)
    db.commit()
    db.refresh(transaction)
    return ConfirmationResult(transaction, transaction.status, False)


def handle_paygate_callback(db: Session, params: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    secret = settings.paygate_callback_secret
    if not secret:
        raise ConfigurationError(
            code="PAYMENT_WEBHOOK_NOT_CONFIGURED",
            message="PayGate callback secret is not configured",
            guidance=PAYGATE_SECRET_GUIDANCE,
        )

    invoice = (params.get("invoice") or "").strip()
    status_token = (params.get("status") or "").strip()
    amount = (params.get("amount") or "").strip()
    currency = (params.get("currency") or "").strip()
    signature = params.get("hash")

    missing = [name for name, value in (("invoice", invoice), ("status", status_token)) if not value]
    if missing:
        raise ValidationError(
            code="WEBHOOK_MISSING_PARAMETERS",
            message="Missing required parameters",
            fields={name: "required" for name in missing},
        )

    if not paygate.verify_paygate_hash(secret, invoice, status_token, amount, currency, signature):
        raise UnauthorizedError(
            code="WEBHOOK_SIGNATURE_INVALID",
            message="Invalid callback signature",
        )

    transaction = get_transaction_by_reference(db, invoice)
    if transaction is not None and transaction.payment_method != "crypto":
        log_event(
            "warn",
            "webhook",
            "PayGate callback names a non-crypto transaction",
            {"invoice": invoice, "transaction_id": str(transaction.id)},
        )
        transaction = None
    if transaction is None:
        raise NotFoundError(code="PAYMENT_NOT_FOUND", message="Transaction not found")

    outcome = paygate.map_paygate_status(status_token)
    data = read_gateway_data(transaction.payment_method, transaction.gateway_response)
    if isinstance(data, CryptoGatewayData):
        data = data.model_copy(
            update={
                "callback_status": status_token,
                "callback_amount": amount or None,
                "callback_currency": currency or None,
                "callback_at": utc_now(),
            }
        )

    result = confirm_transaction(
        db,
        transaction,
        outcome,
        gateway_response=dump_gateway_data(data),
    )
    return {"success": True, "status": result.status}


def _find_card_transaction(db: Session, session: Mapping[str, Any]) -> Optional[PaymentTransaction]:
    """Stripe events only ever settle card transactions."""
    metadata = session.get("metadata") or {}
    candidate_id = metadata.get("transaction_id") or session.get("client_reference_id")
    transaction = None
    if candidate_id:
        try:
            transaction = get_transaction(db, _as_uuid(candidate_id))
        except ValueError:
            transaction = None
    if transaction is None and session.get("id"):
        transaction = get_transaction_by_reference(db, session.get("id"))
    if transaction is not None and transaction.payment_method != "card":
        return None
    return transaction


def _as_uuid(value: str) -> uuid.UUID:
    return uuid.UUID(str(value))


def _merge_card_data(
    transaction: PaymentTransaction,
    session: Mapping[str, Any],
    *,
    event_type: Optional[str] = None,
    event_id: Optional[str] = None,
) -> Dict[str, Any]:
    data = read_gateway_data(transaction.payment_method, transaction.gateway_response)
    if not isinstance(data, CardGatewayData):
        data = CardGatewayData()
    update: Dict[str, Any] = {
        "payment_status": session.get("payment_status"),
    }
    if session.get("payment_intent"):
        update["payment_intent_id"] = session.get("payment_intent")
    if event_type:
        update["last_event_type"] = event_type
    if event_id:
        update["last_event_id"] = event_id
    return dump_gateway_data(data.model_copy(update=update))


def handle_stripe_event(db: Session, event: Mapping[str, Any]) -> Dict[str, Any]:
    event_type = event.get("type")
    session = (event.get("data") or {}).get("object") or {}

    outcome = stripe_gateway.session_outcome(event_type, session)
    if outcome is None:
        logger.info("Stripe event ignored", event_type=event_type)
        return {"received": True, "handled": False, "event_type": event_type}

    transaction = _find_card_transaction(db, session)
    if transaction is None:
        log_event(
            "warn",
            "webhook",
            "Stripe event for unknown transaction",
            {"event_type": event_type, "session_id": session.get("id")},
        )
        return {"received": True, "handled": False, "event_type": event_type}

    result = confirm_transaction(
        db,
        transaction,
        outcome,
        gateway_response=_merge_card_data(
            transaction,
            session,
            event_type=event_type,
            event_id=event.get("id"),
        ),
    )
    return {
        "received": True,
        "handled": True,
        "event_type": event_type,
        "status": result.status,
    }


def verify_card_payment(db: Session, transaction: PaymentTransaction) -> ConfirmationResult:
    """Re-checks a card checkout with Stripe for when the webhook went missing."""
    if transaction.payment_method != "card":
        raise ValidationError(
            code="PAYMENT_VERIFY_UNSUPPORTED",
            message="Only card payments can be verified with the processor",
        )
    if transaction.status != STATUS_PENDING:
        return ConfirmationResult(transaction, transaction.status, False)

    data = read_gateway_data(transaction.payment_method, transaction.gateway_response)
    session_id = getattr(data, "checkout_session_id", None) or transaction.gateway_reference
    session = stripe_gateway.retrieve_checkout_session(session_id)
    outcome = stripe_gateway.retrieved_session_outcome(session)
    if outcome is None:
        return ConfirmationResult(transaction, transaction.status, False)

    return confirm_transaction(
        db,
        transaction,
        outcome,
        gateway_response=_merge_card_data(transaction, session, event_type="verify"),
    )


__all__ = [
    "ConfirmationResult",
    "confirm_transaction",
    "handle_paygate_callback",
    "handle_stripe_event",
    "verify_card_payment",
]
