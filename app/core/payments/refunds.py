from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.audit.services import log_activity, log_event
from app.core.auth.models import User
from app.core.notifications import dispatch
from app.core.notifications.templates import refund_processed
from app.core.payments.gateways import stripe_gateway
from app.core.payments.ledger import (
    REFUNDABLE_STATUSES,
    STATUS_REFUNDED,
    apply_refund,
    get_transaction,
    refundable_amount,
)
from app.core.payments.models import PaymentTransaction
from app.core.payments.schemas import CardGatewayData, read_gateway_data
from app.core.promocodes.services import to_money
from app.core.subscriptions.services import (
    SUBSCRIPTION_CANCELLED,
    get_subscription_for_transaction,
)
from app.response.errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class RefundOutcome:
    transaction: PaymentTransaction
    refund: Dict[str, Any]


def _payment_intent_id(transaction: PaymentTransaction) -> str:
    data = read_gateway_data(transaction.payment_method, transaction.gateway_response)
    intent = data.payment_intent_id if isinstance(data, CardGatewayData) else None
    if not intent:
        raise ValidationError(
            code="PAYMENT_REFUND_NO_INTENT",
            message="No card payment is recorded for this transaction",
        )
    return intent


def refund_transaction(
    db: Session,
    *,
    transaction_id,
    amount: Optional[Decimal],
    reason: Optional[str],
    admin: User,
    ip_address: Optional[str] = None,
) -> RefundOutcome:
    transaction = get_transaction(db, transaction_id)
    if transaction is None:
        raise NotFoundError(code="PAYMENT_NOT_FOUND", message="Transaction not found")

    if transaction.payment_method != "card":
        raise ValidationError(
            code="PAYMENT_REFUND_UNSUPPORTED",
            message="Crypto payments cannot be refunded here",
        )
    if transaction.status not in REFUNDABLE_STATUSES:
        raise ValidationError(
            code="PAYMENT_NOT_REFUNDABLE",
            message=f"A {transaction.status} transaction cannot be refunded",
            details={"status": transaction.status},
        )

    remaining = refundable_amount(transaction)
    refund_amount = to_money(amount) if amount is not None else remaining
    if refund_amount <= 0 or refund_amount > remaining:
        raise ValidationError(
            code="PAYMENT_REFUND_AMOUNT_INVALID",
            message="Refund amount must be positive and not exceed the refundable amount",
            details={"refundable_amount": str(remaining)},
            fields={"amount": "out_of_range"},
        )

    refund = stripe_gateway.create_refund(
        payment_intent_id=_payment_intent_id(transaction),
        amount=refund_amount,
        reason=reason,
    )

    try:
        new_status = apply_refund(db, transaction, refund_amount, refund["id"])
    except Exception as exc:
        db.rollback()
        log_event(
            "error",
            "payment",
            "Refund issued at processor but not recorded",
            {
                "transaction_id": str(transaction.id),
                "refund_id": refund.get("id"),
                "error": str(exc),
            },
        )
        raise

    if new_status == STATUS_REFUNDED:
        subscription = get_subscription_for_transaction(db, transaction.id)
        if subscription is not None:
            subscription.status = SUBSCRIPTION_CANCELLED
            db.add(subscription)

    log_activity(
        db,
        admin_id=admin.id,
        action="refund_payment",
        entity_type="payment_transaction",
        entity_id=str(transaction.id),
        details={
            "amount": str(refund_amount),
            "reason": reason,
            "refund_id": refund.get("id"),
            "status": new_status,
        },
        ip_address=ip_address,
    )
    db.commit()
    db.refresh(transaction)

    logger.info(
        "Refund recorded",
        transaction_id=str(transaction.id),
        amount=str(refund_amount),
        status=new_status,
    )
    dispatch.notify_email(
        transaction.email,
        refund_processed(
            email=transaction.email,
            amount=refund_amount,
            currency=transaction.currency,
            invoice_number=transaction.invoice_number,
        ),
        category="payment",
    )
    return RefundOutcome(
        transaction=transaction,
        refund={
            "id": refund.get("id"),
            "status": refund.get("status"),
            "amount": str(refund_amount),
        },
    )


__all__ = ["RefundOutcome", "refund_transaction"]
