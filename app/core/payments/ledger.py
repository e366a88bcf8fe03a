from __future__ import annotations

import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.payments.models import PaymentTransaction
from app.core.promocodes.services import to_money
from app.response.errors import ConflictError
from app.utils.dates import utc_now


STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_REFUNDED = "refunded"
STATUS_PARTIALLY_REFUNDED = "partially_refunded"

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    STATUS_PENDING: frozenset({STATUS_COMPLETED, STATUS_FAILED}),
    STATUS_COMPLETED: frozenset({STATUS_REFUNDED, STATUS_PARTIALLY_REFUNDED}),
    STATUS_PARTIALLY_REFUNDED: frozenset({STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED}),
    STATUS_FAILED: frozenset(),
    STATUS_REFUNDED: frozenset(),
}

REFUNDABLE_STATUSES = frozenset({STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED})

_INVOICE_ALPHABET = string.ascii_uppercase + string.digits


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise ConflictError(
            code="PAYMENT_INVALID_TRANSITION",
            message=f"Transaction cannot move from {current} to {target}",
            details={"current": current, "target": target},
        )


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    suffix = "".join(secrets.choice(_INVOICE_ALPHABET) for _ in range(6))
    return f"INV-{now:%Y%m}-{suffix}"


def get_transaction(db: Session, transaction_id) -> Optional[PaymentTransaction]:
    return (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.id == transaction_id)
        .first()
    )


def get_transaction_by_reference(db: Session, reference: str) -> Optional[PaymentTransaction]:
    return (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.gateway_reference == reference)
        .first()
    )


def mark_completed_if_pending(
    db: Session,
    transaction_id,
    *,
    gateway_response: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    `UPDATE ... WHERE status = 'pending'`. The affected-row count decides
    which of several concurrent confirmations wins; only the winner may run
    activation side effects.
    """
    now = now or utc_now()
    values: Dict[Any, Any] = {
        PaymentTransaction.status: STATUS_COMPLETED,
        PaymentTransaction.completed_at: now,
        PaymentTransaction.invoice_number: generate_invoice_number(now),
        PaymentTransaction.updated_at: now,
    }
    if gateway_response is not None:
        values[PaymentTransaction.gateway_response] = gateway_response

    updated = (
        db.query(PaymentTransaction)
        .filter(
            PaymentTransaction.id == transaction_id,
            PaymentTransaction.status == STATUS_PENDING,
        )
        .update(values, synchronize_session=False)
    )
    return updated == 1


def mark_failed_if_pending(
    db: Session,
    transaction_id,
    *,
    gateway_response: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> bool:
    now = now or utc_now()
    values: Dict[Any, Any] = {
        PaymentTransaction.status: STATUS_FAILED,
        PaymentTransaction.updated_at: now,
    }
    if gateway_response is not None:
        values[PaymentTransaction.gateway_response] = gateway_response

    updated = (
        db.query(PaymentTransaction)
        .filter(
            PaymentTransaction.id == transaction_id,
            PaymentTransaction.status == STATUS_PENDING,
        )
        .update(values, synchronize_session=False)
    )
    return updated == 1


def record_pending_callback(
    db: Session,
    transaction_id,
    gateway_response: Dict[str, Any],
    *,
    now: Optional[datetime] = None,
) -> bool:
    """Stores callback details without touching the status of a pending row."""
    updated = (
        db.query(PaymentTransaction)
        .filter(
            PaymentTransaction.id == transaction_id,
            PaymentTransaction.status == STATUS_PENDING,
        )
        .update(
            {
                PaymentTransaction.gateway_response: gateway_response,
                PaymentTransaction.updated_at: now or utc_now(),
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def refundable_amount(transaction: PaymentTransaction) -> Decimal:
    already = to_money(transaction.refund_amount or 0)
    return to_money(transaction.final_amount) - already


def apply_refund(
    db: Session,
    transaction: PaymentTransaction,
    amount: Decimal,
    reference: str,
    *,
    now: Optional[datetime] = None,
) -> str:
    """
    Moves a completed or partially refunded transaction forward by `amount`.
    Guarded on the status and refund total observed by the caller, so two
    concurrent refunds cannot both apply.
    """
    observed_status = transaction.status
    observed_refund = transaction.refund_amount
    total_refunded = to_money(observed_refund or 0) + to_money(amount)
    target = (
        STATUS_REFUNDED
        if total_refunded >= to_money(transaction.final_amount)
        else STATUS_PARTIALLY_REFUNDED
    )
    ensure_transition(observed_status, target)

    query = db.query(PaymentTransaction).filter(
        PaymentTransaction.id == transaction.id,
        PaymentTransaction.status == observed_status,
    )
    if observed_refund is None:
        query = query.filter(PaymentTransaction.refund_amount.is_(None))
    else:
        query = query.filter(PaymentTransaction.refund_amount == observed_refund)

    updated = query.update(
        {
            PaymentTransaction.status: target,
            PaymentTransaction.refund_amount: total_refunded,
            PaymentTransaction.refund_reference: reference,
            PaymentTransaction.updated_at: now or utc_now(),
        },
        synchronize_session=False,
    )
    if updated != 1:
        raise ConflictError(
            code="PAYMENT_CONCURRENT_UPDATE",
            message="Transaction changed while the refund was being applied",
        )

    logger.info(
        "Refund applied",
        transaction_id=str(transaction.id),
        status=target,
        refund_total=str(total_refunded),
    )
    return target


__all__ = [
    "STATUS_PENDING",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "STATUS_REFUNDED",
    "STATUS_PARTIALLY_REFUNDED",
    "ALLOWED_TRANSITIONS",
    "REFUNDABLE_STATUSES",
    "can_transition",
    "ensure_transition",
    "generate_invoice_number",
    "get_transaction",
    "get_transaction_by_reference",
    "mark_completed_if_pending",
    "mark_failed_if_pending",
    "record_pending_callback",
    "refundable_amount",
    "apply_refund",
]
