import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.payments.ledger import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PARTIALLY_REFUNDED,
    STATUS_PENDING,
    STATUS_REFUNDED,
    apply_refund,
    can_transition,
    ensure_transition,
    generate_invoice_number,
    mark_completed_if_pending,
    mark_failed_if_pending,
    refundable_amount,
)
from app.response.errors import ConflictError


class TestTransitions:
    """Allowed moves of the transaction status."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (STATUS_PENDING, STATUS_COMPLETED),
            (STATUS_PENDING, STATUS_FAILED),
            (STATUS_COMPLETED, STATUS_REFUNDED),
            (STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED),
            (STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (STATUS_PENDING, STATUS_REFUNDED),
            (STATUS_FAILED, STATUS_COMPLETED),
            (STATUS_REFUNDED, STATUS_COMPLETED),
            (STATUS_COMPLETED, STATUS_PENDING),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_ensure_transition_raises_conflict(self):
        with pytest.raises(ConflictError) as exc_info:
            ensure_transition(STATUS_FAILED, STATUS_COMPLETED)
        assert exc_info.value.code == "PAYMENT_INVALID_TRANSITION"


class TestInvoiceNumber:
    def test_format(self):
        number = generate_invoice_number(datetime(2026, 3, 9, tzinfo=timezone.utc))
        assert re.fullmatch(r"INV-202603-[A-Z0-9]{6}", number)


class TestConditionalUpdates:
    """Only the first confirmation moves a pending row."""

    def test_completion_wins_once(self, db, make_transaction):
        tx = make_transaction()
        assert mark_completed_if_pending(db, tx.id) is True
        db.commit()
        assert mark_completed_if_pending(db, tx.id) is False
        assert mark_failed_if_pending(db, tx.id) is False
        db.commit()
        db.refresh(tx)
        assert tx.status == STATUS_COMPLETED
        assert re.fullmatch(r"INV-\d{6}-[A-Z0-9]{6}", tx.invoice_number)

    def test_failure_wins_once(self, db, make_transaction):
        tx = make_transaction()
        assert mark_failed_if_pending(db, tx.id) is True
        db.commit()
        assert mark_completed_if_pending(db, tx.id) is False


class TestApplyRefund:
    def test_partial_then_full(self, db, make_transaction):
        tx = make_transaction(method="card", status="completed")

        assert apply_refund(db, tx, Decimal("10.00"), "re_1") == STATUS_PARTIALLY_REFUNDED
        db.commit()
        db.refresh(tx)
        assert refundable_amount(tx) == Decimal("19.99")

        assert apply_refund(db, tx, Decimal("19.99"), "re_2") == STATUS_REFUNDED
        db.commit()
        db.refresh(tx)
        assert tx.refund_amount == Decimal("29.99")
        assert tx.refund_reference == "re_2"

    def test_pending_cannot_be_refunded(self, db, make_transaction):
        tx = make_transaction(method="card")
        with pytest.raises(ConflictError):
            apply_refund(db, tx, Decimal("1.00"), "re_x")
