"""Tests for POST /api/v1/admin/payments/refund."""

from decimal import Decimal

import pytest

from app.core.audit.models import AdminActivityLog
from app.core.payments.confirmation import confirm_transaction
from app.core.payments.gateways import stripe_gateway
from app.core.subscriptions.models import Subscription
from helpers import error_code, money


REFUND_URL = "/api/v1/admin/payments/refund"


@pytest.fixture
def stripe_refunds(monkeypatch):
    calls = []

    def _fake_refund(*, payment_intent_id, amount, reason=None):
        calls.append({"payment_intent_id": payment_intent_id, "amount": amount, "reason": reason})
        return {"id": f"re_test_{len(calls)}", "status": "succeeded", "amount": stripe_gateway.to_cents(amount)}

    monkeypatch.setattr(stripe_gateway, "create_refund", _fake_refund)
    return calls


@pytest.fixture
def paid_card_transaction(db, make_transaction):
    tx = make_transaction(method="card")
    confirm_transaction(db, tx, "completed")
    db.refresh(tx)
    return tx


class TestRefunds:
    def test_partial_then_full_refund(self, client, db, admin_headers, paid_card_transaction, stripe_refunds, outbox):
        tx = paid_card_transaction

        partial = client.post(
            REFUND_URL,
            json={"transactionId": str(tx.id), "amount": "10.00", "reason": "requested_by_customer"},
            headers=admin_headers,
        )
        assert partial.status_code == 200
        body = partial.json()["result"]
        assert body["success"] is True
        assert body["transaction"]["status"] == "partially_refunded"
        assert money(body["transaction"]["refund_amount"]) == Decimal("10.00")
        assert stripe_refunds[0] == {
            "payment_intent_id": "pi_test_123",
            "amount": Decimal("10.00"),
            "reason": "requested_by_customer",
        }

        subscription = db.query(Subscription).filter(Subscription.transaction_id == tx.id).one()
        assert subscription.status == "active"

        full = client.post(REFUND_URL, json={"transactionId": str(tx.id)}, headers=admin_headers)
        assert full.status_code == 200
        assert full.json()["result"]["transaction"]["status"] == "refunded"
        assert stripe_refunds[1]["amount"] == Decimal("19.99")

        db.expire_all()
        subscription = db.query(Subscription).filter(Subscription.transaction_id == tx.id).one()
        assert subscription.status == "cancelled"
        assert db.query(AdminActivityLog).filter(AdminActivityLog.action == "refund_payment").count() == 2
        assert len(outbox.subjects_for("buyer@vistra-mail.com")) == 3

    def test_amount_over_refundable_is_rejected(self, client, admin_headers, paid_card_transaction, stripe_refunds):
        response = client.post(
            REFUND_URL,
            json={"transactionId": str(paid_card_transaction.id), "amount": "30.00"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert error_code(response) == "PAYMENT_REFUND_AMOUNT_INVALID"
        assert stripe_refunds == []

    def test_pending_is_not_refundable(self, client, admin_headers, make_transaction, stripe_refunds):
        tx = make_transaction(method="card")
        response = client.post(REFUND_URL, json={"transactionId": str(tx.id)}, headers=admin_headers)
        assert response.status_code == 400
        assert error_code(response) == "PAYMENT_NOT_REFUNDABLE"

    def test_crypto_is_unsupported(self, client, admin_headers, make_transaction, stripe_refunds):
        tx = make_transaction(status="completed")
        response = client.post(REFUND_URL, json={"transactionId": str(tx.id)}, headers=admin_headers)
        assert response.status_code == 400
        assert error_code(response) == "PAYMENT_REFUND_UNSUPPORTED"

    def test_missing_intent_is_rejected(self, client, admin_headers, make_transaction, stripe_refunds):
        tx = make_transaction(method="card", status="completed", payment_intent_id=None)
        response = client.post(REFUND_URL, json={"transactionId": str(tx.id)}, headers=admin_headers)
        assert response.status_code == 400
        assert error_code(response) == "PAYMENT_REFUND_NO_INTENT"

    def test_unknown_transaction_is_404(self, client, admin_headers, stripe_refunds):
        response = client.post(
            REFUND_URL,
            json={"transactionId": "3f9a1c52-0b7e-4d2a-8c61-5e4f3a2b1c0d"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    def test_requires_admin(self, client, user_headers, paid_card_transaction, stripe_refunds):
        body = {"transactionId": str(paid_card_transaction.id)}
        assert client.post(REFUND_URL, json=body).status_code == 401
        assert client.post(REFUND_URL, json=body, headers=user_headers).status_code == 403
        assert stripe_refunds == []
