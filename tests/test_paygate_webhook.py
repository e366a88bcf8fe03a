"""Tests for the PayGate crypto callback."""

from decimal import Decimal

from app.core.affiliates.models import Referral
from app.core.audit.models import SystemLog, WebhookLog
from app.core.config import settings
from app.core.notifications import email as email_channel
from app.core.subscriptions import services as subscription_services
from app.core.subscriptions.models import Subscription
from helpers import error_code, paygate_query


WEBHOOK_URL = "/api/v1/payments/webhook/paygate"


class TestPaygateCallback:
    """GET/POST /api/v1/payments/webhook/paygate"""

    def test_paid_callback_activates_once(self, client, db, plan, promo, affiliate, make_transaction, outbox):
        """Should apply completion side effects exactly once under redelivery."""
        tx = make_transaction(promo_code="SAVE10", affiliate_id=affiliate.id, amount="26.99")
        query = paygate_query(tx.gateway_reference, "paid", amount="26.99")

        first = client.get(WEBHOOK_URL, params=query)
        second = client.get(WEBHOOK_URL, params=query)

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["result"]["status"] == "completed"
        assert second.json()["result"]["status"] == "completed"

        db.expire_all()
        db.refresh(tx)
        assert tx.status == "completed"
        assert tx.invoice_number.startswith("INV-")
        assert tx.completed_at is not None
        assert tx.gateway_response["callback_status"] == "paid"

        assert db.query(Subscription).filter(Subscription.transaction_id == tx.id).count() == 1
        assert db.query(Referral).count() == 1
        db.refresh(promo)
        assert promo.current_uses == 1
        db.refresh(affiliate)
        assert affiliate.total_referrals == 1
        assert Decimal(str(affiliate.pending_earnings)) == Decimal("5.40")

        assert len([to for to, _ in outbox.emails if to == "buyer@vistra-mail.com"]) == 1

    def test_post_body_is_accepted(self, client, db, make_transaction):
        tx = make_transaction()
        response = client.post(WEBHOOK_URL, json=paygate_query(tx.gateway_reference, "confirmed"))
        assert response.status_code == 200
        db.refresh(tx)
        assert tx.status == "completed"

    def test_subscription_covers_plan_duration(self, client, db, make_transaction):
        tx = make_transaction()
        client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid"))
        subscription = db.query(Subscription).one()
        assert subscription.status == "active"
        assert (subscription.end_date - subscription.start_date).days in (28, 29, 30, 31)

    def test_unknown_status_keeps_pending(self, client, db, make_transaction, outbox):
        tx = make_transaction()
        response = client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "processing"))
        assert response.status_code == 200
        assert response.json()["result"]["status"] == "pending"
        db.refresh(tx)
        assert tx.status == "pending"
        assert tx.gateway_response["callback_status"] == "processing"
        assert db.query(Subscription).count() == 0
        assert outbox.emails == []

    def test_failed_is_terminal(self, client, db, make_transaction):
        """Should ignore a paid callback once the transaction failed."""
        tx = make_transaction()
        client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "failed"))
        response = client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid"))
        assert response.json()["result"]["status"] == "failed"
        db.refresh(tx)
        assert tx.status == "failed"
        assert db.query(Subscription).count() == 0

    def test_invalid_hash_is_401(self, client, db, make_transaction):
        tx = make_transaction()
        query = paygate_query(tx.gateway_reference, "paid", secret="wrong-secret")
        response = client.get(WEBHOOK_URL, params=query)
        assert response.status_code == 401
        assert error_code(response) == "WEBHOOK_SIGNATURE_INVALID"
        db.refresh(tx)
        assert tx.status == "pending"

    def test_tampered_amount_is_401(self, client, make_transaction):
        tx = make_transaction()
        query = paygate_query(tx.gateway_reference, "paid")
        query["amount"] = "0.01"
        assert client.get(WEBHOOK_URL, params=query).status_code == 401

    def test_missing_secret_is_503(self, client, make_transaction, monkeypatch):
        tx = make_transaction()
        query = paygate_query(tx.gateway_reference, "paid")
        monkeypatch.setattr(settings, "paygate_callback_secret", "")
        response = client.get(WEBHOOK_URL, params=query)
        assert response.status_code == 503
        assert response.json()["error"]["details"]["guidance"]

    def test_missing_status_is_400(self, client, make_transaction):
        tx = make_transaction()
        query = paygate_query(tx.gateway_reference, "paid")
        query.pop("status")
        response = client.get(WEBHOOK_URL, params=query)
        assert response.status_code == 400
        assert error_code(response) == "WEBHOOK_MISSING_PARAMETERS"

    def test_unknown_invoice_is_404(self, client):
        response = client.get(WEBHOOK_URL, params=paygate_query("no-such-invoice", "paid"))
        assert response.status_code == 404
        assert error_code(response) == "PAYMENT_NOT_FOUND"

    def test_every_callback_is_logged(self, client, db, make_transaction):
        tx = make_transaction()
        client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid"))
        client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid", secret="bad"))
        statuses = sorted(row.status for row in db.query(WebhookLog).all())
        assert statuses == ["processed", "rejected"]

    def test_card_transaction_is_not_settled_by_paygate(self, client, db, make_transaction):
        """Should only settle crypto transactions from a PayGate callback."""
        tx = make_transaction(method="card")
        response = client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid"))
        assert response.status_code == 404
        db.refresh(tx)
        assert tx.status == "pending"
        assert db.query(Subscription).count() == 0


class TestCompletionSideEffects:
    """Bookkeeping and notifications never undo a settled payment."""

    def test_commission_failure_keeps_payment(self, client, db, plan, promo, affiliate, make_transaction, outbox, monkeypatch):
        """Should roll back only the commission when crediting it fails midway."""
        real_credit = subscription_services.credit_commission

        def _credit_then_fail(session, transaction):
            real_credit(session, transaction)
            raise RuntimeError("commission ledger unavailable")

        monkeypatch.setattr(subscription_services, "credit_commission", _credit_then_fail)
        tx = make_transaction(promo_code="SAVE10", affiliate_id=affiliate.id, amount="26.99")

        response = client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid", amount="26.99"))

        assert response.status_code == 200
        assert response.json()["result"]["status"] == "completed"
        db.expire_all()
        db.refresh(tx)
        assert tx.status == "completed"
        assert db.query(Subscription).filter(Subscription.transaction_id == tx.id).count() == 1
        assert db.query(Referral).count() == 0
        db.refresh(affiliate)
        assert affiliate.total_referrals == 0
        db.refresh(promo)
        assert promo.current_uses == 1

        failure = db.query(SystemLog).filter(SystemLog.message == "Completion bookkeeping failed").one()
        assert failure.level == "error"
        assert failure.details["failed_steps"] == ["affiliate_commission"]
        assert len(outbox.emails) == 1

    def test_promo_failure_keeps_payment(self, client, db, promo, make_transaction, outbox, monkeypatch):
        def _fail(session, code):
            raise RuntimeError("promo table locked")

        monkeypatch.setattr(subscription_services, "increment_promo_usage", _fail)
        tx = make_transaction(promo_code="SAVE10")

        response = client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid"))

        assert response.status_code == 200
        db.expire_all()
        db.refresh(tx)
        assert tx.status == "completed"
        assert db.query(Subscription).count() == 1

    def test_notification_failure_keeps_subscription(self, client, db, make_transaction, outbox, monkeypatch):
        """Should keep the activated subscription when the email cannot be queued."""

        def _broken_email(*, recipient, content):
            raise ConnectionError("broker unreachable")

        monkeypatch.setattr(email_channel, "schedule_email", _broken_email)
        tx = make_transaction()

        response = client.get(WEBHOOK_URL, params=paygate_query(tx.gateway_reference, "paid"))

        assert response.status_code == 200
        assert response.json()["result"]["status"] == "completed"
        db.expire_all()
        db.refresh(tx)
        assert tx.status == "completed"
        assert db.query(Subscription).filter(Subscription.status == "active").count() == 1
        assert db.query(SystemLog).filter(SystemLog.message == "Email dispatch failed").count() == 1
