"""Tests for the Stripe webhook and the card verification fallback."""

from app.core.payments.gateways import stripe_gateway
from app.core.subscriptions.models import Subscription
from helpers import error_code, stripe_event, stripe_headers


WEBHOOK_URL = "/api/v1/payments/webhook/stripe"


def _session_for(tx, **extra):
    session = {
        "id": tx.gateway_reference,
        "client_reference_id": str(tx.id),
        "metadata": {"transaction_id": str(tx.id)},
        "payment_status": "paid",
        "payment_intent": "pi_live_777",
    }
    session.update(extra)
    return session


class TestStripeWebhook:
    """POST /api/v1/payments/webhook/stripe"""

    def test_completed_session_settles_transaction(self, client, db, make_transaction, outbox):
        tx = make_transaction(method="card")
        payload = stripe_event("checkout.session.completed", _session_for(tx))

        response = client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["handled"] is True
        assert result["status"] == "completed"
        db.refresh(tx)
        assert tx.status == "completed"
        assert tx.gateway_response["payment_intent_id"] == "pi_live_777"
        assert tx.gateway_response["last_event_id"] == "evt_test_1"
        assert db.query(Subscription).count() == 1
        assert outbox.subjects_for("buyer@vistra-mail.com")

    def test_redelivery_is_idempotent(self, client, db, make_transaction, outbox):
        tx = make_transaction(method="card")
        payload = stripe_event("checkout.session.completed", _session_for(tx))
        client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        assert db.query(Subscription).count() == 1
        assert len(outbox.emails) == 1

    def test_session_id_is_used_without_metadata(self, client, db, make_transaction):
        tx = make_transaction(method="card")
        session = {"id": tx.gateway_reference, "payment_status": "paid"}
        payload = stripe_event("checkout.session.completed", session)
        client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        db.refresh(tx)
        assert tx.status == "completed"

    def test_unpaid_completion_waits(self, client, db, make_transaction):
        """Should leave a delayed-payment session pending until the async event."""
        tx = make_transaction(method="card")
        payload = stripe_event(
            "checkout.session.completed",
            _session_for(tx, payment_status="unpaid"),
        )
        response = client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        assert response.json()["result"]["handled"] is False
        db.refresh(tx)
        assert tx.status == "pending"

    def test_expired_session_fails_transaction(self, client, db, make_transaction):
        tx = make_transaction(method="card")
        payload = stripe_event(
            "checkout.session.expired",
            _session_for(tx, payment_status="unpaid"),
        )
        client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        db.refresh(tx)
        assert tx.status == "failed"

    def test_invalid_signature_is_401(self, client, db, make_transaction):
        tx = make_transaction(method="card")
        payload = stripe_event("checkout.session.completed", _session_for(tx))
        response = client.post(
            WEBHOOK_URL,
            content=payload,
            headers=stripe_headers(payload, secret="whsec_wrong"),
        )
        assert response.status_code == 401
        assert error_code(response) == "WEBHOOK_SIGNATURE_INVALID"
        db.refresh(tx)
        assert tx.status == "pending"

    def test_missing_signature_is_401(self, client):
        payload = stripe_event("checkout.session.completed", {"id": "cs_x"})
        response = client.post(WEBHOOK_URL, content=payload)
        assert response.status_code == 401

    def test_unlisted_event_is_acknowledged(self, client):
        payload = stripe_event("customer.created", {"id": "cus_1"})
        response = client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        assert response.status_code == 200
        assert response.json()["result"]["handled"] is False

    def test_unknown_transaction_is_acknowledged(self, client):
        payload = stripe_event(
            "checkout.session.completed",
            {"id": "cs_test_unknown", "payment_status": "paid"},
        )
        response = client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))
        assert response.status_code == 200
        assert response.json()["result"]["handled"] is False

    def test_event_naming_crypto_transaction_is_ignored(self, client, db, make_transaction):
        """Should never let a Stripe event settle a crypto transaction."""
        tx = make_transaction(method="crypto")
        payload = stripe_event("checkout.session.completed", _session_for(tx, id="cs_test_other"))

        response = client.post(WEBHOOK_URL, content=payload, headers=stripe_headers(payload))

        assert response.status_code == 200
        assert response.json()["result"]["handled"] is False
        db.refresh(tx)
        assert tx.status == "pending"
        assert db.query(Subscription).count() == 0


class TestVerifyCardPayment:
    """POST /api/v1/payments/{id}/verify"""

    def test_paid_session_completes(self, client, db, make_transaction, monkeypatch):
        tx = make_transaction(method="card")
        monkeypatch.setattr(
            stripe_gateway,
            "retrieve_checkout_session",
            lambda session_id: {
                "id": session_id,
                "status": "complete",
                "payment_status": "paid",
                "payment_intent": "pi_verified",
                "metadata": {},
            },
        )
        response = client.post(f"/api/v1/payments/{tx.id}/verify")
        assert response.status_code == 200
        assert response.json()["result"]["status"] == "completed"
        assert response.json()["result"]["subscription_end_date"] is not None

    def test_open_session_stays_pending(self, client, make_transaction, monkeypatch):
        tx = make_transaction(method="card")
        monkeypatch.setattr(
            stripe_gateway,
            "retrieve_checkout_session",
            lambda session_id: {"id": session_id, "status": "open", "payment_status": "unpaid"},
        )
        response = client.post(f"/api/v1/payments/{tx.id}/verify")
        assert response.json()["result"]["status"] == "pending"

    def test_crypto_cannot_be_verified(self, client, make_transaction):
        tx = make_transaction()
        response = client.post(f"/api/v1/payments/{tx.id}/verify")
        assert response.status_code == 400
        assert error_code(response) == "PAYMENT_VERIFY_UNSUPPORTED"


class TestStatusEndpoint:
    """GET /api/v1/payments/status"""

    def test_reports_pending_with_poll_hints(self, client, make_transaction):
        tx = make_transaction()
        response = client.get("/api/v1/payments/status", params={"transactionId": str(tx.id)})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["status"] == "pending"
        assert result["poll_interval_seconds"] == 3
        assert result["max_poll_attempts"] == 15

    def test_unknown_transaction_is_404(self, client):
        response = client.get(
            "/api/v1/payments/status",
            params={"transactionId": "7d0f7f4e-6a9b-4e39-9d7a-2a1c3e5b8f10"},
        )
        assert response.status_code == 404
