"""Tests for abandoned-payment detection and reminders."""

from datetime import timedelta

from app.core.payments.confirmation import confirm_transaction
from app.core.payments.gateway_config import GatewayConfig
from app.core.recovery.models import AbandonedPaymentReminder
from app.core.recovery.services import (
    detect_abandoned_payments,
    regenerate_payment_url,
    send_due_reminders,
)
from app.utils.dates import utc_now
from helpers import WALLET_ADDRESS, error_code


GATEWAY = GatewayConfig(wallet_address=WALLET_ADDRESS)


class TestDetection:
    def test_one_reminder_per_transaction(self, db, make_transaction):
        """Should create a single reminder row however often detection runs."""
        tx = make_transaction(age=timedelta(hours=2))

        first = detect_abandoned_payments(db, GATEWAY)
        second = detect_abandoned_payments(db, GATEWAY)

        assert first == {"detected": 1, "created": 1}
        assert second == {"detected": 0, "created": 0}
        reminder = db.query(AbandonedPaymentReminder).one()
        assert reminder.transaction_id == tx.id
        assert reminder.reminder_count == 0
        assert f"address={WALLET_ADDRESS}&" in reminder.payment_url

    def test_recent_and_settled_transactions_are_skipped(self, db, make_transaction):
        make_transaction(age=timedelta(minutes=5))
        make_transaction(status="completed", age=timedelta(hours=3))
        make_transaction(status="failed", age=timedelta(hours=3))
        assert detect_abandoned_payments(db, GATEWAY)["created"] == 0

    def test_card_link_is_the_stripe_checkout_url(self, make_transaction):
        tx = make_transaction(method="card")
        assert regenerate_payment_url(tx, GatewayConfig()).startswith("https://checkout.stripe.com/")

    def test_crypto_link_needs_a_wallet(self, make_transaction):
        assert regenerate_payment_url(make_transaction(), GatewayConfig()) is None


class TestSendDueReminders:
    def test_sends_then_waits_for_interval(self, db, make_transaction, outbox):
        make_transaction(age=timedelta(hours=2))
        detect_abandoned_payments(db, GATEWAY)

        now = utc_now()
        first = send_due_reminders(db, now)
        again = send_due_reminders(db, now + timedelta(minutes=10))

        assert first == {"due": 1, "sent": 1, "failed": 0}
        assert again["sent"] == 0
        assert len(outbox.subjects_for("buyer@vistra-mail.com")) == 1

        later = send_due_reminders(db, now + timedelta(hours=25))
        assert later["sent"] == 1
        reminder = db.query(AbandonedPaymentReminder).one()
        db.refresh(reminder)
        assert reminder.reminder_count == 2

    def test_stops_at_max_reminders(self, db, make_transaction):
        make_transaction(age=timedelta(hours=2))
        detect_abandoned_payments(db, GATEWAY)
        now = utc_now()
        for step in range(5):
            send_due_reminders(db, now + timedelta(hours=25 * step))
        reminder = db.query(AbandonedPaymentReminder).one()
        db.refresh(reminder)
        assert reminder.reminder_count == 3

    def test_completion_marks_recovered(self, db, make_transaction, outbox):
        tx = make_transaction(age=timedelta(hours=2))
        detect_abandoned_payments(db, GATEWAY)

        confirm_transaction(db, tx, "completed")

        reminder = db.query(AbandonedPaymentReminder).one()
        db.refresh(reminder)
        assert reminder.status == "recovered"
        assert send_due_reminders(db)["due"] == 0


class TestRecoveryAdmin:
    """/api/v1/admin/abandoned-payments"""

    def test_list_send_and_export(self, client, db, admin_headers, make_transaction, outbox):
        make_transaction(age=timedelta(hours=2), email="late@vistra-mail.com")
        detect_abandoned_payments(db, GATEWAY)

        listing = client.get("/api/v1/admin/abandoned-payments", headers=admin_headers)
        assert listing.status_code == 200
        items = listing.json()["result"]["items"]
        assert len(items) == 1

        sent = client.post(
            "/api/v1/admin/abandoned-payments/send-reminder",
            json={"reminderId": items[0]["id"]},
            headers=admin_headers,
        )
        assert sent.status_code == 200
        assert sent.json()["result"]["reminder"]["reminder_count"] == 1
        assert outbox.subjects_for("late@vistra-mail.com")

        export = client.get("/api/v1/admin/abandoned-payments/export", headers=admin_headers)
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert "attachment" in export.headers["content-disposition"]
        lines = export.text.strip().splitlines()
        assert lines[0].startswith("id,transaction_id,email")
        assert "late@vistra-mail.com" in lines[1]

    def test_recovered_reminder_cannot_be_sent(self, client, db, admin_headers, make_transaction):
        tx = make_transaction(age=timedelta(hours=2))
        detect_abandoned_payments(db, GATEWAY)
        confirm_transaction(db, tx, "completed")
        reminder = db.query(AbandonedPaymentReminder).one()

        response = client.post(
            "/api/v1/admin/abandoned-payments/send-reminder",
            json={"reminderId": str(reminder.id)},
            headers=admin_headers,
        )
        assert response.status_code == 409
        assert error_code(response) == "REMINDER_ALREADY_RECOVERED"

    def test_manual_detection(self, client, admin_headers, wallet, make_transaction):
        make_transaction(age=timedelta(hours=2))
        response = client.post("/api/v1/admin/abandoned-payments/detect", headers=admin_headers)
        assert response.json()["result"]["created"] == 1
