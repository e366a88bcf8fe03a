from datetime import timedelta

from app.core.audit.models import SystemLog
from app.core.config import settings
from app.utils.dates import utc_now
from helpers import error_code


CRON_HEADERS = {"Authorization": "Bearer cron-test-secret"}


class TestCronAuth:
    """Cron endpoints accept only the shared bearer secret."""

    def test_missing_header_is_401(self, client):
        response = client.get("/api/v1/cron/subscriptions")
        assert response.status_code == 401

    def test_wrong_secret_is_401(self, client):
        response = client.get("/api/v1/cron/subscriptions", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert error_code(response) == "CRON_UNAUTHORIZED"

    def test_unset_secret_rejects_everyone(self, client, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "")
        response = client.get("/api/v1/cron/subscriptions", headers=CRON_HEADERS)
        assert response.status_code == 401
        assert error_code(response) == "CRON_NOT_CONFIGURED"


class TestCronJobs:
    def test_detection_creates_reminders_without_sending(self, client, wallet, make_transaction, outbox):
        """Should only create reminder rows; sending waits for its own sweep."""
        make_transaction(age=timedelta(minutes=45))
        response = client.post("/api/v1/cron/abandoned-payments/detect", headers=CRON_HEADERS)
        assert response.status_code == 200
        assert response.json()["result"] == {"detected": 1, "created": 1}
        assert outbox.emails == []

    def test_reminder_sweep_sends_detected_reminders(self, client, db, wallet, make_transaction, outbox):
        tx = make_transaction(age=timedelta(hours=1))
        client.post("/api/v1/cron/abandoned-payments/detect", headers=CRON_HEADERS)

        response = client.post("/api/v1/cron/abandoned-payments/send-reminders", headers=CRON_HEADERS)

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["due"] == 1
        assert result["sent"] == 1
        assert [recipient for recipient, _ in outbox.emails] == [tx.email]

    def test_reminder_sweep_requires_secret(self, client):
        response = client.post("/api/v1/cron/abandoned-payments/send-reminders")
        assert response.status_code == 401

    def test_subscription_sweep(self, client, make_subscription):
        make_subscription(end_in=timedelta(days=2))
        make_subscription(end_in=timedelta(days=-1), email="gone@vistra-mail.com")
        response = client.get("/api/v1/cron/subscriptions", headers=CRON_HEADERS)
        result = response.json()["result"]
        assert result["expiring_3d"] == 1
        assert result["expired"] == 1

    def test_cleanup_purges_old_logs(self, client, db):
        db.add(SystemLog(level="info", category="system", message="old", created_at=utc_now() - timedelta(days=200)))
        db.add(SystemLog(level="info", category="system", message="fresh"))
        db.commit()

        response = client.post("/api/v1/cron/cleanup", headers=CRON_HEADERS)

        assert response.status_code == 200
        assert response.json()["result"]["system_logs"] == 1
        assert db.query(SystemLog).filter(SystemLog.message == "old").count() == 0
