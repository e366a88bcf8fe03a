from app.core.audit.models import AdminNotification, SystemLog
from app.core.audit.services import log_event
from app.core.config import settings


class TestLogEvent:
    """Central log sink and error-rate alerting."""

    def test_writes_a_row(self, db):
        log_event("info", "payment", "Checkout started", {"transaction_id": "abc"})
        row = db.query(SystemLog).one()
        assert row.category == "payment"
        assert row.details == {"transaction_id": "abc"}

    def test_unknown_category_falls_back_to_system(self, db):
        log_event("warn", "mystery", "Odd thing")
        assert db.query(SystemLog).one().category == "system"

    def test_threshold_raises_one_alert(self, db, monkeypatch, outbox):
        """Should notify admins once per window when errors pile up."""
        monkeypatch.setattr(settings, "error_alert_threshold", 3)

        for attempt in range(5):
            log_event("error", "payment", f"Gateway down #{attempt}")

        notifications = db.query(AdminNotification).all()
        assert len(notifications) == 1
        assert notifications[0].priority == "urgent"
        assert notifications[0].title == "Alert: payment errors"
        assert [to for to, _ in outbox.emails] == ["ops@vistra.tv"]

    def test_errors_in_other_categories_do_not_count(self, db, monkeypatch):
        monkeypatch.setattr(settings, "error_alert_threshold", 2)
        log_event("error", "payment", "one")
        log_event("error", "email", "two")
        assert db.query(AdminNotification).count() == 0


class TestAdminNotifications:
    def test_list_and_mark_read(self, client, db, admin_headers, monkeypatch):
        monkeypatch.setattr(settings, "error_alert_threshold", 1)
        log_event("error", "webhook", "Signature mismatch")

        unread = client.get(
            "/api/v1/admin/notifications",
            params={"unread_only": True},
            headers=admin_headers,
        )
        items = unread.json()["result"]["items"]
        assert len(items) == 1

        marked = client.post(
            "/api/v1/admin/notifications/read",
            json={"ids": [items[0]["id"]]},
            headers=admin_headers,
        )
        assert marked.json()["result"]["updated"] == 1

        again = client.get(
            "/api/v1/admin/notifications",
            params={"unread_only": True},
            headers=admin_headers,
        )
        assert again.json()["result"]["items"] == []
