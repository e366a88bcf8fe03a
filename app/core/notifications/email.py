from __future__ import annotations

from loguru import logger

from app.core.notifications.templates import EmailContent
from vistra_bg_worker.email_worker import send_email


def schedule_email(*, recipient: str, content: EmailContent) -> None:
    """Hands the message to the `email.send_email` Celery task."""
    logger.info(
        "Scheduling email via Celery",
        email=recipient,
        subject=content.subject,
    )
    send_email.delay(recipient=recipient, subject=content.subject, body=content.body)


__all__ = ["schedule_email"]
