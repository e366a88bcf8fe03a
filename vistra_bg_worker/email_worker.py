from __future__ import annotations

import smtplib
from email.message import EmailMessage

from loguru import logger

from app.core.config import settings
from vistra_bg_worker.celery_app import celery_app


def _send_email_sync(recipient: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from_email or settings.smtp_username
    msg["To"] = recipient
    msg.set_content(body)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
    except Exception as exc:
        logger.error(
            "Failed to send email",
            exc_info=exc,
        )
        raise


@celery_app.task(
    name="email.send_email",
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    max_retries=3,
)
def send_email(recipient: str, subject: str, body: str) -> None:
    logger.info("Sending email", email=recipient, subject=subject)
    _send_email_sync(recipient, subject, body)


__all__ = ["send_email"]
