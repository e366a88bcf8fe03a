from __future__ import annotations

from typing import List, Optional

from loguru import logger

from app.core.audit.services import log_event
from app.core.notifications import email as email_channel
from app.core.notifications.templates import EmailContent
from app.core.notifications.whatsapp import is_whatsapp_configured, normalize_phone
from vistra_bg_worker.whatsapp_worker import send_whatsapp_template, send_whatsapp_text


def schedule_whatsapp_template(*, to: str, template: str, values: List[str]) -> None:
    send_whatsapp_template.delay(to=to, template=template, values=values)


def schedule_whatsapp_text(*, to: str, text: str) -> None:
    send_whatsapp_text.delay(to=to, text=text)


def notify_email(
    recipient: str,
    content: EmailContent,
    *,
    category: str = "email",
) -> bool:
    """Best effort: failures land in the central log, never in the caller."""
    try:
        email_channel.schedule_email(recipient=recipient, content=content)
        return True
    except Exception as exc:
        log_event(
            "error",
            category,
            "Email dispatch failed",
            {"recipient": recipient, "subject": content.subject, "error": str(exc)},
        )
        return False


def notify_whatsapp_template(
    contact: Optional[str],
    template: str,
    values: List[str],
    *,
    category: str = "system",
) -> bool:
    phone = normalize_phone(contact)
    if phone is None or not is_whatsapp_configured():
        logger.debug("WhatsApp skipped", template=template, has_phone=phone is not None)
        return False
    try:
        schedule_whatsapp_template(to=phone, template=template, values=values)
        return True
    except Exception as exc:
        log_event(
            "error",
            category,
            "WhatsApp dispatch failed",
            {"template": template, "error": str(exc)},
        )
        return False


def notify_whatsapp_text(
    contact: Optional[str],
    text: str,
    *,
    category: str = "system",
) -> bool:
    phone = normalize_phone(contact)
    if phone is None or not is_whatsapp_configured():
        return False
    try:
        schedule_whatsapp_text(to=phone, text=text)
        return True
    except Exception as exc:
        log_event(
            "error",
            category,
            "WhatsApp dispatch failed",
            {"error": str(exc)},
        )
        return False


__all__ = [
    "schedule_whatsapp_template",
    "schedule_whatsapp_text",
    "notify_email",
    "notify_whatsapp_template",
    "notify_whatsapp_text",
]
