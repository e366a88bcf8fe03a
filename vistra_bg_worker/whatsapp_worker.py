from __future__ import annotations

from typing import Any, Dict, List

from loguru import logger

from app.core.notifications.whatsapp import WhatsAppClient, body_parameters
from vistra_bg_worker.celery_app import celery_app


@celery_app.task(name="whatsapp.send_template")
def send_whatsapp_template(to: str, template: str, values: List[str]) -> Dict[str, Any]:
    logger.info("Sending WhatsApp template", template=template)
    return WhatsAppClient().send_template(to, template, body_parameters(values))


@celery_app.task(name="whatsapp.send_text")
def send_whatsapp_text(to: str, text: str) -> Dict[str, Any]:
    logger.info("Sending WhatsApp text")
    return WhatsAppClient().send_text(to, text)


__all__ = ["send_whatsapp_template", "send_whatsapp_text"]
