from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.response.errors import UpstreamError


TEMPLATE_PAYMENT_CONFIRMATION = "payment_confirmation"
TEMPLATE_SUBSCRIPTION_EXPIRING = "subscription_expiring"


def is_whatsapp_configured() -> bool:
    return bool(settings.whatsapp_api_token and settings.whatsapp_phone_id)


def normalize_phone(contact: Optional[str]) -> Optional[str]:
    """Digits only, country code included (`+33 6 12..` -> `33612..`)."""
    if not contact:
        return None
    digits = re.sub(r"\D", "", contact)
    if digits.startswith("00"):
        digits = digits[2:]
    return digits if len(digits) >= 8 else None


def body_parameters(values: List[str]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "body",
            "parameters": [{"type": "text", "text": value} for value in values],
        }
    ]


class WhatsAppClient:
    """Minimal WhatsApp Business Cloud API client (`/{phone_id}/messages`)."""

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        phone_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.token = token if token is not None else settings.whatsapp_api_token
        self.phone_id = phone_id if phone_id is not None else settings.whatsapp_phone_id
        self.base_url = (base_url or settings.whatsapp_api_base_url).rstrip("/")
        self.timeout = timeout or settings.whatsapp_timeout_seconds
        self._http = http_client

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{self.phone_id}/messages"
        headers = {"Authorization": f"Bearer {self.token}"}
        try:
            if self._http is not None:
                response = self._http.post(url, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("WhatsApp API call failed: {!r}", exc)
            raise UpstreamError(
                code="WHATSAPP_SEND_FAILED",
                message="WhatsApp message could not be sent",
                details={"reason": str(exc)},
            ) from exc

        messages = data.get("messages") or [{}]
        return {"message_id": messages[0].get("id")}

    def send_template(
        self,
        to: str,
        template: str,
        components: Optional[List[Dict[str, Any]]] = None,
        *,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": {
                "name": template,
                "language": {"code": language or settings.whatsapp_language},
                "components": components or [],
            },
        }
        return self._post(payload)

    def send_text(self, to: str, text: str) -> Dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        return self._post(payload)


__all__ = [
    "TEMPLATE_PAYMENT_CONFIRMATION",
    "TEMPLATE_SUBSCRIPTION_EXPIRING",
    "is_whatsapp_configured",
    "normalize_phone",
    "body_parameters",
    "WhatsAppClient",
]
