from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx
from loguru import logger

from app.core.config import settings


STATUS_PATH = "/api/v1/payments/status"


@dataclass
class PollResult:
    status: Optional[str]
    resolved: bool
    attempts: int
    payload: Dict[str, Any] = field(default_factory=dict)


def poll_transaction_status(
    client: httpx.Client,
    transaction_id: str,
    *,
    interval: Optional[float] = None,
    max_attempts: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """
    Polls the status endpoint until the transaction leaves `pending` or the
    attempts run out. Transport errors count as an attempt and polling goes on.
    """
    interval = settings.status_poll_interval_seconds if interval is None else interval
    max_attempts = max_attempts or settings.status_poll_max_attempts

    last = PollResult(status=None, resolved=False, attempts=0)
    for attempt in range(1, max_attempts + 1):
        try:
            response = client.get(STATUS_PATH, params={"transactionId": transaction_id})
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Status poll failed (attempt {}): {!r}", attempt, exc)
            last = PollResult(status=last.status, resolved=False, attempts=attempt, payload=last.payload)
        else:
            if response.status_code == 404:
                return PollResult(status=None, resolved=True, attempts=attempt, payload=body)
            result = body.get("result") or {}
            status = result.get("status")
            last = PollResult(
                status=status,
                resolved=status not in (None, "pending"),
                attempts=attempt,
                payload=result,
            )
            if last.resolved:
                return last

        if attempt < max_attempts:
            sleep(interval)
    return last


__all__ = ["STATUS_PATH", "PollResult", "poll_transaction_status"]
