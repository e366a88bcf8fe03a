from __future__ import annotations

from typing import Callable

from fastapi import Request
from loguru import logger

from app.core.config import settings
from app.core.dependencies import client_ip
from app.response.errors import RateLimitError
from app.utils.redis_client import get_redis


def hit(key: str, *, limit: int, window_seconds: int) -> int:
    """
    Fixed-window counter. Returns the count for the current window and raises
    RateLimitError once it exceeds `limit`. Redis being down lets the request
    through.
    """
    try:
        redis = get_redis()
        count = redis.incr(key)
        if count == 1:
            redis.expire(key, window_seconds)
    except Exception as exc:
        logger.warning("rate limiter unavailable, allowing request: {!r}", exc)
        return 0

    if count > limit:
        raise RateLimitError(
            code="RATE_LIMITED",
            message="Too many requests, please try again later",
            details={"limit": limit, "window_seconds": window_seconds},
        )
    return count


def rate_limit(scope: str, limit_setting: str) -> Callable[[Request], None]:
    """Builds a FastAPI dependency limiting `scope` per client IP."""

    def _dependency(request: Request) -> None:
        limit = getattr(settings, limit_setting)
        ip = client_ip(request) or "unknown"
        hit(
            f"ratelimit:{scope}:{ip}",
            limit=limit,
            window_seconds=settings.rate_limit_window_seconds,
        )

    return _dependency


__all__ = ["hit", "rate_limit"]
