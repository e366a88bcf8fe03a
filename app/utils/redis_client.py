from __future__ import annotations

import socket
from typing import Optional

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import settings


_redis_client: Optional[Redis] = None

FALLBACK_REDIS_URL = "redis://localhost:6379/0"


def _connect(url: str) -> Redis:
    client = Redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=1,
        socket_timeout=1,
    )
    client.ping()
    return client


def _create_redis_client() -> Redis:
    """
    Connects to CELERY_BROKER_URL first (redis://redis:6379/0 inside
    docker-compose) and falls back to localhost when that host does not
    resolve, so uvicorn started on the host machine still finds Redis.
    """
    try:
        return _connect(settings.celery_broker_url)
    except (RedisConnectionError, socket.gaierror):
        pass

    # No Redis at all: let the error reach the caller.
    return _connect(FALLBACK_REDIS_URL)


def get_redis() -> Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = _create_redis_client()
    return _redis_client


__all__ = ["get_redis"]
