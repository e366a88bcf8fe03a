from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from redis import Redis
from sqlalchemy.orm import Session

from app.core.auth.models import User
from app.core.auth.schemas import UserPublic, UserUpdate
from app.core.dependencies import get_current_user, get_db
from app.response import StandardResponse, make_success_response
from app.utils.redis_client import get_redis


logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
router = APIRouter(
    prefix="/me",
    tags=["auth"],
)

ME_CACHE_TTL_SECONDS = 60


def _cache_key(user: User) -> str:
    return f"me:user:{user.id}"


@router.get(
    "",
    response_model=StandardResponse,
    summary="Current user profile",
)
def get_me(
    user: User = Depends(get_current_user),
) -> StandardResponse:
    """Cached in Redis for 60 seconds."""
    cache_key = _cache_key(user)

    redis: Redis | None = None
    try:
        redis = get_redis()
        cached = redis.get(cache_key)
        if cached is not None:
            logger.info("me cache hit (key=%s)", cache_key)
            return make_success_response(result=json.loads(cached))
        logger.info("me cache miss (key=%s)", cache_key)
    except Exception as exc:
        logger.warning("me cache error: %r", exc)
        redis = None

    result_data: Dict[str, Any] = {
        "user": UserPublic.model_validate(user).model_dump(),
    }

    if redis is not None:
        try:
            payload = jsonable_encoder(result_data)
            redis.setex(cache_key, ME_CACHE_TTL_SECONDS, json.dumps(payload))
        except Exception as exc:
            logger.warning("me cache set error: %r", exc)

    return make_success_response(result=result_data)


@router.put(
    "",
    response_model=StandardResponse,
    summary="Update the current user profile",
)
def update_me(
    payload: UserUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StandardResponse:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.add(user)
    db.commit()
    db.refresh(user)

    try:
        get_redis().delete(_cache_key(user))
    except Exception as exc:
        logger.warning("me cache invalidate error: %r", exc)

    return make_success_response(result={"user": UserPublic.model_validate(user)})


__all__ = ["router"]
