from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from redis import Redis
from sqlalchemy.orm import Session

from app.core.dependencies import get_db
from app.core.plans.schemas import PlanPublic
from app.core.plans.services import (
    PLANS_CACHE_KEY,
    PLANS_CACHE_TTL_SECONDS,
    list_active_plans,
)
from app.response import StandardResponse, make_success_response
from app.utils.redis_client import get_redis


logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
router = APIRouter(prefix="/plans", tags=["plans"])


@router.get(
    "",
    response_model=StandardResponse,
    summary="List active subscription plans",
)
def list_plans(
    db: Session = Depends(get_db),
) -> StandardResponse:
    """
    Public pricing table. Cached in Redis for two minutes; a Redis outage
    falls back to the database.
    """
    redis: Redis | None = None
    try:
        redis = get_redis()
        cached = redis.get(PLANS_CACHE_KEY)
        if cached is not None:
            logger.info("plans cache hit (key=%s)", PLANS_CACHE_KEY)
            return make_success_response(result=json.loads(cached))
        logger.info("plans cache miss (key=%s)", PLANS_CACHE_KEY)
    except Exception as exc:
        logger.warning("plans cache error: %r", exc)
        redis = None

    result: Dict[str, Any] = {
        "items": [
            PlanPublic.model_validate(plan).model_dump()
            for plan in list_active_plans(db)
        ]
    }

    if redis is not None:
        try:
            payload = jsonable_encoder(result)
            redis.setex(PLANS_CACHE_KEY, PLANS_CACHE_TTL_SECONDS, json.dumps(payload))
            logger.info(
                "plans cache set (key=%s, ttl=%s)",
                PLANS_CACHE_KEY,
                PLANS_CACHE_TTL_SECONDS,
            )
        except Exception as exc:
            logger.warning("plans cache set error: %r", exc)

    return make_success_response(result=result)


__all__ = ["router"]
