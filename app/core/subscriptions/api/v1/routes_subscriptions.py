from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth.models import User
from app.core.dependencies import get_current_user, get_db
from app.core.subscriptions.schemas import SubscriptionPublic
from app.core.subscriptions.services import list_subscriptions_for_email
from app.response import StandardResponse, make_success_response


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get(
    "/me",
    response_model=StandardResponse,
    summary="Subscriptions bought with the signed-in user's email",
)
def my_subscriptions(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StandardResponse:
    subscriptions = list_subscriptions_for_email(db, user.email)
    return make_success_response(
        result={
            "items": [
                SubscriptionPublic.model_validate(item).model_dump()
                for item in subscriptions
            ]
        }
    )


__all__ = ["router"]
