from __future__ import annotations

from typing import Any, Dict, Tuple

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.audit.services import log_event
from app.core.auth.models import User, UserSession
from app.core.auth.schemas import (
    LoginRequest,
    RefreshRequest,
    SignupResponse,
    UserCreate,
    UserPublic,
)
from app.core.auth.services import (
    authenticate_user,
    create_session_and_tokens,
    create_user,
    logout_all_sessions,
    logout_session,
    refresh_tokens,
)
from app.core.dependencies import client_ip, get_current_session, get_db
from app.response import StandardResponse, make_success_response
from app.response.errors import APIError


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/signup",
    response_model=StandardResponse,
    summary="Create a customer account",
)
def register(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    user_agent: str | None = Header(default=None, alias="User-Agent"),
) -> StandardResponse:
    """
    Creates an active account and signs it in. Past and future purchases
    made with the same email show up under `/subscriptions/me`.
    """
    user = create_user(db, payload)
    tokens = create_session_and_tokens(
        db,
        user,
        user_agent=user_agent,
        ip_address=client_ip(request),
    )
    db.commit()

    return make_success_response(
        result=SignupResponse(user=UserPublic.model_validate(user), tokens=tokens)
    )


@router.post(
    "/signin",
    response_model=StandardResponse,
    summary="Sign in with email and password",
)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    user_agent: str | None = Header(default=None, alias="User-Agent"),
) -> StandardResponse:
    try:
        user = authenticate_user(db, payload)
    except APIError as exc:
        log_event(
            "warn",
            "auth",
            "Sign-in rejected",
            {"email": str(payload.email), "code": exc.code, "ip": client_ip(request)},
        )
        raise

    tokens = create_session_and_tokens(
        db,
        user,
        user_agent=user_agent,
        ip_address=client_ip(request),
    )
    db.commit()

    result: Dict[str, Any] = {
        "user": UserPublic.model_validate(user),
        "tokens": tokens,
    }
    return make_success_response(result=result)


@router.post(
    "/refresh",
    response_model=StandardResponse,
    summary="Exchange a refresh token for a new token pair",
)
def refresh(
    payload: RefreshRequest,
    db: Session = Depends(get_db),
) -> StandardResponse:
    tokens = refresh_tokens(db, payload.refresh_token)
    db.commit()
    return make_success_response(result={"tokens": tokens})


@router.post(
    "/logout",
    response_model=StandardResponse,
    summary="End the current session",
)
def logout(
    current: Tuple[User, UserSession] = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> StandardResponse:
    user, session = current
    logout_session(db, session_id=session.id, user_id=user.id)
    db.commit()
    return make_success_response(result={"success": True})


@router.post(
    "/logout-all",
    response_model=StandardResponse,
    summary="End every session of the current user",
)
def logout_all(
    current: Tuple[User, UserSession] = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> StandardResponse:
    user, _ = current
    logout_all_sessions(db, user_id=user.id)
    db.commit()
    return make_success_response(result={"success": True})


__all__ = ["router"]
