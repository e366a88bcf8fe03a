from __future__ import annotations

import hmac
import uuid
from typing import Generator, Tuple

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.auth.models import User, UserSession
from app.core.config import settings
from app.core.security import decode_token
from app.database.session import SessionLocal
from app.response.errors import ForbiddenError, UnauthorizedError
from app.utils.dates import as_utc, utc_now


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise UnauthorizedError(
            code="AUTH_NOT_AUTHENTICATED",
            message="Authorization header is required",
        )

    try:
        scheme, token = authorization.split(" ", 1)
    except ValueError:
        raise UnauthorizedError(
            code="AUTH_INVALID_AUTH_HEADER",
            message="Malformed Authorization header",
        )

    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError(
            code="AUTH_INVALID_AUTH_SCHEME",
            message="Bearer authorization scheme expected",
        )
    return token.strip()


def get_current_session(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> Tuple[User, UserSession]:
    token = _bearer_token(authorization)

    try:
        payload = decode_token(token)
    except Exception:
        raise UnauthorizedError(
            code="AUTH_INVALID_TOKEN",
            message="Invalid or expired access token",
        )

    if payload.get("type") != "access":
        raise UnauthorizedError(
            code="AUTH_INVALID_TOKEN_TYPE",
            message="Wrong token type",
        )

    try:
        user_id = uuid.UUID(payload.get("sub"))
        session_id = uuid.UUID(payload.get("session_id"))
    except Exception:
        raise UnauthorizedError(
            code="AUTH_INVALID_TOKEN_PAYLOAD",
            message="Malformed token payload",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UnauthorizedError(
            code="AUTH_USER_NOT_FOUND",
            message="User not found",
        )

    if not user.is_active:
        raise ForbiddenError(
            code="AUTH_USER_INACTIVE",
            message="This account is disabled",
        )

    session_obj = (
        db.query(UserSession)
        .filter(UserSession.id == session_id)
        .first()
    )
    if session_obj is None:
        raise UnauthorizedError(
            code="AUTH_SESSION_NOT_FOUND",
            message="Session not found",
        )

    if session_obj.revoked_at is not None or as_utc(session_obj.expires_at) <= utc_now():
        raise UnauthorizedError(
            code="AUTH_SESSION_REVOKED",
            message="Session has ended",
        )

    return user, session_obj


def get_current_user(
    current: Tuple[User, UserSession] = Depends(get_current_session),
) -> User:
    return current[0]


def get_current_admin(
    user: User = Depends(get_current_user),
) -> User:
    if not user.is_superuser:
        raise ForbiddenError(
            code="AUTH_ADMIN_REQUIRED",
            message="Administrator access required",
        )
    return user


def require_cron_secret(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """Cron endpoints accept only `Bearer <CRON_SECRET>`; no secret configured means no access."""
    expected = settings.cron_secret
    if not expected:
        raise UnauthorizedError(
            code="CRON_NOT_CONFIGURED",
            message="Cron secret is not configured",
        )
    token = _bearer_token(authorization)
    if not hmac.compare_digest(token, expected):
        raise UnauthorizedError(
            code="CRON_UNAUTHORIZED",
            message="Invalid cron credentials",
        )


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


__all__ = [
    "get_db",
    "get_current_session",
    "get_current_user",
    "get_current_admin",
    "require_cron_secret",
    "client_ip",
]
