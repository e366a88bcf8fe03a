from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.auth.models import User, UserSession
from app.core.auth.schemas import LoginRequest, TokenPair, UserCreate
from app.core.config import settings
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.response.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.utils.dates import as_utc, utc_now


PASSWORD_MIN_LENGTH = 8


def validate_password_strength(password: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            code="AUTH_PASSWORD_TOO_SHORT",
            message=f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
            fields={"password": "too_short"},
        )

    has_letter = any(c.isalpha() for c in password)
    has_digit = any(c.isdigit() for c in password)
    if not (has_letter and has_digit):
        raise ValidationError(
            code="AUTH_PASSWORD_TOO_WEAK",
            message="Password must contain letters and digits",
            fields={"password": "too_weak"},
        )


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def create_user(
    db: Session,
    data: UserCreate,
) -> User:
    if get_user_by_email(db, data.email) is not None:
        raise ConflictError(
            code="AUTH_EMAIL_ALREADY_EXISTS",
            message="An account with this email already exists",
        )

    validate_password_strength(data.password)

    user = User(
        email=str(data.email).strip().lower(),
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        phone=data.phone,
        locale=data.locale or "fr-FR",
        is_active=True,
        is_superuser=False,
    )
    db.add(user)
    db.flush()
    db.refresh(user)
    return user


def authenticate_user(
    db: Session,
    data: LoginRequest,
) -> User:
    user = get_user_by_email(db, data.email)
    if user is None or not verify_password(data.password, user.password_hash):
        raise UnauthorizedError(
            code="AUTH_INVALID_CREDENTIALS",
            message="Invalid email or password",
        )

    if not user.is_active:
        raise ForbiddenError(
            code="AUTH_USER_INACTIVE",
            message="This account is disabled",
        )

    return user


def _create_session(
    db: Session,
    user: User,
    *,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Tuple[UserSession, uuid.UUID]:
    expires_at = utc_now() + timedelta(days=settings.refresh_token_expire_days)
    refresh_id = uuid.uuid4()
    session = UserSession(
        user_id=user.id,
        refresh_token_id=str(refresh_id),
        user_agent=user_agent,
        ip_address=ip_address,
        expires_at=expires_at,
    )
    db.add(session)
    db.flush()
    db.refresh(session)
    return session, refresh_id


def create_session_and_tokens(
    db: Session,
    user: User,
    *,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> TokenPair:
    session, refresh_id = _create_session(
        db,
        user,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return TokenPair(
        access_token=create_access_token(user_id=user.id, session_id=session.id),
        refresh_token=create_refresh_token(
            user_id=user.id,
            session_id=session.id,
            jti=refresh_id,
        ),
    )


def is_session_live(session: UserSession) -> bool:
    return session.revoked_at is None and as_utc(session.expires_at) > utc_now()


def refresh_tokens(
    db: Session,
    refresh_token: str,
) -> TokenPair:
    """Rotates the refresh token: the previous one stops working."""
    try:
        payload = decode_token(refresh_token)
    except Exception:
        raise UnauthorizedError(
            code="AUTH_INVALID_REFRESH_TOKEN",
            message="Invalid or expired refresh token",
        )

    if payload.get("type") != "refresh":
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

    session = db.query(UserSession).filter(UserSession.id == session_id).first()
    if session is None or not is_session_live(session):
        raise UnauthorizedError(
            code="AUTH_SESSION_REVOKED",
            message="Session has ended",
        )

    if session.refresh_token_id != payload.get("jti"):
        raise UnauthorizedError(
            code="AUTH_REFRESH_JTI_MISMATCH",
            message="Refresh token does not match the session",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise UnauthorizedError(
            code="AUTH_USER_NOT_FOUND",
            message="User not found",
        )

    new_jti = uuid.uuid4()
    session.refresh_token_id = str(new_jti)
    db.add(session)

    return TokenPair(
        access_token=create_access_token(user_id=user.id, session_id=session.id),
        refresh_token=create_refresh_token(
            user_id=user.id,
            session_id=session.id,
            jti=new_jti,
        ),
    )


def logout_session(
    db: Session,
    *,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    session = (
        db.query(UserSession)
        .filter(UserSession.id == session_id, UserSession.user_id == user_id)
        .first()
    )
    if session is None:
        raise NotFoundError(
            code="AUTH_SESSION_NOT_FOUND",
            message="Session not found",
        )
    session.revoked_at = utc_now()
    db.add(session)


def logout_all_sessions(
    db: Session,
    *,
    user_id: uuid.UUID,
) -> None:
    (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
        .update({UserSession.revoked_at: utc_now()}, synchronize_session=False)
    )


def purge_dead_sessions(db: Session) -> int:
    """Deletes revoked and expired sessions; used by the cleanup cron."""
    return (
        db.query(UserSession)
        .filter(
            or_(
                UserSession.revoked_at.is_not(None),
                UserSession.expires_at <= utc_now(),
            )
        )
        .delete(synchronize_session=False)
    )


__all__ = [
    "validate_password_strength",
    "get_user_by_email",
    "create_user",
    "authenticate_user",
    "create_session_and_tokens",
    "is_session_live",
    "refresh_tokens",
    "logout_session",
    "logout_all_sessions",
    "purge_dead_sessions",
]
