from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.utils.dates import utc_now


TOKEN_ISSUER = "vistra-payments"

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(claims: Dict[str, Any], lifetime: timedelta) -> str:
    now = utc_now()
    payload = {
        **claims,
        "iss": TOKEN_ISSUER,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(
    *,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    return _encode(
        {"sub": str(user_id), "type": "access", "session_id": str(session_id)},
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(
    *,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    jti: Optional[uuid.UUID] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """The `jti` must match `user_sessions.refresh_token_id`; rotating it revokes the token."""
    return _encode(
        {
            "sub": str(user_id),
            "type": "refresh",
            "session_id": str(session_id),
            "jti": str(jti or uuid.uuid4()),
        },
        expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        issuer=TOKEN_ISSUER,
        options={"require": ["exp", "sub", "iss"]},
    )


__all__ = [
    "TOKEN_ISSUER",
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
