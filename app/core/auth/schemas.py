from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field
from pydantic.config import ConfigDict


class UserPublic(BaseModel):
    id: uuid.UUID
    email: EmailStr
    full_name: str | None
    phone: str | None
    locale: str
    is_active: bool
    is_superuser: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: str | None = Field(None, max_length=120)
    phone: str | None = Field(None, max_length=32)
    locale: str | None = None


class UserUpdate(BaseModel):
    full_name: str | None = Field(None, max_length=120)
    phone: str | None = Field(None, max_length=32)
    locale: str | None = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class SignupResponse(BaseModel):
    user: UserPublic
    tokens: TokenPair


__all__ = [
    "UserPublic",
    "UserCreate",
    "UserUpdate",
    "TokenPair",
    "LoginRequest",
    "RefreshRequest",
    "SignupResponse",
]
