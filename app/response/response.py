from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.response.errors import APIError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Meta(BaseModel):
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=_utc_now)
    pagination: Optional[Pagination] = None


class ErrorPayload(BaseModel):
    code: str
    http_code: int
    message: str
    details: Optional[Any] = None
    fields: Optional[Any] = None


class StandardResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: Meta = Field(default_factory=Meta)


def make_pagination(*, page: int, page_size: int, total: int) -> Pagination:
    total_pages = (total + page_size - 1) // page_size if page_size > 0 else 1
    return Pagination(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def make_success_response(
    result: Any,
    *,
    pagination: Optional[Pagination] = None,
    request_id: Optional[str] = None,
) -> StandardResponse:
    meta = Meta(
        request_id=request_id or str(uuid.uuid4()),
        pagination=pagination,
    )
    return StandardResponse(ok=True, result=result, error=None, meta=meta)


def make_error_response(
    code: str,
    http_code: int,
    message: str,
    *,
    details: Optional[Any] = None,
    fields: Optional[Any] = None,
    request_id: Optional[str] = None,
) -> StandardResponse:
    error = ErrorPayload(
        code=code,
        http_code=http_code,
        message=message,
        details=details,
        fields=fields,
    )
    meta = Meta(request_id=request_id or str(uuid.uuid4()))
    return StandardResponse(ok=False, result=None, error=error, meta=meta)


__all__ = [
    "APIError",
    "Pagination",
    "Meta",
    "ErrorPayload",
    "StandardResponse",
    "make_pagination",
    "make_success_response",
    "make_error_response",
]
