from __future__ import annotations

from typing import Any, Optional


class APIError(Exception):
    """Base error rendered into the standard error envelope."""

    http_code: int = 500

    def __init__(
        self,
        code: str,
        http_code: Optional[int] = None,
        message: str = "",
        *,
        details: Optional[Any] = None,
        fields: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.http_code = http_code if http_code is not None else type(self).http_code
        self.message = message
        self.details = details
        self.fields = fields


class ValidationError(APIError):
    http_code = 400


class UnauthorizedError(APIError):
    http_code = 401


class ForbiddenError(APIError):
    http_code = 403


class NotFoundError(APIError):
    http_code = 404


class ConflictError(APIError):
    http_code = 409


class RateLimitError(APIError):
    http_code = 429


class UpstreamError(APIError):
    """A payment processor or notification provider call failed."""

    http_code = 502


class ConfigurationError(APIError):
    """
    Something an admin has to provision is missing (gateway wallet, secrets).
    `guidance` is surfaced to the caller in `details`.
    """

    http_code = 503

    def __init__(
        self,
        code: str,
        message: str,
        *,
        guidance: str,
        details: Optional[dict] = None,
    ) -> None:
        payload = dict(details or {})
        payload["guidance"] = guidance
        super().__init__(code, None, message, details=payload)
        self.guidance = guidance


__all__ = [
    "APIError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "UpstreamError",
    "ConfigurationError",
]
