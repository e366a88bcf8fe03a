from .errors import (
    APIError,
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from .response import (
    ErrorPayload,
    Meta,
    Pagination,
    StandardResponse,
    make_error_response,
    make_pagination,
    make_success_response,
)

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
    "Pagination",
    "Meta",
    "ErrorPayload",
    "StandardResponse",
    "make_pagination",
    "make_success_response",
    "make_error_response",
]
