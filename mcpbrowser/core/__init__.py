"""Core module with logging, errors, metrics and middleware."""

from mcpbrowser.core.errors import (
    AppError,
    BackendAuthError,
    BackendBadResponseError,
    BackendError,
    BackendUnavailableError,
    ConnectionFailureError,
    ErrorCode,
    ErrorResponse,
    InvalidIdentifierError,
    InvocationFailureError,
    NotFoundError,
    ProviderUnknownError,
    RateLimitError,
    ValidationError,
)
from mcpbrowser.core.logging import get_logger, request_id_ctx, run_id_ctx, setup_logging
from mcpbrowser.core.metrics import metrics

__all__ = [
    "AppError",
    "BackendAuthError",
    "BackendBadResponseError",
    "BackendError",
    "BackendUnavailableError",
    "ConnectionFailureError",
    "ErrorCode",
    "ErrorResponse",
    "InvalidIdentifierError",
    "InvocationFailureError",
    "NotFoundError",
    "ProviderUnknownError",
    "RateLimitError",
    "ValidationError",
    "get_logger",
    "metrics",
    "request_id_ctx",
    "run_id_ctx",
    "setup_logging",
]
