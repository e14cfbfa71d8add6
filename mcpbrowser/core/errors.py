"""
Structured error handling with stable error codes.

No stack traces are exposed to clients. All errors are mapped to
stable, documented error codes for reliable client handling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for API responses and failure events."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"

    # MCP server errors (4xxx)
    PROVIDER_UNKNOWN = "E4000"
    INVALID_IDENTIFIER = "E4001"
    CONNECTION_FAILURE = "E4002"
    INVOCATION_FAILURE = "E4003"

    # Reasoning backend errors (5xxx)
    BACKEND_ERROR = "E5000"
    BACKEND_UNAVAILABLE = "E5001"
    BACKEND_BAD_RESPONSE = "E5002"
    BACKEND_AUTH_FAILED = "E5003"
    RATE_LIMITED = "E5004"

    # Run errors (6xxx)
    CATALOG_ERROR = "E6000"
    NO_CAPABILITIES = "E6001"
    ITERATION_EXHAUSTED = "E6002"


@dataclass(frozen=True)
class ErrorResponse:
    """Structured error response for API.

    Format: {error: {code, message, request_id, details?}}
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        error: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.request_id:
            error["request_id"] = self.request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


class AppError(Exception):
    """Base application error with structured error detail."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        """Create error response with request ID."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            request_id=request_id,
            details=self.details,
        )


# Convenience error classes
class ValidationError(AppError):
    """Validation error (400)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, 400, details)


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(ErrorCode.NOT_FOUND, message, 404)


class ProviderUnknownError(AppError):
    """Operation references a server id outside the current configuration (404)."""

    def __init__(self, provider_id: str):
        super().__init__(
            ErrorCode.PROVIDER_UNKNOWN,
            f"Unknown server: {provider_id}",
            404,
            {"provider_id": provider_id},
        )
        self.provider_id = provider_id


class InvalidIdentifierError(AppError):
    """Malformed namespaced tool name (400)."""

    def __init__(self, name: str):
        super().__init__(
            ErrorCode.INVALID_IDENTIFIER,
            f"Invalid namespaced tool name: {name}",
            400,
            {"name": name},
        )


class ConnectionFailureError(AppError):
    """Could not establish a session with an MCP server (502)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.CONNECTION_FAILURE, message, 502, details)


class InvocationFailureError(AppError):
    """A tool call itself returned or raised an error (502)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.INVOCATION_FAILURE, message, 502, details)


class BackendError(AppError):
    """Reasoning backend error (502)."""

    def __init__(
        self,
        message: str = "Reasoning backend error",
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.BACKEND_ERROR,
        status_code: int = 502,
    ):
        super().__init__(code, message, status_code, details)


class BackendUnavailableError(BackendError):
    """Reasoning backend unreachable or timed out (503)."""

    def __init__(
        self, message: str = "Reasoning backend unavailable", details: dict[str, Any] | None = None
    ):
        super().__init__(message, details, ErrorCode.BACKEND_UNAVAILABLE, 503)


class BackendBadResponseError(BackendError):
    """Reasoning backend returned a malformed payload (502)."""

    def __init__(
        self,
        message: str = "Reasoning backend returned invalid response",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details, ErrorCode.BACKEND_BAD_RESPONSE, 502)


class BackendAuthError(BackendError):
    """Reasoning backend rejected the credentials (401/403)."""

    def __init__(
        self,
        message: str = "Reasoning backend authentication failed",
        status_code: int = 401,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details, ErrorCode.BACKEND_AUTH_FAILED, status_code)


class RateLimitError(BackendError):
    """Reasoning backend rate limit exceeded (429)."""

    def __init__(self, message: str = "Rate limit exceeded", details: dict[str, Any] | None = None):
        super().__init__(message, details, ErrorCode.RATE_LIMITED, 429)
