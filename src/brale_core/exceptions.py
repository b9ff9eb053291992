"""
Error taxonomy for the Brale credential and resilience layer.

A single exception type carries an explicit ``kind`` discriminant plus the
fields shared by every failure (status, code, context). Classification
(client error, server error, retryable) is done by plain functions over
the error so callers never need to walk an inheritance tree.
"""

from enum import Enum
from typing import Any, Optional

import httpx


class ErrorKind(str, Enum):
    """Discriminant for BraleError."""

    API = "api"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    NETWORK = "network"
    CIRCUIT_OPEN = "circuit_open"


_DEFAULT_CODES = {
    ErrorKind.API: "API_ERROR",
    ErrorKind.AUTH: "AUTH_ERROR",
    ErrorKind.RATE_LIMIT: "RATE_LIMIT_EXCEEDED",
    ErrorKind.VALIDATION: "VALIDATION_ERROR",
    ErrorKind.NETWORK: "NETWORK_ERROR",
    ErrorKind.CIRCUIT_OPEN: "CIRCUIT_OPEN",
}

_STATUS_MESSAGES = {
    500: "Internal server error - the API is experiencing issues",
    503: "Service unavailable - the API is temporarily down",
    429: "Rate limit exceeded - too many requests",
    401: "Authentication failed - check your credentials",
    403: "Access forbidden - insufficient permissions",
    404: "Resource not found",
}


class BraleError(Exception):
    """
    Error raised by every component of brale_core.

    Attributes:
        kind: Error discriminant (see ErrorKind)
        message: Human readable message
        status: HTTP status when the error came from a response
        code: Machine readable error code
        context: Extra details safe to log
        request_id: Upstream request identifier, if any
        retry_after: Seconds suggested by the server before retrying
        cause: Underlying exception for network failures
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        request_id: Optional[str] = None,
        retry_after: Optional[float] = None,
        cause: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.message = message
        self.status = status
        self.code = code or _DEFAULT_CODES[kind]
        self.context = context or {}
        self.request_id = request_id or ""
        self.retry_after = retry_after
        self.cause = cause
        super().__init__(self.message)

    def __repr__(self) -> str:
        return (
            f"BraleError(kind={self.kind.value!r}, status={self.status!r}, "
            f"code={self.code!r}, message={self.message!r})"
        )

    # ================================================================
    # Constructors
    # ================================================================

    @classmethod
    def api(
        cls,
        message: str,
        status: int,
        code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "BraleError":
        return cls(ErrorKind.API, message, status, code, context, request_id)

    @classmethod
    def auth(
        cls,
        message: str,
        status: int = 401,
        context: Optional[dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "BraleError":
        return cls(ErrorKind.AUTH, message, status, None, context, request_id)

    @classmethod
    def rate_limit(
        cls,
        message: str,
        retry_after: Optional[float] = None,
        context: Optional[dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "BraleError":
        return cls(
            ErrorKind.RATE_LIMIT,
            message,
            429,
            None,
            context,
            request_id,
            retry_after=retry_after or 0.0,
        )

    @classmethod
    def validation(
        cls, message: str, context: Optional[dict[str, Any]] = None
    ) -> "BraleError":
        return cls(ErrorKind.VALIDATION, message, 400, None, context)

    @classmethod
    def network(cls, message: str, cause: BaseException) -> "BraleError":
        return cls(ErrorKind.NETWORK, message, cause=cause)

    @classmethod
    def circuit_open(cls, breaker_name: str, failure_count: int) -> "BraleError":
        message = (
            f"Circuit breaker '{breaker_name}' is OPEN "
            f"({failure_count} failures). Calls are blocked."
        )
        return cls(
            ErrorKind.CIRCUIT_OPEN,
            message,
            context={"breaker": breaker_name, "failure_count": failure_count},
        )

    @classmethod
    def from_response(
        cls,
        status: int,
        data: Any = None,
        request_id: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> "BraleError":
        """
        Build an error from an HTTP error response.

        Args:
            status: HTTP status code
            data: Decoded response body (dict bodies are inspected for
                ``message``/``error``, ``code`` and ``details``)
            request_id: Value of the upstream request id header
            retry_after: Parsed Retry-After header, seconds

        Returns:
            BraleError with kind auth (401/403), rate_limit (429) or api
        """
        message = _STATUS_MESSAGES.get(status, "An API error occurred")
        code = None
        context = None

        if isinstance(data, dict):
            if isinstance(data.get("message"), str):
                message = data["message"]
            elif isinstance(data.get("error"), str):
                message = data["error"]
            if isinstance(data.get("code"), str):
                code = data["code"]
            if isinstance(data.get("details"), dict):
                context = data["details"]

        if status in (401, 403):
            kind = ErrorKind.AUTH
        elif status == 429:
            kind = ErrorKind.RATE_LIMIT
        else:
            kind = ErrorKind.API

        return cls(
            kind,
            message,
            status,
            code,
            context,
            request_id,
            retry_after=retry_after,
        )

    @classmethod
    def from_httpx_response(cls, response: httpx.Response) -> "BraleError":
        """Build an error from an httpx response with a 4xx/5xx status."""
        try:
            data = response.json()
        except ValueError:
            data = response.text or None

        return cls.from_response(
            response.status_code,
            data,
            request_id=response.headers.get("x-request-id"),
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dict for structured logging."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "context": self.context,
            "request_id": self.request_id,
            "retry_after": self.retry_after,
        }


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


# ================================================================
# Classification
# ================================================================


def is_client_error(error: BaseException) -> bool:
    """Check if error carries a 4xx status."""
    status = getattr(error, "status", None)
    return isinstance(status, int) and 400 <= status < 500


def is_server_error(error: BaseException) -> bool:
    """Check if error carries a 5xx status."""
    status = getattr(error, "status", None)
    return isinstance(status, int) and 500 <= status < 600


def is_retryable(error: BaseException) -> bool:
    """
    Check if error is transient.

    Transient: network failures, 5xx, 408 and 429. Circuit-open errors are
    never retryable; the breaker is already shedding load.
    """
    if isinstance(error, BraleError):
        if error.kind == ErrorKind.NETWORK:
            return True
        if error.kind == ErrorKind.CIRCUIT_OPEN:
            return False
        return is_server_error(error) or error.status in (408, 429)

    return isinstance(error, httpx.TransportError)


def is_auth_error(error: BaseException) -> bool:
    return isinstance(error, BraleError) and error.kind == ErrorKind.AUTH


__all__ = [
    "BraleError",
    "ErrorKind",
    "parse_retry_after",
    "is_client_error",
    "is_server_error",
    "is_retryable",
    "is_auth_error",
]
