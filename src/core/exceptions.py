"""Structured exception hierarchy for consistent error handling.

This module defines the exception system for Vigil. Request-scoped errors
carry the HTTP status they map to and are converted to responses by the
pipeline; process-scoped errors (store release during shutdown) are fatal.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **VigilError**: Base exception with rich context and cause chaining
- **Specialized exceptions**: Admission, payload, metrics, store and shutdown
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for the Vigil service."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    HANDLER_ERROR = "HANDLER_ERROR"
    """A route handler raised an unhandled exception."""

    NOT_FOUND = "NOT_FOUND"
    """No route matched the request."""

    RATE_LIMITED = "RATE_LIMITED"
    """The client exceeded its request allowance for the current window."""

    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    """The request body exceeded the configured ceiling."""

    INVALID_BODY = "INVALID_BODY"
    """The request body could not be decoded."""

    SERVICE_DRAINING = "SERVICE_DRAINING"
    """The service is shutting down and no longer admits requests."""

    METRIC_KIND_CONFLICT = "METRIC_KIND_CONFLICT"
    """A metric name was used with two different kinds."""

    CONNECTION_LOST = "CONNECTION_LOST"
    """The backing store connection dropped."""

    SHUTDOWN_RELEASE_FAILURE = "SHUTDOWN_RELEASE_FAILURE"
    """The backing store connection could not be released during shutdown."""


class Severity(Enum):
    """Severity levels for errors in the Vigil service."""

    LOW = "LOW"
    """Expected errors caused by clients."""

    MEDIUM = "MEDIUM"
    """Errors that affect a single request or a degraded dependency."""

    HIGH = "HIGH"
    """Errors caused by programming mistakes."""

    CRITICAL = "CRITICAL"
    """Errors that must stop the process."""


class VigilError(Exception):
    """Base exception class for all Vigil exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code: int = 500

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    @property
    def is_expected(self) -> bool:
        """Whether the error occurs during normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    def __str__(self) -> str:
        """Return a string representation of the exception."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception."""
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class AdmissionRejectedError(VigilError):
    """Raised when a client exceeds the rate limit for the current window.

    Args:
        client_id: Identity of the rejected client
        retry_after: Seconds until the window rolls over
    """

    status_code = 429

    def __init__(self, client_id: str, retry_after: float) -> None:
        super().__init__(
            ErrorCode.RATE_LIMITED,
            "Too many requests, please try again later.",
            Severity.LOW,
            {"client_id": client_id, "retry_after": retry_after},
        )
        self.client_id = client_id
        self.retry_after = retry_after


class PayloadTooLargeError(VigilError):
    """Raised when a request body exceeds the configured ceiling.

    Args:
        limit: The ceiling in bytes
        received: Bytes received (or announced) when the ceiling was crossed
    """

    status_code = 413

    def __init__(self, limit: int, received: int) -> None:
        super().__init__(
            ErrorCode.PAYLOAD_TOO_LARGE,
            "Payload too large",
            Severity.LOW,
            {"limit": limit, "received": received},
        )
        self.limit = limit
        self.received = received


class InvalidBodyError(VigilError):
    """Raised when a request body cannot be decoded."""

    status_code = 400

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(ErrorCode.INVALID_BODY, message, Severity.LOW, cause=cause)


class ServiceDrainingError(VigilError):
    """Raised when a request arrives after shutdown has begun."""

    status_code = 503

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.SERVICE_DRAINING, "Server is shutting down", Severity.LOW
        )


class MetricKindConflictError(VigilError):
    """Raised when a metric name is registered or recorded with another kind.

    Args:
        name: The metric name
        registered_kind: The kind the metric was first registered with
        requested_kind: The kind the caller used
    """

    def __init__(self, name: str, registered_kind: str, requested_kind: str) -> None:
        super().__init__(
            ErrorCode.METRIC_KIND_CONFLICT,
            f"Metric '{name}' is registered as {registered_kind}, "
            f"cannot use it as {requested_kind}",
            Severity.HIGH,
            {
                "metric": name,
                "registered_kind": registered_kind,
                "requested_kind": requested_kind,
            },
        )
        self.name = name
        self.registered_kind = registered_kind
        self.requested_kind = requested_kind


class HandlerError(VigilError):
    """Wraps an exception raised by a route handler.

    Args:
        cause: The exception raised by the handler
        method: Request method
        path: Request path
    """

    def __init__(self, cause: Exception, method: str, path: str) -> None:
        super().__init__(
            ErrorCode.HANDLER_ERROR,
            str(cause) or type(cause).__name__,
            Severity.MEDIUM,
            {"method": method, "path": path},
            cause,
        )


class ConnectionLostError(VigilError):
    """Raised (or reported) when the backing store connection drops."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(
            ErrorCode.CONNECTION_LOST, message, Severity.MEDIUM, cause=cause
        )


class ShutdownReleaseError(VigilError):
    """Raised when the backing store cannot be released during shutdown."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(
            ErrorCode.SHUTDOWN_RELEASE_FAILURE,
            f"Failed to release store connection: {cause}",
            Severity.CRITICAL,
            cause=cause,
        )
