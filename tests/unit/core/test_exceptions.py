"""Unit tests for src/core/exceptions.py."""

import pytest

from src.core.exceptions import (
    AdmissionRejectedError,
    ConnectionLostError,
    ErrorCode,
    HandlerError,
    InvalidBodyError,
    MetricKindConflictError,
    PayloadTooLargeError,
    ServiceDrainingError,
    Severity,
    ShutdownReleaseError,
    VigilError,
)


@pytest.mark.unit
class TestVigilError:
    """Test suite for the base exception."""

    def test_accepts_enum_or_string_code(self) -> None:
        """Test that error codes may be given as enum members or strings."""
        assert VigilError(ErrorCode.NOT_FOUND, "gone").error_code == "NOT_FOUND"
        assert VigilError("CUSTOM", "custom").error_code == "CUSTOM"

    def test_defaults(self) -> None:
        """Test default severity, context and status code."""
        error = VigilError(ErrorCode.INTERNAL_ERROR, "broken")

        assert error.severity is Severity.MEDIUM
        assert error.context == {}
        assert error.cause is None
        assert error.status_code == 500
        assert error.is_expected

    def test_cause_is_chained(self) -> None:
        """Test that the cause becomes __cause__."""
        cause = ValueError("bad value")
        error = VigilError(ErrorCode.INTERNAL_ERROR, "wrapped", cause=cause)

        assert error.cause is cause
        assert error.__cause__ is cause

    def test_str_and_repr(self) -> None:
        """Test the string representations."""
        error = VigilError(
            ErrorCode.INTERNAL_ERROR, "broken", Severity.HIGH, {"key": "value"}
        )

        assert str(error) == "[INTERNAL_ERROR] broken"
        assert repr(error) == (
            "VigilError(error_code='INTERNAL_ERROR', message='broken', "
            "severity=HIGH, context={'key': 'value'})"
        )

    @pytest.mark.parametrize(
        ("severity", "expected"),
        [
            (Severity.LOW, True),
            (Severity.MEDIUM, True),
            (Severity.HIGH, False),
            (Severity.CRITICAL, False),
        ],
    )
    def test_is_expected(self, severity: Severity, expected: bool) -> None:
        """Test that only LOW and MEDIUM errors are expected."""
        error = VigilError(ErrorCode.INTERNAL_ERROR, "x", severity)
        assert error.is_expected is expected


@pytest.mark.unit
class TestSpecializedErrors:
    """Test suite for the specialized exceptions."""

    def test_admission_rejected(self) -> None:
        """Test the rate limit rejection error."""
        error = AdmissionRejectedError("10.0.0.1", 12.5)

        assert error.status_code == 429
        assert error.error_code == ErrorCode.RATE_LIMITED.value
        assert error.message == "Too many requests, please try again later."
        assert error.context == {"client_id": "10.0.0.1", "retry_after": 12.5}

    def test_payload_too_large(self) -> None:
        """Test the body ceiling error."""
        error = PayloadTooLargeError(1024, 2048)

        assert error.status_code == 413
        assert error.message == "Payload too large"
        assert (error.limit, error.received) == (1024, 2048)

    def test_invalid_body(self) -> None:
        """Test the body decoding error."""
        cause = ValueError("unexpected character")
        error = InvalidBodyError("Invalid JSON body", cause)

        assert error.status_code == 400
        assert error.__cause__ is cause
        assert error.severity is Severity.LOW

    def test_service_draining(self) -> None:
        """Test the shutdown admission error."""
        error = ServiceDrainingError()

        assert error.status_code == 503
        assert error.message == "Server is shutting down"

    def test_metric_kind_conflict(self) -> None:
        """Test the metric kind conflict error."""
        error = MetricKindConflictError("requests", "counter", "gauge")

        assert "requests" in error.message
        assert error.severity is Severity.HIGH
        assert not error.is_expected

    def test_handler_error_uses_cause_text(self) -> None:
        """Test that the handler error message comes from its cause."""
        error = HandlerError(ZeroDivisionError("division by zero"), "GET", "/x")

        assert error.message == "division by zero"
        assert error.context == {"method": "GET", "path": "/x"}

    def test_handler_error_without_cause_text(self) -> None:
        """Test that an empty cause message falls back to the type name."""
        error = HandlerError(RuntimeError(), "POST", "/y")

        assert error.message == "RuntimeError"

    def test_connection_lost(self) -> None:
        """Test the connection lost error."""
        error = ConnectionLostError("Store is disconnected")

        assert error.error_code == ErrorCode.CONNECTION_LOST.value

    def test_shutdown_release(self) -> None:
        """Test that release failures are critical."""
        cause = OSError("socket closed")
        error = ShutdownReleaseError(cause)

        assert error.severity is Severity.CRITICAL
        assert "socket closed" in error.message
        assert error.__cause__ is cause
