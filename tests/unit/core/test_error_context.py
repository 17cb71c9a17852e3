"""Unit tests for src/core/error_context.py."""

import pytest

from src.core.constants import REDACTED
from src.core.error_context import (
    MAX_DEPTH,
    is_sensitive_field,
    is_sensitive_header,
    sanitize_dict,
    sanitize_error_context,
    sanitize_headers,
    sanitize_value,
)
from src.core.exceptions import HandlerError


@pytest.mark.unit
class TestSensitiveDetection:
    """Test suite for sensitive field detection."""

    @pytest.mark.parametrize(
        "field_name",
        [
            "password",
            "user_password",
            "API_KEY",
            "api-key",
            "access_token",
            "client_secret",
            "Authorization",
            "session_id",
            "store_uri",
            "storeUri",
            "STORE-URL",
            "privateKey",
            "db_dsn",
        ],
    )
    def test_sensitive_fields(self, field_name: str) -> None:
        """Test that credential-like names are detected."""
        assert is_sensitive_field(field_name)

    @pytest.mark.parametrize(
        "field_name",
        ["username", "path", "status_code", "id", "author", "client_host", "key_count"],
    )
    def test_regular_fields(self, field_name: str) -> None:
        """Test that ordinary names are not flagged."""
        assert not is_sensitive_field(field_name)

    def test_configured_fields(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that extra sensitive fields come from configuration."""
        monkeypatch.setenv("LOG_CONFIG__SENSITIVE_FIELDS", '["ssn"]')

        assert is_sensitive_field("customer_ssn")

    def test_sensitive_headers(self) -> None:
        """Test header detection is case-insensitive."""
        assert is_sensitive_header("Cookie")
        assert is_sensitive_header("X-API-Key")
        assert not is_sensitive_header("Accept")

    def test_sanitize_headers(self) -> None:
        """Test that only sensitive header values are redacted."""
        headers = {"cookie": "sid=1", "accept": "application/json"}

        assert sanitize_headers(headers) == {
            "cookie": REDACTED,
            "accept": "application/json",
        }


@pytest.mark.unit
class TestSanitization:
    """Test suite for value sanitization."""

    def test_nested_structures(self) -> None:
        """Test that nested dicts and lists are sanitized recursively."""
        data = {
            "user": {"name": "ada", "password": "hunter2"},
            "items": [{"token": "abc"}, {"value": 1}],
        }

        result = sanitize_dict(data)

        assert result == {
            "user": {"name": "ada", "password": REDACTED},
            "items": [{"token": REDACTED}, {"value": 1}],
        }
        assert data["user"]["password"] == "hunter2"

    def test_depth_limit(self) -> None:
        """Test that overly deep structures are cut off."""
        assert sanitize_value("deep", depth=MAX_DEPTH + 1) == REDACTED

    def test_tuples_keep_their_type(self) -> None:
        """Test that tuples stay tuples."""
        assert sanitize_value(({"secret": "x"}, 2)) == ({"secret": REDACTED}, 2)

    def test_error_context(self) -> None:
        """Test the error context includes type, message and safe attributes."""
        error = HandlerError(ValueError("bad"), "POST", "/api/data")

        context = sanitize_error_context(
            error, {"request_path": "/api/data", "api_key": "k-123"}
        )

        assert context["error_type"] == "HandlerError"
        assert context["error_message"] == "[HANDLER_ERROR] bad"
        assert context["request_path"] == "/api/data"
        assert context["api_key"] == REDACTED
        assert context["error_attributes"]["error_code"] == "HANDLER_ERROR"
        assert "cause" not in context["error_attributes"]

    def test_error_attributes_redacted(self) -> None:
        """Test that credential attributes of an exception are redacted."""
        error = RuntimeError("store unreachable")
        error.store_uri = "postgresql+asyncpg://vigil:hunter2@db/vigil"
        error.attempt = 3

        context = sanitize_error_context(error)

        assert context["error_attributes"] == {"store_uri": REDACTED, "attempt": 3}

    def test_error_context_without_extra(self) -> None:
        """Test the error context of a plain exception."""
        context = sanitize_error_context(KeyError("missing"))

        assert context == {"error_type": "KeyError", "error_message": "'missing'"}
