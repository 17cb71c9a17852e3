"""Unit tests for Settings class."""

import pytest
import pytest_check
from pydantic import ValidationError

from src.core.config import (
    LogConfig,
    ObservabilityConfig,
    RateLimitConfig,
    RequestConfig,
    SecurityConfig,
    Settings,
    StoreConfig,
    get_settings,
)


@pytest.mark.unit
class TestSettings:
    """Test cases for Settings class."""

    def test_default_application_settings(self) -> None:
        """Test default application settings."""
        settings = Settings()

        with pytest_check.check:
            assert settings.app_name == "Vigil"
        with pytest_check.check:
            assert settings.app_version == "1.0.0"
        with pytest_check.check:
            assert settings.environment == "development"
        with pytest_check.check:
            assert settings.debug is False
        with pytest_check.check:
            assert settings.api_port == 5000
        with pytest_check.check:
            assert settings.shutdown_timeout_seconds is None
        with pytest_check.check:
            assert settings.is_production is False

    def test_default_nested_configs(self) -> None:
        """Test that every nested group is present with its defaults."""
        settings = Settings()

        with pytest_check.check:
            assert isinstance(settings.log_config, LogConfig)
        with pytest_check.check:
            assert isinstance(settings.observability_config, ObservabilityConfig)
        with pytest_check.check:
            assert isinstance(settings.store_config, StoreConfig)
        with pytest_check.check:
            assert isinstance(settings.security_config, SecurityConfig)
        with pytest_check.check:
            assert settings.request_config.max_body_bytes == 10 * 1024 * 1024
        with pytest_check.check:
            assert settings.rate_limit_config.max_requests == 100
        with pytest_check.check:
            assert settings.rate_limit_config.window_seconds == 15 * 60
        with pytest_check.check:
            assert settings.rate_limit_config.path_prefix == "/api"

    def test_development_auto_defaults(self) -> None:
        """Test the values derived from a development environment."""
        settings = Settings()

        assert settings.log_config.log_formatter_type == "console"
        assert settings.rate_limit_config.trust_proxy_headers is False
        assert settings.observability_config.trace_sample_rate == 1.0

    def test_production_auto_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the values derived from a production environment."""
        monkeypatch.setenv("ENVIRONMENT", "production")

        settings = Settings()

        assert settings.is_production
        assert settings.log_config.log_formatter_type == "json"
        assert settings.rate_limit_config.trust_proxy_headers is True
        assert settings.observability_config.trace_sample_rate == 0.1

    def test_explicit_values_win_over_auto_defaults(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that explicitly configured values are not overridden."""
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("LOG_CONFIG__LOG_FORMATTER_TYPE", "console")
        monkeypatch.setenv("RATE_LIMIT_CONFIG__TRUST_PROXY_HEADERS", "false")

        settings = Settings()

        assert settings.log_config.log_formatter_type == "console"
        assert settings.rate_limit_config.trust_proxy_headers is False

    def test_container_platform_uses_json_logs(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a managed container platform switches to JSON logs."""
        monkeypatch.setenv("K_SERVICE", "vigil")

        assert Settings().log_config.log_formatter_type == "json"

    def test_nested_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that nested settings are read with the __ delimiter."""
        monkeypatch.setenv("REQUEST_CONFIG__MAX_BODY_BYTES", "2048")
        monkeypatch.setenv("RATE_LIMIT_CONFIG__MAX_REQUESTS", "5")
        monkeypatch.setenv("RATE_LIMIT_CONFIG__PATH_PREFIX", "v1/")
        monkeypatch.setenv(
            "SECURITY_CONFIG__ALLOWED_ORIGINS",
            '["https://app.example.com", "https://admin.example.com"]',
        )
        monkeypatch.setenv("STORE_CONFIG__POOL_SIZE", "3")
        monkeypatch.setenv("SHUTDOWN_TIMEOUT_SECONDS", "12.5")

        settings = Settings()

        assert settings.request_config.max_body_bytes == 2048
        assert settings.rate_limit_config.max_requests == 5
        assert settings.rate_limit_config.path_prefix == "/v1"
        assert settings.security_config.allowed_origins == [
            "https://app.example.com",
            "https://admin.example.com",
        ]
        assert settings.store_config.pool_size == 3
        assert settings.shutdown_timeout_seconds == 12.5

    def test_empty_urls_become_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that empty documentation URLs disable the endpoints."""
        monkeypatch.setenv("DOCS_URL", "")
        monkeypatch.setenv("OPENAPI_URL", "")

        settings = Settings()

        assert settings.docs_url is None
        assert settings.openapi_url is None

    def test_invalid_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that unknown environments are rejected."""
        monkeypatch.setenv("ENVIRONMENT", "qa")

        with pytest.raises(ValidationError):
            Settings()

    def test_get_settings_is_cached(self) -> None:
        """Test that get_settings returns the same instance."""
        assert get_settings() is get_settings()


@pytest.mark.unit
class TestNestedConfigs:
    """Test cases for the nested configuration models."""

    def test_store_uri_requires_async_driver(self) -> None:
        """Test that synchronous drivers are rejected."""
        with pytest.raises(ValidationError, match="postgresql\\+asyncpg"):
            StoreConfig(store_uri="postgresql://localhost/vigil")

    def test_store_backoff_bounds(self) -> None:
        """Test that backoff settings must be positive."""
        with pytest.raises(ValidationError):
            StoreConfig(initial_backoff_seconds=0)
        with pytest.raises(ValidationError):
            StoreConfig(backoff_multiplier=0.5)

    def test_request_ceiling_must_be_positive(self) -> None:
        """Test that a zero body ceiling is rejected."""
        with pytest.raises(ValidationError):
            RequestConfig(max_body_bytes=0)

    @pytest.mark.parametrize(
        ("prefix", "expected"),
        [("/api", "/api"), ("api", "/api"), ("/api/", "/api"), ("/", "/")],
    )
    def test_rate_limit_prefix_normalized(self, prefix: str, expected: str) -> None:
        """Test that the path prefix always has one leading slash."""
        assert RateLimitConfig(path_prefix=prefix).path_prefix == expected

    def test_empty_csp_disables_header(self) -> None:
        """Test that an empty CSP is treated as unset."""
        config = SecurityConfig(content_security_policy="")
        assert config.content_security_policy is None

    def test_empty_exporter_endpoint(self) -> None:
        """Test that an empty exporter endpoint is treated as unset."""
        assert ObservabilityConfig(exporter_endpoint="").exporter_endpoint is None

    def test_log_level_is_validated(self) -> None:
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            LogConfig(log_level="VERBOSE")  # type: ignore[arg-type]
