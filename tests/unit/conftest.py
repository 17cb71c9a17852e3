"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest

from src.core.config import Settings, get_settings
from src.core.error_context import _get_sensitive_fields
from src.core.metrics import MetricsRegistry, define_service_metrics


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a Settings object with test defaults.

    Returns:
        Settings: Settings built from test environment variables.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "3000")
    monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")

    return Settings()


@pytest.fixture
def registry() -> MetricsRegistry:
    """Provide a registry with the service metrics and no process collectors."""
    metrics_registry = MetricsRegistry(include_process_metrics=False)
    define_service_metrics(metrics_registry)
    return metrics_registry


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the LRU caches before and after each test to ensure isolation."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Backup and restore environment variables to prevent test interference.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    original_env = os.environ.copy()

    env_prefixes = [
        "APP_",
        "API_",
        "ENVIRONMENT",
        "DEBUG",
        "PORT",
        "SHUTDOWN_",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "STORE_CONFIG__",
        "SECURITY_CONFIG__",
        "REQUEST_CONFIG__",
        "RATE_LIMIT_CONFIG__",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)
