"""Shared fixtures for integration tests.

The whole application is assembled with a store engine double, so the
pipeline, the routes and the lifespan run for real without a database.
"""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.main import create_app
from src.api.services import Services, create_services
from src.core.config import Settings
from src.core.logging import _state
from src.core.metrics import MetricsRegistry
from tests.fixtures.fakes import FakeEngine


@pytest.fixture(autouse=True)
def quiet_logging() -> None:
    """Skip sink setup; Loguru keeps its default handler."""
    _state.configured = True


@pytest.fixture
def integration_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings for a fully assembled app."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")
    monkeypatch.delenv("PORT", raising=False)
    return Settings()


@pytest.fixture
def services(integration_settings: Settings, fake_engine: FakeEngine) -> Services:
    """Collaborators wired with a fresh registry and the engine double."""
    return create_services(
        integration_settings, registry=MetricsRegistry(), engine=fake_engine
    )


@pytest.fixture
def app(integration_settings: Settings, services: Services) -> FastAPI:
    """The assembled application."""
    return create_app(integration_settings, services=services)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """HTTP client talking to the app in process."""
    transport = ASGITransport(app=app, client=("198.51.100.20", 40000))
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
