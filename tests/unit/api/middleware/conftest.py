"""Fixtures for API middleware tests."""

import pytest
from starlette.types import ASGIApp

from src.api.middleware.request_context import RequestContextMiddleware
from src.core.config import LogConfig
from src.core.metrics import MetricsRegistry
from src.core.shutdown import ShutdownSequencer
from tests.fixtures.asgi import EntryFactory


@pytest.fixture
def sequencer() -> ShutdownSequencer:
    """Shutdown sequencer without a store."""
    return ShutdownSequencer(None)


@pytest.fixture
def wrap_entry(registry: MetricsRegistry, sequencer: ShutdownSequencer) -> EntryFactory:
    """Factory wrapping an ASGI app in the pipeline entry."""

    def wrap(
        app: ASGIApp, *, trust_proxy_headers: bool = False
    ) -> RequestContextMiddleware:
        return RequestContextMiddleware(
            app,
            registry=registry,
            sequencer=sequencer,
            log_config=LogConfig(),
            trust_proxy_headers=trust_proxy_headers,
        )

    return wrap
