"""Composition root: the process-wide collaborators of the pipeline.

Builds the metrics registry, the rate limiter, the store connection with its
state machine and the shutdown sequencer from settings, in one place. The
application factory stores the result on ``app.state.services``; routes reach
it through ``get_services``.
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from src.core.config import Settings
from src.core.metrics import MetricsRegistry, define_service_metrics
from src.core.rate_limit import FixedWindowRateLimiter
from src.core.shutdown import ShutdownSequencer
from src.infrastructure.store.connection import StoreConnection
from src.infrastructure.store.state import ConnectionStateMachine


class Services:
    """Holds the wired collaborators. Built only by ``create_services``."""

    def __init__(
        self,
        *,
        settings: Settings,
        registry: MetricsRegistry,
        limiter: FixedWindowRateLimiter,
        connection_state: ConnectionStateMachine,
        store: StoreConnection,
        sequencer: ShutdownSequencer,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._limiter = limiter
        self._connection_state = connection_state
        self._store = store
        self._sequencer = sequencer

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> MetricsRegistry:
        return self._registry

    @property
    def limiter(self) -> FixedWindowRateLimiter:
        return self._limiter

    @property
    def connection_state(self) -> ConnectionStateMachine:
        return self._connection_state

    @property
    def store(self) -> StoreConnection:
        return self._store

    @property
    def sequencer(self) -> ShutdownSequencer:
        return self._sequencer


def create_services(
    settings: Settings,
    *,
    registry: MetricsRegistry | None = None,
    engine: AsyncEngine | None = None,
) -> Services:
    """Build all collaborators from settings.

    Args:
        settings: Application settings.
        registry: Registry to use instead of a fresh one (tests).
        engine: Pre-built store engine (tests); created lazily when omitted.

    Returns:
        Services: The wired collaborators. The caller owns the lifecycle.
    """
    registry = registry or MetricsRegistry()
    define_service_metrics(registry)

    rate_limit = settings.rate_limit_config
    limiter = FixedWindowRateLimiter(
        rate_limit.max_requests,
        rate_limit.window_seconds,
        storage_uri=rate_limit.storage_uri,
    )

    connection_state = ConnectionStateMachine(registry)
    store = StoreConnection(settings.store_config, connection_state, engine=engine)
    sequencer = ShutdownSequencer(
        store, drain_timeout=settings.shutdown_timeout_seconds
    )

    return Services(
        settings=settings,
        registry=registry,
        limiter=limiter,
        connection_state=connection_state,
        store=store,
        sequencer=sequencer,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's collaborators."""
    services: Services = request.app.state.services
    return services
