"""Backing store connection adapter.

Wraps a SQLAlchemy async engine (asyncpg driver) and translates its lifecycle
into ``ConnectionStateMachine`` events:

- ``connect()`` reports an attempt, then ``CONNECTED`` or ``ERROR``
- driver disconnect errors and pool invalidations report ``DISCONNECTED``
- the optional supervisor task pings while connected and retries with
  exponential backoff while disconnected or errored
- ``close()`` disposes the engine; it can fail, and the failure propagates

Query execution and pooling stay inside SQLAlchemy.
"""

import asyncio
import contextlib
from typing import Any

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import ExceptionContext
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.core.backoff import backoff_delays
from src.core.config import StoreConfig
from src.core.exceptions import ConnectionLostError
from src.core.observability import trace_operation
from src.infrastructure.constants import (
    PING_STATEMENT,
    POOL_RECYCLE_SECONDS,
    SUPERVISOR_TASK_NAME,
)
from src.infrastructure.store.state import (
    ConnectionEvent,
    ConnectionStateMachine,
)

# Errors that mean "the store is unreachable", as opposed to bugs in our code
CONNECTIVITY_ERRORS: tuple[type[BaseException], ...] = (
    SQLAlchemyError,
    OSError,
    TimeoutError,
)


def create_store_engine(config: StoreConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    Args:
        config: Store configuration.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    engine = create_async_engine(
        config.store_uri,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.connect_timeout_seconds,
        pool_pre_ping=config.pool_pre_ping,
        pool_recycle=POOL_RECYCLE_SECONDS,
        connect_args={
            "timeout": config.connect_timeout_seconds,
            "command_timeout": config.command_timeout_seconds,
        },
    )

    logger.info(
        "Created store engine - pool_size: {}, max_overflow: {}",
        config.pool_size,
        config.max_overflow,
    )
    return engine


class StoreConnection:
    """Owns the store engine and keeps the connection state machine current.

    Args:
        config: Store configuration.
        state: State machine fed by this connection.
        engine: Pre-built engine (tests); created from ``config`` when omitted.
    """

    def __init__(
        self,
        config: StoreConfig,
        state: ConnectionStateMachine,
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._config = config
        self._state = state
        self._engine = engine
        self._listeners_attached = False
        self._supervisor: asyncio.Task[None] | None = None
        self._closed = False

        if engine is not None:
            self._attach_listeners(engine)

    @property
    def state(self) -> ConnectionStateMachine:
        """The state machine fed by this connection."""
        return self._state

    @property
    def closed(self) -> bool:
        """Whether ``close()`` has completed."""
        return self._closed

    @property
    def engine(self) -> AsyncEngine:
        """The engine, for collaborators that run queries.

        Raises:
            ConnectionLostError: If the store is not connected.
        """
        if self._engine is None or not self._state.is_connected:
            msg = f"Store is {self._state.state.value}"
            raise ConnectionLostError(msg)
        return self._engine

    def _ensure_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_store_engine(self._config)
            self._attach_listeners(self._engine)
        return self._engine

    def _attach_listeners(self, engine: AsyncEngine) -> None:
        if self._listeners_attached:
            return
        sync_engine = getattr(engine, "sync_engine", None)
        if sync_engine is None:
            return
        event.listen(sync_engine, "handle_error", self._on_handle_error)
        event.listen(sync_engine, "invalidate", self._on_invalidate)
        self._listeners_attached = True

    def _on_handle_error(self, context: ExceptionContext) -> None:
        if context.is_disconnect:
            self._state.handle(
                ConnectionEvent.DISCONNECTED, error=context.original_exception
            )

    def _on_invalidate(
        self,
        _dbapi_connection: Any,  # noqa: ANN401 - driver connection object
        _connection_record: Any,  # noqa: ANN401 - pool record
        exception: BaseException | None,
    ) -> None:
        if exception is not None:
            self._state.handle(ConnectionEvent.DISCONNECTED, error=exception)

    async def _execute_ping(self, engine: AsyncEngine) -> None:
        async with asyncio.timeout(self._config.connect_timeout_seconds):
            async with engine.connect() as connection:
                await connection.execute(text(PING_STATEMENT))

    async def connect(self) -> bool:
        """Attempt to (re)connect to the store.

        Failures are reported to the state machine and logged, never raised.

        Returns:
            bool: True if the store answered.
        """
        self._state.handle(ConnectionEvent.CONNECT_ATTEMPT)
        try:
            engine = self._ensure_engine()
            with trace_operation("store.connect"):
                await self._execute_ping(engine)
        except CONNECTIVITY_ERRORS as exc:
            logger.warning(
                "Store connection attempt failed: {}: {}", type(exc).__name__, exc
            )
            self._state.handle(ConnectionEvent.ERROR, error=exc)
            return False

        self._state.handle(ConnectionEvent.CONNECTED)
        return True

    async def ping(self) -> bool:
        """Check the store is still reachable and update the state machine.

        Returns:
            bool: True if the store answered.
        """
        if self._engine is None:
            return False
        try:
            await self._execute_ping(self._engine)
        except CONNECTIVITY_ERRORS as exc:
            is_disconnect = isinstance(exc, DBAPIError) and exc.connection_invalidated
            lifecycle_event = (
                ConnectionEvent.DISCONNECTED if is_disconnect else ConnectionEvent.ERROR
            )
            self._state.handle(lifecycle_event, error=exc)
            return False

        self._state.handle(ConnectionEvent.CONNECTED)
        return True

    def start_supervisor(self) -> asyncio.Task[None]:
        """Start the background task that keeps the connection alive.

        Returns:
            asyncio.Task[None]: The supervisor task.
        """
        if self._supervisor is None or self._supervisor.done():
            self._supervisor = asyncio.create_task(
                self._supervise(), name=SUPERVISOR_TASK_NAME
            )
        return self._supervisor

    async def _supervise(self) -> None:
        config = self._config
        delays = backoff_delays(
            config.initial_backoff_seconds,
            config.max_backoff_seconds,
            config.backoff_multiplier,
        )
        while not self._closed:
            try:
                if self._state.is_connected:
                    await asyncio.sleep(config.health_check_interval_seconds)
                    await self.ping()
                    continue

                delay = next(delays)
                logger.info("Reconnecting to store in {:.1f}s", delay)
                await asyncio.sleep(delay)
                if await self.connect():
                    delays = backoff_delays(
                        config.initial_backoff_seconds,
                        config.max_backoff_seconds,
                        config.backoff_multiplier,
                    )
            except Exception as exc:  # noqa: BLE001
                # The supervisor outlives any single failed check
                logger.opt(exception=exc).error(
                    "Store supervisor check failed: {}", type(exc).__name__
                )
                self._state.handle(ConnectionEvent.ERROR, error=exc)

    async def stop_supervisor(self) -> None:
        """Cancel the supervisor task and wait for it to finish."""
        task, self._supervisor = self._supervisor, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close(self) -> None:
        """Release the store connection.

        Raises:
            Exception: Whatever the driver raises while disposing the pool.
        """
        await self.stop_supervisor()

        engine = self._engine
        if engine is not None:
            await engine.dispose()
            self._engine = None

        self._closed = True
        self._state.handle(ConnectionEvent.DISCONNECTED)
        logger.info("Store connection closed")
