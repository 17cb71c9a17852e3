"""Shutdown sequencing for the service process.

The sequencer moves through ``RUNNING -> DRAINING -> CLOSED``:

- ``begin_draining()`` is called from the signal handler. The pipeline entry
  stops admitting requests while the ones already admitted run to completion.
- ``close()`` is called from the application lifespan once the server has
  stopped listening. It waits for in-flight requests, releases the backing
  store exactly once and records the process exit code.

Both steps are idempotent: a second signal or a second ``close()`` neither
restarts the sequence nor releases the store twice.
"""

import asyncio
from enum import Enum
from typing import Protocol

from loguru import logger

from src.core.constants import EXIT_CODE_CLEAN, EXIT_CODE_RELEASE_FAILURE
from src.core.exceptions import ShutdownReleaseError


class ShutdownPhase(Enum):
    """Lifecycle phase of the process."""

    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


class ReleasableStore(Protocol):
    """Anything holding a connection that must be released on shutdown."""

    async def close(self) -> None:
        """Release the connection; may raise."""
        ...


class ShutdownSequencer:
    """Coordinates draining and store release on termination.

    Args:
        store: Connection released when the sequence closes.
        drain_timeout: Seconds to wait for in-flight requests, or None to
            rely on the server's own graceful shutdown timeout.
    """

    def __init__(
        self,
        store: ReleasableStore | None,
        *,
        drain_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._drain_timeout = drain_timeout
        self._phase = ShutdownPhase.RUNNING
        self._reason: str | None = None
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._close_lock = asyncio.Lock()
        self._exit_code: int | None = None

    @property
    def phase(self) -> ShutdownPhase:
        """Current phase."""
        return self._phase

    @property
    def accepting(self) -> bool:
        """Whether new requests may be admitted."""
        return self._phase is ShutdownPhase.RUNNING

    @property
    def in_flight(self) -> int:
        """Number of admitted requests that have not finished."""
        return self._in_flight

    @property
    def reason(self) -> str | None:
        """What started the shutdown, if it has started."""
        return self._reason

    @property
    def exit_code(self) -> int:
        """Process exit code.

        ``0`` after a clean release, ``1`` after a failed release or when the
        sequence never closed.
        """
        if self._exit_code is None:
            return EXIT_CODE_RELEASE_FAILURE
        return self._exit_code

    def begin_draining(self, reason: str = "signal") -> bool:
        """Stop admitting new requests.

        Returns:
            bool: True if this call started draining, False if already past RUNNING.
        """
        if self._phase is not ShutdownPhase.RUNNING:
            logger.debug(
                "Shutdown already in progress, ignoring {}",
                reason,
                phase=self._phase.value,
            )
            return False

        self._phase = ShutdownPhase.DRAINING
        self._reason = reason
        logger.warning(
            "Shutting down gracefully ({}), {} request(s) in flight",
            reason,
            self._in_flight,
        )
        return True

    def try_admit(self) -> bool:
        """Admit a request if the service is still accepting.

        Returns:
            bool: True if admitted; the caller must then call ``request_finished``.
        """
        if not self.accepting:
            return False
        self.request_started()
        return True

    def request_started(self) -> None:
        """Count a request as in flight."""
        self._in_flight += 1
        self._idle.clear()

    def request_finished(self) -> None:
        """Count an in-flight request as finished."""
        self._in_flight = max(self._in_flight - 1, 0)
        if self._in_flight == 0:
            self._idle.set()

    async def wait_drained(self, timeout: float | None = None) -> bool:
        """Wait until no request is in flight.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            bool: True if drained, False if the timeout expired first.
        """
        if self._in_flight == 0:
            return True
        try:
            async with asyncio.timeout(timeout):
                await self._idle.wait()
        except TimeoutError:
            logger.warning(
                "Drain timeout after {}s, {} request(s) still in flight",
                timeout,
                self._in_flight,
            )
            return False
        return True

    async def close(self) -> int:
        """Drain, release the store and settle the exit code.

        Safe to call more than once; only the first call releases the store.

        Returns:
            int: The process exit code.
        """
        async with self._close_lock:
            if self._phase is ShutdownPhase.CLOSED:
                return self.exit_code

            self.begin_draining("close")
            await self.wait_drained(self._drain_timeout)

            try:
                if self._store is not None:
                    await self._store.close()
            except Exception as exc:  # noqa: BLE001
                error = ShutdownReleaseError(exc)
                logger.opt(exception=exc).critical(
                    "{}", error, error_code=error.error_code
                )
                self._exit_code = EXIT_CODE_RELEASE_FAILURE
            else:
                self._exit_code = EXIT_CODE_CLEAN
                logger.info("Store connection released")
            finally:
                self._phase = ShutdownPhase.CLOSED

            return self.exit_code
