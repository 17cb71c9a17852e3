"""Per-client fixed-window admission control on top of ``limits``.

Each client gets a window of ``window_seconds`` starting at its first request.
Up to ``max_requests`` requests are admitted in the window; the rest are
rejected until the window expires, at which point the count starts again from
zero with a window beginning at the next request. Because windows reset rather
than slide, a client can get up to twice the cap through across a window edge.

Counters live in a ``limits`` storage backend (in process memory by default).
A window's counter expires with the window, so clients that have gone quiet
are reclaimed by the storage and the table stays bounded under churn.
"""

import math
import time
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter as FixedWindowStrategy
from loguru import logger

RATE_LIMIT_NAMESPACE = "vigil"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request is admitted.
        limit: Requests allowed per window.
        remaining: Requests left in the current window after this one.
        reset_at: Epoch seconds at which the current window expires.
        reset_after: Seconds until the current window expires.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    reset_after: float

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds a rejected client should wait (at least 1)."""
        return max(math.ceil(self.reset_after), 1)


class FixedWindowRateLimiter:
    """Fixed-window rate limiter keyed by client identity.

    Args:
        max_requests: Requests admitted per client per window.
        window_seconds: Window length in whole seconds.
        storage: ``limits`` storage holding the counters.
        storage_uri: Storage to create when none is given, e.g. ``memory://``
            or ``redis://host:6379``.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: int = 900,
        *,
        storage: Storage | None = None,
        storage_uri: str = "memory://",
    ) -> None:
        if max_requests <= 0:
            msg = "max_requests must be positive"
            raise ValueError(msg)
        if window_seconds <= 0:
            msg = "window_seconds must be positive"
            raise ValueError(msg)

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._item = RateLimitItemPerSecond(
            max_requests, window_seconds, namespace=RATE_LIMIT_NAMESPACE
        )
        self._storage = storage or storage_from_string(storage_uri)
        self._strategy = FixedWindowStrategy(self._storage)

    def admit(self, client_id: str) -> RateLimitDecision:
        """Count one request from ``client_id`` and decide whether to admit it.

        Args:
            client_id: Client identity, typically the source address.

        Returns:
            RateLimitDecision: The admission decision and window state.
        """
        allowed = self._strategy.hit(self._item, client_id)
        stats = self._strategy.get_window_stats(self._item, client_id)

        reset_after = max(stats.reset_time - time.time(), 0.0)
        if not allowed:
            logger.debug(
                "Client over limit, window resets in {:.0f}s",
                reset_after,
                client_host=client_id,
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=stats.remaining,
            reset_at=stats.reset_time,
            reset_after=reset_after,
        )

    def reset(self, client_id: str | None = None) -> None:
        """Forget one client's window, or every window when no client is given."""
        if client_id is None:
            self._storage.reset()
        else:
            self._strategy.clear(self._item, client_id)
