"""Request context management for the request pipeline.

A ``RequestContext`` is created at pipeline entry for each HTTP request,
mutated by downstream stages (route pattern, status code, metrics start) and
discarded after its terminal event fires. The terminal event is the single
hook the metrics-finish stage and the access log subscribe to; it fires
exactly once per request no matter how the request ends.

The current context and correlation ID are also published through
contextvars so handlers and log calls can reach them without plumbing.
"""

import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

# Label used when the transport went away before any status was known
ABORTED_STATUS = "aborted"
# Route label for requests that did not match any route
UNMATCHED_ROUTE = "unmatched"

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_request_context_var: ContextVar["RequestContext | None"] = ContextVar(
    "request_context", default=None
)


class RequestOutcome(Enum):
    """How a request left the pipeline."""

    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


type FinishCallback = Callable[["RequestContext"], None]


@dataclass
class RequestContext:
    """Per-request state shared by the pipeline stages of one request.

    Attributes:
        method: HTTP method.
        path: Raw request path.
        correlation_id: Correlation ID propagated through logs and headers.
        client_host: Client identity used for admission control.
        started_at: perf_counter timestamp at pipeline entry.
        metrics_started_at: perf_counter timestamp set by the metrics stage.
        route: Matched route pattern, or None until routing has happened.
        status_code: Final status code once the response has started.
        outcome: How the request ended, set when the terminal event fires.
    """

    method: str
    path: str
    correlation_id: str = field(default_factory=generate_correlation_id)
    client_host: str = "unknown"
    started_at: float = field(default_factory=time.perf_counter)
    metrics_started_at: float | None = None
    route: str | None = None
    status_code: int | None = None
    outcome: RequestOutcome | None = None
    duration_seconds: float | None = None
    _callbacks: list[FinishCallback] = field(default_factory=list, repr=False)
    _finished: bool = field(default=False, repr=False)

    @property
    def finished(self) -> bool:
        """Whether the terminal event has fired."""
        return self._finished

    @property
    def route_label(self) -> str:
        """Route pattern for metric labels; never the raw path."""
        return self.route or UNMATCHED_ROUTE

    @property
    def status_label(self) -> str:
        """Final status code as a label, or ``aborted`` if none is known."""
        if self.status_code is None:
            return ABORTED_STATUS
        return str(self.status_code)

    def on_finish(self, callback: FinishCallback) -> None:
        """Subscribe to the terminal event.

        Callbacks run in subscription order, exactly once.

        Raises:
            RuntimeError: If the terminal event has already fired.
        """
        if self._finished:
            msg = "Request context already finished"
            raise RuntimeError(msg)
        self._callbacks.append(callback)

    def finish(self, outcome: RequestOutcome = RequestOutcome.COMPLETED) -> bool:
        """Fire the terminal event.

        Args:
            outcome: How the request ended.

        Returns:
            bool: True if this call fired the event, False if it already had.
        """
        if self._finished:
            return False
        self._finished = True
        self.outcome = outcome

        start = self.metrics_started_at or self.started_at
        self.duration_seconds = max(time.perf_counter() - start, 0.0)

        for callback in self._callbacks:
            try:
                callback(self)
            except Exception:  # noqa: BLE001
                logger.opt(exception=True).error(
                    "Request finish callback failed",
                    callback=getattr(callback, "__qualname__", repr(callback)),
                )
        self._callbacks.clear()
        return True


def set_current_request_context(context: RequestContext | None) -> None:
    """Publish the request context (and its correlation ID) for this task."""
    _request_context_var.set(context)
    _correlation_id_var.set(context.correlation_id if context else None)


def get_current_request_context() -> RequestContext | None:
    """Get the request context of the current task, if any."""
    return _request_context_var.get()


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return _correlation_id_var.get()


def clear_request_context() -> None:
    """Clear all request context variables."""
    _request_context_var.set(None)
    _correlation_id_var.set(None)

