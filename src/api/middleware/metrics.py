"""Request metrics stages of the pipeline.

``MetricsMiddleware`` marks the start of the measured part of a request.
``RequestMetricsRecorder`` is the finish side: it is subscribed to the
RequestContext terminal event by the pipeline entry, so it runs exactly once
per request whether the handler returned, raised or the client went away,
and also for requests rejected before reaching this stage.
"""

import time

from starlette.types import ASGIApp, Receive, Scope, Send

from src.core.context import RequestContext, get_current_request_context
from src.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_TOTAL,
    MetricsRegistry,
)


class RequestMetricsRecorder:
    """Records the request counter and duration histogram for a finished request."""

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry

    def __call__(self, context: RequestContext) -> None:
        labels = {
            "method": context.method,
            "route": context.route_label,
            "status_code": context.status_label,
        }
        self.registry.inc(HTTP_REQUESTS_TOTAL, labels)
        self.registry.observe(
            HTTP_REQUEST_DURATION_SECONDS, context.duration_seconds or 0.0, labels
        )


class MetricsMiddleware:
    """Stamps the metrics start time on the current request context."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            context = get_current_request_context()
            if context is not None and context.metrics_started_at is None:
                context.metrics_started_at = time.perf_counter()

        await self.app(scope, receive, send)
