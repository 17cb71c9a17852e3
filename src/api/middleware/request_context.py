"""Pipeline entry: request context, admission during shutdown and access log.

This is the outermost stage of the request pipeline. For every HTTP request
it:

- **Creates the RequestContext** and publishes it through the ASGI scope
  state and a context variable
- **Propagates the correlation ID** from ``X-Correlation-ID`` (or generates
  one), binds it to loguru and echoes it on the response
- **Refuses admission** with 503 once shutdown has begun, and counts the
  in-flight requests the shutdown sequencer waits for
- **Owns the terminal event**: the context finishes exactly once, when the
  final body chunk is sent or, if that never happens, when the pipeline
  unwinds through an error, a cancellation or a client disconnect

Metrics recording and the access log line both hang off the terminal event,
so a request that is rejected, fails or is aborted is still accounted for.
"""

from loguru import logger
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.constants import CORRELATION_ID_HEADER, OPERATIONAL_PATHS
from src.api.middleware.metrics import RequestMetricsRecorder
from src.api.schemas.errors import ErrorResponse
from src.api.utils.client_ip import get_client_ip
from src.api.utils.responses import ORJSONResponse
from src.core.config import LogConfig
from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.context import (
    RequestContext,
    RequestOutcome,
    clear_request_context,
    generate_correlation_id,
    set_current_request_context,
)
from src.core.exceptions import ServiceDrainingError
from src.core.metrics import MetricsRegistry
from src.core.shutdown import ShutdownSequencer

REQUEST_CONTEXT_STATE_KEY = "request_context"


def get_request_context(scope: Scope) -> RequestContext | None:
    """Get the RequestContext stored in an ASGI scope, if any."""
    state = scope.get("state") or {}
    context = state.get(REQUEST_CONTEXT_STATE_KEY)
    return context if isinstance(context, RequestContext) else None


def resolve_route_pattern(scope: Scope) -> str | None:
    """Route pattern matched by the router, or None if nothing matched."""
    route = scope.get("route")
    return getattr(route, "path", None)


class AccessLogger:
    """Writes one access log line per finished request.

    Args:
        log_config: Logging configuration (excluded paths, slow threshold).
    """

    def __init__(self, log_config: LogConfig) -> None:
        self.excluded_paths = set(log_config.excluded_paths)
        self.slow_request_threshold_ms = log_config.slow_request_threshold_ms

    def __call__(self, context: RequestContext) -> None:
        """Log the finished request."""
        if context.path in self.excluded_paths:
            return

        duration_seconds = context.duration_seconds or 0.0
        duration_ms = round(duration_seconds * MILLISECONDS_PER_SECOND, 2)
        log = logger.bind(
            method=context.method,
            path=context.path,
            route=context.route_label,
            status_code=context.status_label,
            outcome=context.outcome.value if context.outcome else None,
            client_host=context.client_host,
            duration_ms=duration_ms,
        )

        if context.outcome is RequestOutcome.ABORTED:
            log.warning("Request aborted")
        elif context.outcome is RequestOutcome.FAILED:
            log.error("Request failed")
        else:
            log.info("Request completed")

        if duration_ms > self.slow_request_threshold_ms:
            log.warning(
                "Slow request detected",
                threshold_ms=self.slow_request_threshold_ms,
            )


class RequestContextMiddleware:
    """Outermost pipeline stage.

    Args:
        app: The ASGI application to wrap.
        registry: Registry receiving the per-request metrics.
        sequencer: Shutdown sequencer gating admission.
        log_config: Logging configuration for the access log.
        trust_proxy_headers: Whether client identity may come from proxy headers.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        registry: MetricsRegistry,
        sequencer: ShutdownSequencer,
        log_config: LogConfig,
        trust_proxy_headers: bool = False,
    ) -> None:
        self.app = app
        self.sequencer = sequencer
        self.trust_proxy_headers = trust_proxy_headers
        self.record_metrics = RequestMetricsRecorder(registry)
        self.log_access = AccessLogger(log_config)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run one request through the rest of the pipeline."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        context = RequestContext(
            method=scope["method"],
            path=scope["path"],
            correlation_id=headers.get(CORRELATION_ID_HEADER)
            or generate_correlation_id(),
            client_host=get_client_ip(
                scope, trust_proxy_headers=self.trust_proxy_headers
            ),
        )
        context.on_finish(self.record_metrics)
        context.on_finish(self.log_access)

        scope.setdefault("state", {})[REQUEST_CONTEXT_STATE_KEY] = context
        set_current_request_context(context)

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                context.status_code = int(message["status"])
                response_headers = MutableHeaders(scope=message)
                response_headers[CORRELATION_ID_HEADER] = context.correlation_id

            await send(message)

            if message["type"] == "http.response.body" and not message.get(
                "more_body", False
            ):
                context.route = resolve_route_pattern(scope)
                context.finish(RequestOutcome.COMPLETED)

        with logger.contextualize(correlation_id=context.correlation_id):
            try:
                if not self.sequencer.try_admit():
                    await self._reject_draining(scope, receive, send_wrapper)
                    return

                try:
                    await self.app(scope, receive, send_wrapper)
                finally:
                    self.sequencer.request_finished()
            except Exception:
                context.route = resolve_route_pattern(scope)
                if context.status_code is None:
                    context.status_code = 500
                context.finish(RequestOutcome.FAILED)
                raise
            finally:
                if not context.finished:
                    context.route = resolve_route_pattern(scope)
                    context.finish(RequestOutcome.ABORTED)
                clear_request_context()

    async def _reject_draining(
        self, scope: Scope, receive: Receive, send: Send
    ) -> None:
        error = ServiceDrainingError()
        if scope["path"] not in OPERATIONAL_PATHS:
            logger.info("Rejecting request during shutdown", path=scope["path"])

        response = ORJSONResponse(
            status_code=error.status_code,
            content=ErrorResponse(error=error.message).to_content(),
            headers={"Connection": "close"},
        )
        await response(scope, receive, send)
