"""Distributed tracing with OpenTelemetry.

Spans are exported through one of:

- **console**: the ``LoguruSpanExporter``, which writes finished spans as
  debug log lines (development)
- **otlp**: any OTLP/gRPC collector (Jaeger, Tempo, vendor agents)
- **none**: tracing set up but nothing exported

FastAPI requests are traced except the operational endpoints, SQLAlchemy
statements run by the store adapter are traced, and the correlation ID of the
request is copied onto its server span.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from src.core.context import get_correlation_id

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from src.core.config import Settings

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"
DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"
EXCLUDED_URLS: Final[str] = "/health,/metrics,/docs,/redoc,/openapi.json"

# Internal spans too small to be worth a log line
NOISY_SPAN_NAMES: Final[frozenset[str]] = frozenset(
    {"connect", "http send", "http receive", "cursor.execute"}
)


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through Loguru."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Log each finished span at debug level."""
        for span in spans:
            span_context = span.get_span_context()
            if not span_context or span.name in NOISY_SPAN_NAMES:
                continue

            attributes = dict(span.attributes or {})

            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            logger.bind(
                trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                correlation_id=attributes.get("correlation_id", get_correlation_id()),
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=duration_ms,
                status=span.status.status_code.name,
            ).debug("Trace span completed: {}", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Get the span exporter selected by configuration.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: Configured exporter, or None when exporting is off.
    """
    exporter_type = settings.observability_config.exporter_type

    if exporter_type == "console":
        logger.info("Using Loguru span exporter")
        return LoguruSpanExporter()

    if exporter_type == "otlp":
        endpoint = (
            settings.observability_config.exporter_endpoint or DEFAULT_OTLP_ENDPOINT
        )
        logger.info("Using OTLP exporter at {}", endpoint)
        return OTLPSpanExporter(endpoint=endpoint, insecure=not settings.is_production)

    logger.info("Span export disabled")
    return None


@lru_cache(maxsize=1)
def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given component."""
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Install the global tracer provider.

    Args:
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    resource = Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            ENVIRONMENT_KEY: settings.environment,
        }
    )
    tracer_provider = TracerProvider(
        resource=resource,
        sampler=TraceIdRatioBased(settings.observability_config.trace_sample_rate),
    )

    exporter = get_span_exporter(settings)
    if exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(tracer_provider)

    logger.info(
        "Tracing configured",
        exporter_type=settings.observability_config.exporter_type,
        sample_rate=settings.observability_config.trace_sample_rate,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument the FastAPI application and SQLAlchemy for tracing.

    Args:
        app: FastAPI application to instrument.
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=EXCLUDED_URLS,
        server_request_hook=add_correlation_id_to_span,
    )

    instrumentor = SQLAlchemyInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument()

    logger.info("Application instrumented for tracing")


def add_correlation_id_to_span(span: trace.Span, _scope: dict[str, Any]) -> None:
    """Copy the request's correlation ID onto its server span."""
    if span and span.is_recording() and (correlation_id := get_correlation_id()):
        span.set_attribute("correlation_id", correlation_id)


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Context manager for tracing a custom operation.

    Args:
        name: Operation name for the span.
        **attributes: Initial attributes for the span.

    Yields:
        Generator[trace.Span]: The created span for the operation.
    """
    tracer = get_tracer(__name__)
    span = tracer.start_span(name)

    for key, value in attributes.items():
        span.set_attribute(key, str(value))

    if correlation_id := get_correlation_id():
        span.set_attribute("correlation_id", correlation_id)

    with trace.use_span(span, end_on_exit=True):
        yield span
