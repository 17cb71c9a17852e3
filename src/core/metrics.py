"""Process-wide metrics registry with Prometheus text exposition.

The registry wraps a private ``prometheus_client.CollectorRegistry`` so the
service owns exactly the metrics it exposes: the default process metrics
(CPU, memory, file descriptors, GC, interpreter info, uptime) and the
business metrics recorded by the pipeline and the store adapter live in the
same namespace and are rendered together by ``snapshot()``.

Metric definitions are registered by name. The first registration wins;
re-registering or recording a name with a different kind raises
``MetricKindConflictError``. Each metric child is guarded by prometheus_client's
own lock, so concurrent ``record`` and ``snapshot`` calls never observe a torn
value of a single metric.
"""

import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from loguru import logger
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from prometheus_client.metrics import MetricWrapperBase

from src.core.exceptions import MetricKindConflictError

HTTP_REQUESTS_TOTAL: Final[str] = "http_requests_total"
HTTP_REQUEST_DURATION_SECONDS: Final[str] = "http_request_duration_seconds"
STORE_CONNECTIONS_ACTIVE: Final[str] = "store_connections_active"
BUSINESS_OPERATIONS_TOTAL: Final[str] = "business_operations_total"
PROCESS_UPTIME_SECONDS: Final[str] = "process_uptime_seconds"

HTTP_DURATION_BUCKETS: Final[tuple[float, ...]] = (
    0.1,
    0.3,
    0.5,
    0.7,
    1.0,
    3.0,
    5.0,
    7.0,
    10.0,
)
HTTP_LABELS: Final[tuple[str, ...]] = ("method", "route", "status_code")


class MetricKind(Enum):
    """Kinds of metrics the registry can hold."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class MetricDefinition:
    """Static description of a metric."""

    kind: MetricKind
    name: str
    documentation: str
    labelnames: tuple[str, ...] = ()
    buckets: tuple[float, ...] | None = None


@dataclass(frozen=True)
class MetricSample:
    """A single update to apply to the registry.

    Counters and histograms accumulate ``value``; gauges are set to it.
    """

    kind: MetricKind
    name: str
    labels: Mapping[str, str] = field(default_factory=dict)
    value: float = 1.0


class MetricsRegistry:
    """Registry of counters, gauges and histograms for one process.

    Args:
        include_process_metrics: Register the default process collectors.
        clock: Wall clock used for the uptime gauge.
    """

    def __init__(
        self,
        *,
        include_process_metrics: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = CollectorRegistry()
        self._lock = threading.Lock()
        self._definitions: dict[str, MetricDefinition] = {}
        self._metrics: dict[str, MetricWrapperBase] = {}
        self._clock = clock
        self.started_at = clock()

        if include_process_metrics:
            self._register_process_metrics()

    @property
    def content_type(self) -> str:
        """Content type of the text exposition produced by ``snapshot()``."""
        return CONTENT_TYPE_LATEST

    def uptime_seconds(self) -> float:
        """Seconds since the registry (and so the process) started."""
        return max(self._clock() - self.started_at, 0.0)

    def _register_process_metrics(self) -> None:
        ProcessCollector(registry=self._registry)
        PlatformCollector(registry=self._registry)
        GCCollector(registry=self._registry)

        uptime = self.register(
            MetricKind.GAUGE,
            PROCESS_UPTIME_SECONDS,
            "Seconds since the process started",
        )
        if isinstance(uptime, Gauge):
            uptime.set_function(self.uptime_seconds)

    def register(
        self,
        kind: MetricKind,
        name: str,
        documentation: str,
        labelnames: Sequence[str] = (),
        buckets: Sequence[float] | None = None,
    ) -> MetricWrapperBase:
        """Register a metric definition by name.

        The first registration of a name wins; later registrations with the
        same kind return the existing metric unchanged.

        Args:
            kind: Metric kind.
            name: Metric name.
            documentation: Help text rendered in the exposition.
            labelnames: Names of the metric's labels.
            buckets: Histogram bucket upper bounds.

        Returns:
            MetricWrapperBase: The registered prometheus_client metric.

        Raises:
            MetricKindConflictError: If the name is registered with another kind.
        """
        with self._lock:
            existing = self._definitions.get(name)
            if existing is not None:
                if existing.kind is not kind:
                    raise MetricKindConflictError(
                        name, existing.kind.value, kind.value
                    )
                return self._metrics[name]

            definition = MetricDefinition(
                kind=kind,
                name=name,
                documentation=documentation,
                labelnames=tuple(labelnames),
                buckets=tuple(buckets) if buckets is not None else None,
            )
            metric = self._create(definition)
            self._definitions[name] = definition
            self._metrics[name] = metric

        logger.debug(
            "Registered {} metric {}", kind.value, name, labelnames=list(labelnames)
        )
        return metric

    def _create(self, definition: MetricDefinition) -> MetricWrapperBase:
        if definition.kind is MetricKind.COUNTER:
            return Counter(
                definition.name,
                definition.documentation,
                definition.labelnames,
                registry=self._registry,
            )
        if definition.kind is MetricKind.GAUGE:
            return Gauge(
                definition.name,
                definition.documentation,
                definition.labelnames,
                registry=self._registry,
            )
        if definition.buckets is not None:
            return Histogram(
                definition.name,
                definition.documentation,
                definition.labelnames,
                buckets=definition.buckets,
                registry=self._registry,
            )
        return Histogram(
            definition.name,
            definition.documentation,
            definition.labelnames,
            registry=self._registry,
        )

    def definition(self, name: str) -> MetricDefinition | None:
        """Get the definition registered under ``name``."""
        return self._definitions.get(name)

    def record(
        self,
        kind: MetricKind,
        name: str,
        labels: Mapping[str, object] | None = None,
        value: float = 1.0,
    ) -> None:
        """Register ``name`` if needed and apply one update to it.

        An unknown name is registered with the label names of ``labels`` and
        its own name as help text.

        Args:
            kind: Metric kind the caller expects.
            name: Metric name.
            labels: Label values (converted to strings).
            value: Counter increment, gauge value or histogram observation.

        Raises:
            MetricKindConflictError: If ``name`` is registered with another kind.
            ValueError: On a negative counter increment or mismatched labels.
        """
        str_labels = {key: str(val) for key, val in (labels or {}).items()}
        metric = self.register(kind, name, name, labelnames=tuple(str_labels))

        if kind is MetricKind.COUNTER and value < 0:
            msg = f"Counter '{name}' cannot be decremented (got {value})"
            raise ValueError(msg)

        child = metric.labels(**str_labels) if str_labels else metric
        if kind is MetricKind.COUNTER:
            child.inc(value)  # type: ignore[attr-defined]
        elif kind is MetricKind.GAUGE:
            child.set(value)  # type: ignore[attr-defined]
        else:
            child.observe(value)  # type: ignore[attr-defined]

    def apply(self, sample: MetricSample) -> None:
        """Apply a ``MetricSample`` to the registry."""
        self.record(sample.kind, sample.name, sample.labels, sample.value)

    def inc(
        self, name: str, labels: Mapping[str, object] | None = None, value: float = 1.0
    ) -> None:
        """Increment a counter."""
        self.record(MetricKind.COUNTER, name, labels, value)

    def set(
        self, name: str, value: float, labels: Mapping[str, object] | None = None
    ) -> None:
        """Set a gauge."""
        self.record(MetricKind.GAUGE, name, labels, value)

    def observe(
        self, name: str, value: float, labels: Mapping[str, object] | None = None
    ) -> None:
        """Observe a histogram value."""
        self.record(MetricKind.HISTOGRAM, name, labels, value)

    def value(
        self, name: str, labels: Mapping[str, object] | None = None
    ) -> float | None:
        """Read the current value of a counter or gauge.

        For histograms the number of observations is returned.

        Returns:
            float | None: The value, or None if the metric or label set is unknown.
        """
        definition = self._definitions.get(name)
        if definition is None:
            return None

        sample_name = name
        if definition.kind is MetricKind.COUNTER and not name.endswith("_total"):
            sample_name = f"{name}_total"
        elif definition.kind is MetricKind.HISTOGRAM:
            sample_name = f"{name}_count"

        str_labels = {key: str(val) for key, val in (labels or {}).items()}
        return self._registry.get_sample_value(sample_name, str_labels)

    def snapshot(self) -> bytes:
        """Render every registered metric in the Prometheus text format."""
        return generate_latest(self._registry)


def define_service_metrics(registry: MetricsRegistry) -> None:
    """Register the metrics recorded by the pipeline and the store adapter."""
    registry.register(
        MetricKind.COUNTER,
        HTTP_REQUESTS_TOTAL,
        "Total number of HTTP requests",
        HTTP_LABELS,
    )
    registry.register(
        MetricKind.HISTOGRAM,
        HTTP_REQUEST_DURATION_SECONDS,
        "Duration of HTTP requests in seconds",
        HTTP_LABELS,
        buckets=HTTP_DURATION_BUCKETS,
    )
    registry.register(
        MetricKind.GAUGE,
        STORE_CONNECTIONS_ACTIVE,
        "Whether the backing store connection is established (1) or not (0)",
    )
    registry.register(
        MetricKind.COUNTER,
        BUSINESS_OPERATIONS_TOTAL,
        "Total number of business operations",
        ("operation", "status"),
    )
