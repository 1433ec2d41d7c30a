"""OpenTelemetry integration for Bio Atlas.

Instrumentation goes through the ``opentelemetry-api`` package, whose global
tracer and meter are no-ops until a provider is installed.  The SDK and
exporters live in the optional ``[otel]`` extra and are only imported by
:func:`init_telemetry`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from opentelemetry import metrics as otel_metrics
from opentelemetry import trace as otel_trace

if TYPE_CHECKING:
    from bio_atlas.settings import ObservabilitySettings

# ---------------------------------------------------------------------------
# Singleton state
# ---------------------------------------------------------------------------

_initialized: bool = False
_enabled: bool = False

# ---------------------------------------------------------------------------
# Factory functions (safe to call at module level)
# ---------------------------------------------------------------------------


def get_tracer(name: str) -> otel_trace.Tracer:
    """Return a tracer from the global provider (no-op until initialized)."""
    return otel_trace.get_tracer(name)


# ---------------------------------------------------------------------------
# Metric instruments (centralized, lazy-initialized)
# ---------------------------------------------------------------------------


def _noop_counter() -> Any:
    return otel_metrics.NoOpCounter("noop")


def _noop_histogram() -> Any:
    return otel_metrics.NoOpHistogram("noop")


@dataclass
class _Metrics:
    """Central registry of metric instruments."""

    search_count: Any = field(default_factory=_noop_counter)
    search_errors: Any = field(default_factory=_noop_counter)
    search_latency: Any = field(default_factory=_noop_histogram)
    search_results_count: Any = field(default_factory=_noop_histogram)
    vector_search_latency: Any = field(default_factory=_noop_histogram)
    expansion_latency: Any = field(default_factory=_noop_histogram)
    embedding_latency: Any = field(default_factory=_noop_histogram)


_metrics = _Metrics()


def get_metrics() -> _Metrics:
    """Return the centralized metrics namespace."""
    return _metrics


def is_enabled() -> bool:
    return _enabled


# ---------------------------------------------------------------------------
# Initialization / shutdown
# ---------------------------------------------------------------------------


def init_telemetry(settings: ObservabilitySettings) -> None:
    """Configure OTel providers and instruments based on *settings*.

    Safe to call multiple times: only the first call has effect.
    """
    global _initialized, _enabled, _metrics  # noqa: PLW0603

    if _initialized:
        return
    _initialized = True

    if not settings.enabled:
        logger.debug("Telemetry disabled")
        return

    from opentelemetry.sdk.metrics import MeterProvider  # noqa: PLC0415
    from opentelemetry.sdk.resources import Resource  # noqa: PLC0415
    from opentelemetry.sdk.trace import TracerProvider  # noqa: PLC0415
    from opentelemetry.sdk.trace.sampling import TraceIdRatioBased  # noqa: PLC0415

    _enabled = True

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": _get_version(),
        }
    )

    sampler = TraceIdRatioBased(settings.sample_rate)
    tracer_provider = TracerProvider(resource=resource, sampler=sampler)

    span_exporter = _build_span_exporter(settings)
    if span_exporter is not None:
        from opentelemetry.sdk.trace.export import BatchSpanProcessor  # noqa: PLC0415

        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    otel_trace.set_tracer_provider(tracer_provider)

    metric_reader = _build_metric_reader(settings)
    readers = [metric_reader] if metric_reader is not None else []
    meter_provider = MeterProvider(resource=resource, metric_readers=readers)
    otel_metrics.set_meter_provider(meter_provider)

    meter = otel_metrics.get_meter("bio_atlas")
    _metrics = _Metrics(
        search_count=meter.create_counter("bioatlas_search_count", description="Total hybrid searches"),
        search_errors=meter.create_counter("bioatlas_search_errors", description="Failed hybrid searches"),
        search_latency=meter.create_histogram(
            "bioatlas_search_latency_seconds", description="End-to-end search latency", unit="s"
        ),
        search_results_count=meter.create_histogram(
            "bioatlas_search_results_count", description="Similarity hits per search"
        ),
        vector_search_latency=meter.create_histogram(
            "bioatlas_vector_search_latency_seconds", description="Vector search stage latency", unit="s"
        ),
        expansion_latency=meter.create_histogram(
            "bioatlas_expansion_latency_seconds", description="Graph expansion stage latency", unit="s"
        ),
        embedding_latency=meter.create_histogram(
            "bioatlas_embedding_latency_seconds", description="Embedding API latency", unit="s"
        ),
    )

    logger.info("Telemetry initialized (exporter={}, sample_rate={})", settings.exporter, settings.sample_rate)


def shutdown_telemetry() -> None:
    """Flush and shut down OTel providers. Safe to call even when not initialized."""
    global _initialized, _enabled, _metrics  # noqa: PLW0603

    if not _initialized or not _enabled:
        _initialized = False
        return

    tp = otel_trace.get_tracer_provider()
    if hasattr(tp, "shutdown"):
        tp.shutdown()

    mp = otel_metrics.get_meter_provider()
    if hasattr(mp, "shutdown"):
        mp.shutdown()

    _initialized = False
    _enabled = False
    _metrics = _Metrics()
    logger.debug("Telemetry shut down")


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _get_version() -> str:
    """Best-effort version string."""
    from importlib.metadata import PackageNotFoundError, version  # noqa: PLC0415

    try:
        return version("bio-atlas")
    except PackageNotFoundError:
        return "0.0.0-dev"


def _build_span_exporter(settings: ObservabilitySettings) -> Any:
    """Build a span exporter based on settings, or ``None``."""
    if settings.exporter == "none":
        return None
    if settings.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # noqa: PLC0415

        return ConsoleSpanExporter()
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # noqa: PLC0415

    return OTLPSpanExporter(endpoint=settings.endpoint)


def _build_metric_reader(settings: ObservabilitySettings) -> Any:
    """Build a metric reader based on settings, or ``None``."""
    if settings.exporter == "none":
        return None
    if settings.exporter == "console":
        from opentelemetry.sdk.metrics.export import (  # noqa: PLC0415
            ConsoleMetricExporter,
            PeriodicExportingMetricReader,
        )

        return PeriodicExportingMetricReader(ConsoleMetricExporter())
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter  # noqa: PLC0415
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader  # noqa: PLC0415

    return PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=settings.endpoint))
