"""OpenTelemetry tracing for query execution."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generator, Iterable

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)

if TYPE_CHECKING:
    from docdb.infrastructure.config import ObservabilityConfig

_tracer: trace.Tracer | None = None
_provider: TracerProvider | None = None

_ATTRIBUTE_TYPES = (bool, str, int, float)


def setup_tracing(
    service_name: str = "docdb",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    exporters: Iterable[SpanExporter] = (),
) -> trace.Tracer:
    """
    Install an SDK tracer provider and return the docdb tracer.

    Args:
        service_name: service.name resource attribute
        otlp_endpoint: OTLP gRPC collector endpoint (e.g. "http://localhost:4317")
        console_export: Also print finished spans to stdout
        exporters: Additional exporters, each behind a batch processor
    """
    global _tracer, _provider

    from docdb import __version__

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.version": __version__})
    )

    span_exporters = list(exporters)
    if otlp_endpoint:
        span_exporters.append(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    if console_export:
        span_exporters.append(ConsoleSpanExporter())
    for exporter in span_exporters:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = provider.get_tracer("docdb", __version__)
    return _tracer


def configure_tracing(config: ObservabilityConfig) -> trace.Tracer:
    """Set up tracing from settings. Spans are exported only if an endpoint is set."""
    return setup_tracing(
        service_name=config.otel_service_name,
        otlp_endpoint=config.otel_endpoint,
    )


def shutdown_tracing() -> None:
    """Flush pending spans and forget the installed tracer."""
    global _tracer, _provider
    if _provider is not None:
        _provider.shutdown()
    _provider = None
    _tracer = None


def get_tracer() -> trace.Tracer:
    """Return the tracer installed by setup_tracing, or the global one."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("docdb")
    return _tracer


def _span_value(value: Any) -> Any:
    if isinstance(value, _ATTRIBUTE_TYPES):
        return value
    return str(value)


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Run the block inside a span named name.

    None attributes are skipped; values OpenTelemetry cannot store
    are recorded as strings.
    """
    with get_tracer().start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, _span_value(value))
        yield span
