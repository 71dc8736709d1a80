"""Infrastructure layer - cross-cutting concerns."""

from docdb.infrastructure.config import Config, get_config
from docdb.infrastructure.logging import configure_logging, get_logger, setup_logging
from docdb.infrastructure.metrics import MetricsRegistry, get_metrics
from docdb.infrastructure.tracing import (
    configure_tracing,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
    trace_span,
)

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "configure_logging",
    "get_logger",
    "MetricsRegistry",
    "get_metrics",
    "setup_tracing",
    "configure_tracing",
    "shutdown_tracing",
    "get_tracer",
    "trace_span",
]
