"""Prometheus metrics for the document database.

Metrics:
    docdb_transactions_total{status}          finished transactions (commit, rollback)
    docdb_transactions_active                 transactions not yet terminal
    docdb_queries_total{query_type, status}   queries by kind (read, write) and outcome
    docdb_query_latency_seconds{query_type}   successful query latency
    docdb_documents_written_total             documents inserted, updated or deleted
    docdb_info                                package version
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

_LATENCY_BUCKETS = (0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0)


class MetricsRegistry:
    """Document database metrics bound to one CollectorRegistry.

    Tests pass a fresh CollectorRegistry; everything else shares the
    default one through get_metrics().
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or REGISTRY

        self.transactions_total = Counter(
            "docdb_transactions_total",
            "Finished transactions by terminal state",
            ["status"],
            registry=self._registry,
        )
        self.transactions_active = Gauge(
            "docdb_transactions_active",
            "Transactions begun and not yet committed or rolled back",
            registry=self._registry,
        )
        self.queries_total = Counter(
            "docdb_queries_total",
            "Executed queries by kind and outcome",
            ["query_type", "status"],
            registry=self._registry,
        )
        self.query_latency_seconds = Histogram(
            "docdb_query_latency_seconds",
            "Latency of successful queries",
            ["query_type"],
            buckets=_LATENCY_BUCKETS,
            registry=self._registry,
        )
        self.documents_written_total = Counter(
            "docdb_documents_written_total",
            "Documents inserted, updated or deleted by queries",
            registry=self._registry,
        )
        self.info = Info("docdb", "Document database build information", registry=self._registry)

    @property
    def registry(self) -> CollectorRegistry:
        """The collector registry these metrics are registered with."""
        return self._registry

    def transaction_started(self) -> None:
        self.transactions_active.inc()

    def transaction_finished(self, status: str) -> None:
        """Record a transaction reaching a terminal state ("commit" or "rollback")."""
        self.transactions_active.dec()
        self.transactions_total.labels(status=status).inc()

    def query_succeeded(self, query_type: str, seconds: float, rows_affected: int = 0) -> None:
        self.queries_total.labels(query_type=query_type, status="success").inc()
        self.query_latency_seconds.labels(query_type=query_type).observe(seconds)
        if rows_affected:
            self.documents_written_total.inc(rows_affected)

    def query_failed(self, query_type: str) -> None:
        self.queries_total.labels(query_type=query_type, status="error").inc()


_metrics: MetricsRegistry | None = None


def setup_metrics(
    registry: CollectorRegistry | None = None, port: int | None = None
) -> MetricsRegistry:
    """
    Create the module-level metrics and publish build information.

    Args:
        registry: Collector registry (default: the prometheus_client global)
        port: If given, serve /metrics over HTTP on this port

    Returns:
        The metrics registry later returned by get_metrics()
    """
    global _metrics

    from docdb import __version__

    _metrics = MetricsRegistry(registry)
    _metrics.info.info({"version": __version__})
    if port is not None:
        start_http_server(port, registry=_metrics.registry)
    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the module-level metrics registry, creating it on first use."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
