"""Unit tests for logging, metrics and tracing."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Generator

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import CollectorRegistry

from docdb import __version__
from docdb.application import Database
from docdb.domain.errors import TableNotFoundError
from docdb.domain.value_objects import TransactionState
from docdb.infrastructure import metrics, tracing
from docdb.infrastructure.config import ObservabilityConfig
from docdb.infrastructure.logging import configure_logging, get_logger, setup_logging
from docdb.infrastructure.metrics import MetricsRegistry, get_metrics


@pytest.fixture
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults after the test."""
    yield
    structlog.reset_defaults()


@pytest.mark.unit
@pytest.mark.usefixtures("reset_structlog")
class TestLogging:
    """Tests for structured logging setup."""

    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        """JSON format renders one object per event with bound context."""
        setup_logging(level="DEBUG", log_format="json")

        get_logger("test", component="unit").info("hello", key=1)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "hello"
        assert event["key"] == 1
        assert event["component"] == "unit"
        assert event["level"] == "info"
        assert event["logger_name"] == "test"

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Events below the configured level are dropped."""
        setup_logging(level="WARNING", log_format="console")

        get_logger("test").debug("hidden")
        get_logger("test").warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_logger_created_before_setup(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Module-level loggers follow a later configuration."""
        logger = get_logger("early")
        setup_logging(level="INFO", log_format="json")

        logger.info("late")

        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["event"] == "late"
        assert event["logger_name"] == "early"

    def test_states_and_paths_rendered_as_text(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Enum and path values are logged as plain strings."""
        setup_logging(level="INFO", log_format="json")

        get_logger("test").info(
            "done", state=TransactionState.ROLLED_BACK, path=Path("data") / "db.json"
        )

        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["state"] == "rolled_back"
        assert event["path"] == str(Path("data") / "db.json")

    def test_unknown_level_rejected(self) -> None:
        """An unknown level is a configuration error."""
        with pytest.raises(ValueError, match="log level"):
            setup_logging(level="LOUD")

    def test_unknown_format_rejected(self) -> None:
        """Only json and console formats exist."""
        with pytest.raises(ValueError, match="log format"):
            setup_logging(log_format="xml")

    def test_configure_from_settings(self, capsys: pytest.CaptureFixture[str]) -> None:
        """configure_logging applies the configured level and format."""
        configure_logging(ObservabilityConfig(log_level="ERROR", log_format="json"))

        get_logger("test").warning("quiet")
        get_logger("test").error("loud")

        lines = capsys.readouterr().out.strip().splitlines()
        events = [json.loads(line)["event"] for line in lines if line.startswith("{")]
        assert events == ["loud"]


@pytest.mark.unit
class TestMetrics:
    """Tests for Prometheus metrics."""

    def test_transaction_and_query_counters(
        self, db: Database, metrics_registry: MetricsRegistry
    ) -> None:
        """Transactions and queries are counted by outcome."""
        registry = metrics_registry.registry

        db.exec("CREATE TABLE t")
        with db.query("SELECT * FROM t"):
            assert registry.get_sample_value("docdb_transactions_active") == 1
        with pytest.raises(TableNotFoundError):
            db.exec("INSERT INTO missing (a) VALUES (1)")

        assert registry.get_sample_value("docdb_transactions_total", {"status": "commit"}) == 1
        assert registry.get_sample_value("docdb_transactions_total", {"status": "rollback"}) == 2
        assert registry.get_sample_value("docdb_transactions_active") == 0
        assert (
            registry.get_sample_value(
                "docdb_queries_total", {"query_type": "write", "status": "success"}
            )
            == 1
        )
        assert (
            registry.get_sample_value(
                "docdb_queries_total", {"query_type": "write", "status": "error"}
            )
            == 1
        )
        assert (
            registry.get_sample_value(
                "docdb_query_latency_seconds_count", {"query_type": "read"}
            )
            == 1
        )

    def test_documents_written(self, db: Database, metrics_registry: MetricsRegistry) -> None:
        """Rows affected by write queries are added up."""
        db.exec("CREATE TABLE t")
        db.exec("INSERT INTO t (a) VALUES (1), (2), (3)")
        db.exec("DELETE FROM t WHERE a > ?", 1)
        with db.query("SELECT * FROM t") as result:
            assert len(list(result)) == 1

        assert metrics_registry.registry.get_sample_value("docdb_documents_written_total") == 5

    def test_setup_metrics_publishes_version(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """setup_metrics replaces the shared registry and records the version."""
        monkeypatch.setattr(metrics, "_metrics", None)
        registry = CollectorRegistry()

        created = metrics.setup_metrics(registry)

        assert metrics.get_metrics() is created
        assert registry.get_sample_value("docdb_info", {"version": __version__}) == 1

    def test_get_metrics_is_shared(self) -> None:
        """get_metrics returns one lazily created registry."""
        assert get_metrics() is get_metrics()


@pytest.mark.unit
class TestTracing:
    """Tests for query tracing."""

    def test_query_span(self, db: Database, monkeypatch: pytest.MonkeyPatch) -> None:
        """Each query runs inside a docdb.query span."""
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))

        db.exec("CREATE TABLE t; INSERT INTO t (a) VALUES (1)")

        spans = exporter.get_finished_spans()
        assert [span.name for span in spans] == ["docdb.query"]
        assert spans[0].attributes["docdb.query_type"] == "write"
        assert spans[0].attributes["docdb.statements"] == 2

    def test_trace_span_sets_attributes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """trace_span copies attributes onto the span."""
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))

        with tracing.trace_span("work", {"k": "v"}):
            pass

        assert exporter.get_finished_spans()[0].attributes["k"] == "v"

    def test_trace_span_skips_none_and_stringifies(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """None attributes are dropped; unsupported values become strings."""
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))

        with tracing.trace_span("work", {"missing": None, "path": Path("db.json")}):
            pass

        attributes = exporter.get_finished_spans()[0].attributes
        assert "missing" not in attributes
        assert attributes["path"] == "db.json"

    def test_setup_tracing_exports_and_shuts_down(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """setup_tracing wires exporters; shutdown_tracing flushes them."""
        monkeypatch.setattr(tracing, "_tracer", None)
        monkeypatch.setattr(tracing, "_provider", None)
        exporter = InMemorySpanExporter()

        tracing.setup_tracing(service_name="docdb-test", exporters=[exporter])
        with tracing.trace_span("op", {"docdb.statements": 1}):
            pass
        tracing.shutdown_tracing()

        spans = exporter.get_finished_spans()
        assert [span.name for span in spans] == ["op"]
        assert spans[0].resource.attributes["service.name"] == "docdb-test"
        assert tracing._tracer is None
