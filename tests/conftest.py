"""Pytest configuration and fixtures for docdb tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest
from prometheus_client import CollectorRegistry

from docdb.adapters.outbound import MemoryEngine
from docdb.adapters.outbound.memory_engine import MemoryTransaction
from docdb.application import Database
from docdb.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def engine() -> MemoryEngine:
    """Provide an in-memory engine that fails fast on writer contention."""
    return MemoryEngine(lock_timeout=0)


@pytest.fixture
def db(engine: MemoryEngine, metrics_registry: MetricsRegistry) -> Generator[Database, None, None]:
    """Provide an open in-memory database."""
    database = Database.open(engine, metrics=metrics_registry)
    yield database
    database.close()


@pytest.fixture
def users_db(db: Database) -> Database:
    """Provide a database with a populated 'users' table."""
    db.exec("CREATE TABLE users (name TEXT, age INTEGER, city TEXT)")
    db.exec(
        "INSERT INTO users VALUES (?, ?, ?), (?, ?, ?), (?, ?, ?)",
        "Alice", 30, "Paris",
        "Bob", 25, "Berlin",
        "Carol", 35, "Paris",
    )
    return db


class FailingTransaction:
    """Engine transaction wrapper whose commit and rollback can be made to fail."""

    def __init__(self, inner: MemoryTransaction, engine: FailingEngine) -> None:
        self._inner = inner
        self._engine = engine

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    @property
    def writable(self) -> bool:
        return self._inner.writable

    def commit(self) -> None:
        if self._engine.fail_commit:
            raise OSError("disk full")
        self._inner.commit()

    def rollback(self) -> None:
        self._inner.rollback()
        if self._engine.fail_rollback:
            raise OSError("rollback exploded")


class FailingEngine(MemoryEngine):
    """In-memory engine with switchable failures for fault injection."""

    def __init__(self) -> None:
        super().__init__(lock_timeout=0)
        self.fail_begin = False
        self.fail_commit = False
        self.fail_rollback = False

    def begin(self, writable: bool) -> FailingTransaction:  # type: ignore[override]
        if self.fail_begin:
            raise OSError("engine unavailable")
        return FailingTransaction(super().begin(writable), self)


@pytest.fixture
def failing_engine() -> FailingEngine:
    """Provide an engine with switchable failures."""
    return FailingEngine()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
