"""Integration tests for databases backed by a file."""

from __future__ import annotations

from pathlib import Path

import pytest

from docdb.adapters.outbound import FileEngine
from docdb.application import Database, Transaction
from docdb.infrastructure.metrics import MetricsRegistry


@pytest.mark.integration
class TestFileDatabase:
    """Tests for persistence through the façade."""

    def test_committed_data_survives_reopen(
        self, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        """Tables and documents written by update() are reloaded."""
        path = temp_dir / "app.db"
        with Database.open(FileEngine(path), metrics=metrics_registry) as db:
            db.update(lambda tx: tx.create_table("users", fields=("name", "age")))
            db.exec("INSERT INTO users VALUES (?, ?), (?, ?)", "Alice", 30, "Bob", 25)

        with Database.open(FileEngine(path), metrics=metrics_registry) as db:
            info = db.view(lambda tx: tx.get_table("users").info)
            with db.query("SELECT name FROM users ORDER BY age") as result:
                names = [doc["name"] for doc in result]

        assert info.fields == ("name", "age")
        assert names == ["Bob", "Alice"]

    def test_rolled_back_data_not_persisted(
        self, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        """A failed update() never reaches the file."""
        path = temp_dir / "app.db"
        with Database.open(FileEngine(path), metrics=metrics_registry) as db:
            db.exec("CREATE TABLE t")

            def fail(tx: Transaction) -> None:
                tx.exec("INSERT INTO t (a) VALUES (1)")
                raise RuntimeError("abort")

            with pytest.raises(RuntimeError):
                db.update(fail)

        with Database.open(FileEngine(path), metrics=metrics_registry) as db:
            assert db.view_table("t", lambda tx, t: t.count()) == 0

    def test_keys_continue_after_reopen(
        self, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        """Document keys keep increasing across reopen."""
        path = temp_dir / "app.db"
        with Database.open(FileEngine(path), metrics=metrics_registry) as db:
            first = db.update(lambda tx: tx.create_table("t").insert({"a": 1}))

        with Database.open(FileEngine(path), metrics=metrics_registry) as db:
            second = db.update_table("t", lambda tx, t: t.insert({"a": 2}))

        assert second > first
