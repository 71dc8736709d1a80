"""Unit tests for the transaction handle."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from docdb.application import Database
from docdb.domain.errors import (
    DocumentNotFoundError,
    ReadOnlyTransactionError,
    ResultClosedError,
    TableAlreadyExistsError,
    TableNotFoundError,
    TransactionClosedError,
    TransactionError,
)
from docdb.domain.value_objects import TransactionState
from docdb.infrastructure.metrics import MetricsRegistry

if TYPE_CHECKING:
    from tests.conftest import FailingEngine


@pytest.mark.unit
class TestTransactionLifecycle:
    """Tests for the terminal-state machine."""

    def test_new_transaction_is_active(self, db: Database) -> None:
        """Begin yields an active transaction with a fresh id."""
        first = db.begin(writable=False)
        second = db.begin(writable=False)

        assert first.state == TransactionState.ACTIVE
        assert not first.closed
        assert second.txn_id > first.txn_id
        first.rollback()
        second.rollback()

    def test_commit(self, db: Database) -> None:
        """Commit moves a writable transaction to COMMITTED."""
        tx = db.begin(writable=True)
        tx.commit()

        assert tx.state == TransactionState.COMMITTED
        assert tx.closed

    def test_rollback_after_commit_is_noop(self, db: Database) -> None:
        """Rollback after commit changes nothing and raises nothing."""
        tx = db.begin(writable=True)
        tx.commit()
        tx.rollback()

        assert tx.state == TransactionState.COMMITTED

    def test_double_rollback_is_noop(self, db: Database) -> None:
        """Rolling back twice is a no-op."""
        tx = db.begin(writable=True)
        tx.rollback()
        tx.rollback()

        assert tx.state == TransactionState.ROLLED_BACK

    def test_commit_after_terminal(self, db: Database) -> None:
        """Commit on a terminal transaction raises TransactionClosedError."""
        tx = db.begin(writable=True)
        tx.rollback()

        with pytest.raises(TransactionClosedError):
            tx.commit()
        assert tx.state == TransactionState.ROLLED_BACK

    def test_read_only_commit(self, db: Database) -> None:
        """A read-only transaction can never commit; it stays active."""
        tx = db.begin(writable=False)

        with pytest.raises(ReadOnlyTransactionError):
            tx.commit()
        assert tx.state == TransactionState.ACTIVE

        tx.rollback()
        assert tx.state == TransactionState.ROLLED_BACK

    def test_use_after_terminal(self, db: Database) -> None:
        """Queries and table access on a terminal transaction raise."""
        tx = db.begin(writable=False)
        tx.rollback()

        with pytest.raises(TransactionClosedError):
            tx.query("SELECT * FROM t")
        with pytest.raises(TransactionClosedError):
            tx.list_tables()

    def test_commit_failure_keeps_active(
        self, failing_engine: FailingEngine, metrics_registry: MetricsRegistry
    ) -> None:
        """A failing engine commit leaves the transaction active."""
        db = Database.open(failing_engine, metrics=metrics_registry)
        tx = db.begin(writable=True)
        tx.create_table("t")
        failing_engine.fail_commit = True

        with pytest.raises(TransactionError):
            tx.commit()
        assert tx.state == TransactionState.ACTIVE

        tx.rollback()
        assert tx.state == TransactionState.ROLLED_BACK

    def test_rollback_failure_still_terminal(
        self, failing_engine: FailingEngine, metrics_registry: MetricsRegistry
    ) -> None:
        """A failing engine rollback still marks the transaction rolled back."""
        db = Database.open(failing_engine, metrics=metrics_registry)
        tx = db.begin(writable=True)
        failing_engine.fail_rollback = True

        with pytest.raises(TransactionError):
            tx.rollback()
        assert tx.state == TransactionState.ROLLED_BACK

        tx.rollback()


@pytest.mark.unit
class TestTransactionContextManager:
    """Tests for with-statement use."""

    def test_commits_on_success(self, db: Database) -> None:
        """A writable transaction commits when the block exits normally."""
        with db.begin(writable=True) as tx:
            tx.create_table("t")

        assert tx.state == TransactionState.COMMITTED
        assert db.view(lambda t: t.list_tables()) == ["t"]

    def test_rolls_back_on_error(self, db: Database) -> None:
        """An exception rolls back and propagates."""
        with pytest.raises(RuntimeError):
            with db.begin(writable=True) as tx:
                tx.create_table("t")
                raise RuntimeError("boom")

        assert tx.state == TransactionState.ROLLED_BACK
        assert db.view(lambda t: t.list_tables()) == []

    def test_read_only_rolls_back(self, db: Database) -> None:
        """A read-only transaction is rolled back on exit."""
        with db.begin(writable=False) as tx:
            tx.list_tables()

        assert tx.state == TransactionState.ROLLED_BACK

    def test_explicit_commit_inside_block(self, db: Database) -> None:
        """Committing inside the block is allowed."""
        with db.begin(writable=True) as tx:
            tx.create_table("t")
            tx.commit()

        assert tx.state == TransactionState.COMMITTED


@pytest.mark.unit
class TestTransactionTables:
    """Tests for table operations through a transaction."""

    def test_create_get_list_drop(self, db: Database) -> None:
        """Tables can be created, found, listed and dropped."""
        with db.begin(writable=True) as tx:
            tx.create_table("b", fields=("x",))
            tx.create_table("a")

            assert tx.list_tables() == ["a", "b"]
            assert tx.get_table("b").info.fields == ("x",)

            tx.drop_table("b")
            assert tx.list_tables() == ["a"]
            with pytest.raises(TableNotFoundError):
                tx.get_table("b")

    def test_duplicate_table(self, db: Database) -> None:
        """Creating an existing table fails unless if_not_exists is set."""
        with db.begin(writable=True) as tx:
            first = tx.create_table("t", fields=("a",))
            with pytest.raises(TableAlreadyExistsError):
                tx.create_table("t")
            again = tx.create_table("t", if_not_exists=True)

            assert again.info == first.info

    def test_catalog_is_hidden(self, db: Database) -> None:
        """The metadata store is not a table."""
        with db.begin(writable=False) as tx:
            assert tx.list_tables() == []
            with pytest.raises(TableNotFoundError):
                tx.get_table("__docdb_tables")

    def test_table_document_operations(self, db: Database) -> None:
        """Documents can be inserted, read, replaced and deleted."""
        with db.begin(writable=True) as tx:
            users = tx.create_table("users")
            key = users.insert({"name": "Alice"})

            assert users.get_document(key) == {"name": "Alice"}
            users.replace(key, {"name": "Alicia"})
            assert users.get_document(key)["name"] == "Alicia"
            assert users.count() == 1
            assert [(k, d.to_dict()) for k, d in users.iterate()] == [(key, {"name": "Alicia"})]

            users.delete(key)
            with pytest.raises(DocumentNotFoundError):
                users.get_document(key)
            with pytest.raises(DocumentNotFoundError):
                users.delete(key)
            with pytest.raises(DocumentNotFoundError):
                users.replace(key, {})

    def test_returned_documents_are_copies(self, db: Database) -> None:
        """Mutating a returned document does not change the stored one."""
        with db.begin(writable=True) as tx:
            users = tx.create_table("users")
            key = users.insert({"tags": ["a"]})

            users.get_document(key)["tags"].append("b")

            assert users.get_document(key)["tags"] == ["a"]

    def test_truncate(self, db: Database) -> None:
        """truncate() empties a table."""
        with db.begin(writable=True) as tx:
            t = tx.create_table("t")
            t.insert({"a": 1})
            t.truncate()

            assert t.count() == 0

    def test_read_only_table_writes(self, users_db: Database) -> None:
        """Writes through a read-only transaction raise."""
        with users_db.begin(writable=False) as tx:
            users = tx.get_table("users")
            with pytest.raises(ReadOnlyTransactionError):
                users.insert({"name": "Mallory"})
            with pytest.raises(ReadOnlyTransactionError):
                tx.create_table("other")
            with pytest.raises(ReadOnlyTransactionError):
                tx.drop_table("users")


@pytest.mark.unit
class TestTransactionQueries:
    """Tests for transaction-bound queries."""

    def test_results_closed_at_end(self, users_db: Database) -> None:
        """Results from tx.query() are closed when the transaction ends."""
        tx = users_db.begin(writable=False)
        result = tx.query("SELECT * FROM users")
        tx.rollback()

        assert result.closed
        with pytest.raises(ResultClosedError):
            next(result)

    def test_sees_own_writes(self, users_db: Database) -> None:
        """Queries see writes made earlier in the same transaction."""
        with users_db.begin(writable=True) as tx:
            tx.exec("INSERT INTO users (name) VALUES (?)", "Dave")
            doc = tx.query_document("SELECT name FROM users WHERE name = ?", "Dave")

        assert doc == {"name": "Dave"}

    def test_query_document_is_detached(self, users_db: Database) -> None:
        """tx.query_document returns a copy that outlives the transaction."""
        with users_db.begin(writable=False) as tx:
            doc = tx.query_document("SELECT * FROM users WHERE name = 'Bob'")

        assert doc["age"] == 25

    def test_query_document_not_found(self, users_db: Database) -> None:
        """No rows raises DocumentNotFoundError."""
        with users_db.begin(writable=False) as tx:
            with pytest.raises(DocumentNotFoundError):
                tx.query_document("SELECT * FROM users WHERE age > 100")
