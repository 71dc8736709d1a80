"""Database - unified entry point for the document database.

This module provides the Database façade: it owns a storage engine,
hands out transactions, and offers scoped helpers that guarantee every
transaction ends in exactly one terminal state, whatever the callback
does.

Usage:
    from docdb import Database
    from docdb.adapters import MemoryEngine

    db = Database.open(MemoryEngine())

    db.exec("CREATE TABLE users")
    db.exec("INSERT INTO users (name, age) VALUES (?, ?)", "Alice", 30)
    doc = db.query_document("SELECT * FROM users WHERE name = ?", "Alice")

    def rename(tx):
        tx.exec("UPDATE users SET name = ? WHERE name = ?", "Bob", "Alice")

    db.update(rename)

    db.close()

Error policy:
    Errors from collaborators propagate unchanged. Cleanup rollbacks
    only drop their own error when an earlier one is already propagating;
    the dropped error is logged.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Callable, TypeVar

from docdb.adapters.inbound.sql_parser import SQLParser
from docdb.adapters.outbound import FileEngine, MemoryEngine
from docdb.application.catalog import Catalog
from docdb.application.executor import QueryExecutor
from docdb.application.result import Result
from docdb.application.table import Table
from docdb.application.transaction import Transaction, rollback_quietly
from docdb.domain.entities import FieldBuffer
from docdb.domain.errors import (
    DatabaseError,
    DocumentNotFoundError,
    InitError,
    TransactionError,
)
from docdb.domain.value_objects import TransactionId
from docdb.infrastructure.config import Config, get_config
from docdb.infrastructure.logging import get_logger
from docdb.infrastructure.metrics import MetricsRegistry, get_metrics
from docdb.ports.outbound import Engine

logger = get_logger(__name__)

T = TypeVar("T")


class Database:
    """Transaction-scoped query façade over a storage engine.

    One Database owns one engine. Closing the database closes the engine;
    closing it while transactions are still open is the caller's
    responsibility to avoid.

    Thread Safety:
        A Database may be shared between threads. Transactions and
        results must stay confined to the thread that created them;
        writer exclusion is provided by the engine.
    """

    def __init__(
        self,
        engine: Engine,
        parser: SQLParser,
        executor: QueryExecutor,
        metrics: MetricsRegistry,
    ) -> None:
        """Wrap an engine whose metadata is already bootstrapped.

        Use Database.open() instead.
        """
        self._engine = engine
        self._parser = parser
        self._executor = executor
        self._metrics = metrics
        self._txn_ids = itertools.count(1)
        self._closed = False

    @classmethod
    def open(
        cls,
        engine: Engine,
        dialect: str = "sqlite",
        metrics: MetricsRegistry | None = None,
    ) -> Database:
        """Open a database over a storage engine.

        Creates the table catalog if the engine does not have one yet.

        Args:
            engine: The storage engine. The database takes ownership.
            dialect: sqlglot dialect used to parse queries.
            metrics: Metrics registry (default: the module-level one).

        Raises:
            InitError: If the catalog cannot be bootstrapped.
        """
        try:
            engine_tx = engine.begin(writable=True)
        except Exception as e:
            raise InitError(f"cannot begin bootstrap transaction: {e}") from e

        try:
            created = Catalog(engine_tx).bootstrap()
            engine_tx.commit()
        except Exception as e:
            try:
                engine_tx.rollback()
            except Exception as rollback_error:
                logger.warning("bootstrap rollback failed", error=str(rollback_error))
            raise InitError(f"cannot bootstrap database metadata: {e}") from e

        metrics = metrics or get_metrics()
        logger.debug("database opened", engine=type(engine).__name__, catalog_created=created)
        return cls(engine, SQLParser(dialect=dialect), QueryExecutor(metrics), metrics)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the database and release the engine. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._engine.close()
        logger.debug("database closed")

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # Transactions

    def begin(self, writable: bool) -> Transaction:
        """Begin a new transaction.

        Args:
            writable: Request a read-write transaction.

        Raises:
            TransactionError: If the engine cannot grant the requested
                mode, e.g. WriterBusyError while another writer is active.
        """
        try:
            engine_tx = self._engine.begin(writable)
        except DatabaseError:
            raise
        except Exception as e:
            raise TransactionError(f"cannot begin transaction: {e}") from e

        return Transaction(
            engine_tx,
            TransactionId(next(self._txn_ids)),
            self._parser,
            self._executor,
            self._metrics,
        )

    def view(self, fn: Callable[[Transaction], T]) -> T:
        """Run fn inside a read-only transaction and return its value.

        The transaction is always rolled back afterwards. Exceptions
        raised by fn propagate unchanged.
        """
        tx = self.begin(writable=False)
        try:
            return fn(tx)
        except BaseException:
            rollback_quietly(tx)
            raise
        finally:
            tx.rollback()

    def update(self, fn: Callable[[Transaction], T]) -> T:
        """Run fn inside a read-write transaction and return its value.

        If fn succeeds the transaction is committed; if fn or the commit
        raises, everything fn wrote is discarded and the error propagates.
        """
        tx = self.begin(writable=True)
        try:
            value = fn(tx)
            tx.commit()
            return value
        except BaseException:
            rollback_quietly(tx)
            raise
        finally:
            tx.rollback()

    def view_table(self, name: str, fn: Callable[[Transaction, Table], T]) -> T:
        """Like view(), passing the named table to fn.

        Raises:
            TableNotFoundError: If the table does not exist. fn is not called.
        """

        def run(tx: Transaction) -> T:
            return fn(tx, tx.get_table(name))

        return self.view(run)

    def update_table(self, name: str, fn: Callable[[Transaction, Table], T]) -> T:
        """Like update(), passing the named table to fn.

        Raises:
            TableNotFoundError: If the table does not exist. fn is not called.
        """

        def run(tx: Transaction) -> T:
            return fn(tx, tx.get_table(name))

        return self.update(run)

    # Queries

    def query(self, text: str, *args: Any) -> Result:
        """Run a query in an implicit transaction.

        The query is parsed and its arguments bound before any engine
        work. A query made only of SELECTs runs in a read-only
        transaction that is rolled back when the result is closed; any
        other query runs in a read-write transaction committed before
        this method returns, and its rows are detached.

        The caller must close the returned result.

        Raises:
            ParseError: If the query text is invalid.
            ParamCountError: If args do not match the placeholders.
            TransactionError: If the transaction cannot begin or commit.
            ExecError: If execution fails.
        """
        query = self._parser.parse(text)
        params = query.bind(args)

        tx = self.begin(writable=not query.read_only)
        try:
            result = self._executor.execute(
                query, tx, params, materialize_eagerly=not query.read_only
            )
            if query.read_only:
                result.add_close_callback(tx.rollback)
            else:
                tx.commit()
        except BaseException:
            rollback_quietly(tx)
            raise
        return result

    def exec(self, text: str, *args: Any) -> None:
        """Run a query and discard its rows."""
        with self.query(text, *args):
            pass

    def query_document(self, text: str, *args: Any) -> FieldBuffer:
        """Run a query and return its first row as a detached document.

        The cursor is closed before returning.

        Raises:
            DocumentNotFoundError: If the query yields no rows.
        """
        with self.query(text, *args) as result:
            doc = result.first()
            if doc is None:
                raise DocumentNotFoundError("query returned no document")
            return FieldBuffer.from_document(doc)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Database({type(self._engine).__name__}, {state})"


def open_database(path: str | Path | None = None, config: Config | None = None) -> Database:
    """Open a database from a path and configuration.

    Args:
        path: Database file. None or ":memory:" keeps everything in memory.
            Defaults to config.engine.path.
        config: Settings (default: read from DOCDB_* environment variables).
            Only the engine and query sections are used here; call
            config.configure_observability() to apply logging and tracing.

    Raises:
        InitError: If the database file cannot be loaded or bootstrapped.
    """
    config = config or get_config()
    if path is None:
        path = config.engine.path

    lock_timeout = config.engine.lock_timeout_seconds
    engine: MemoryEngine
    if path is None or str(path) == ":memory:":
        engine = MemoryEngine(lock_timeout=lock_timeout)
    else:
        engine = FileEngine(path, lock_timeout=lock_timeout)

    try:
        return Database.open(engine, dialect=config.query.dialect)
    except InitError:
        engine.close()
        raise
