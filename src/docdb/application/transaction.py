"""Transaction handle.

A Transaction wraps one engine transaction and adds the terminal-state
guard that makes "roll back unconditionally after an explicit commit"
safe, table lookup through the catalog, and transaction-bound queries.

State Machine:
    ACTIVE --commit (success)--> COMMITTED      (writable only)
    ACTIVE --commit (failure)--> ACTIVE         (caller must still roll back)
    ACTIVE --rollback----------> ROLLED_BACK
    COMMITTED --rollback-------> COMMITTED      (no-op)
    ROLLED_BACK --rollback-----> ROLLED_BACK    (no-op)
    COMMITTED/ROLLED_BACK --commit--> TransactionClosedError

Results returned by Transaction.query() are tracked and closed when the
transaction reaches a terminal state, so callers need not close them
before committing or rolling back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from docdb.application.catalog import Catalog, is_reserved, new_table_info
from docdb.application.result import Result
from docdb.application.table import Table
from docdb.domain.entities import FieldBuffer, TableInfo
from docdb.domain.errors import (
    DatabaseError,
    DocumentNotFoundError,
    ExecError,
    ReadOnlyTransactionError,
    TableAlreadyExistsError,
    TableNotFoundError,
    TransactionClosedError,
    TransactionError,
)
from docdb.domain.value_objects import TransactionId, TransactionState
from docdb.infrastructure.logging import get_logger
from docdb.infrastructure.metrics import MetricsRegistry

if TYPE_CHECKING:
    from docdb.adapters.inbound.sql_parser import SQLParser
    from docdb.application.executor import QueryExecutor
    from docdb.ports.outbound import EngineTransaction

logger = get_logger(__name__)


class Transaction:
    """A unit of work, read-only or read-write.

    Transactions are created by Database.begin(). A Transaction is not
    safe for concurrent use; confine it to one flow of control.

    As a context manager, a writable transaction is committed when the
    block exits normally, and the transaction is always rolled back
    afterwards (a no-op once committed). An exception inside the block
    rolls back and propagates.

    Example:
        >>> with db.begin(writable=True) as tx:
        ...     tx.exec("INSERT INTO users (name) VALUES (?)", "Alice")
    """

    def __init__(
        self,
        engine_tx: EngineTransaction,
        txn_id: TransactionId,
        parser: SQLParser,
        executor: QueryExecutor,
        metrics: MetricsRegistry,
    ) -> None:
        self._engine_tx = engine_tx
        self._txn_id = txn_id
        self._parser = parser
        self._executor = executor
        self._metrics = metrics
        self._catalog = Catalog(engine_tx)
        self._state = TransactionState.ACTIVE
        self._results: list[Result] = []

        self._metrics.transaction_started()
        logger.debug("transaction begun", txn_id=txn_id, writable=engine_tx.writable)

    @property
    def txn_id(self) -> TransactionId:
        return self._txn_id

    @property
    def writable(self) -> bool:
        return self._engine_tx.writable

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def closed(self) -> bool:
        """True once the transaction is committed or rolled back."""
        return self._state.is_terminal()

    # Lifecycle

    def commit(self) -> None:
        """Commit the transaction.

        Raises:
            TransactionClosedError: If the transaction is already terminal.
            ReadOnlyTransactionError: If the transaction is read-only. It
                stays active and must still be rolled back.
            TransactionError: If the engine fails to commit. The
                transaction stays active and must still be rolled back.
        """
        self._check_active()
        if not self.writable:
            raise ReadOnlyTransactionError(
                f"transaction {self._txn_id} is read-only and cannot be committed"
            )

        try:
            self._engine_tx.commit()
        except DatabaseError:
            raise
        except Exception as e:
            raise TransactionError(f"commit of transaction {self._txn_id} failed: {e}") from e

        self._finish(TransactionState.COMMITTED)

    def rollback(self) -> None:
        """Roll back the transaction. A no-op if it is already terminal.

        Raises:
            TransactionError: If the engine fails to roll back. The
                transaction is marked rolled back regardless.
        """
        if self._state.is_terminal():
            return

        try:
            self._engine_tx.rollback()
        except TransactionError:
            raise
        except Exception as e:
            raise TransactionError(f"rollback of transaction {self._txn_id} failed: {e}") from e
        finally:
            self._finish(TransactionState.ROLLED_BACK)

    def _finish(self, state: TransactionState) -> None:
        self._state = state
        results, self._results = self._results, []
        for result in results:
            result.close()

        status = "commit" if state == TransactionState.COMMITTED else "rollback"
        self._metrics.transaction_finished(status)
        logger.debug("transaction finished", txn_id=self._txn_id, state=state.name.lower())

    def _check_active(self) -> None:
        if self._state.is_terminal():
            raise TransactionClosedError(
                f"transaction {self._txn_id} is already {self._state.name.lower()}"
            )

    def _check_writable(self) -> None:
        self._check_active()
        if not self.writable:
            raise ReadOnlyTransactionError(f"transaction {self._txn_id} is read-only")

    # Tables

    def create_table(
        self, name: str, fields: Iterable[str] = (), if_not_exists: bool = False
    ) -> Table:
        """Create a table.

        Args:
            name: Table name.
            fields: Declared field names, used by INSERT without a column list.
            if_not_exists: Return the existing table instead of failing.

        Raises:
            TableAlreadyExistsError: If the table exists and if_not_exists is False.
            ExecError: If the name is empty or reserved.
        """
        self._check_writable()
        if not isinstance(name, str) or not name:
            raise ExecError(f"invalid table name: {name!r}")
        if is_reserved(name):
            raise ExecError(f"table name '{name}' is reserved")

        existing = self._catalog.get(name)
        if existing is not None:
            if if_not_exists:
                return self._open_table(existing)
            raise TableAlreadyExistsError(name)

        info = new_table_info(name, tuple(fields))
        try:
            store = self._engine_tx.create_store(info.store_name)
        except ValueError as e:
            raise ExecError(f"cannot create table '{name}': {e}") from e
        self._catalog.add(info)

        logger.debug("table created", txn_id=self._txn_id, table=name)
        return Table(self, info, store)

    def get_table(self, name: str) -> Table:
        """Return the named table.

        Raises:
            TableNotFoundError: If no such table exists.
        """
        self._check_active()
        info = self._catalog.get(name)
        if info is None:
            raise TableNotFoundError(name)
        return self._open_table(info)

    def _open_table(self, info: TableInfo) -> Table:
        store = self._engine_tx.get_store(info.store_name)
        if store is None:
            raise ExecError(f"storage of table '{info.name}' is missing")
        return Table(self, info, store)

    def drop_table(self, name: str, if_exists: bool = False) -> None:
        """Drop a table and all of its documents.

        Raises:
            TableNotFoundError: If no such table exists and if_exists is False.
        """
        self._check_writable()
        info = self._catalog.remove(name)
        if info is None:
            if if_exists:
                return
            raise TableNotFoundError(name)

        try:
            self._engine_tx.drop_store(info.store_name)
        except KeyError:
            logger.warning("table storage already gone", txn_id=self._txn_id, table=name)

        logger.debug("table dropped", txn_id=self._txn_id, table=name)

    def list_tables(self) -> list[str]:
        """Return the names of all tables, sorted."""
        self._check_active()
        return self._catalog.names()

    # Queries

    def query(self, text: str, *args: Any) -> Result:
        """Run a query inside this transaction.

        The result is closed automatically when the transaction ends.

        Raises:
            ParseError: If the query text is invalid.
            ParamCountError: If args do not match the placeholders.
            ReadOnlyTransactionError: If the query writes and the
                transaction is read-only.
            ExecError: If execution fails.
        """
        return self._query(text, args, materialize_eagerly=False)

    def exec(self, text: str, *args: Any) -> None:
        """Run a query and discard its rows."""
        with self._query(text, args, materialize_eagerly=False):
            pass

    def query_document(self, text: str, *args: Any) -> FieldBuffer:
        """Run a query and return its first row as a detached document.

        Raises:
            DocumentNotFoundError: If the query yields no rows.
        """
        with self._query(text, args, materialize_eagerly=True) as result:
            doc = result.first()
        if doc is None:
            raise DocumentNotFoundError("query returned no document")
        return doc

    def _query(self, text: str, args: tuple[Any, ...], materialize_eagerly: bool) -> Result:
        self._check_active()
        query = self._parser.parse(text)
        params = query.bind(args)
        result = self._executor.execute(query, self, params, materialize_eagerly)
        self._track(result)
        return result

    def _track(self, result: Result) -> None:
        self._results.append(result)
        result.add_close_callback(lambda: self._untrack(result))

    def _untrack(self, result: Result) -> None:
        if result in self._results:
            self._results.remove(result)

    # Context manager

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            rollback_quietly(self)
            return
        try:
            if self.writable and not self.closed:
                self.commit()
        except BaseException:
            rollback_quietly(self)
            raise
        self.rollback()

    def __repr__(self) -> str:
        mode = "rw" if self.writable else "ro"
        return f"Transaction(id={self._txn_id}, {mode}, {self._state.name.lower()})"


def rollback_quietly(tx: Transaction) -> None:
    """Roll back while another exception is propagating.

    A rollback failure is logged and dropped so the earlier error wins.
    """
    try:
        tx.rollback()
    except DatabaseError as e:
        logger.warning("rollback failed during cleanup", txn_id=tx.txn_id, error=str(e))
