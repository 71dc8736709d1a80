"""Query Executor using Volcano iterator model.

This module runs parsed queries against a transaction. SELECT plans are
turned into a tree of pull-based operators and produced lazily; write
statements are applied eagerly.

The Volcano model:
    - Each operator is an iterator with open(), next(), close() methods
    - Operators pull documents from their children on demand
    - Enables pipelining without materializing intermediate results

Multi-statement queries run in order. The returned Result yields the
rows of the last statement; its rows_affected is the total over every
write statement.

References:
    - Graefe, "Volcano" (1994)
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generator, Iterator

from docdb.adapters.inbound.sql_parser import (
    BoundParams,
    ColumnExpr,
    ComparisonExpr,
    ComparisonOp,
    CreateTablePlan,
    DeletePlan,
    DropTablePlan,
    Expression,
    Filter,
    InsertPlan,
    Limit,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    LogicalPlan,
    ParamExpr,
    Project,
    Query,
    SelectItem,
    Sort,
    TableScan,
    UpdatePlan,
)
from docdb.application.result import Result
from docdb.domain.entities import Document, FieldBuffer
from docdb.domain.errors import ExecError, ReadOnlyTransactionError
from docdb.infrastructure.logging import get_logger
from docdb.infrastructure.metrics import MetricsRegistry, get_metrics
from docdb.infrastructure.tracing import trace_span

if TYPE_CHECKING:
    from docdb.application.table import Table
    from docdb.application.transaction import Transaction

logger = get_logger(__name__)

_EMPTY = FieldBuffer()


class ExpressionEvaluator:
    """Evaluates expressions against a document with bound parameters.

    Comparisons involving None (a NULL literal or a missing field) are
    false, except IS NULL.
    """

    def __init__(self, params: BoundParams) -> None:
        self._params = params

    def evaluate(self, expr: Expression, doc: Document) -> Any:
        """Evaluate an expression against a document."""
        if isinstance(expr, LiteralExpr):
            return expr.value
        elif isinstance(expr, ColumnExpr):
            return doc.get(expr.name)
        elif isinstance(expr, ParamExpr):
            return self._params.resolve(expr)
        elif isinstance(expr, ComparisonExpr):
            left = self.evaluate(expr.left, doc)
            if expr.op == ComparisonOp.IS_NULL:
                return left is None
            if expr.op == ComparisonOp.IN:
                if left is None:
                    return False
                return any(left == self.evaluate(v, doc) for v in expr.values)
            if expr.right is None:
                return False
            right = self.evaluate(expr.right, doc)
            return self._compare(left, expr.op, right)
        elif isinstance(expr, LogicalExpr):
            if expr.op == LogicalOp.AND:
                return all(self.evaluate(o, doc) for o in expr.operands)
            elif expr.op == LogicalOp.OR:
                return any(self.evaluate(o, doc) for o in expr.operands)
            elif expr.op == LogicalOp.NOT:
                return not self.evaluate(expr.operands[0], doc)
        raise ExecError(f"cannot evaluate expression: {expr}")

    def matches(self, predicate: Expression | None, doc: Document) -> bool:
        if predicate is None:
            return True
        return bool(self.evaluate(predicate, doc))

    def _compare(self, left: Any, op: ComparisonOp, right: Any) -> bool:
        """Compare two values with the given operator."""
        if left is None or right is None:
            return False
        try:
            if op == ComparisonOp.EQ:
                return left == right
            elif op == ComparisonOp.NE:
                return left != right
            elif op == ComparisonOp.LT:
                return left < right
            elif op == ComparisonOp.LE:
                return left <= right
            elif op == ComparisonOp.GT:
                return left > right
            elif op == ComparisonOp.GE:
                return left >= right
            elif op == ComparisonOp.LIKE:
                return _like(str(left), str(right))
        except TypeError as e:
            raise ExecError(
                f"cannot compare {type(left).__name__} with {type(right).__name__} using {op.value}"
            ) from e
        return False


def _like(value: str, pattern: str) -> bool:
    """Case-insensitive LIKE with % and _ wildcards."""
    regex = "".join(
        ".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in pattern
    )
    return re.fullmatch(regex, value, re.IGNORECASE | re.DOTALL) is not None


class Operator(ABC):
    """Base class for executor operators (Volcano model)."""

    @abstractmethod
    def open(self) -> None:
        """Initialize the operator."""
        pass

    @abstractmethod
    def next(self) -> Document | None:
        """Return the next document or None if exhausted."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        pass

    def __iter__(self) -> Iterator[Document]:
        """Allow iteration over operator results."""
        self.open()
        try:
            while True:
                doc = self.next()
                if doc is None:
                    break
                yield doc
        finally:
            self.close()


class SeqScanOperator(Operator):
    """Sequential scan operator.

    Pulls stored documents from the table in key order.
    """

    def __init__(self, table: Table) -> None:
        self._table = table
        self._docs: Generator[tuple[Any, Document], None, None] | None = None

    def open(self) -> None:
        self._docs = self._table.scan()

    def next(self) -> Document | None:
        if self._docs is None:
            return None
        item = next(self._docs, None)
        if item is None:
            return None
        return item[1]

    def close(self) -> None:
        if self._docs is not None:
            self._docs.close()
        self._docs = None


class FilterOperator(Operator):
    """Filter operator that applies a predicate."""

    def __init__(
        self, child: Operator, predicate: Expression, evaluator: ExpressionEvaluator
    ) -> None:
        self._child = child
        self._predicate = predicate
        self._evaluator = evaluator

    def open(self) -> None:
        self._child.open()

    def next(self) -> Document | None:
        while True:
            doc = self._child.next()
            if doc is None:
                return None
            if self._evaluator.matches(self._predicate, doc):
                return doc

    def close(self) -> None:
        self._child.close()


class ProjectOperator(Operator):
    """Project operator that selects specific fields.

    ``SELECT *`` passes stored documents through; any other item list
    builds a fresh document per row.
    """

    def __init__(
        self,
        child: Operator,
        items: tuple[SelectItem, ...],
        evaluator: ExpressionEvaluator,
    ) -> None:
        self._child = child
        self._items = items
        self._evaluator = evaluator

    def open(self) -> None:
        self._child.open()

    def next(self) -> Document | None:
        doc = self._child.next()
        if doc is None:
            return None

        if _is_star_only(self._items):
            return doc

        out = FieldBuffer()
        for item in self._items:
            if _is_star(item):
                for name, value in doc.iterate():
                    out.add(name, value)
            else:
                out.add(item.output_name, self._evaluator.evaluate(item.expr, doc))
        return out

    def close(self) -> None:
        self._child.close()


class SortOperator(Operator):
    """Sort operator that orders documents.

    NULLs and missing fields sort first in ascending order, last in
    descending order.
    """

    def __init__(
        self,
        child: Operator,
        order_by: tuple[tuple[Expression, bool], ...],
        evaluator: ExpressionEvaluator,
    ) -> None:
        self._child = child
        self._order_by = order_by
        self._evaluator = evaluator
        self._sorted: list[Document] = []
        self._current_idx = 0

    def open(self) -> None:
        self._child.open()
        docs = []
        while True:
            doc = self._child.next()
            if doc is None:
                break
            docs.append(doc)

        # Stable sorts, least significant key first
        try:
            for expr, ascending in reversed(self._order_by):
                docs.sort(
                    key=lambda d, e=expr: _sort_key(self._evaluator.evaluate(e, d)),
                    reverse=not ascending,
                )
        except TypeError as e:
            raise ExecError(f"cannot order values of different types: {e}") from e

        self._sorted = docs
        self._current_idx = 0

    def next(self) -> Document | None:
        if self._current_idx >= len(self._sorted):
            return None
        doc = self._sorted[self._current_idx]
        self._current_idx += 1
        return doc

    def close(self) -> None:
        self._child.close()
        self._sorted = []
        self._current_idx = 0


def _sort_key(value: Any) -> tuple[bool, Any]:
    return (value is not None, value)


class LimitOperator(Operator):
    """Limit operator that restricts document count."""

    def __init__(self, child: Operator, limit: int, offset: int = 0) -> None:
        self._child = child
        self._limit = limit
        self._offset = offset
        self._returned = 0
        self._skipped = 0

    def open(self) -> None:
        self._child.open()
        self._returned = 0
        self._skipped = 0

    def next(self) -> Document | None:
        while self._skipped < self._offset:
            if self._child.next() is None:
                return None
            self._skipped += 1

        if self._returned >= self._limit:
            return None
        doc = self._child.next()
        if doc is None:
            return None
        self._returned += 1
        return doc

    def close(self) -> None:
        self._child.close()


def _is_star(item: SelectItem) -> bool:
    return isinstance(item.expr, ColumnExpr) and item.expr.name == "*"


def _is_star_only(items: tuple[SelectItem, ...]) -> bool:
    return len(items) == 1 and _is_star(items[0])


def _returns_stored_documents(plan: LogicalPlan) -> bool:
    while not isinstance(plan, Project):
        if not isinstance(plan, (Sort, Limit, Filter)):
            return False
        plan = plan.input
    return _is_star_only(plan.items)


class QueryExecutor:
    """Executes parsed queries against a transaction.

    The executor converts logical plans into physical operator trees
    and executes them using the Volcano iterator model. It is stateless
    apart from its metrics, so one executor serves every transaction of
    a database.
    """

    def __init__(self, metrics: MetricsRegistry | None = None) -> None:
        self._metrics = metrics or get_metrics()

    def execute(
        self,
        query: Query,
        tx: Transaction,
        params: BoundParams,
        materialize_eagerly: bool = False,
    ) -> Result:
        """Run every statement of a query inside a transaction.

        Args:
            query: The parsed query.
            tx: The transaction to run in.
            params: Arguments bound to the query's placeholders.
            materialize_eagerly: Copy SELECT rows into detached documents
                before returning, so the result outlives the transaction.

        Returns:
            A Result over the last statement's rows.

        Raises:
            ReadOnlyTransactionError: If the query writes and tx is read-only.
            ExecError: If a statement fails at runtime.
        """
        tx._check_active()
        query_type = "read" if query.read_only else "write"
        if not query.read_only and not tx.writable:
            self._metrics.query_failed(query_type)
            raise ReadOnlyTransactionError(
                "cannot run a write query in a read-only transaction"
            )

        start = time.perf_counter()
        with trace_span(
            "docdb.query",
            {
                "docdb.txn_id": tx.txn_id,
                "docdb.query_type": query_type,
                "docdb.statements": len(query.statements),
            },
        ):
            try:
                result = self._run(query, tx, params, materialize_eagerly)
            except Exception:
                self._metrics.query_failed(query_type)
                raise

        self._metrics.query_succeeded(
            query_type, time.perf_counter() - start, rows_affected=result.rows_affected
        )
        logger.debug(
            "query executed",
            txn_id=tx.txn_id,
            query_type=query_type,
            statements=len(query.statements),
            rows_affected=result.rows_affected,
        )
        return result

    def _run(
        self,
        query: Query,
        tx: Transaction,
        params: BoundParams,
        materialize_eagerly: bool,
    ) -> Result:
        evaluator = ExpressionEvaluator(params)
        rows_affected = 0
        result = Result()

        for i, plan in enumerate(query.statements):
            last = i == len(query.statements) - 1
            if plan.read_only:
                operator = self._build_operator_tree(plan, tx, evaluator)
                if not last:
                    # Earlier SELECTs run to completion and are discarded
                    for _ in operator:
                        pass
                    continue
                if materialize_eagerly:
                    docs = [FieldBuffer.from_document(doc) for doc in operator]
                    result = Result(docs, rows_affected=rows_affected)
                else:
                    result = Result(
                        iter(operator),
                        rows_affected=rows_affected,
                        live=_returns_stored_documents(plan),
                    )
            else:
                rows_affected += self._execute_write(plan, tx, evaluator)
                if last:
                    result = Result(rows_affected=rows_affected)

        return result

    def _build_operator_tree(
        self, plan: LogicalPlan, tx: Transaction, evaluator: ExpressionEvaluator
    ) -> Operator:
        """Build a physical operator tree from a logical plan."""
        if isinstance(plan, TableScan):
            return SeqScanOperator(table=tx.get_table(plan.table_name))
        elif isinstance(plan, Filter):
            child = self._build_operator_tree(plan.input, tx, evaluator)
            return FilterOperator(child=child, predicate=plan.predicate, evaluator=evaluator)
        elif isinstance(plan, Project):
            child = self._build_operator_tree(plan.input, tx, evaluator)
            return ProjectOperator(child=child, items=plan.items, evaluator=evaluator)
        elif isinstance(plan, Sort):
            child = self._build_operator_tree(plan.input, tx, evaluator)
            order_by = tuple((item.expr, item.ascending) for item in plan.order_by)
            return SortOperator(child=child, order_by=order_by, evaluator=evaluator)
        elif isinstance(plan, Limit):
            child = self._build_operator_tree(plan.input, tx, evaluator)
            limit = self._evaluate_count(plan.count, evaluator, "LIMIT")
            offset = 0
            if plan.offset is not None:
                offset = self._evaluate_count(plan.offset, evaluator, "OFFSET")
            return LimitOperator(child=child, limit=limit, offset=offset)
        else:
            raise ExecError(f"unsupported plan node: {type(plan).__name__}")

    @staticmethod
    def _evaluate_count(expr: Expression, evaluator: ExpressionEvaluator, clause: str) -> int:
        value = evaluator.evaluate(expr, _EMPTY)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ExecError(f"{clause} must be a non-negative integer, got {value!r}")
        return value

    def _execute_write(
        self, plan: LogicalPlan, tx: Transaction, evaluator: ExpressionEvaluator
    ) -> int:
        """Apply a write statement. Return the number of documents affected."""
        if isinstance(plan, InsertPlan):
            return self._execute_insert(plan, tx, evaluator)
        elif isinstance(plan, UpdatePlan):
            return self._execute_update(plan, tx, evaluator)
        elif isinstance(plan, DeletePlan):
            return self._execute_delete(plan, tx, evaluator)
        elif isinstance(plan, CreateTablePlan):
            tx.create_table(plan.table_name, plan.fields, if_not_exists=plan.if_not_exists)
            return 0
        elif isinstance(plan, DropTablePlan):
            tx.drop_table(plan.table_name, if_exists=plan.if_exists)
            return 0
        else:
            raise ExecError(f"unsupported plan type: {type(plan).__name__}")

    def _execute_insert(
        self, plan: InsertPlan, tx: Transaction, evaluator: ExpressionEvaluator
    ) -> int:
        """Execute an INSERT statement."""
        table = tx.get_table(plan.table_name)

        fields = plan.fields or table.info.fields
        if not fields:
            raise ExecError(
                f"table '{plan.table_name}' declares no fields; INSERT needs a column list"
            )

        count = 0
        for row in plan.rows:
            if len(row) != len(fields):
                raise ExecError(
                    f"table '{plan.table_name}' has {len(fields)} field(s) but {len(row)} value(s) were supplied"
                )
            doc = FieldBuffer()
            for name, expr in zip(fields, row):
                doc.add(name, evaluator.evaluate(expr, _EMPTY))
            table.insert(doc)
            count += 1
        return count

    def _execute_update(
        self, plan: UpdatePlan, tx: Transaction, evaluator: ExpressionEvaluator
    ) -> int:
        """Execute an UPDATE statement."""
        table = tx.get_table(plan.table_name)

        matched = [(key, doc) for key, doc in table.scan() if evaluator.matches(plan.predicate, doc)]
        for key, doc in matched:
            updated = FieldBuffer.from_document(doc)
            for name, expr in plan.assignments:
                updated.add(name, evaluator.evaluate(expr, doc))
            table.replace(key, updated)
        return len(matched)

    def _execute_delete(
        self, plan: DeletePlan, tx: Transaction, evaluator: ExpressionEvaluator
    ) -> int:
        """Execute a DELETE statement."""
        table = tx.get_table(plan.table_name)

        if plan.predicate is None:
            count = table.count()
            table.truncate()
            return count

        keys = [key for key, doc in table.scan() if evaluator.matches(plan.predicate, doc)]
        for key in keys:
            table.delete(key)
        return len(keys)
