"""Query parser using sqlglot.

This module turns query text into an immutable Query: a tuple of logical
plans (one per statement) plus the placeholders the text declares.
Parsing is pure. The same text always yields an equal Query, and no
engine or transaction is touched.

Supported statements:
    - SELECT (with WHERE, ORDER BY, LIMIT/OFFSET)
    - INSERT ... VALUES
    - UPDATE
    - DELETE
    - CREATE TABLE
    - DROP TABLE

Placeholders:
    - ``?`` binds positional arguments, numbered in textual order across
      every statement of the query.
    - ``:name`` binds Param(name, value) arguments.
    A query uses one kind or the other, never both.

Read/write inference:
    A query is read-only iff every statement is a SELECT. The database
    façade uses Query.read_only to pick the mode of its implicit
    transaction.

References:
    - sqlglot documentation: https://sqlglot.com/
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Sequence

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from docdb.domain.errors import ParamCountError, ParseError


class ComparisonOp(Enum):
    """Comparison operators for predicates."""

    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    IS_NULL = "IS NULL"
    LIKE = "LIKE"
    IN = "IN"


class LogicalOp(Enum):
    """Logical operators for combining predicates."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


# Expressions


@dataclass(frozen=True)
class Expression(ABC):
    """Base class for expressions."""

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class ColumnExpr(Expression):
    """Reference to a document field, optionally qualified with the table name."""

    name: str
    table: str | None = None

    def __str__(self) -> str:
        if self.table:
            return f"{self.table}.{self.name}"
        return self.name


@dataclass(frozen=True)
class LiteralExpr(Expression):
    """Literal value expression."""

    value: Any

    def __str__(self) -> str:
        if isinstance(self.value, str):
            return f"'{self.value}'"
        if self.value is None:
            return "NULL"
        return str(self.value)


@dataclass(frozen=True)
class ParamExpr(Expression):
    """Placeholder bound at execution time.

    Positional placeholders carry a 0-based index; named ones a name.
    """

    index: int | None = None
    name: str | None = None

    def __str__(self) -> str:
        if self.name is not None:
            return f":{self.name}"
        return "?"


@dataclass(frozen=True)
class ComparisonExpr(Expression):
    """Comparison expression (e.g., field = value)."""

    left: Expression
    op: ComparisonOp
    right: Expression | None = None  # None for IS NULL
    values: tuple[Expression, ...] = ()  # operands of IN

    def __str__(self) -> str:
        if self.op == ComparisonOp.IN:
            return f"{self.left} IN ({', '.join(str(v) for v in self.values)})"
        if self.right is None:
            return f"{self.left} {self.op.value}"
        return f"{self.left} {self.op.value} {self.right}"


@dataclass(frozen=True)
class LogicalExpr(Expression):
    """Logical expression combining other expressions."""

    op: LogicalOp
    operands: tuple[Expression, ...] = ()

    def __str__(self) -> str:
        if self.op == LogicalOp.NOT:
            return f"NOT ({self.operands[0]})"
        op_str = f" {self.op.value} "
        return f"({op_str.join(str(o) for o in self.operands)})"


@dataclass(frozen=True)
class SelectItem:
    """An item in a SELECT list."""

    expr: Expression
    alias: str | None = None

    @property
    def output_name(self) -> str:
        if self.alias:
            return self.alias
        if isinstance(self.expr, ColumnExpr):
            return self.expr.name
        return str(self.expr)


@dataclass(frozen=True)
class OrderByItem:
    """An item in an ORDER BY clause."""

    expr: Expression
    ascending: bool = True


# Logical Plan Nodes


@dataclass(frozen=True)
class LogicalPlan(ABC):
    """Base class for logical plan nodes."""

    read_only: ClassVar[bool] = True

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class TableScan(LogicalPlan):
    """Scan a table."""

    table_name: str

    def __str__(self) -> str:
        return f"TableScan({self.table_name})"


@dataclass(frozen=True)
class Filter(LogicalPlan):
    """Filter documents based on a predicate."""

    input: LogicalPlan
    predicate: Expression

    def __str__(self) -> str:
        return f"Filter({self.predicate})\n  -> {self.input}"


@dataclass(frozen=True)
class Project(LogicalPlan):
    """Project (select) specific fields."""

    input: LogicalPlan
    items: tuple[SelectItem, ...]

    def __str__(self) -> str:
        cols = ", ".join(str(item.expr) for item in self.items)
        return f"Project({cols})\n  -> {self.input}"


@dataclass(frozen=True)
class Sort(LogicalPlan):
    """Sort documents by the specified expressions."""

    input: LogicalPlan
    order_by: tuple[OrderByItem, ...]

    def __str__(self) -> str:
        cols = ", ".join(
            f"{item.expr} {'ASC' if item.ascending else 'DESC'}" for item in self.order_by
        )
        return f"Sort({cols})\n  -> {self.input}"


@dataclass(frozen=True)
class Limit(LogicalPlan):
    """Limit the number of documents returned."""

    input: LogicalPlan
    count: Expression
    offset: Expression | None = None

    def __str__(self) -> str:
        return f"Limit({self.count}, offset={self.offset or 0})\n  -> {self.input}"


@dataclass(frozen=True)
class InsertPlan(LogicalPlan):
    """Insert documents into a table."""

    read_only: ClassVar[bool] = False

    table_name: str
    fields: tuple[str, ...]
    rows: tuple[tuple[Expression, ...], ...]

    def __str__(self) -> str:
        return f"Insert({self.table_name}, fields={list(self.fields)}, rows={len(self.rows)})"


@dataclass(frozen=True)
class UpdatePlan(LogicalPlan):
    """Update documents in a table."""

    read_only: ClassVar[bool] = False

    table_name: str
    assignments: tuple[tuple[str, Expression], ...]
    predicate: Expression | None = None

    def __str__(self) -> str:
        assigns = ", ".join(f"{k}={v}" for k, v in self.assignments)
        where = f" WHERE {self.predicate}" if self.predicate else ""
        return f"Update({self.table_name}, SET {assigns}{where})"


@dataclass(frozen=True)
class DeletePlan(LogicalPlan):
    """Delete documents from a table."""

    read_only: ClassVar[bool] = False

    table_name: str
    predicate: Expression | None = None

    def __str__(self) -> str:
        where = f" WHERE {self.predicate}" if self.predicate else ""
        return f"Delete({self.table_name}{where})"


@dataclass(frozen=True)
class CreateTablePlan(LogicalPlan):
    """Create a new table."""

    read_only: ClassVar[bool] = False

    table_name: str
    fields: tuple[str, ...] = ()
    if_not_exists: bool = False

    def __str__(self) -> str:
        return f"CreateTable({self.table_name}, [{', '.join(self.fields)}])"


@dataclass(frozen=True)
class DropTablePlan(LogicalPlan):
    """Drop a table."""

    read_only: ClassVar[bool] = False

    table_name: str
    if_exists: bool = False

    def __str__(self) -> str:
        return f"DropTable({self.table_name})"


# Parameters


@dataclass(frozen=True)
class Param:
    """A named query argument, bound to a ``:name`` placeholder.

    Example:
        >>> db.query("SELECT * FROM users WHERE name = :name", Param("name", "Alice"))
    """

    name: str
    value: Any


@dataclass(frozen=True)
class BoundParams:
    """Arguments bound to the placeholders of one Query."""

    positional: tuple[Any, ...] = ()
    named: Mapping[str, Any] = field(default_factory=dict)

    def resolve(self, param: ParamExpr) -> Any:
        if param.name is not None:
            return self.named[param.name]
        return self.positional[param.index]


@dataclass(frozen=True)
class Query:
    """A parsed query: one logical plan per statement plus its placeholders."""

    statements: tuple[LogicalPlan, ...]
    param_count: int = 0
    param_names: tuple[str, ...] = ()

    @property
    def read_only(self) -> bool:
        """True iff every statement only reads."""
        return all(stmt.read_only for stmt in self.statements)

    def bind(self, args: Sequence[Any]) -> BoundParams:
        """Bind call-site arguments to this query's placeholders.

        Plain arguments bind ``?`` placeholders in order; Param arguments
        bind ``:name`` placeholders. Values are passed through unchanged.

        Raises:
            ParamCountError: If the arguments do not match the placeholders.
        """
        positional = tuple(a for a in args if not isinstance(a, Param))
        named = [a for a in args if isinstance(a, Param)]

        if self.param_names:
            if positional:
                raise ParamCountError(
                    f"query uses named parameters, got {len(positional)} positional argument(s)"
                )
            values: dict[str, Any] = {}
            for param in named:
                if param.name in values:
                    raise ParamCountError(f"parameter '{param.name}' given more than once")
                values[param.name] = param.value
            missing = [n for n in self.param_names if n not in values]
            if missing:
                raise ParamCountError(f"missing named parameter(s): {', '.join(missing)}")
            unknown = sorted(set(values) - set(self.param_names))
            if unknown:
                raise ParamCountError(f"unknown named parameter(s): {', '.join(unknown)}")
            return BoundParams(named=values)

        if named:
            raise ParamCountError(
                f"query uses positional parameters, got named parameter '{named[0].name}'"
            )
        if len(positional) != self.param_count:
            raise ParamCountError(
                f"query expects {self.param_count} argument(s), got {len(positional)}"
            )
        return BoundParams(positional=positional)

    def __str__(self) -> str:
        return ";\n".join(str(stmt) for stmt in self.statements)


class _Placeholders:
    """Numbers placeholders while one query is being converted."""

    def __init__(self) -> None:
        self.count = 0
        self.names: list[str] = []

    def positional(self) -> ParamExpr:
        if self.names:
            raise ParseError("cannot mix positional and named parameters")
        param = ParamExpr(index=self.count)
        self.count += 1
        return param

    def named(self, name: str) -> ParamExpr:
        if self.count:
            raise ParseError("cannot mix positional and named parameters")
        if name not in self.names:
            self.names.append(name)
        return ParamExpr(name=name)


class SQLParser:
    """Query parser using sqlglot.

    Example:
        >>> parser = SQLParser()
        >>> query = parser.parse("SELECT id, name FROM users WHERE age > ?")
        >>> print(query)
        Project(id, name)
          -> Filter(age > ?)
            -> TableScan(users)
        >>> query.param_count
        1
    """

    def __init__(self, dialect: str = "sqlite") -> None:
        """Initialize the parser.

        Args:
            dialect: SQL dialect to use for parsing (default: sqlite).
        """
        self._dialect = dialect

    @property
    def dialect(self) -> str:
        return self._dialect

    def parse(self, text: str) -> Query:
        """Parse query text into a Query.

        Args:
            text: One or more ';'-separated statements.

        Returns:
            The parsed Query.

        Raises:
            ParseError: If the text is empty, invalid or unsupported.
        """
        if not text or not text.strip():
            raise ParseError("empty query")

        try:
            parsed = sqlglot.parse(text, dialect=self._dialect)
        except SqlglotError as e:
            raise ParseError(f"failed to parse query: {e}") from e

        statements = [stmt for stmt in parsed if stmt is not None]
        if not statements:
            raise ParseError("empty query")

        placeholders = _Placeholders()
        plans = tuple(self._convert_statement(stmt, placeholders) for stmt in statements)
        return Query(
            statements=plans,
            param_count=placeholders.count,
            param_names=tuple(placeholders.names),
        )

    def _convert_statement(self, stmt: exp.Expression, ph: _Placeholders) -> LogicalPlan:
        """Convert a sqlglot expression to a logical plan."""
        if isinstance(stmt, exp.Select):
            return self._convert_select(stmt, ph)
        elif isinstance(stmt, exp.Insert):
            return self._convert_insert(stmt, ph)
        elif isinstance(stmt, exp.Update):
            return self._convert_update(stmt, ph)
        elif isinstance(stmt, exp.Delete):
            return self._convert_delete(stmt, ph)
        elif isinstance(stmt, exp.Create):
            return self._convert_create(stmt)
        elif isinstance(stmt, exp.Drop):
            return self._convert_drop(stmt)
        else:
            raise ParseError(f"unsupported statement type: {type(stmt).__name__}")

    def _convert_select(self, stmt: exp.Select, ph: _Placeholders) -> LogicalPlan:
        """Convert a SELECT statement to a logical plan.

        Clauses are converted in textual order so that positional
        placeholders are numbered the way they appear in the text.
        """
        if stmt.args.get("joins"):
            raise ParseError("joins are not supported")
        if stmt.args.get("group") or stmt.args.get("having"):
            raise ParseError("GROUP BY is not supported")
        if stmt.args.get("distinct"):
            raise ParseError("DISTINCT is not supported")
        agg = stmt.find(exp.AggFunc)
        if agg is not None:
            raise ParseError(f"unsupported aggregate function: {agg.sql()}")

        table = self._table_name(self._from_source(stmt), "SELECT requires FROM clause")
        items = tuple(self._convert_select_item(col, ph) for col in stmt.expressions)

        plan: LogicalPlan = TableScan(table_name=table)

        where = stmt.args.get("where")
        if where is not None:
            plan = Filter(input=plan, predicate=self._convert_expression(where.this, ph))

        # Sort reads the stored document, so select-list aliases are
        # replaced by the expressions they name.
        aliases = {item.alias: item.expr for item in items if item.alias}
        order = stmt.args.get("order")
        if order is not None:
            order_items = []
            for expr in order.expressions:
                ascending = True
                if isinstance(expr, exp.Ordered):
                    ascending = not expr.args.get("desc", False)
                    expr = expr.this
                key = self._convert_expression(expr, ph)
                if isinstance(key, ColumnExpr) and key.table is None and key.name in aliases:
                    key = aliases[key.name]
                order_items.append(OrderByItem(expr=key, ascending=ascending))
            plan = Sort(input=plan, order_by=tuple(order_items))

        plan = Project(input=plan, items=items)

        limit = stmt.args.get("limit")
        if limit is not None:
            count = self._convert_expression(limit.expression or limit.this, ph)
            offset = None
            offset_expr = stmt.args.get("offset")
            if offset_expr is not None:
                offset = self._convert_expression(
                    offset_expr.expression or offset_expr.this, ph
                )
            plan = Limit(input=plan, count=count, offset=offset)
        elif stmt.args.get("offset") is not None:
            raise ParseError("OFFSET requires LIMIT")

        return plan

    def _convert_select_item(self, col: exp.Expression, ph: _Placeholders) -> SelectItem:
        """Convert a SELECT item."""
        alias = None
        if isinstance(col, exp.Alias):
            alias = col.alias
            col = col.this

        if isinstance(col, exp.Star):
            return SelectItem(expr=ColumnExpr(name="*"))
        return SelectItem(expr=self._convert_expression(col, ph), alias=alias)

    def _convert_expression(self, expr: exp.Expression, ph: _Placeholders) -> Expression:
        """Convert a sqlglot expression to our internal representation."""
        if isinstance(expr, exp.Column):
            if isinstance(expr.this, exp.Star):
                raise ParseError("'*' is only allowed as a SELECT item")
            return ColumnExpr(name=expr.name, table=expr.table or None)
        elif isinstance(expr, exp.Literal):
            if expr.is_string:
                return LiteralExpr(value=expr.this)
            return LiteralExpr(value=self._parse_number(expr.this))
        elif isinstance(expr, exp.Boolean):
            return LiteralExpr(value=bool(expr.this))
        elif isinstance(expr, exp.Null):
            return LiteralExpr(value=None)
        elif isinstance(expr, exp.Neg):
            inner = self._convert_expression(expr.this, ph)
            if isinstance(inner, LiteralExpr) and isinstance(inner.value, (int, float)):
                return LiteralExpr(value=-inner.value)
            raise ParseError(f"unsupported negation: {expr.sql()}")
        elif isinstance(expr, exp.Paren):
            return self._convert_expression(expr.this, ph)
        elif isinstance(expr, exp.Placeholder):
            if expr.this:
                return ph.named(str(expr.this))
            return ph.positional()
        elif isinstance(expr, (exp.EQ, exp.NEQ, exp.LT, exp.LTE, exp.GT, exp.GTE)):
            op_map = {
                exp.EQ: ComparisonOp.EQ,
                exp.NEQ: ComparisonOp.NE,
                exp.LT: ComparisonOp.LT,
                exp.LTE: ComparisonOp.LE,
                exp.GT: ComparisonOp.GT,
                exp.GTE: ComparisonOp.GE,
            }
            return ComparisonExpr(
                left=self._convert_expression(expr.left, ph),
                op=op_map[type(expr)],
                right=self._convert_expression(expr.right, ph),
            )
        elif isinstance(expr, exp.And):
            return LogicalExpr(
                op=LogicalOp.AND,
                operands=(
                    self._convert_expression(expr.left, ph),
                    self._convert_expression(expr.right, ph),
                ),
            )
        elif isinstance(expr, exp.Or):
            return LogicalExpr(
                op=LogicalOp.OR,
                operands=(
                    self._convert_expression(expr.left, ph),
                    self._convert_expression(expr.right, ph),
                ),
            )
        elif isinstance(expr, exp.Not):
            return LogicalExpr(
                op=LogicalOp.NOT, operands=(self._convert_expression(expr.this, ph),)
            )
        elif isinstance(expr, exp.Is):
            if not isinstance(expr.expression, exp.Null):
                raise ParseError(f"unsupported IS expression: {expr.sql()}")
            return ComparisonExpr(
                left=self._convert_expression(expr.this, ph),
                op=ComparisonOp.IS_NULL,
            )
        elif isinstance(expr, exp.Like):
            return ComparisonExpr(
                left=self._convert_expression(expr.this, ph),
                op=ComparisonOp.LIKE,
                right=self._convert_expression(expr.expression, ph),
            )
        elif isinstance(expr, exp.In):
            if expr.args.get("query") is not None:
                raise ParseError("subqueries are not supported")
            left = self._convert_expression(expr.this, ph)
            return ComparisonExpr(
                left=left,
                op=ComparisonOp.IN,
                values=tuple(self._convert_expression(v, ph) for v in expr.expressions),
            )
        else:
            raise ParseError(f"unsupported expression: {expr.sql()}")

    @staticmethod
    def _parse_number(text: str) -> int | float:
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError as e:
            raise ParseError(f"invalid number literal: {text}") from e

    @staticmethod
    def _from_source(stmt: exp.Select) -> exp.Expression | None:
        from_clause = stmt.args.get("from") or stmt.args.get("from_")
        if from_clause is None:
            return None
        source = from_clause.this
        if isinstance(source, (exp.Subquery, exp.Select)):
            raise ParseError("subqueries in FROM are not supported")
        if not isinstance(source, exp.Table):
            raise ParseError(f"unsupported FROM source: {source.sql()}")
        return source

    @staticmethod
    def _table_name(node: exp.Expression | None, message: str) -> str:
        if isinstance(node, exp.Schema):
            node = node.this
        if not isinstance(node, exp.Table) or not node.name:
            raise ParseError(message)
        return node.name

    def _convert_insert(self, stmt: exp.Insert, ph: _Placeholders) -> LogicalPlan:
        """Convert an INSERT statement to a logical plan."""
        target = stmt.this
        table = self._table_name(target, "INSERT requires table name")

        fields: tuple[str, ...] = ()
        if isinstance(target, exp.Schema):
            fields = tuple(col.name for col in target.expressions)

        values = stmt.expression
        if not isinstance(values, exp.Values):
            raise ParseError("INSERT requires a VALUES clause")

        rows = []
        for tuple_expr in values.expressions:
            items = tuple_expr.expressions if isinstance(tuple_expr, exp.Tuple) else [tuple_expr]
            row = tuple(self._convert_expression(val, ph) for val in items)
            if fields and len(row) != len(fields):
                raise ParseError(
                    f"INSERT has {len(fields)} field(s) but {len(row)} value(s)"
                )
            rows.append(row)

        return InsertPlan(table_name=table, fields=fields, rows=tuple(rows))

    def _convert_update(self, stmt: exp.Update, ph: _Placeholders) -> LogicalPlan:
        """Convert an UPDATE statement to a logical plan."""
        table = self._table_name(stmt.this, "UPDATE requires table name")

        assignments = []
        for eq in stmt.expressions:
            if not isinstance(eq, exp.EQ) or not isinstance(eq.left, exp.Column):
                raise ParseError(f"invalid assignment: {eq.sql()}")
            assignments.append((eq.left.name, self._convert_expression(eq.right, ph)))
        if not assignments:
            raise ParseError("UPDATE requires at least one assignment")

        predicate = None
        where = stmt.args.get("where")
        if where is not None:
            predicate = self._convert_expression(where.this, ph)

        return UpdatePlan(
            table_name=table, assignments=tuple(assignments), predicate=predicate
        )

    def _convert_delete(self, stmt: exp.Delete, ph: _Placeholders) -> LogicalPlan:
        """Convert a DELETE statement to a logical plan."""
        table = self._table_name(stmt.this, "DELETE requires table name")

        predicate = None
        where = stmt.args.get("where")
        if where is not None:
            predicate = self._convert_expression(where.this, ph)

        return DeletePlan(table_name=table, predicate=predicate)

    def _convert_create(self, stmt: exp.Create) -> LogicalPlan:
        """Convert a CREATE TABLE statement to a logical plan."""
        kind = str(stmt.args.get("kind") or "").upper()
        if kind != "TABLE":
            raise ParseError(f"unsupported CREATE {kind or 'statement'}")
        if stmt.expression is not None:
            raise ParseError("CREATE TABLE ... AS is not supported")

        table = self._table_name(stmt.this, "CREATE TABLE requires table name")

        fields: tuple[str, ...] = ()
        schema = stmt.this
        if isinstance(schema, exp.Schema):
            fields = tuple(
                col_def.name for col_def in schema.expressions if isinstance(col_def, exp.ColumnDef)
            )

        return CreateTablePlan(
            table_name=table,
            fields=fields,
            if_not_exists=bool(stmt.args.get("exists", False)),
        )

    def _convert_drop(self, stmt: exp.Drop) -> LogicalPlan:
        """Convert a DROP TABLE statement to a logical plan."""
        kind = str(stmt.args.get("kind") or "").upper()
        if kind != "TABLE":
            raise ParseError(f"unsupported DROP {kind or 'statement'}")

        # Newer sqlglot releases keep dropped tables in "tables" rather than "this".
        targets = [t for t in (stmt.args.get("tables") or [stmt.this]) if t is not None]
        if len(targets) > 1:
            raise ParseError("DROP TABLE accepts a single table")
        table = self._table_name(
            targets[0] if targets else None, "DROP TABLE requires table name"
        )
        return DropTablePlan(table_name=table, if_exists=bool(stmt.args.get("exists", False)))


def parse_query(text: str, dialect: str = "sqlite") -> Query:
    """Parse query text with a default SQLParser."""
    return SQLParser(dialect=dialect).parse(text)
