"""Inbound adapters for the document database.

Inbound adapters turn incoming query text into internal plans.

Exports:
    Query Parser:
        - SQLParser: Parser that converts query text to a Query of logical plans
        - Query: Parsed, immutable query with its placeholders
        - Param: Named query argument
"""

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
    OrderByItem,
    Param,
    ParamExpr,
    Project,
    Query,
    SelectItem,
    Sort,
    SQLParser,
    TableScan,
    UpdatePlan,
    parse_query,
)

__all__ = [
    # Parser
    "SQLParser",
    "parse_query",
    "Query",
    "Param",
    "BoundParams",
    # Types
    "ComparisonOp",
    "LogicalOp",
    # Expressions
    "Expression",
    "ColumnExpr",
    "LiteralExpr",
    "ParamExpr",
    "ComparisonExpr",
    "LogicalExpr",
    "SelectItem",
    "OrderByItem",
    # Logical Plans
    "LogicalPlan",
    "TableScan",
    "Filter",
    "Project",
    "Sort",
    "Limit",
    "InsertPlan",
    "UpdatePlan",
    "DeletePlan",
    "CreateTablePlan",
    "DropTablePlan",
]
