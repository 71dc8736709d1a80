"""
docdb - Embedded Document Database

A small, single-process document/table database with a transaction-scoped
query façade: scoped read and write transactions, a SQL-flavoured query
language and leak-free result cursors.
"""

__version__ = "0.1.0"

from docdb.adapters.inbound.sql_parser import Param
from docdb.application.database import Database, open_database
from docdb.application.result import Result
from docdb.application.table import Table
from docdb.application.transaction import Transaction
from docdb.domain.entities import Document, FieldBuffer
from docdb.domain.errors import (
    DatabaseError,
    DocumentNotFoundError,
    ExecError,
    InitError,
    ParamCountError,
    ParseError,
    TableNotFoundError,
    TransactionError,
)

__all__ = [
    "__version__",
    "Database",
    "open_database",
    "Transaction",
    "Table",
    "Result",
    "Document",
    "FieldBuffer",
    "Param",
    "DatabaseError",
    "InitError",
    "ParseError",
    "ParamCountError",
    "ExecError",
    "TransactionError",
    "TableNotFoundError",
    "DocumentNotFoundError",
]
