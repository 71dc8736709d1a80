"""Application layer for the document database.

This module contains the façade and the services built on the ports:
    - Database: Transaction-scoped query façade
    - Transaction: Transaction handle with terminal-state guard
    - Table: Table handle bound to a transaction
    - Result: Closable result cursor
    - QueryExecutor: Volcano-model executor for parsed queries
"""

from docdb.application.database import Database, open_database
from docdb.application.executor import QueryExecutor
from docdb.application.result import Result
from docdb.application.table import Table
from docdb.application.transaction import Transaction

__all__ = [
    "Database",
    "open_database",
    "Transaction",
    "Table",
    "Result",
    "QueryExecutor",
]
