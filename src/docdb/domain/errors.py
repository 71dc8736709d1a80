"""Exception types for the document database.

Every failure surfaced by the façade is a subclass of DatabaseError, so
callers can catch database problems without swallowing unrelated
exceptions. Errors are never retried internally.
"""

from __future__ import annotations


class DatabaseError(Exception):
    """Base class for all document database errors."""


class InitError(DatabaseError):
    """Raised when the database cannot bootstrap its metadata over an engine."""


class ParseError(DatabaseError):
    """Raised for malformed or unsupported query text.

    A parse error is raised before any engine or transaction work is done.
    """


class ParamCountError(DatabaseError):
    """Raised when supplied arguments do not match the query placeholders."""


class ExecError(DatabaseError):
    """Raised for runtime failures while executing a parsed query."""


class TransactionError(DatabaseError):
    """Raised when the engine refuses to begin, commit or roll back."""


class WriterBusyError(TransactionError):
    """Raised when the single writer slot could not be acquired in time."""


class ReadOnlyTransactionError(TransactionError):
    """Raised when a write is attempted through a read-only transaction."""


class TransactionClosedError(TransactionError):
    """Raised when a terminated transaction is used again."""


class EngineClosedError(TransactionError):
    """Raised when a transaction is requested from a closed engine."""


class TableNotFoundError(DatabaseError):
    """Raised when a table lookup by name fails."""

    def __init__(self, name: str) -> None:
        super().__init__(f"table '{name}' not found")
        self.name = name


class TableAlreadyExistsError(DatabaseError):
    """Raised when creating a table whose name is taken."""

    def __init__(self, name: str) -> None:
        super().__init__(f"table '{name}' already exists")
        self.name = name


class DocumentNotFoundError(DatabaseError):
    """Raised when a query or lookup yields no document where one was expected."""


class FieldNotFoundError(DatabaseError, KeyError):
    """Raised when reading a field a document does not have."""

    def __init__(self, field: str) -> None:
        super().__init__(field)
        self.field = field

    def __str__(self) -> str:
        return f"field '{self.field}' not found"


class ResultClosedError(DatabaseError):
    """Raised when reading from a result cursor that was already closed."""


class StaleDocumentError(DatabaseError):
    """Raised when a live document is read after its cursor moved on."""
