"""Result cursors.

A Result is a forward-only, closable sequence of documents produced by
running a query. Iteration follows the Python iterator protocol:
StopIteration marks the end of the sequence.

Live documents:
    Cursors over ``SELECT *`` hand out live views of the stored
    documents. A live view is only valid until the cursor advances or
    closes; reading it afterwards raises StaleDocumentError. Use
    FieldBuffer.from_document() to keep a document for longer.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any, Callable, Iterable, Iterator

from docdb.domain.entities import Document
from docdb.domain.errors import ResultClosedError, StaleDocumentError


class _LiveDocument(Document):
    """A view of a stored document, valid while its cursor stays on it."""

    def __init__(self, result: Result, generation: int, doc: Document) -> None:
        self._result = result
        self._generation = generation
        self._doc = doc

    def _source(self) -> Document:
        if self._result._closed or self._result._generation != self._generation:
            raise StaleDocumentError(
                "document is no longer valid: its result advanced or was closed"
            )
        return self._doc

    def get_by_field(self, field: str) -> Any:
        return self._source().get_by_field(field)

    def iterate(self) -> Iterator[tuple[str, Any]]:
        return self._source().iterate()


class Result:
    """A closable cursor over query results.

    Results must be closed exactly once; close() is idempotent so it can
    also be used as an unconditional cleanup step. A Result is a context
    manager that closes itself on exit.

    Example:
        >>> with db.query("SELECT name FROM users WHERE age > ?", 18) as result:
        ...     for doc in result:
        ...         print(doc["name"])
    """

    def __init__(
        self,
        rows: Iterable[Document] = (),
        rows_affected: int = 0,
        live: bool = False,
    ) -> None:
        """Create a result.

        Args:
            rows: Documents to yield, possibly produced lazily.
            rows_affected: Number of documents written by the query.
            live: Wrap each document in a view that goes stale when the
                cursor moves on.
        """
        self._rows = iter(rows)
        self._rows_affected = rows_affected
        self._live = live
        self._generation = 0
        self._closed = False
        self._on_close: list[Callable[[], None]] = []

    @property
    def rows_affected(self) -> int:
        """Number of documents inserted, updated or deleted by the query."""
        return self._rows_affected

    @property
    def closed(self) -> bool:
        return self._closed

    def add_close_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked once when the result is closed."""
        if self._closed:
            raise ResultClosedError("result is closed")
        self._on_close.append(callback)

    def __iter__(self) -> Result:
        return self

    def __next__(self) -> Document:
        if self._closed:
            raise ResultClosedError("result is closed")
        self._generation += 1
        doc = next(self._rows)
        if self._live:
            return _LiveDocument(self, self._generation, doc)
        return doc

    def first(self) -> Document | None:
        """Return the next document, or None at the end of the sequence."""
        return next(self, None)

    def close(self) -> None:
        """Close the cursor and release what it holds. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        if isinstance(self._rows, Generator):
            self._rows.close()
        callbacks, self._on_close = self._on_close, []
        for callback in callbacks:
            callback()

    def __enter__(self) -> Result:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Result({state}, rows_affected={self._rows_affected})"
