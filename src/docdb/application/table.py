"""Table handle bound to one transaction."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Generator, Iterator

from docdb.domain.entities import Document, FieldBuffer, TableInfo
from docdb.domain.errors import DocumentNotFoundError
from docdb.domain.value_objects import DocumentKey
from docdb.ports.outbound import Store

if TYPE_CHECKING:
    from docdb.application.transaction import Transaction


class Table:
    """A named collection of documents, seen through a transaction.

    A Table is only valid while the transaction that returned it is
    active. Documents passed in are copied; documents handed out are
    detached copies the caller may keep and modify.

    Example:
        >>> with db.begin(writable=True) as tx:
        ...     users = tx.create_table("users")
        ...     key = users.insert({"name": "Alice", "age": 30})
        ...     users.get_document(key)["name"]
        'Alice'
    """

    def __init__(self, tx: Transaction, info: TableInfo, store: Store) -> None:
        self._tx = tx
        self._info = info
        self._store = store

    @property
    def name(self) -> str:
        return self._info.name

    @property
    def info(self) -> TableInfo:
        return self._info

    def insert(self, doc: Mapping[str, Any]) -> DocumentKey:
        """Insert a document and return its newly allocated key.

        Raises:
            ReadOnlyTransactionError: If the transaction is read-only.
        """
        self._tx._check_writable()
        key = self._store.next_key()
        self._store.put(key, FieldBuffer.from_document(doc))
        return key

    def get_document(self, key: DocumentKey) -> FieldBuffer:
        """Return a detached copy of the document stored under key.

        Raises:
            DocumentNotFoundError: If no document has this key.
        """
        self._tx._check_active()
        doc = self._store.get(key)
        if doc is None:
            raise DocumentNotFoundError(f"document {key} not found in table '{self.name}'")
        return doc.copy()

    def replace(self, key: DocumentKey, doc: Mapping[str, Any]) -> None:
        """Replace the document stored under key.

        Raises:
            DocumentNotFoundError: If no document has this key.
        """
        self._tx._check_writable()
        if self._store.get(key) is None:
            raise DocumentNotFoundError(f"document {key} not found in table '{self.name}'")
        self._store.put(key, FieldBuffer.from_document(doc))

    def delete(self, key: DocumentKey) -> None:
        """Delete the document stored under key.

        Raises:
            DocumentNotFoundError: If no document has this key.
        """
        self._tx._check_writable()
        if not self._store.delete(key):
            raise DocumentNotFoundError(f"document {key} not found in table '{self.name}'")

    def iterate(self) -> Iterator[tuple[DocumentKey, FieldBuffer]]:
        """Yield (key, detached document) pairs in key order."""
        for key, doc in self.scan():
            yield key, doc.copy()

    def scan(self) -> Generator[tuple[DocumentKey, Document], None, None]:
        """Yield (key, stored document) pairs in key order without copying.

        Stored documents are shared with the engine snapshot and must be
        treated as read-only.
        """
        self._tx._check_active()
        yield from self._store.iterate()

    def truncate(self) -> None:
        """Delete every document in the table."""
        self._tx._check_writable()
        self._store.truncate()

    def count(self) -> int:
        self._tx._check_active()
        return len(self._store)

    def __repr__(self) -> str:
        return f"Table({self.name!r})"
