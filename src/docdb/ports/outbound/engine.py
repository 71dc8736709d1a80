"""Storage engine port.

This outbound port defines the contract between the database and the
storage engine that actually keeps documents. The database adds tables,
queries and transaction-handle bookkeeping on top; isolation and writer
exclusion are the engine's job.

Concurrency contract:
    - At most one writable transaction is active at a time.
    - Read-only transactions may run concurrently with each other and
      with the single writer, each seeing a consistent snapshot.
    - Engine transactions and stores are confined to one flow of control.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Iterator, Protocol

from docdb.domain.entities import FieldBuffer
from docdb.domain.value_objects import DocumentKey


class Store(Protocol):
    """An ordered collection of documents addressed by key."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the store name."""
        ...

    @abstractmethod
    def get(self, key: DocumentKey) -> FieldBuffer | None:
        """Return the document stored under key, or None."""
        ...

    @abstractmethod
    def put(self, key: DocumentKey, doc: FieldBuffer) -> None:
        """Store doc under key, replacing any previous document.

        The store takes ownership of doc; callers must not mutate it
        afterwards.

        Raises:
            ReadOnlyTransactionError: If the transaction is read-only.
        """
        ...

    @abstractmethod
    def delete(self, key: DocumentKey) -> bool:
        """Delete the document under key. Return False if there was none.

        Raises:
            ReadOnlyTransactionError: If the transaction is read-only.
        """
        ...

    @abstractmethod
    def iterate(self) -> Iterator[tuple[DocumentKey, FieldBuffer]]:
        """Yield (key, document) pairs in key order.

        Iteration must tolerate modifications made through the same
        transaction while it is in progress.
        """
        ...

    @abstractmethod
    def next_key(self) -> DocumentKey:
        """Allocate the next key of this store's sequence.

        Raises:
            ReadOnlyTransactionError: If the transaction is read-only.
        """
        ...

    @abstractmethod
    def truncate(self) -> None:
        """Delete every document in the store."""
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...


class EngineTransaction(Protocol):
    """A unit of work against the storage engine."""

    @property
    @abstractmethod
    def writable(self) -> bool:
        """Return True for read-write transactions."""
        ...

    @abstractmethod
    def get_store(self, name: str) -> Store | None:
        """Return the named store, or None if it does not exist."""
        ...

    @abstractmethod
    def create_store(self, name: str) -> Store:
        """Create a new, empty store.

        Raises:
            ValueError: If the store already exists.
            ReadOnlyTransactionError: If the transaction is read-only.
        """
        ...

    @abstractmethod
    def drop_store(self, name: str) -> None:
        """Drop a store and all of its documents.

        Raises:
            KeyError: If the store does not exist.
            ReadOnlyTransactionError: If the transaction is read-only.
        """
        ...

    @abstractmethod
    def list_stores(self) -> list[str]:
        """Return the names of all stores, sorted."""
        ...

    @abstractmethod
    def commit(self) -> None:
        """Make the transaction's changes visible and durable.

        On failure the transaction stays open and must still be rolled back.

        Raises:
            TransactionError: If the changes could not be committed.
        """
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Discard the transaction's changes and release its resources."""
        ...


class Engine(Protocol):
    """Protocol for storage engines."""

    @abstractmethod
    def begin(self, writable: bool) -> EngineTransaction:
        """Begin a new engine transaction.

        Raises:
            WriterBusyError: If a writable transaction was requested and
                another writer is still active.
            EngineClosedError: If the engine is closed.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release every resource held by the engine."""
        ...
