"""In-memory storage engine with copy-on-write snapshots.

This adapter implements the Engine protocol entirely in memory.

Isolation:
    The engine keeps one committed version: a mapping of store name to
    store data. Every transaction starts from the version committed when
    it began. Readers never copy anything. The writer copies a store the
    first time it modifies it and installs its whole mapping atomically on
    commit, so readers keep seeing their own snapshot.

Writer exclusion:
    A single writer slot guarded by a lock. begin(writable=True) waits up
    to lock_timeout seconds for the slot.

Thread Safety:
    The engine may be shared between threads. Each engine transaction
    must stay confined to the thread that began it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator

from docdb.domain.entities import FieldBuffer
from docdb.domain.errors import (
    EngineClosedError,
    ReadOnlyTransactionError,
    TransactionClosedError,
    WriterBusyError,
)
from docdb.domain.value_objects import DocumentKey
from docdb.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StoreData:
    """Documents and key sequence of one store."""

    records: Dict[DocumentKey, FieldBuffer] = field(default_factory=dict)
    sequence: int = 0

    def copy(self) -> StoreData:
        # Documents are never mutated in place, so sharing them is safe.
        return StoreData(records=dict(self.records), sequence=self.sequence)


class MemoryStore:
    """A store as seen through one engine transaction."""

    def __init__(self, txn: MemoryTransaction, name: str) -> None:
        self._txn = txn
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def get(self, key: DocumentKey) -> FieldBuffer | None:
        return self._txn._read(self._name).records.get(key)

    def put(self, key: DocumentKey, doc: FieldBuffer) -> None:
        data = self._txn._write(self._name)
        data.records[key] = doc
        if key > data.sequence:
            data.sequence = key

    def delete(self, key: DocumentKey) -> bool:
        data = self._txn._write(self._name)
        return data.records.pop(key, None) is not None

    def iterate(self) -> Iterator[tuple[DocumentKey, FieldBuffer]]:
        for key in sorted(self._txn._read(self._name).records):
            # Re-read on every step: the same transaction may have modified the store.
            doc = self._txn._read(self._name).records.get(key)
            if doc is not None:
                yield key, doc

    def next_key(self) -> DocumentKey:
        data = self._txn._write(self._name)
        data.sequence += 1
        return DocumentKey(data.sequence)

    def truncate(self) -> None:
        self._txn._write(self._name).records.clear()

    def __len__(self) -> int:
        return len(self._txn._read(self._name).records)


class MemoryTransaction:
    """Engine transaction over a MemoryEngine snapshot."""

    def __init__(
        self,
        engine: MemoryEngine,
        stores: Dict[str, StoreData],
        writable: bool,
    ) -> None:
        self._engine = engine
        self._writable = writable
        self._stores = dict(stores) if writable else stores
        self._copied: set[str] = set()
        self._done = False

    @property
    def writable(self) -> bool:
        return self._writable

    def get_store(self, name: str) -> MemoryStore | None:
        self._check_open()
        if name not in self._stores:
            return None
        return MemoryStore(self, name)

    def create_store(self, name: str) -> MemoryStore:
        self._check_writable()
        if name in self._stores:
            raise ValueError(f"Store '{name}' already exists")
        self._stores[name] = StoreData()
        self._copied.add(name)
        return MemoryStore(self, name)

    def drop_store(self, name: str) -> None:
        self._check_writable()
        if name not in self._stores:
            raise KeyError(name)
        del self._stores[name]
        self._copied.discard(name)

    def list_stores(self) -> list[str]:
        self._check_open()
        return sorted(self._stores)

    def commit(self) -> None:
        self._check_open()
        if not self._writable:
            raise ReadOnlyTransactionError("cannot commit a read-only transaction")
        self._engine._install(self._stores)
        self._finish()

    def rollback(self) -> None:
        if self._done:
            return
        self._finish()

    def _finish(self) -> None:
        self._done = True
        self._stores = {}
        if self._writable:
            self._engine._release_writer()

    def _read(self, name: str) -> StoreData:
        self._check_open()
        try:
            return self._stores[name]
        except KeyError:
            raise KeyError(f"Store '{name}' no longer exists") from None

    def _write(self, name: str) -> StoreData:
        self._check_writable()
        data = self._read(name)
        if name not in self._copied:
            data = data.copy()
            self._stores[name] = data
            self._copied.add(name)
        return data

    def _check_open(self) -> None:
        if self._done:
            raise TransactionClosedError("engine transaction already finished")

    def _check_writable(self) -> None:
        self._check_open()
        if not self._writable:
            raise ReadOnlyTransactionError("transaction is read-only")


class MemoryEngine:
    """In-memory implementation of the Engine protocol.

    Usage:
        engine = MemoryEngine()
        txn = engine.begin(writable=True)
        store = txn.create_store("users")
        store.put(store.next_key(), FieldBuffer({"name": "Alice"}))
        txn.commit()
    """

    def __init__(self, lock_timeout: float | None = 5.0) -> None:
        """Initialize the engine.

        Args:
            lock_timeout: Seconds begin(writable=True) waits for the writer
                slot. None waits forever, 0 fails immediately.
        """
        self._lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._writer = threading.Lock()
        self._stores: Dict[str, StoreData] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def begin(self, writable: bool) -> MemoryTransaction:
        if self._closed:
            raise EngineClosedError("engine is closed")

        if writable:
            if self._lock_timeout is None:
                acquired = self._writer.acquire()
            else:
                acquired = self._writer.acquire(timeout=self._lock_timeout)
            if not acquired:
                raise WriterBusyError(
                    f"another writable transaction is active (waited {self._lock_timeout}s)"
                )
            if self._closed:
                self._writer.release()
                raise EngineClosedError("engine is closed")

        with self._lock:
            snapshot = self._stores

        return MemoryTransaction(self, snapshot, writable)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self._stores = {}
        logger.debug("engine closed", engine=type(self).__name__)

    def _install(self, stores: Dict[str, StoreData]) -> None:
        """Make a writer's stores the committed version."""
        with self._lock:
            self._stores = stores

    def _release_writer(self) -> None:
        self._writer.release()
