"""Table catalog kept in a reserved engine store.

Every table has one TableInfo document in the ``__docdb_tables`` store.
Names starting with ``__docdb`` are reserved for the database itself.
"""

from __future__ import annotations

from docdb.domain.entities import TableInfo
from docdb.domain.errors import ExecError
from docdb.domain.value_objects import DocumentKey
from docdb.ports.outbound import EngineTransaction, Store

CATALOG_STORE = "__docdb_tables"
RESERVED_PREFIX = "__docdb"


def is_reserved(name: str) -> bool:
    return name.startswith(RESERVED_PREFIX)


class Catalog:
    """Reads and writes table metadata through one engine transaction."""

    def __init__(self, engine_tx: EngineTransaction) -> None:
        self._engine_tx = engine_tx

    def bootstrap(self) -> bool:
        """Create the catalog store if missing. Return True if it was created."""
        if self._engine_tx.get_store(CATALOG_STORE) is not None:
            return False
        self._engine_tx.create_store(CATALOG_STORE)
        return True

    def _store(self) -> Store:
        store = self._engine_tx.get_store(CATALOG_STORE)
        if store is None:
            raise ExecError(f"catalog store '{CATALOG_STORE}' is missing")
        return store

    def _find(self, name: str) -> tuple[DocumentKey, TableInfo] | None:
        for key, doc in self._store().iterate():
            info = TableInfo.from_document(doc)
            if info.name == name:
                return key, info
        return None

    def get(self, name: str) -> TableInfo | None:
        found = self._find(name)
        return found[1] if found else None

    def add(self, info: TableInfo) -> None:
        store = self._store()
        store.put(store.next_key(), info.to_document())

    def remove(self, name: str) -> TableInfo | None:
        found = self._find(name)
        if found is None:
            return None
        key, info = found
        self._store().delete(key)
        return info

    def names(self) -> list[str]:
        return sorted(TableInfo.from_document(doc).name for _, doc in self._store().iterate())


def new_table_info(name: str, fields: tuple[str, ...]) -> TableInfo:
    """Build metadata for a new table stored under its own name."""
    return TableInfo(name=name, store_name=name, fields=tuple(fields))
