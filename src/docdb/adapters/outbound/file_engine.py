"""File-backed storage engine.

FileEngine keeps the MemoryEngine's copy-on-write behaviour and writes
a full JSON snapshot of the committed version to a single file on every
commit. The snapshot is loaded back when the engine is constructed.

File Format:
    {
        "format": "docdb",
        "version": 1,
        "stores": {
            "<store>": {"sequence": <int>, "records": {"<key>": {<field>: <value>}}}
        }
    }

Durability:
    The snapshot is written to a temporary file, fsynced and moved over
    the previous one with os.replace(), so a crash leaves either the old
    or the new snapshot on disk. If writing fails, commit raises
    TransactionError and the committed version in memory is unchanged.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

from docdb.adapters.outbound.memory_engine import MemoryEngine, StoreData
from docdb.domain.entities import FieldBuffer
from docdb.domain.errors import InitError, TransactionError
from docdb.domain.value_objects import DocumentKey
from docdb.infrastructure.logging import get_logger

logger = get_logger(__name__)

FILE_FORMAT = "docdb"
FILE_VERSION = 1


class FileEngine(MemoryEngine):
    """Engine persisting committed data to a JSON file.

    Attributes:
        path: Path to the database file.
    """

    def __init__(self, path: str | Path, lock_timeout: float | None = 5.0) -> None:
        """Open (or create) a file-backed engine.

        Args:
            path: Path to the database file. Created on first commit.
            lock_timeout: See MemoryEngine.

        Raises:
            InitError: If an existing file cannot be read or decoded.
        """
        super().__init__(lock_timeout=lock_timeout)
        self._path = Path(path)
        if self._path.exists():
            self._stores = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, StoreData]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            raise InitError(f"Cannot read database file {self._path}: {e}") from e

        if (
            not isinstance(payload, dict)
            or payload.get("format") != FILE_FORMAT
            or payload.get("version") != FILE_VERSION
        ):
            raise InitError(f"Unsupported database file format: {self._path}")

        try:
            stores = self._decode_stores(payload.get("stores", {}))
        except (AttributeError, TypeError, ValueError) as e:
            raise InitError(f"Corrupt database file {self._path}: {e}") from e

        logger.debug("database file loaded", path=str(self._path), stores=len(stores))
        return stores

    @staticmethod
    def _decode_stores(raw_stores: Any) -> Dict[str, StoreData]:
        stores: Dict[str, StoreData] = {}
        for name, raw in raw_stores.items():
            records = {}
            for key, fields in raw.get("records", {}).items():
                if not isinstance(fields, dict):
                    raise TypeError(f"record {key!r} of store {name!r} is not an object")
                records[DocumentKey(int(key))] = FieldBuffer(fields)
            stores[name] = StoreData(records=records, sequence=int(raw.get("sequence", 0)))
        return stores

    def _install(self, stores: Dict[str, StoreData]) -> None:
        try:
            self._persist(stores)
        except (OSError, TypeError, ValueError) as e:
            raise TransactionError(f"Failed to persist commit to {self._path}: {e}") from e
        super()._install(stores)

    def _persist(self, stores: Dict[str, StoreData]) -> None:
        payload: dict[str, Any] = {
            "format": FILE_FORMAT,
            "version": FILE_VERSION,
            "stores": {
                name: {
                    "sequence": data.sequence,
                    "records": {str(key): doc.to_dict() for key, doc in data.records.items()},
                }
                for name, data in stores.items()
            },
        }
        encoded = json.dumps(payload)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(encoded)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self._path)
