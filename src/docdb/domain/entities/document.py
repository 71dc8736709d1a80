"""Documents - ordered mappings of field name to value.

A Document is what a query yields for each row. Two flavours exist:

- live views handed out by result cursors, valid only until the cursor
  advances or closes;
- detached FieldBuffer copies, which own their data and stay valid for as
  long as the caller keeps them.

FieldBuffer.scan_document() turns any document into a detached copy.
"""

from __future__ import annotations

import copy
from abc import abstractmethod
from collections.abc import Mapping
from typing import Any, Iterator

from docdb.domain.errors import FieldNotFoundError


class Document(Mapping[str, Any]):
    """Read access to a document by field name.

    Subclasses implement get_by_field() and iterate(); the Mapping
    protocol (``doc["name"]``, ``doc.get()``, ``dict(doc)``, ``==``) is
    derived from them. Field order is insertion order.
    """

    @abstractmethod
    def get_by_field(self, field: str) -> Any:
        """Return the value of a field.

        Raises:
            FieldNotFoundError: If the document has no such field.
        """
        ...

    @abstractmethod
    def iterate(self) -> Iterator[tuple[str, Any]]:
        """Yield (field, value) pairs in field order."""
        ...

    def __getitem__(self, field: str) -> Any:
        return self.get_by_field(field)

    def __iter__(self) -> Iterator[str]:
        for field, _ in self.iterate():
            yield field

    def __len__(self) -> int:
        return sum(1 for _ in self.iterate())

    def to_dict(self) -> dict[str, Any]:
        """Return a plain dict copy of the document."""
        return {field: copy.deepcopy(value) for field, value in self.iterate()}

    def __repr__(self) -> str:
        pairs = ", ".join(f"{f}={v!r}" for f, v in self.iterate())
        return f"{type(self).__name__}({pairs})"


class FieldBuffer(Document):
    """A detached document that owns its fields.

    Example:
        >>> fb = FieldBuffer()
        >>> fb.add("name", "Alice").add("age", 30)
        FieldBuffer(name='Alice', age=30)
        >>> fb["age"]
        30
    """

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        self._fields: dict[str, Any] = {}
        if fields is not None:
            for field, value in fields.items():
                self.add(field, value)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> FieldBuffer:
        """Build a detached copy of any document or mapping."""
        fb = cls()
        fb.scan_document(doc)
        return fb

    def get_by_field(self, field: str) -> Any:
        try:
            return self._fields[field]
        except KeyError:
            raise FieldNotFoundError(field) from None

    def iterate(self) -> Iterator[tuple[str, Any]]:
        return iter(list(self._fields.items()))

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field: object) -> bool:
        return field in self._fields

    def add(self, field: str, value: Any) -> FieldBuffer:
        """Append a field, replacing the value if the field already exists."""
        if not isinstance(field, str) or not field:
            raise ValueError(f"field name must be a non-empty string, got {field!r}")
        self._fields[field] = value
        return self

    def set(self, field: str, value: Any) -> None:
        """Replace the value of an existing field.

        Raises:
            FieldNotFoundError: If the field does not exist.
        """
        if field not in self._fields:
            raise FieldNotFoundError(field)
        self._fields[field] = value

    def delete(self, field: str) -> None:
        """Remove a field.

        Raises:
            FieldNotFoundError: If the field does not exist.
        """
        if field not in self._fields:
            raise FieldNotFoundError(field)
        del self._fields[field]

    def reset(self) -> None:
        """Remove all fields."""
        self._fields.clear()

    def scan_document(self, doc: Mapping[str, Any]) -> None:
        """Copy every field of doc into this buffer.

        Values are deep-copied so the buffer never shares mutable state with
        the source, which may be a live view over cursor storage.
        """
        items = doc.iterate() if isinstance(doc, Document) else doc.items()
        for field, value in items:
            self.add(field, copy.deepcopy(value))

    def copy(self) -> FieldBuffer:
        """Return a deep copy of this buffer."""
        return FieldBuffer.from_document(self)
