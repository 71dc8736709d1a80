"""Table metadata stored in the database catalog."""

from __future__ import annotations

from dataclasses import dataclass, field

from docdb.domain.entities.document import Document, FieldBuffer


@dataclass(frozen=True)
class TableInfo:
    """Metadata describing a table.

    Attributes:
        name: Table name as used in queries.
        store_name: Name of the engine store holding the table's documents.
        fields: Declared field names, in declaration order. Tables are
            schemaless; declared fields only drive INSERT without a column list.
    """

    name: str
    store_name: str
    fields: tuple[str, ...] = field(default_factory=tuple)

    def to_document(self) -> FieldBuffer:
        """Encode this metadata as a catalog document."""
        return FieldBuffer(
            {
                "name": self.name,
                "store_name": self.store_name,
                "fields": list(self.fields),
            }
        )

    @classmethod
    def from_document(cls, doc: Document) -> TableInfo:
        """Decode catalog document into TableInfo."""
        return cls(
            name=doc["name"],
            store_name=doc["store_name"],
            fields=tuple(doc.get("fields") or ()),
        )
