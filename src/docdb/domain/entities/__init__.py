"""Domain entities for the document database.

Exports:
    Documents:
        - Document: Read-only, ordered mapping of field name to value
        - FieldBuffer: Detached, owned document that can be built and edited
    Tables:
        - TableInfo: Metadata describing a table
"""

from docdb.domain.entities.document import Document, FieldBuffer
from docdb.domain.entities.table_info import TableInfo

__all__ = [
    "Document",
    "FieldBuffer",
    "TableInfo",
]
