"""Value objects for the document database domain.

Exports:
    Identifiers:
        - DocumentKey: Key of a document inside a table
        - TransactionId: Type-safe transaction identifier
        - INVALID_TXN_ID: Sentinel value

    Transaction Types:
        - TransactionState: Transaction lifecycle states (ACTIVE, COMMITTED, ROLLED_BACK)
"""

from docdb.domain.value_objects.identifiers import (
    INVALID_TXN_ID,
    DocumentKey,
    TransactionId,
)
from docdb.domain.value_objects.transaction_types import TransactionState

__all__ = [
    "DocumentKey",
    "TransactionId",
    "INVALID_TXN_ID",
    "TransactionState",
]
