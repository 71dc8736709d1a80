"""Type-safe identifiers for the document database."""

from __future__ import annotations

from typing import NewType

DocumentKey = NewType("DocumentKey", int)
"""Key of a document within its table. Monotonically increasing per table."""

TransactionId = NewType("TransactionId", int)
"""Unique identifier for a transaction handle. Monotonically increasing per database."""

INVALID_TXN_ID = TransactionId(0)
