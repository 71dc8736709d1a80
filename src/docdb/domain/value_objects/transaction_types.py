"""Transaction lifecycle states."""

from __future__ import annotations

from enum import Enum, auto


class TransactionState(Enum):
    """Transaction lifecycle states.

    State machine:

        ACTIVE ──commit() ok──────> COMMITTED      (writable only)
        ACTIVE ──commit() failed──> ACTIVE         (caller must still roll back)
        ACTIVE ──rollback()───────> ROLLED_BACK

    COMMITTED and ROLLED_BACK are terminal. Rolling back a terminal
    transaction is a no-op, which makes an unconditional rollback a safe
    cleanup step after an explicit commit.
    """

    ACTIVE = auto()
    """Transaction is running and can execute operations."""

    COMMITTED = auto()
    """Transaction has committed. Its changes are visible to later transactions."""

    ROLLED_BACK = auto()
    """Transaction has been rolled back. All of its changes were discarded."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (COMMITTED or ROLLED_BACK)."""
        return self in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)

    def is_active(self) -> bool:
        """Check if transaction can still perform operations."""
        return self == TransactionState.ACTIVE
