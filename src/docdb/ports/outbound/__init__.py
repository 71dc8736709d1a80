"""Outbound ports - interfaces for external dependencies.

The database façade consumes a storage engine through these narrow
contracts only.
"""

from docdb.ports.outbound.engine import Engine, EngineTransaction, Store

__all__ = [
    "Engine",
    "EngineTransaction",
    "Store",
]
