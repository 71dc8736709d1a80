"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Outbound ports: dependencies on external systems (the storage engine)

Adapters implement these ports with concrete functionality.
"""

from docdb.ports.outbound import Engine, EngineTransaction, Store

__all__ = [
    "Engine",
    "EngineTransaction",
    "Store",
]
