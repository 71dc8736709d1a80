"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Inbound adapters: turn query text into executable plans
- Outbound adapters: storage engines (in-memory, file-backed)
"""

from docdb.adapters.outbound import FileEngine, MemoryEngine

__all__ = [
    "FileEngine",
    "MemoryEngine",
]
