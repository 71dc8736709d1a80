"""Outbound adapters - storage engines implementing the Engine port."""

from docdb.adapters.outbound.file_engine import FileEngine
from docdb.adapters.outbound.memory_engine import MemoryEngine

__all__ = [
    "FileEngine",
    "MemoryEngine",
]
