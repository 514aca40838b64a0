"""
In-Memory Storage

Dict-backed graph store with numpy cosine search.
"""

from ragforge.storage.memory.backend import MemoryGraphStore

__all__ = ["MemoryGraphStore"]
