"""
LanceDB Vector Storage

Named vector indices for semantic search stages.
"""

from ragforge.storage.lancedb.indices import LanceDBIndices

__all__ = ["LanceDBIndices"]
