"""
Graph Stores

The read contract the retrieval pipeline consumes, plus two implementations.

Modules:
    base: Abstract GraphStore interface
    memory/: In-process store (numpy cosine search)
    parquet/: Embedded store over Parquet datasets
    duckdb/: Predicate compilation and SQL over Parquet
    lancedb/: Named vector indices

Knowledge Base Directory Structure (ParquetGraphStore):
    my_kb/
    ├── metadata.json           # KB metadata and schema version
    ├── nodes/                  # Node part files, all entity types
    ├── relationships/          # Edge part files
    └── lancedb/                # One table per vector index
        ├── scopeEmbeddingsSignature.lance/
        └── scopeEmbeddingsSource.lance/

Design Principles:
    - Zero infrastructure (embedded databases)
    - Portable (knowledge base is just a directory)
    - Fast (DuckDB for relational, LanceDB for vectors)
"""

from ragforge.storage.base import GraphStore
from ragforge.storage.memory.backend import MemoryGraphStore
from ragforge.storage.parquet.backend import ParquetGraphStore

__all__ = [
    "GraphStore",
    "MemoryGraphStore",
    "ParquetGraphStore",
]
