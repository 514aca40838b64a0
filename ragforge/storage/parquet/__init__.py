"""
Parquet Graph Store

Node and relationship datasets as append-only Parquet part files.

Datasets:
    nodes/:
        _entity_type, <id_field>, plus every property written for the type

    relationships/:
        from_id, to_id, rel_type, created_at
"""

from ragforge.storage.parquet.backend import ParquetGraphStore

__all__ = ["ParquetGraphStore"]
