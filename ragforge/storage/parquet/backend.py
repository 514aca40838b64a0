"""
Parquet Graph Store

Orchestrates Parquet file writing, LanceDB vector indices, and DuckDB queries.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import pyarrow as pa
import pyarrow.parquet as pq
from filelock import FileLock, Timeout

from ragforge.config import RFConfig
from ragforge.errors import StoreUnavailableError
from ragforge.storage.base import GraphStore
from ragforge.storage.duckdb.queries import NODE_TYPE_COLUMN, DuckDBQueries
from ragforge.storage.lancedb.indices import LanceDBIndices
from ragforge.types.context import Direction
from ragforge.types.predicates import AllOf, FieldPredicate, RelationshipPredicate

logger = logging.getLogger(__name__)


class ParquetGraphStore(GraphStore):
    """
    Parquet-based graph store.

    Directory structure:
        kb_path/
        ├── nodes/              part-*.parquet (_entity_type, <id_field>, properties...)
        ├── relationships/      part-*.parquet (from_id, to_id, rel_type, created_at)
        ├── lancedb/
        │   ├── scopeEmbeddingsSignature.lance/
        │   └── scopeEmbeddingsSource.lance/
        └── metadata.json

    Writes:
        Append immutable part files under a file lock (.kb.lock). Writing a
        node id again supersedes the earlier row (newest part file wins).

    Thread safety:
        - Write operations use file locking (.kb.lock)
        - Read operations are concurrent-safe (Parquet is immutable)
    """

    SCHEMA_VERSION = "1.0.0"

    def __init__(
        self,
        kb_path: Path | str,
        config: RFConfig | None = None,
        id_field: str = "uuid",
    ) -> None:
        self._kb_path = Path(kb_path)
        self.config = config or RFConfig()
        self._id_field = id_field
        self._lock = FileLock(
            self._kb_path / ".kb.lock", timeout=self.config.store_lock_timeout
        )
        self._lancedb = LanceDBIndices(
            self._kb_path / "lancedb", metric=self.config.lancedb_metric
        )
        self._duckdb = DuckDBQueries(self._kb_path, id_column=id_field)
        self._initialized = False

    @property
    def id_field(self) -> str:
        return self._id_field

    @property
    def kb_path(self) -> Path:
        """Return the path to the knowledge base directory."""
        return self._kb_path

    async def initialize(self) -> None:
        """Initialize storage backend."""
        if self._initialized:
            return

        def _init() -> None:
            self.kb_path.mkdir(parents=True, exist_ok=True)
            self._write_metadata_if_missing()

        await asyncio.to_thread(_init)
        await self._lancedb.initialize()
        await self._duckdb.initialize()
        self._initialized = True

    async def close(self) -> None:
        """Close storage backend."""
        await self._lancedb.close()
        await self._duckdb.close()
        self._initialized = False

    def _write_metadata_if_missing(self) -> None:
        """Create metadata.json if it doesn't exist."""
        meta_path = self.kb_path / "metadata.json"
        if not meta_path.exists():
            metadata = {
                "schema_version": self.SCHEMA_VERSION,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "id_field": self._id_field,
                "embedding_dimensions": self.config.embedding_dimensions,
            }
            meta_path.write_text(json.dumps(metadata, indent=2))

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def _run_locked(self, fn: Any) -> None:
        try:
            with self._lock:
                fn()
        except Timeout as exc:
            raise StoreUnavailableError(
                f"Knowledge base is locked by another writer: {self.kb_path}"
            ) from exc

    async def write_nodes(self, entity_type: str, records: list[dict[str, Any]]) -> None:
        """
        Write node records of one entity type.

        Every record must carry the id field. Records may have different
        property sets; missing properties are stored as NULL.
        """
        if not records:
            return
        for record in records:
            if self._id_field not in record:
                raise ValueError(f"Node record missing id field {self._id_field!r}")

        def _write() -> None:
            columns: list[str] = [NODE_TYPE_COLUMN]
            for record in records:
                for key in record:
                    if key not in columns:
                        columns.append(key)
            data: dict[str, list[Any]] = {col: [] for col in columns}
            for record in records:
                data[NODE_TYPE_COLUMN].append(entity_type)
                for col in columns[1:]:
                    data[col].append(record.get(col))
            data[self._id_field] = [str(v) for v in data[self._id_field]]
            self._append_to_parquet("nodes", pa.Table.from_pydict(data))

        await asyncio.to_thread(self._run_locked, _write)
        logger.debug(f"Wrote {len(records)} {entity_type} nodes")

    async def write_relationships(self, relationships: list[dict[str, Any]]) -> None:
        """Write relationships (edges): dicts with from_id, to_id, rel_type."""
        if not relationships:
            return

        def _write() -> None:
            now = datetime.now(timezone.utc).isoformat()
            data = {
                "from_id": [str(r["from_id"]) for r in relationships],
                "to_id": [str(r["to_id"]) for r in relationships],
                "rel_type": [r["rel_type"] for r in relationships],
                "created_at": [r.get("created_at", now) for r in relationships],
            }
            self._append_to_parquet("relationships", pa.Table.from_pydict(data))

        await asyncio.to_thread(self._run_locked, _write)

    async def write_embeddings(
        self,
        index_name: str,
        ids: list[str],
        vectors: list[list[float]],
    ) -> None:
        """Upsert vectors into a named index (under the write lock)."""
        if not ids:
            return

        def _write() -> None:
            self._lancedb.add_vectors(index_name, ids, vectors)

        await asyncio.to_thread(self._run_locked, _write)
        logger.debug(f"Indexed {len(ids)} vectors into {index_name}")

    def _append_to_parquet(self, table_name: str, table: pa.Table) -> None:
        """Append an immutable part file to a Parquet dataset directory."""
        path = self.kb_path / table_name
        path.mkdir(parents=True, exist_ok=True)

        now_part = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        part_name = f"part-{now_part}-{uuid4().hex}.parquet"
        part_path = path / part_name
        temp_part_path = path / f".{part_name}.tmp"
        pq.write_table(table, temp_part_path, compression=self.config.parquet_compression)
        temp_part_path.replace(part_path)

    # -------------------------------------------------------------------------
    # Read Operations (delegate to DuckDB)
    # -------------------------------------------------------------------------

    async def query_ids(
        self,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None = None,
        *,
        restrict_ids: list[str] | None = None,
    ) -> list[str]:
        return await self._duckdb.query_ids(entity_type, predicate, restrict_ids)

    async def count(
        self,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None = None,
    ) -> int:
        return await self._duckdb.count(entity_type, predicate)

    async def get_entities(
        self,
        ids: list[str],
        entity_type: str | None = None,
    ) -> dict[str, dict[str, Any]]:
        return await self._duckdb.get_entities(ids, entity_type)

    async def entity_types(self) -> list[str]:
        return await self._duckdb.entity_types()

    async def neighbors(
        self,
        ids: list[str],
        relationship_type: str,
        direction: Direction = "outgoing",
    ) -> dict[str, list[str]]:
        return await self._duckdb.neighbors(ids, relationship_type, direction)

    # -------------------------------------------------------------------------
    # Vector Search Operations (delegate to LanceDB)
    # -------------------------------------------------------------------------

    async def has_index(self, index_name: str) -> bool:
        return await self._lancedb.has_index(index_name)

    async def vector_search(
        self,
        index_name: str,
        vector: list[float],
        limit: int,
        *,
        min_score: float = 0.0,
        restrict_ids: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        return await self._lancedb.search(
            index_name,
            vector,
            limit,
            min_score=min_score,
            restrict_ids=restrict_ids,
        )
