"""
LanceDB Vector Indices

One LanceDB table per named vector index (e.g. scopeEmbeddingsSignature,
scopeEmbeddingsSource). Each table holds (id, vector) rows.
"""

import asyncio
import threading
from pathlib import Path

import lancedb

from ragforge.errors import IndexMissingError, StoreQueryError


class LanceDBIndices:
    """
    Manages LanceDB vector indices for similarity search.

    Tables:
        <index_name>: (id: string, vector: fixed-size float list)

    Thread safety:
        Uses thread-local storage for connections since LanceDB connections
        may not be thread-safe and asyncio.to_thread() may use different threads.

    LanceDB returns cosine distance; similarity is reported as 1 - distance.
    """

    @staticmethod
    def _escape_sql_string(value: str) -> str:
        """Escape single quotes for SQL WHERE clauses."""
        return value.replace("'", "''")

    def __init__(self, lancedb_path: Path, metric: str = "cosine") -> None:
        self.path = lancedb_path
        self.metric = metric
        self._local = threading.local()
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize LanceDB (marks as ready, connections created per-thread)."""
        if self._initialized:
            return

        def _init() -> None:
            self.path.mkdir(parents=True, exist_ok=True)

        await asyncio.to_thread(_init)
        self._initialized = True

    async def close(self) -> None:
        """Close LanceDB connections."""
        self._initialized = False
        if hasattr(self._local, "db"):
            self._local.db = None

    def _get_db(self) -> lancedb.DBConnection:
        """Get thread-local LanceDB connection, creating if needed."""
        if not self._initialized:
            raise RuntimeError("LanceDB not initialized. Call initialize() first.")

        db = getattr(self._local, "db", None)
        if db is None:
            db = lancedb.connect(str(self.path))
            self._local.db = db
        return db

    @staticmethod
    def _table_names(db: lancedb.DBConnection) -> set[str]:
        """
        Return table names across LanceDB API variants.

        Recent LanceDB returns a response object from list_tables() with a
        `tables` attribute, while older versions return a plain list.
        """
        listed = db.list_tables()
        tables = getattr(listed, "tables", listed)
        return {str(name) for name in tables}

    def _has_table(self, db: lancedb.DBConnection, table_name: str) -> bool:
        """Check table existence in a LanceDB-version-safe way."""
        return table_name in self._table_names(db)

    async def has_index(self, index_name: str) -> bool:
        def _check() -> bool:
            return self._has_table(self._get_db(), index_name)

        return await asyncio.to_thread(_check)

    def add_vectors(
        self,
        index_name: str,
        ids: list[str],
        vectors: list[list[float]],
    ) -> None:
        """
        Upsert vectors into an index, creating the table on first write.

        Args:
            index_name: Vector index (table) name
            ids: Entity ids
            vectors: One vector per id
        """
        if not ids:
            return
        if len(ids) != len(vectors):
            raise ValueError(
                f"ids and vectors differ in length ({len(ids)} != {len(vectors)})"
            )

        db = self._get_db()
        data = [
            {"id": node_id, "vector": [float(x) for x in vector]}
            for node_id, vector in zip(ids, vectors)
        ]

        if self._has_table(db, index_name):
            table = db.open_table(index_name)
            (
                table.merge_insert("id")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(data)
            )
        else:
            db.create_table(index_name, data)

    async def search(
        self,
        index_name: str,
        vector: list[float],
        limit: int,
        min_score: float = 0.0,
        restrict_ids: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        """
        Nearest neighbours in one index.

        Returns (id, similarity) pairs, similarity descending with id as
        tie-break. min_score is applied to the ranked hits, so it acts
        before the limit.

        Raises:
            IndexMissingError: If the table does not exist
            StoreQueryError: On any LanceDB failure
        """
        if limit <= 0 or (restrict_ids is not None and not restrict_ids):
            return []

        def _search() -> list[tuple[str, float]]:
            db = self._get_db()
            if not self._has_table(db, index_name):
                raise IndexMissingError(index_name)

            try:
                table = db.open_table(index_name)
                query = table.search(vector).distance_type(self.metric)
                if restrict_ids is not None:
                    id_list = ", ".join(
                        f"'{self._escape_sql_string(i)}'" for i in restrict_ids
                    )
                    query = query.where(f"id IN ({id_list})", prefilter=True)
                results = query.limit(limit).to_arrow()
            except Exception as exc:
                raise StoreQueryError(
                    f"Vector search on {index_name} failed: {exc}"
                ) from exc

            output: list[tuple[str, float]] = []
            ids = results.column("id")
            distances = results.column("_distance")
            for i in range(results.num_rows):
                # Cosine distance = 1 - similarity
                similarity = 1 - float(distances[i].as_py())
                if similarity >= min_score:
                    output.append((str(ids[i].as_py()), similarity))
            output.sort(key=lambda hit: (-hit[1], hit[0]))
            return output

        return await asyncio.to_thread(_search)
