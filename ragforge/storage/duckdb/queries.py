"""
DuckDB Query Layer

SQL over the Parquet node and relationship datasets. Structural predicates
are compiled to parameterised SQL; values never enter the query text.
"""

import asyncio
import threading
from pathlib import Path
from typing import Any

import duckdb

from ragforge.errors import StoreQueryError
from ragforge.types.context import Direction
from ragforge.types.predicates import AllOf, FieldPredicate, RelationshipPredicate

# Column tagging each node row with its entity type
NODE_TYPE_COLUMN = "_entity_type"


def quote_ident(name: str) -> str:
    """Quote a column name for DuckDB."""
    return '"' + name.replace('"', '""') + '"'


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _escape_path(path: Path) -> str:
    return str(path).replace("'", "''")


class PredicateCompiler:
    """
    Compile predicates into a SQL boolean expression over the nodes view.

    Args:
        columns: Column name -> DuckDB type of the nodes view
        id_column: Name of the entity key column
        has_relationships: Whether the relationships view exists

    A property absent from the data compiles to FALSE, matching the rule
    that a missing property never satisfies a comparison.
    """

    def __init__(
        self,
        columns: dict[str, str],
        id_column: str,
        has_relationships: bool,
    ) -> None:
        self.columns = columns
        self.id_column = id_column
        self.has_relationships = has_relationships

    def compile(
        self,
        predicate: FieldPredicate | RelationshipPredicate | AllOf,
        alias: str = "n",
    ) -> tuple[str, list[Any]]:
        if isinstance(predicate, FieldPredicate):
            return self._compile_field(predicate, alias)
        if isinstance(predicate, AllOf):
            parts: list[str] = []
            params: list[Any] = []
            for p in predicate.predicates:
                sql, p_params = self.compile(p, alias)
                parts.append(f"({sql})")
                params.extend(p_params)
            return (" AND ".join(parts) or "TRUE"), params
        return self._compile_relationship(predicate, alias)

    def _compile_field(self, pred: FieldPredicate, alias: str) -> tuple[str, list[Any]]:
        if pred.field not in self.columns:
            return "FALSE", []

        col = f"{alias}.{quote_ident(pred.field)}"
        is_list = self.columns[pred.field].endswith("[]")
        op = pred.op
        value = pred.value

        if op == "eq":
            return f"{col} = ?", [value]
        if op == "ne":
            return f"{col} <> ?", [value]
        if op == "in":
            values = list(value)
            if not values:
                return "FALSE", []
            placeholders = ",".join("?" for _ in values)
            return f"{col} IN ({placeholders})", values
        if op == "contains":
            if is_list:
                return f"list_contains({col}, ?)", [value]
            return (
                f"CAST({col} AS VARCHAR) LIKE ? ESCAPE '\\'",
                [f"%{_escape_like(str(value))}%"],
            )
        if op == "starts_with":
            return (
                f"CAST({col} AS VARCHAR) LIKE ? ESCAPE '\\'",
                [f"{_escape_like(str(value))}%"],
            )
        if op == "ends_with":
            return (
                f"CAST({col} AS VARCHAR) LIKE ? ESCAPE '\\'",
                [f"%{_escape_like(str(value))}"],
            )

        sql_op = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<="}[op]
        return f"{col} {sql_op} ?", [value]

    def _compile_relationship(
        self, pred: RelationshipPredicate, alias: str
    ) -> tuple[str, list[Any]]:
        if not self.has_relationships:
            return "FALSE", []

        node_key = f"{alias}.{quote_ident(self.id_column)}"
        clauses: list[str] = []
        params: list[Any] = []

        pairs = []
        if pred.direction in ("outgoing", "both"):
            pairs.append(("from_id", "to_id"))
        if pred.direction in ("incoming", "both"):
            pairs.append(("to_id", "from_id"))

        for near, far in pairs:
            sql = (
                "EXISTS (SELECT 1 FROM relationships r "
                f"WHERE r.rel_type = ? AND r.{near} = {node_key}"
            )
            clause_params: list[Any] = [pred.relationship_type]
            if pred.target is not None:
                target_sql, target_params = self._compile_field(pred.target, "t")
                sql += (
                    " AND EXISTS (SELECT 1 FROM nodes t "
                    f"WHERE t.{quote_ident(self.id_column)} = r.{far} AND {target_sql})"
                )
                clause_params.extend(target_params)
            sql += ")"
            clauses.append(sql)
            params.extend(clause_params)

        return " OR ".join(clauses), params


class DuckDBQueries:
    """
    DuckDB query layer for the Parquet datasets.

    Views:
        - nodes: every node part file, unioned by column name. When the same
          id was written more than once, the newest part file wins.
        - relationships: distinct (from_id, to_id, rel_type) rows

    Thread safety:
        Uses thread-local storage for connections since DuckDB connections
        are not thread-safe and asyncio.to_thread() may use different threads.

    DuckDB reads Parquet files directly without loading into memory.
    """

    def __init__(self, kb_path: Path, id_column: str = "uuid") -> None:
        self.kb_path = kb_path
        self.id_column = id_column
        self._local = threading.local()
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize DuckDB (marks as ready, connections created per-thread)."""
        self._initialized = True

    async def close(self) -> None:
        """Close the current thread's DuckDB connection."""
        self._initialized = False
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _get_conn(self) -> duckdb.DuckDBPyConnection:
        """Get thread-local DuckDB connection, creating if needed."""
        if not self._initialized:
            raise RuntimeError("DuckDB not initialized. Call initialize() first.")

        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = duckdb.connect()
            self._local.conn = conn
        return conn

    @staticmethod
    def _has_parts(path: Path) -> bool:
        return path.is_dir() and any(path.glob("*.parquet"))

    def _refresh_views(self, conn: duckdb.DuckDBPyConnection) -> tuple[bool, bool]:
        """
        Re-register views over the current part files.

        Returns:
            (nodes view exists, relationships view exists)
        """
        nodes_path = self.kb_path / "nodes"
        rels_path = self.kb_path / "relationships"
        has_nodes = self._has_parts(nodes_path)
        has_rels = self._has_parts(rels_path)

        if has_nodes:
            glob = _escape_path(nodes_path / "*.parquet")
            key = quote_ident(self.id_column)
            conn.execute(f"""
                CREATE OR REPLACE VIEW nodes AS
                SELECT * EXCLUDE (filename)
                FROM read_parquet('{glob}', union_by_name = true, filename = true)
                QUALIFY row_number() OVER (PARTITION BY {key} ORDER BY filename DESC) = 1
            """)
        if has_rels:
            glob = _escape_path(rels_path / "*.parquet")
            conn.execute(f"""
                CREATE OR REPLACE VIEW relationships AS
                SELECT DISTINCT from_id, to_id, rel_type
                FROM read_parquet('{glob}', union_by_name = true)
            """)
        return has_nodes, has_rels

    def _node_columns(self, conn: duckdb.DuckDBPyConnection) -> dict[str, str]:
        rows = conn.execute("DESCRIBE nodes").fetchall()
        return {str(row[0]): str(row[1]) for row in rows}

    def _where_clause(
        self,
        conn: duckdb.DuckDBPyConnection,
        has_rels: bool,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None,
        restrict_ids: list[str] | None,
    ) -> tuple[str, list[Any]]:
        clauses = [f"n.{quote_ident(NODE_TYPE_COLUMN)} = ?"]
        params: list[Any] = [entity_type]
        if predicate is not None:
            compiler = PredicateCompiler(self._node_columns(conn), self.id_column, has_rels)
            sql, p_params = compiler.compile(predicate, "n")
            clauses.append(f"({sql})")
            params.extend(p_params)
        if restrict_ids is not None:
            placeholders = ",".join("?" for _ in restrict_ids)
            clauses.append(f"n.{quote_ident(self.id_column)} IN ({placeholders})")
            params.extend(restrict_ids)
        return " AND ".join(clauses), params

    # -------------------------------------------------------------------------
    # Node Queries
    # -------------------------------------------------------------------------

    async def query_ids(
        self,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None = None,
        restrict_ids: list[str] | None = None,
    ) -> list[str]:
        """Ids of entity_type matching predicate, ascending."""
        if restrict_ids is not None and not restrict_ids:
            return []

        def _query() -> list[str]:
            conn = self._get_conn()
            has_nodes, has_rels = self._refresh_views(conn)
            if not has_nodes:
                return []
            where, params = self._where_clause(
                conn, has_rels, entity_type, predicate, restrict_ids
            )
            key = quote_ident(self.id_column)
            try:
                rows = conn.execute(
                    f"SELECT n.{key} FROM nodes n WHERE {where} ORDER BY n.{key}",
                    params,
                ).fetchall()
            except duckdb.Error as exc:
                raise StoreQueryError(f"Structural query on {entity_type} failed: {exc}") from exc
            return [str(row[0]) for row in rows]

        return await asyncio.to_thread(_query)

    async def count(
        self,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None = None,
    ) -> int:
        """Number of entity_type nodes matching predicate."""
        def _query() -> int:
            conn = self._get_conn()
            has_nodes, has_rels = self._refresh_views(conn)
            if not has_nodes:
                return 0
            where, params = self._where_clause(conn, has_rels, entity_type, predicate, None)
            try:
                row = conn.execute(
                    f"SELECT COUNT(*) FROM nodes n WHERE {where}", params
                ).fetchone()
            except duckdb.Error as exc:
                raise StoreQueryError(f"Count on {entity_type} failed: {exc}") from exc
            return int(row[0]) if row else 0

        return await asyncio.to_thread(_query)

    async def get_entities(
        self,
        ids: list[str],
        entity_type: str | None = None,
    ) -> dict[str, dict[str, Any]]:
        """Fetch records by id. Columns that are NULL for a row are omitted."""
        if not ids:
            return {}

        def _query() -> dict[str, dict[str, Any]]:
            conn = self._get_conn()
            has_nodes, _ = self._refresh_views(conn)
            if not has_nodes:
                return {}

            key = quote_ident(self.id_column)
            placeholders = ",".join("?" for _ in ids)
            sql = f"SELECT * FROM nodes WHERE {key} IN ({placeholders})"
            params: list[Any] = list(ids)
            if entity_type is not None:
                sql += f" AND {quote_ident(NODE_TYPE_COLUMN)} = ?"
                params.append(entity_type)

            try:
                cursor = conn.execute(sql, params)
                col_names = [desc[0] for desc in cursor.description]
                rows = cursor.fetchall()
            except duckdb.Error as exc:
                raise StoreQueryError(f"Entity lookup failed: {exc}") from exc

            records: dict[str, dict[str, Any]] = {}
            for row in rows:
                record = {
                    name: value
                    for name, value in zip(col_names, row)
                    if name != NODE_TYPE_COLUMN and value is not None
                }
                records[str(record[self.id_column])] = record
            return records

        return await asyncio.to_thread(_query)

    async def entity_types(self) -> list[str]:
        """Distinct entity types present in the nodes dataset."""
        def _query() -> list[str]:
            conn = self._get_conn()
            has_nodes, _ = self._refresh_views(conn)
            if not has_nodes:
                return []
            col = quote_ident(NODE_TYPE_COLUMN)
            rows = conn.execute(
                f"SELECT DISTINCT {col} FROM nodes ORDER BY {col}"
            ).fetchall()
            return [str(row[0]) for row in rows]

        return await asyncio.to_thread(_query)

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    async def neighbors(
        self,
        ids: list[str],
        relationship_type: str,
        direction: Direction = "outgoing",
    ) -> dict[str, list[str]]:
        """One-hop neighbours for many ids in a single query."""
        result: dict[str, list[str]] = {node_id: [] for node_id in ids}
        if not ids:
            return result

        def _query() -> dict[str, list[str]]:
            conn = self._get_conn()
            _, has_rels = self._refresh_views(conn)
            if not has_rels:
                return result

            placeholders = ",".join("?" for _ in ids)
            selects: list[str] = []
            params: list[Any] = []
            if direction in ("outgoing", "both"):
                selects.append(
                    "SELECT from_id AS src, to_id AS dst FROM relationships "
                    f"WHERE rel_type = ? AND from_id IN ({placeholders})"
                )
                params.extend([relationship_type, *ids])
            if direction in ("incoming", "both"):
                selects.append(
                    "SELECT to_id AS src, from_id AS dst FROM relationships "
                    f"WHERE rel_type = ? AND to_id IN ({placeholders})"
                )
                params.extend([relationship_type, *ids])

            sql = " UNION ".join(selects) + " ORDER BY src, dst"
            try:
                rows = conn.execute(sql, params).fetchall()
            except duckdb.Error as exc:
                raise StoreQueryError(
                    f"Neighbour lookup along {relationship_type} failed: {exc}"
                ) from exc

            for src, dst in rows:
                bucket = result.setdefault(str(src), [])
                if dst not in bucket:
                    bucket.append(str(dst))
            return result

        return await asyncio.to_thread(_query)
