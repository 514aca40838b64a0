"""
In-Memory Graph Store

Dict-backed GraphStore for tests, notebooks and small corpora. Vector
search is exact cosine similarity computed with numpy.
"""

import asyncio
from collections import defaultdict
from typing import Any

import numpy as np

from ragforge.errors import IndexMissingError
from ragforge.storage.base import GraphStore
from ragforge.types.context import Direction
from ragforge.types.predicates import AllOf, FieldPredicate, RelationshipPredicate


class MemoryGraphStore(GraphStore):
    """
    GraphStore held entirely in process memory.

    Structure:
        nodes:          id -> (entity_type, record)
        edges:          (from_id, rel_type) -> {to_id}, plus the reverse map
        vector indices: index_name -> {id: unit vector}

    Example:
        >>> store = MemoryGraphStore()
        >>> store.add_nodes("Scope", [{"uuid": "a", "name": "parse"}])
        >>> store.add_relationship("a", "b", "CONSUMES")
        >>> store.add_embeddings("scopeEmbeddingsSource", {"a": [0.1, 0.2]})
    """

    def __init__(self, id_field: str = "uuid") -> None:
        self._id_field = id_field
        self._nodes: dict[str, tuple[str, dict[str, Any]]] = {}
        self._out: dict[tuple[str, str], set[str]] = defaultdict(set)
        self._in: dict[tuple[str, str], set[str]] = defaultdict(set)
        self._indices: dict[str, dict[str, np.ndarray]] = {}

    @property
    def id_field(self) -> str:
        return self._id_field

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_nodes(self, entity_type: str, records: list[dict[str, Any]]) -> None:
        """Insert or replace records of one entity type."""
        for record in records:
            node_id = str(record[self._id_field])
            self._nodes[node_id] = (entity_type, dict(record))

    def add_relationship(self, from_id: str, to_id: str, rel_type: str) -> None:
        """Add a directed edge."""
        self._out[(from_id, rel_type)].add(to_id)
        self._in[(to_id, rel_type)].add(from_id)

    def create_index(self, index_name: str) -> None:
        """Create an empty vector index."""
        self._indices.setdefault(index_name, {})

    def add_embeddings(self, index_name: str, vectors: dict[str, list[float]]) -> None:
        """Add vectors to an index (created on first use)."""
        index = self._indices.setdefault(index_name, {})
        for node_id, vector in vectors.items():
            arr = np.asarray(vector, dtype=np.float64)
            norm = np.linalg.norm(arr)
            index[node_id] = arr / norm if norm > 0 else arr

    # -------------------------------------------------------------------------
    # Structural Queries
    # -------------------------------------------------------------------------

    def _matches(
        self,
        node_id: str,
        record: dict[str, Any],
        predicate: FieldPredicate | RelationshipPredicate | AllOf,
    ) -> bool:
        if isinstance(predicate, FieldPredicate):
            return predicate.matches(record)
        if isinstance(predicate, AllOf):
            return all(self._matches(node_id, record, p) for p in predicate.predicates)

        others = self._neighbors_of(node_id, predicate.relationship_type, predicate.direction)
        if predicate.target is None:
            return bool(others)
        for other in others:
            node = self._nodes.get(other)
            if node is not None and predicate.target.matches(node[1]):
                return True
        return False

    def _neighbors_of(self, node_id: str, rel_type: str, direction: Direction) -> set[str]:
        found: set[str] = set()
        if direction in ("outgoing", "both"):
            found |= self._out.get((node_id, rel_type), set())
        if direction in ("incoming", "both"):
            found |= self._in.get((node_id, rel_type), set())
        return found

    async def query_ids(
        self,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None = None,
        *,
        restrict_ids: list[str] | None = None,
    ) -> list[str]:
        allowed = set(restrict_ids) if restrict_ids is not None else None
        matched = []
        for node_id, (node_type, record) in self._nodes.items():
            if node_type != entity_type:
                continue
            if allowed is not None and node_id not in allowed:
                continue
            if predicate is None or self._matches(node_id, record, predicate):
                matched.append(node_id)
        return sorted(matched)

    async def count(
        self,
        entity_type: str,
        predicate: FieldPredicate | RelationshipPredicate | AllOf | None = None,
    ) -> int:
        return len(await self.query_ids(entity_type, predicate))

    async def get_entities(
        self,
        ids: list[str],
        entity_type: str | None = None,
    ) -> dict[str, dict[str, Any]]:
        found: dict[str, dict[str, Any]] = {}
        for node_id in ids:
            node = self._nodes.get(node_id)
            if node is None:
                continue
            if entity_type is not None and node[0] != entity_type:
                continue
            found[node_id] = dict(node[1])
        return found

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    async def neighbors(
        self,
        ids: list[str],
        relationship_type: str,
        direction: Direction = "outgoing",
    ) -> dict[str, list[str]]:
        return {
            node_id: sorted(self._neighbors_of(node_id, relationship_type, direction))
            for node_id in ids
        }

    # -------------------------------------------------------------------------
    # Vector Search
    # -------------------------------------------------------------------------

    async def has_index(self, index_name: str) -> bool:
        return index_name in self._indices

    async def vector_search(
        self,
        index_name: str,
        vector: list[float],
        limit: int,
        *,
        min_score: float = 0.0,
        restrict_ids: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        index = self._indices.get(index_name)
        if index is None:
            raise IndexMissingError(index_name)

        def _search() -> list[tuple[str, float]]:
            if restrict_ids is not None:
                ids = sorted(i for i in set(restrict_ids) if i in index)
            else:
                ids = sorted(index)
            if not ids or limit <= 0:
                return []

            query = np.asarray(vector, dtype=np.float64)
            norm = np.linalg.norm(query)
            if norm > 0:
                query = query / norm
            matrix = np.vstack([index[i] for i in ids])
            scores = matrix @ query

            hits = [
                (node_id, float(score))
                for node_id, score in zip(ids, scores)
                if score >= min_score
            ]
            hits.sort(key=lambda h: (-h[1], h[0]))
            return hits[:limit]

        return await asyncio.to_thread(_search)
