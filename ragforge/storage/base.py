"""
Abstract Graph Store Interface

Defines the read contract the retrieval pipeline consumes. Population of
the store (ingestion, sync) is outside this contract; concrete stores
expose their own write methods.

Query kinds:
    (a) Structural: ids of one entity type matching a predicate
    (b) Traversal: one-hop neighbour lookup, batched over many ids
    (c) Vector: nearest neighbours in a named index, as (id, similarity)

Errors:
    - IndexMissingError when a named vector index does not exist
    - StoreUnavailableError when the store is temporarily unavailable
    - StoreQueryError for any other query failure
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ragforge.types.context import Direction
    from ragforge.types.predicates import AllOf, FieldPredicate, RelationshipPredicate


class GraphStore(ABC):
    """
    Abstract interface for graph stores.

    Lifecycle:
        store = ParquetGraphStore(path)
        await store.initialize()
        # ... queries ...
        await store.close()

    Or using context manager:
        async with ParquetGraphStore(path) as store:
            ids = await store.query_ids("Scope", predicate)

    Determinism:
        Every method returns results in a stable order (ids ascending, or
        similarity descending with ids ascending as tie-break) so repeated
        runs over unchanged data produce identical pipelines.
    """

    @property
    @abstractmethod
    def id_field(self) -> str:
        """Property holding the stable entity key."""
        ...

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize storage (create directories, open connections)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close storage and release resources."""
        ...

    async def __aenter__(self) -> "GraphStore":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Structural Queries
    # -------------------------------------------------------------------------

    @abstractmethod
    async def query_ids(
        self,
        entity_type: str,
        predicate: "FieldPredicate | RelationshipPredicate | AllOf | None" = None,
        *,
        restrict_ids: list[str] | None = None,
    ) -> list[str]:
        """
        Return ids of entity_type matching predicate, ascending.

        Args:
            entity_type: Entity type to query
            predicate: Structural predicate (None matches every entity)
            restrict_ids: Only consider these ids (None = whole corpus)
        """
        ...

    @abstractmethod
    async def count(
        self,
        entity_type: str,
        predicate: "FieldPredicate | RelationshipPredicate | AllOf | None" = None,
    ) -> int:
        """Number of entities of entity_type matching predicate."""
        ...

    @abstractmethod
    async def get_entities(
        self,
        ids: list[str],
        entity_type: str | None = None,
    ) -> dict[str, dict[str, Any]]:
        """
        Fetch full records by id.

        Args:
            ids: Ids to fetch (unknown ids are omitted from the result)
            entity_type: Restrict to one entity type (None = any type)

        Returns:
            Mapping id -> record
        """
        ...

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    @abstractmethod
    async def neighbors(
        self,
        ids: list[str],
        relationship_type: str,
        direction: "Direction" = "outgoing",
    ) -> dict[str, list[str]]:
        """
        One-hop neighbours of many nodes in a single batched query.

        Returns:
            Mapping id -> neighbour ids (ascending, deduplicated). Ids with
            no neighbours map to an empty list.
        """
        ...

    # -------------------------------------------------------------------------
    # Vector Search
    # -------------------------------------------------------------------------

    @abstractmethod
    async def has_index(self, index_name: str) -> bool:
        """Whether the named vector index exists."""
        ...

    @abstractmethod
    async def vector_search(
        self,
        index_name: str,
        vector: list[float],
        limit: int,
        *,
        min_score: float = 0.0,
        restrict_ids: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        """
        Nearest neighbours by cosine similarity.

        Args:
            index_name: Named vector index
            vector: Query vector
            limit: Maximum hits returned
            min_score: Drop hits below this similarity (applied before limit)
            restrict_ids: Only consider these ids

        Returns:
            (id, similarity) pairs, similarity descending

        Raises:
            IndexMissingError: If the index does not exist
        """
        ...
