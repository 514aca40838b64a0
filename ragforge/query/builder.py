"""
Fluent Query Builder

Chainable, immutable construction of hybrid retrieval pipelines.

Every chain method returns a NEW builder holding `stages + (stage,)`, so a
partially built query can be branched safely:

    >>> base = client.query("Scope").where(type="function")
    >>> by_signature = base.semantic_search("signature", "parse file", top_k=20)
    >>> by_source = base.semantic_search("source", "parse file", top_k=20)
    >>> len(base.stages)
    1

Terminal methods:
    - build(): Static validation, returns an immutable QueryPipeline
    - execute(): build() then run
    - count(): build() then count final results (before limit/offset)
    - preview_prompt(): build() then render the first judge prompt
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Callable

from pydantic import ValidationError

from ragforge.errors import PipelineValidationError
from ragforge.query.pipeline import QueryPipeline, QueryRuntime
from ragforge.types.predicates import FieldPredicate, RelationshipPredicate, where
from ragforge.types.stages import ExpandStage, FilterStage, RerankStage, SemanticStage

if TYPE_CHECKING:
    from ragforge.providers.base import LLMProvider
    from ragforge.types.context import Direction, EntityContext
    from ragforge.types.predicates import Predicate
    from ragforge.types.results import PipelineResult
    from ragforge.types.stages import PipelineStage


class QueryBuilder:
    """
    Immutable pipeline builder for one entity type.

    Obtained from RagClient.query(entity_type); never mutated after creation.
    """

    __slots__ = ("_runtime", "_context", "_stages", "_limit", "_offset")

    def __init__(
        self,
        runtime: QueryRuntime,
        context: "EntityContext",
        stages: tuple["PipelineStage", ...] = (),
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> None:
        self._runtime = runtime
        self._context = context
        self._stages = stages
        self._limit = limit
        self._offset = offset

    def __repr__(self) -> str:
        kinds = " -> ".join(stage.kind for stage in self._stages) or "(empty)"
        return f"QueryBuilder({self._context.type}: {kinds})"

    @property
    def entity_type(self) -> str:
        return self._context.type

    @property
    def stages(self) -> tuple["PipelineStage", ...]:
        return self._stages

    def _copy(self, **changes: Any) -> "QueryBuilder":
        state = {
            "stages": self._stages,
            "limit": self._limit,
            "offset": self._offset,
            **changes,
        }
        return QueryBuilder(
            self._runtime,
            self._context,
            state["stages"],
            limit=state["limit"],
            offset=state["offset"],
        )

    def _append(self, stage: "PipelineStage") -> "QueryBuilder":
        return self._copy(stages=(*self._stages, stage))

    # -------------------------------------------------------------------------
    # Chain methods
    # -------------------------------------------------------------------------

    def filter(self, predicate: "Predicate") -> "QueryBuilder":
        """Append a structural filter stage."""
        return self._append(FilterStage(predicate=predicate))

    def where(self, **conditions: Any) -> "QueryBuilder":
        """
        Append a filter from keyword conditions.

        Example:
            >>> builder.where(type="function", file={"contains": "ingest"})

        Raises:
            PipelineValidationError: On an empty condition set or unknown operator
        """
        try:
            predicate = where(**conditions)
        except (ValueError, ValidationError) as exc:
            raise PipelineValidationError(str(exc), stage_index=len(self._stages)) from exc
        return self.filter(predicate)

    def related_to(
        self,
        name: Any,
        relationship_type: str,
        direction: "Direction" = "outgoing",
        *,
        field: str = "name",
    ) -> "QueryBuilder":
        """
        Keep entities with a relationship to a node whose `field` equals `name`.

        Example:
            >>> builder.related_to("Neo4jClient", "CONSUMES")
        """
        return self.filter(
            RelationshipPredicate(
                relationship_type=relationship_type,
                direction=direction,
                target=FieldPredicate(field=field, op="eq", value=name),
            )
        )

    def semantic_search(
        self,
        field: str,
        text: str,
        *,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> "QueryBuilder":
        """
        Append a vector search stage over the embedding field `field`.

        Args:
            field: Embedding field of the entity type (e.g. "signature")
            text: Query text to embed
            top_k: Maximum candidates kept (default: config.query_default_top_k)
            min_score: Similarity floor (default: config.query_default_min_score)
        """
        config = self._runtime.config
        try:
            stage = SemanticStage(
                field=field,
                query_text=text,
                top_k=config.query_default_top_k if top_k is None else top_k,
                min_score=config.query_default_min_score if min_score is None else min_score,
            )
        except ValidationError as exc:
            raise PipelineValidationError(str(exc), stage_index=len(self._stages)) from exc
        return self._append(stage)

    def semantic_by(self, field: str) -> Callable[..., "QueryBuilder"]:
        """
        Return semantic_search bound to one embedding field.

        Example:
            >>> by_source = builder.semantic_by("source")
            >>> by_source("validate syntax", top_k=10)
        """
        return partial(self.semantic_search, field)

    def expand(
        self,
        relationship_type: str,
        *,
        direction: "Direction" = "outgoing",
        depth: int | None = None,
    ) -> "QueryBuilder":
        """Append a relationship expansion stage (context only, scores untouched)."""
        try:
            stage = ExpandStage(
                relationship_type=relationship_type,
                direction=direction,
                depth=self._runtime.config.query_expand_depth if depth is None else depth,
            )
        except ValidationError as exc:
            raise PipelineValidationError(str(exc), stage_index=len(self._stages)) from exc
        return self._append(stage)

    def rerank(
        self,
        question: str,
        provider: "LLMProvider | None" = None,
        *,
        batch_size: int | None = None,
        parallelism: int | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
        score_merging: str | None = None,
        weights: dict[str, float] | None = None,
    ) -> "QueryBuilder":
        """
        Append an LLM rerank stage.

        Args:
            question: Relevance question put to the judge
            provider: Judge LLMProvider (default: the client's LLM)
            batch_size: Candidates per judge call
            parallelism: Maximum concurrent judge calls
            top_k: Keep at most this many candidates after merging
            min_score: Drop candidates whose merged score is below this
            score_merging: Registered merge function ("weighted", "replace", ...)
            weights: Merge weights keyed "vector" and "llm"
        """
        config = self._runtime.config
        try:
            stage = RerankStage(
                question=question,
                provider=provider if provider is not None else self._runtime.llm,
                batch_size=config.rerank_batch_size if batch_size is None else batch_size,
                parallelism=config.rerank_parallelism if parallelism is None else parallelism,
                top_k=top_k,
                min_score=min_score,
                score_merging=(
                    config.rerank_score_merging if score_merging is None else score_merging
                ),
                weights=weights,
            )
        except ValidationError as exc:
            raise PipelineValidationError(str(exc), stage_index=len(self._stages)) from exc
        return self._append(stage)

    def limit(self, n: int) -> "QueryBuilder":
        """Return at most n results from execute()."""
        if n < 0:
            raise PipelineValidationError(f"limit must be non-negative, got {n}")
        return self._copy(limit=n)

    def offset(self, n: int) -> "QueryBuilder":
        """Skip the first n results of execute()."""
        if n < 0:
            raise PipelineValidationError(f"offset must be non-negative, got {n}")
        return self._copy(offset=n)

    # -------------------------------------------------------------------------
    # Terminal methods
    # -------------------------------------------------------------------------

    def build(self) -> QueryPipeline:
        """
        Validate every stage and compile an immutable pipeline.

        Raises:
            PipelineValidationError: On the first invalid stage (no I/O performed)
        """
        return QueryPipeline(
            self._runtime,
            self._context,
            self._stages,
            limit=self._limit,
            offset=self._offset,
        )

    async def execute(self) -> "PipelineResult":
        """Build and run the pipeline."""
        return await self.build().execute()

    async def count(self) -> int:
        """Number of final results before limit/offset."""
        return await self.build().count()

    async def preview_prompt(self, question: str | None = None) -> str:
        """Render the first judge prompt without calling the judge."""
        return await self.build().preview_prompt(question)
