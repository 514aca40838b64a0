"""
Hybrid Retrieval Pipeline

Executes a validated, immutable list of stages against one entity type:
    1. Stages run strictly in append order, each consuming the previous
       stage's candidate set (None before the first stage = whole corpus)
    2. An empty candidate set short-circuits the remaining stages
    3. Projection: stable sort by score, offset/limit, then one batched
       record fetch for the page

Features:
    - Per-stage timing (PipelineResult.timing) and telemetry stage labels
    - Rerank degradation reported as data (partial + diagnostics)
    - Stateless: concurrent execute() calls share no mutable state
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ragforge.errors import PipelineValidationError
from ragforge.query.stages import (
    LLMReranker,
    RelationshipExpander,
    SemanticSearcher,
    StructuralFilter,
)
from ragforge.query.validation import stage_labels, validate_stages
from ragforge.types.candidates import CandidateSet, sort_by_score
from ragforge.types.predicates import AllOf
from ragforge.types.results import (
    BatchDiagnostic,
    PipelineResult,
    ResultContext,
    SearchResult,
)
from ragforge.types.stages import ExpandStage, FilterStage, RerankStage, SemanticStage
from ragforge.utils.telemetry import telemetry_stage

if TYPE_CHECKING:
    from ragforge.config.settings import RFConfig
    from ragforge.providers.base import EmbeddingProvider, LLMProvider
    from ragforge.storage.base import GraphStore
    from ragforge.types.context import EntityContext
    from ragforge.types.stages import PipelineStage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryRuntime:
    """Collaborators shared by every pipeline a client builds."""

    store: "GraphStore"
    config: "RFConfig"
    embeddings: "EmbeddingProvider | None" = None
    llm: "LLMProvider | None" = None
    ensure_ready: "Callable[[], Awaitable[None]] | None" = None
    """Awaited before any store access (lazy store initialization)"""


class QueryPipeline:
    """
    A compiled pipeline: validated stages plus pagination.

    Built by QueryBuilder.build(); holds no mutable state.
    """

    def __init__(
        self,
        runtime: QueryRuntime,
        context: "EntityContext",
        stages: tuple["PipelineStage", ...],
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> None:
        validate_stages(
            stages,
            context,
            runtime.config,
            has_embeddings=runtime.embeddings is not None,
        )
        if limit is not None and limit < 0:
            raise PipelineValidationError(f"limit must be non-negative, got {limit}")
        if offset < 0:
            raise PipelineValidationError(f"offset must be non-negative, got {offset}")

        self._runtime = runtime
        self._context = context
        self._stages = stages
        self._labels = tuple(stage_labels(stages))
        self._limit = limit
        self._offset = offset

    @property
    def entity_type(self) -> str:
        return self._context.type

    @property
    def stages(self) -> tuple["PipelineStage", ...]:
        return self._stages

    @property
    def labels(self) -> tuple[str | None, ...]:
        """Breakdown label of each stage (None for stages that record no score)."""
        return self._labels

    # -------------------------------------------------------------------------
    # Stage execution
    # -------------------------------------------------------------------------

    async def _ensure_ready(self) -> None:
        if self._runtime.ensure_ready is not None:
            await self._runtime.ensure_ready()

    def _score_label(self, index: int) -> str:
        label = self._labels[index]
        if label is None:
            raise PipelineValidationError(
                f"stage {self._stages[index].kind} records no score", stage_index=index
            )
        return label

    async def run_stages(
        self,
        stop: int | None = None,
    ) -> tuple[CandidateSet, dict[str, int], list[BatchDiagnostic]]:
        """
        Run stages [0, stop) in order.

        Returns:
            (final candidate set, timing per stage, rerank diagnostics)
        """
        await self._ensure_ready()
        runtime = self._runtime
        stages = self._stages if stop is None else self._stages[:stop]
        timing: dict[str, int] = {}
        diagnostics: list[BatchDiagnostic] = []
        candidates: CandidateSet | None = None

        for index, stage in enumerate(stages):
            if candidates is not None and candidates.is_empty():
                logger.info(
                    f"Empty candidate set after stage {index - 1}; "
                    f"skipping {len(stages) - index} remaining stage(s)"
                )
                break

            key = f"{index}:{stage.kind}"
            label = self._labels[index]
            size_in = len(candidates) if candidates is not None else None
            start = time.perf_counter_ns()

            with telemetry_stage(key):
                if isinstance(stage, FilterStage):
                    candidates = await StructuralFilter(runtime.store).run(
                        stage, candidates, entity_type=self.entity_type, label=label
                    )
                elif isinstance(stage, SemanticStage):
                    if runtime.embeddings is None:
                        raise PipelineValidationError(
                            "semantic search requires an embedding provider", stage_index=index
                        )
                    searcher = SemanticSearcher(runtime.store, runtime.embeddings, runtime.config)
                    candidates = await searcher.run(
                        stage,
                        candidates,
                        entity_context=self._context,
                        label=self._score_label(index),
                    )
                elif candidates is None:
                    raise PipelineValidationError(
                        f"a pipeline must open with filter or semantic search, not {stage.kind}",
                        stage_index=index,
                    )
                elif isinstance(stage, ExpandStage):
                    candidates = await RelationshipExpander(runtime.store).run(stage, candidates)
                elif isinstance(stage, RerankStage):
                    reranker = LLMReranker(runtime.store, runtime.config)
                    candidates, stage_diagnostics = await reranker.run(
                        stage,
                        candidates,
                        entity_context=self._context,
                        label=self._score_label(index),
                        stage_index=index,
                    )
                    diagnostics.extend(stage_diagnostics)

            elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
            timing[key] = elapsed_ms
            logger.info(
                f"Stage {key}: "
                f"{'corpus' if size_in is None else size_in} -> {len(candidates)} candidates, "
                f"{elapsed_ms}ms"
            )

        if candidates is None:
            candidates = CandidateSet(entity_type=self.entity_type)
        return candidates, timing, diagnostics

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def execute(self) -> PipelineResult:
        """
        Run the pipeline and project the final candidates.

        Raises:
            ProviderUnavailableError: Embedding or judge provider outage
            StoreQueryError: Store failure (IndexMissingError for absent indices)
        """
        candidates, timing, diagnostics = await self.run_stages()

        start = time.perf_counter_ns()
        ranked = sort_by_score(candidates.candidates)
        end = None if self._limit is None else self._offset + self._limit
        page = ranked[self._offset : end]

        records = (
            await self._runtime.store.get_entities([c.id for c in page], self.entity_type)
            if page
            else {}
        )
        id_field = self._runtime.store.id_field
        results = [
            SearchResult(
                id=c.id,
                entity=records.get(c.id, {id_field: c.id}),
                score=c.score,
                score_breakdown=dict(c.score_breakdown),
                context=ResultContext(related=list(c.related)),
                reasoning=dict(c.reasoning),
                degraded=c.degraded,
            )
            for c in page
        ]
        timing["projection"] = (time.perf_counter_ns() - start) // 1_000_000

        if diagnostics:
            logger.warning(
                f"Pipeline on {self.entity_type} completed with "
                f"{len(diagnostics)} degraded rerank batch(es)"
            )

        return PipelineResult(
            entity_type=self.entity_type,
            results=results,
            partial=bool(diagnostics),
            diagnostics=diagnostics,
            timing=timing,
            total_candidates=len(ranked),
        )

    async def count(self) -> int:
        """
        Number of results the pipeline yields before offset/limit.

        Filter-only pipelines are answered by a single store count.
        """
        await self._ensure_ready()
        if all(isinstance(stage, FilterStage) for stage in self._stages):
            predicates = [stage.predicate for stage in self._stages]  # type: ignore[union-attr]
            predicate = predicates[0] if len(predicates) == 1 else AllOf(predicates=predicates)
            return await self._runtime.store.count(self.entity_type, predicate)

        candidates, _, _ = await self.run_stages()
        return len(candidates)

    async def preview_prompt(self, question: str | None = None) -> str:
        """
        Render the judge prompt for the first batch, without calling the judge.

        With a rerank stage, the stages before the last rerank run and its
        question and batch size are used. Without one, every stage runs and
        `question` is required.

        Raises:
            PipelineValidationError: If there is no rerank stage and no question
        """
        rerank_index = None
        rerank: RerankStage | None = None
        for index, stage in enumerate(self._stages):
            if isinstance(stage, RerankStage):
                rerank_index, rerank = index, stage

        if rerank is not None:
            candidates, _, _ = await self.run_stages(stop=rerank_index)
            judge_question = question or rerank.question
            batch_size = rerank.batch_size
        else:
            if not question:
                raise PipelineValidationError(
                    "preview_prompt() needs a question when the pipeline has no rerank stage"
                )
            candidates, _, _ = await self.run_stages()
            judge_question = question
            batch_size = self._runtime.config.rerank_batch_size

        reranker = LLMReranker(self._runtime.store, self._runtime.config)
        first_batch = list(candidates.candidates[:batch_size])
        prompts = await reranker.build_prompts(
            judge_question, first_batch, self._context, batch_size
        )
        if not prompts:
            return ""
        return prompts[0]
