"""
LLM Rerank Stage

Scores candidates with an LLM judge and merges the judge score into the
running score.

Algorithm:
    1. Fetch candidate records and enrichment lists (batched store calls)
    2. Partition candidates into batches of batch_size
    3. `parallelism` worker tasks drain a queue of batches; each batch is one
       judge call with its own timeout
    4. Join: judge scores are reassembled by candidate id, then merged in
       incoming order with the named merge function
    5. Sort by merged score (stable), apply min_score, then top_k

Failure semantics:
    - Timeout, unparseable output, or any non-outage error: the batch's
      candidates get the default judge score, are marked degraded, and a
      BatchDiagnostic is recorded. The stage still completes.
    - An evaluation missing for an item degrades that item only.
    - ProviderUnavailableError (judge outage) propagates and cancels the
      remaining workers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from ragforge.errors import JudgeResponseError, ProviderUnavailableError
from ragforge.query.prompt import RERANK_SYSTEM_PROMPT, build_rerank_prompt
from ragforge.query.scoring import clamp_score, get_merger, resolve_weights
from ragforge.query.types import RerankResponse
from ragforge.types.candidates import Candidate, CandidateSet, sort_by_score
from ragforge.types.results import BatchDiagnostic

if TYPE_CHECKING:
    from ragforge.config.settings import RFConfig
    from ragforge.storage.base import GraphStore
    from ragforge.types.context import EntityContext
    from ragforge.types.stages import RerankStage

logger = logging.getLogger(__name__)

# Judge score given to candidates of a failed batch (see RFConfig.rerank_degraded_score)
DEGRADED_LLM_SCORE = 0.0


class _Judgement(BaseModel):
    score: float
    reasoning: str | None = None
    degraded: bool = False


class _BatchOutcome(BaseModel):
    judgements: dict[str, _Judgement]
    diagnostic: BatchDiagnostic | None = None


def parse_evaluations(response: Any, batch_size: int) -> dict[int, tuple[float, str | None]]:
    """
    Map a judge response to batch positions.

    Accepts a RerankResponse or anything RerankResponse can validate
    (dict, JSON string). Unknown or out-of-range ids are ignored.

    Raises:
        JudgeResponseError: If the response cannot be parsed
    """
    try:
        if isinstance(response, RerankResponse):
            parsed = response
        elif isinstance(response, (str, bytes)):
            parsed = RerankResponse.model_validate_json(response)
        elif isinstance(response, BaseModel):
            parsed = RerankResponse.model_validate(response.model_dump())
        else:
            parsed = RerankResponse.model_validate(response)
    except ValidationError as exc:
        raise JudgeResponseError(f"Unparseable judge response: {exc}") from exc

    found: dict[int, tuple[float, str | None]] = {}
    for evaluation in parsed.evaluations:
        raw_id = str(evaluation.id).strip().strip("[]")
        if raw_id.lower().startswith("item"):
            raw_id = raw_id[4:].strip()
        try:
            position = int(raw_id)
        except ValueError:
            continue
        if 0 <= position < batch_size and position not in found:
            found[position] = (clamp_score(evaluation.score), evaluation.reasoning)
    return found


class LLMReranker:
    """
    Rerank stage backed by an LLMProvider judge.

    The judge is the stage's own provider; the reranker only needs the
    store (records, enrichments) and configuration (timeouts, defaults).
    """

    def __init__(self, store: "GraphStore", config: "RFConfig") -> None:
        self.store = store
        self.config = config

    @property
    def degraded_score(self) -> float:
        return self.config.rerank_degraded_score

    # -------------------------------------------------------------------------
    # Prompt inputs
    # -------------------------------------------------------------------------

    async def resolve_enrichments(
        self,
        ids: list[str],
        context: "EntityContext",
    ) -> dict[str, dict[str, list[Any]]]:
        """
        Resolve graph-derived enrichment lists.

        One neighbour lookup per graph enrichment plus one record fetch for
        the neighbours. Enrichments without a relationship are read from the
        record itself at render time.

        Returns:
            id -> enrichment field_name -> values
        """
        resolved: dict[str, dict[str, list[Any]]] = {node_id: {} for node_id in ids}
        for enrichment in context.enrichments:
            if enrichment.relationship_type is None:
                continue
            adjacency = await self.store.neighbors(
                ids, enrichment.relationship_type, enrichment.direction
            )
            neighbor_ids = sorted({n for nodes in adjacency.values() for n in nodes})
            records = await self.store.get_entities(neighbor_ids) if neighbor_ids else {}
            for node_id in ids:
                resolved[node_id][enrichment.field_name] = [
                    records.get(n, {}).get(enrichment.target_field, n)
                    for n in adjacency.get(node_id, [])
                ]
        return resolved

    async def build_prompts(
        self,
        question: str,
        candidates: list[Candidate],
        context: "EntityContext",
        batch_size: int,
    ) -> list[str]:
        """Render the judge prompt of every batch (used by preview and run)."""
        ids = [c.id for c in candidates]
        records = await self.store.get_entities(ids, context.type)
        enrichments = await self.resolve_enrichments(ids, context)

        prompts = []
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start : start + batch_size]
            prompts.append(
                build_rerank_prompt(
                    question,
                    context,
                    [records.get(c.id, {context.id_field: c.id}) for c in batch],
                    [enrichments.get(c.id, {}) for c in batch],
                )
            )
        return prompts

    # -------------------------------------------------------------------------
    # Judging
    # -------------------------------------------------------------------------

    def _degrade(
        self,
        batch: list[Candidate],
        stage_index: int,
        batch_index: int,
        error_type: str,
        message: str,
    ) -> _BatchOutcome:
        logger.warning(
            f"Rerank batch {batch_index} of stage {stage_index} degraded "
            f"({error_type}): {message}"
        )
        return _BatchOutcome(
            judgements={
                c.id: _Judgement(score=self.degraded_score, degraded=True) for c in batch
            },
            diagnostic=BatchDiagnostic(
                stage_index=stage_index,
                batch_index=batch_index,
                candidate_ids=[c.id for c in batch],
                error_type=error_type,
                message=message,
            ),
        )

    async def judge_batch(
        self,
        stage: "RerankStage",
        prompt: str,
        batch: list[Candidate],
        *,
        stage_index: int,
        batch_index: int,
    ) -> _BatchOutcome:
        """
        Run one judge call and classify its failure, if any.

        Raises:
            ProviderUnavailableError: When the judge provider is down
        """
        logger.debug(f"Rerank batch {batch_index} prompt:\n{prompt}")
        try:
            response = await asyncio.wait_for(
                stage.provider.generate_structured(
                    prompt, RerankResponse, system=RERANK_SYSTEM_PROMPT
                ),
                timeout=self.config.llm_timeout,
            )
            evaluations = parse_evaluations(response, len(batch))
        except ProviderUnavailableError:
            raise
        except (asyncio.TimeoutError, TimeoutError):
            return self._degrade(
                batch, stage_index, batch_index, "timeout",
                f"Judge call timed out after {self.config.llm_timeout}s",
            )
        except (JudgeResponseError, ValidationError, ValueError) as exc:
            return self._degrade(batch, stage_index, batch_index, "parse_error", str(exc))
        except Exception as exc:
            return self._degrade(
                batch, stage_index, batch_index, "error", f"{type(exc).__name__}: {exc}"
            )

        judgements: dict[str, _Judgement] = {}
        missing: list[str] = []
        for position, candidate in enumerate(batch):
            if position in evaluations:
                score, reasoning = evaluations[position]
                judgements[candidate.id] = _Judgement(score=score, reasoning=reasoning)
            else:
                missing.append(candidate.id)
                judgements[candidate.id] = _Judgement(score=self.degraded_score, degraded=True)

        diagnostic = None
        if missing:
            logger.warning(
                f"Rerank batch {batch_index} of stage {stage_index}: "
                f"no evaluation for {len(missing)} item(s)"
            )
            diagnostic = BatchDiagnostic(
                stage_index=stage_index,
                batch_index=batch_index,
                candidate_ids=missing,
                error_type="missing_evaluation",
                message=f"Judge returned no evaluation for {len(missing)} of {len(batch)} items",
            )
        return _BatchOutcome(judgements=judgements, diagnostic=diagnostic)

    async def _run_pool(
        self,
        stage: "RerankStage",
        prompts: list[str],
        batches: list[list[Candidate]],
        stage_index: int,
    ) -> list[_BatchOutcome]:
        """Bounded worker pool: `parallelism` workers drain a queue of batch indices."""
        queue: asyncio.Queue[int] = asyncio.Queue()
        for batch_index in range(len(batches)):
            queue.put_nowait(batch_index)

        outcomes: list[_BatchOutcome | None] = [None] * len(batches)

        async def worker() -> None:
            while True:
                try:
                    batch_index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcomes[batch_index] = await self.judge_batch(
                    stage,
                    prompts[batch_index],
                    batches[batch_index],
                    stage_index=stage_index,
                    batch_index=batch_index,
                )

        workers = [
            asyncio.create_task(worker())
            for _ in range(min(stage.parallelism, len(batches)))
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        return [outcome for outcome in outcomes if outcome is not None]

    async def run(
        self,
        stage: "RerankStage",
        incoming: CandidateSet,
        *,
        entity_context: "EntityContext",
        label: str,
        stage_index: int,
    ) -> tuple[CandidateSet, list[BatchDiagnostic]]:
        """
        Apply the stage.

        Returns:
            (reranked candidate set, diagnostics of degraded batches)
        """
        candidates = list(incoming.candidates)
        weights = resolve_weights(
            stage.weights,
            self.config.default_weights(),
            normalize=self.config.rerank_normalize_weights,
        )
        merge = get_merger(stage.score_merging)

        batches = [
            candidates[start : start + stage.batch_size]
            for start in range(0, len(candidates), stage.batch_size)
        ]
        prompts = await self.build_prompts(
            stage.question, candidates, entity_context, stage.batch_size
        )
        outcomes = await self._run_pool(stage, prompts, batches, stage_index)

        # Join by candidate id, independent of batch completion order
        judgements: dict[str, _Judgement] = {}
        diagnostics: list[BatchDiagnostic] = []
        for outcome in outcomes:
            judgements.update(outcome.judgements)
            if outcome.diagnostic is not None:
                diagnostics.append(outcome.diagnostic)
        diagnostics.sort(key=lambda d: d.batch_index)

        merged: list[Candidate] = []
        for candidate in candidates:
            judgement = judgements[candidate.id]
            merged.append(
                candidate.with_score(
                    label,
                    judgement.score,
                    merged=merge(candidate, judgement.score, weights),
                    reasoning=judgement.reasoning,
                    degraded=judgement.degraded,
                )
            )

        ranked = sort_by_score(merged)
        if stage.min_score is not None:
            ranked = [c for c in ranked if c.score >= stage.min_score]
        if stage.top_k is not None:
            ranked = ranked[: stage.top_k]

        logger.info(
            f"Rerank ({stage.score_merging}): {len(ranked)}/{len(candidates)} kept, "
            f"{len(batches)} batches, {len(diagnostics)} degraded"
        )
        return incoming.replace(ranked), diagnostics
