"""
Static Pipeline Validation

Checks a full stage list against the active EntityContext before any I/O.
Every failure is a PipelineValidationError carrying the stage index.

Checks:
    - The pipeline is non-empty and opens with a filter or semantic stage
    - Filters reference declared properties and relationships
    - Semantic stages name an embedding field of the entity type
    - Expand stages name a declared relationship and a depth within bounds
    - Rerank stages have a judge, positive batch size and parallelism,
      a registered merge function, and valid weights
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from ragforge.errors import PipelineValidationError
from ragforge.query.scoring import available_mergers, resolve_weights
from ragforge.types.stages import ExpandStage, FilterStage, RerankStage, SemanticStage

if TYPE_CHECKING:
    from ragforge.config.settings import RFConfig
    from ragforge.types.context import EntityContext

# Stages allowed to open a pipeline (they establish the candidate set)
OPENING_STAGES = (FilterStage, SemanticStage)


def stage_labels(stages: Sequence[object]) -> list[str | None]:
    """
    Breakdown label of each stage (None for stages that record no score).

    Only a leading filter records a score. Repeated labels are suffixed
    "#2", "#3", ... so breakdown entries are never overwritten.
    """
    labels: list[str | None] = []
    seen: dict[str, int] = {}
    for index, stage in enumerate(stages):
        if isinstance(stage, FilterStage):
            base = "filter" if index == 0 else None
        elif isinstance(stage, SemanticStage):
            base = f"vector:{stage.field}"
        elif isinstance(stage, RerankStage):
            base = "llm"
        else:
            base = None

        if base is None:
            labels.append(None)
            continue
        seen[base] = seen.get(base, 0) + 1
        labels.append(base if seen[base] == 1 else f"{base}#{seen[base]}")
    return labels


def _validate_filter(stage: FilterStage, index: int, context: "EntityContext") -> None:
    predicate = stage.predicate
    unknown_fields = predicate.field_names() - context.filterable_fields()
    if unknown_fields:
        raise PipelineValidationError(
            f"{context.type} has no field(s) {sorted(unknown_fields)}",
            stage_index=index,
        )
    for rel in sorted(predicate.relationship_types()):
        if not context.has_relationship(rel):
            raise PipelineValidationError(
                f"{context.type} has no relationship {rel!r}", stage_index=index
            )


def _validate_semantic(stage: SemanticStage, index: int, context: "EntityContext") -> None:
    if context.index_for(stage.field) is None:
        raise PipelineValidationError(
            f"{context.type} has no embedding field {stage.field!r} "
            f"(available: {context.embedding_fields()})",
            stage_index=index,
        )
    if not stage.query_text.strip():
        raise PipelineValidationError("query text must not be empty", stage_index=index)
    if stage.top_k <= 0:
        raise PipelineValidationError(
            f"top_k must be positive, got {stage.top_k}", stage_index=index
        )


def _validate_expand(
    stage: ExpandStage, index: int, context: "EntityContext", config: "RFConfig"
) -> None:
    if not context.has_relationship(stage.relationship_type):
        raise PipelineValidationError(
            f"{context.type} has no relationship {stage.relationship_type!r}",
            stage_index=index,
        )
    if not 1 <= stage.depth <= config.query_max_expand_depth:
        raise PipelineValidationError(
            f"depth must be between 1 and {config.query_max_expand_depth}, got {stage.depth}",
            stage_index=index,
        )


def _validate_rerank(stage: RerankStage, index: int, config: "RFConfig") -> None:
    if stage.provider is None or not hasattr(stage.provider, "generate_structured"):
        raise PipelineValidationError(
            "rerank requires an LLM provider with generate_structured()",
            stage_index=index,
        )
    if not stage.question.strip():
        raise PipelineValidationError("judge question must not be empty", stage_index=index)
    if stage.batch_size <= 0:
        raise PipelineValidationError(
            f"batch_size must be positive, got {stage.batch_size}", stage_index=index
        )
    if stage.parallelism <= 0:
        raise PipelineValidationError(
            f"parallelism must be positive, got {stage.parallelism}", stage_index=index
        )
    if stage.top_k is not None and stage.top_k <= 0:
        raise PipelineValidationError(
            f"top_k must be positive, got {stage.top_k}", stage_index=index
        )
    if stage.score_merging not in available_mergers():
        raise PipelineValidationError(
            f"unknown score merging {stage.score_merging!r} "
            f"(available: {available_mergers()})",
            stage_index=index,
        )
    try:
        resolve_weights(
            stage.weights,
            config.default_weights(),
            normalize=config.rerank_normalize_weights,
        )
    except ValueError as exc:
        raise PipelineValidationError(str(exc), stage_index=index) from exc


def validate_stages(
    stages: Sequence[object],
    context: "EntityContext",
    config: "RFConfig",
    *,
    has_embeddings: bool = True,
) -> None:
    """
    Validate a whole pipeline.

    Args:
        stages: Stages in execution order
        context: EntityContext of the queried type
        config: Active configuration (depth bounds, default weights)
        has_embeddings: Whether an embedding provider is available

    Raises:
        PipelineValidationError: On the first invalid stage
    """
    if not stages:
        raise PipelineValidationError("pipeline has no stages")
    if not isinstance(stages[0], OPENING_STAGES):
        kind = getattr(stages[0], "kind", type(stages[0]).__name__)
        raise PipelineValidationError(
            f"a pipeline must open with filter or semantic search, not {kind}",
            stage_index=0,
        )

    for index, stage in enumerate(stages):
        if isinstance(stage, FilterStage):
            _validate_filter(stage, index, context)
        elif isinstance(stage, SemanticStage):
            if not has_embeddings:
                raise PipelineValidationError(
                    "semantic search requires an embedding provider", stage_index=index
                )
            _validate_semantic(stage, index, context)
        elif isinstance(stage, ExpandStage):
            _validate_expand(stage, index, context, config)
        elif isinstance(stage, RerankStage):
            _validate_rerank(stage, index, config)
        else:
            raise PipelineValidationError(
                f"unsupported stage {type(stage).__name__}", stage_index=index
            )
