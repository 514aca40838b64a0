"""
Type Definitions

Pydantic models for all data structures.

Schema Models:
    - EntityContext, EntityField, EnrichmentField, EmbeddingField
    - ContextRegistry, DEFAULT_SCOPE_CONTEXT

Pipeline Models:
    - FieldPredicate, RelationshipPredicate, AllOf - Structural predicates
    - FilterStage, SemanticStage, ExpandStage, RerankStage - Stage variants
    - Candidate, CandidateSet, RelatedEntity - Values threaded between stages

Result Models:
    - SearchResult, PipelineResult, BatchDiagnostic - execute() output
    - UsageRecord - Provider telemetry

All types are:
    - Pydantic BaseModel subclasses
    - Frozen where they flow between stages
    - Serializable to/from JSON
"""

from ragforge.types.candidates import (
    Candidate,
    CandidateSet,
    RelatedEntity,
    StageKind,
    breakdown_kind,
    sort_by_score,
)
from ragforge.types.context import (
    DEFAULT_SCOPE_CONTEXT,
    ContextRegistry,
    Direction,
    EmbeddingField,
    EnrichmentField,
    EntityContext,
    EntityField,
)
from ragforge.types.predicates import (
    AllOf,
    FieldPredicate,
    Predicate,
    RelationshipPredicate,
    where,
)
from ragforge.types.results import (
    BatchDiagnostic,
    PipelineResult,
    ResultContext,
    SearchResult,
    UsageRecord,
)
from ragforge.types.stages import (
    ExpandStage,
    FilterStage,
    PipelineStage,
    RerankStage,
    SemanticStage,
)

__all__ = [
    # Schema
    "EntityContext",
    "EntityField",
    "EnrichmentField",
    "EmbeddingField",
    "ContextRegistry",
    "DEFAULT_SCOPE_CONTEXT",
    "Direction",
    # Predicates
    "FieldPredicate",
    "RelationshipPredicate",
    "AllOf",
    "Predicate",
    "where",
    # Stages
    "FilterStage",
    "SemanticStage",
    "ExpandStage",
    "RerankStage",
    "PipelineStage",
    # Candidates
    "Candidate",
    "CandidateSet",
    "RelatedEntity",
    "StageKind",
    "breakdown_kind",
    "sort_by_score",
    # Results
    "SearchResult",
    "PipelineResult",
    "ResultContext",
    "BatchDiagnostic",
    "UsageRecord",
]
