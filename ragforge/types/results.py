"""
Result Types

Types returned from pipeline execution and emitted by telemetry.

API Result Models:
    - SearchResult: One entity with its score and provenance
    - PipelineResult: Ordered results plus degradation signal and timing
    - BatchDiagnostic: Why one rerank batch fell back to default scores

Telemetry Models:
    - UsageRecord: One provider call (embedding or judge)
"""

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, Field

from ragforge.types.candidates import RelatedEntity


class ResultContext(BaseModel):
    """Context attached to a result by expansion stages."""

    related: list[RelatedEntity] = []


class SearchResult(BaseModel):
    """
    Final projection of a candidate.

    Attributes:
        id: Stable key of the entity
        entity: Full entity record from the store
        score: Final merged score
        score_breakdown: Stage label -> contributed score
        context: Related entities attached by expand() stages
        reasoning: Stage label -> judge reasoning
        degraded: True when a rerank stage fell back to the default score
    """

    id: str
    entity: dict[str, Any]
    score: float
    score_breakdown: dict[str, float] = {}
    context: ResultContext = Field(default_factory=ResultContext)
    reasoning: dict[str, str] = {}
    degraded: bool = False


class BatchDiagnostic(BaseModel):
    """
    A rerank batch that was absorbed instead of raised.

    Attributes:
        stage_index: Position of the rerank stage in the pipeline
        batch_index: Position of the batch within the stage
        candidate_ids: Candidates that received the default score
        error_type: "timeout", "parse_error", "missing_evaluation" or "error"
        message: Human-readable description of the failure
    """

    stage_index: int
    batch_index: int
    candidate_ids: list[str]
    error_type: str
    message: str


class PipelineResult(BaseModel):
    """
    Result of QueryPipeline.execute().

    Attributes:
        entity_type: Entity type that was queried
        results: Results sorted by descending score
        partial: True if any candidate carries a degraded rerank score
        diagnostics: One entry per degraded rerank batch
        timing: Stage label -> elapsed milliseconds
        total_candidates: Candidates surviving the last stage (before offset/limit)
    """

    entity_type: str
    results: list[SearchResult] = []
    partial: bool = False
    diagnostics: list[BatchDiagnostic] = []
    timing: dict[str, int] = {}
    total_candidates: int = 0

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[SearchResult]:  # type: ignore[override]
        return iter(self.results)

    def __getitem__(self, index: int) -> SearchResult:
        return self.results[index]

    def ids(self) -> list[str]:
        return [r.id for r in self.results]

    @property
    def total_time_ms(self) -> int:
        """Total execution time in milliseconds."""
        return sum(self.timing.values())


class UsageRecord(BaseModel):
    """One provider call observed by request telemetry."""

    provider: str
    model: str
    operation: str
    stage: str
    latency_ms: int
    ok: bool = True
    input_count: int = 1
    metadata: dict[str, Any] = {}
