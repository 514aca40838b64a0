"""
Candidate Types

The values threaded between pipeline stages.

Models:
    - StageKind: Closed set of score-contributing stage kinds
    - RelatedEntity: An entity reached by relationship expansion
    - Candidate: One scored id with its per-stage score provenance
    - CandidateSet: Ordered candidates for one entity type

Lifecycle:
    Candidates are created by the first stage and copied-and-extended by
    every later stage (models are frozen). Score breakdown entries are
    append-only: a stage adds its own label and never rewrites another's.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ragforge.types.context import Direction


class StageKind(str, Enum):
    """Stage kinds that may contribute a score breakdown entry."""

    FILTER = "filter"
    VECTOR = "vector"
    LLM = "llm"


def breakdown_kind(label: str) -> StageKind:
    """
    Return the stage kind of a score breakdown label.

    Labels are "<kind>", "<kind>:<detail>", optionally suffixed "#<n>"
    when the same label occurs more than once in a pipeline.
    """
    head = label.split("#", 1)[0].split(":", 1)[0]
    return StageKind(head)


class RelatedEntity(BaseModel):
    """
    An entity reached from a candidate by bounded traversal.

    Attributes:
        entity: Full record of the reached entity
        relationship_type: Relationship that was followed
        direction: Traversal direction ("outgoing" or "incoming")
        distance: Hop count from the candidate (>= 1)
    """

    entity: dict[str, Any]
    relationship_type: str
    direction: str
    distance: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True)


class Candidate(BaseModel):
    """
    A scored candidate flowing through the pipeline.

    Attributes:
        id: Stable key into the store
        score: Current merged score ([0, 1] by convention, not enforced)
        score_breakdown: Stage label -> score that stage contributed
        reasoning: Stage label -> judge reasoning (rerank stages only)
        degraded: True when a rerank stage used the default score
        related: Entities attached by expansion stages (never scored)
    """

    id: str
    score: float
    score_breakdown: dict[str, float] = {}
    reasoning: dict[str, str] = {}
    degraded: bool = False
    related: list[RelatedEntity] = []

    model_config = ConfigDict(frozen=True)

    def with_score(
        self,
        label: str,
        stage_score: float,
        *,
        merged: float | None = None,
        reasoning: str | None = None,
        degraded: bool = False,
    ) -> "Candidate":
        """
        Return a copy extended with one stage's contribution.

        Args:
            label: Breakdown label of the stage (must be new)
            stage_score: Score the stage contributed
            merged: New overall score (defaults to stage_score)
            reasoning: Optional judge reasoning
            degraded: Mark the candidate as carrying a default score

        Raises:
            ValueError: If the label was already recorded
        """
        if label in self.score_breakdown:
            raise ValueError(f"Score breakdown entry {label!r} already recorded for {self.id}")

        updates: dict[str, Any] = {
            "score": stage_score if merged is None else merged,
            "score_breakdown": {**self.score_breakdown, label: stage_score},
        }
        if reasoning:
            updates["reasoning"] = {**self.reasoning, label: reasoning}
        if degraded:
            updates["degraded"] = True
        return self.model_copy(update=updates)

    def with_related(self, related: list[RelatedEntity]) -> "Candidate":
        """Return a copy with additional related entities appended."""
        return self.model_copy(update={"related": [*self.related, *related]})

    def last_score(self, *, exclude: StageKind = StageKind.LLM) -> float | None:
        """Score of the most recent breakdown entry whose kind is not `exclude`."""
        for label in reversed(list(self.score_breakdown)):
            if breakdown_kind(label) is not exclude:
                return self.score_breakdown[label]
        return None


class CandidateSet(BaseModel):
    """
    Ordered candidates for one entity type.

    Entity records are not carried: they are fetched from the store by id
    (entity_type + id) when a stage or the final projection needs them.
    """

    entity_type: str
    candidates: list[Candidate] = []

    model_config = ConfigDict(frozen=True)

    def __len__(self) -> int:
        return len(self.candidates)

    def ids(self) -> list[str]:
        return [c.id for c in self.candidates]

    def is_empty(self) -> bool:
        return not self.candidates

    def replace(self, candidates: list[Candidate]) -> "CandidateSet":
        return CandidateSet(entity_type=self.entity_type, candidates=candidates)


def sort_by_score(candidates: list[Candidate]) -> list[Candidate]:
    """Stable descending sort: ties keep their incoming order."""
    return sorted(candidates, key=lambda c: c.score, reverse=True)
