"""
Pipeline Stage Variants

A pipeline is an ordered tuple of tagged stage variants. Stages are pure
configuration: the builder records them, the executor runs them.

Variants:
    - FilterStage: Structural predicate over properties/relationships
    - SemanticStage: Vector search on one embedding field
    - ExpandStage: Bounded relationship traversal (context only)
    - RerankStage: LLM judge scoring merged into the running score
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ragforge.types.context import Direction
from ragforge.types.predicates import Predicate


class FilterStage(BaseModel):
    """Keep only entities matching a structural predicate."""

    kind: Literal["filter"] = "filter"
    predicate: Predicate

    model_config = ConfigDict(frozen=True)


class SemanticStage(BaseModel):
    """
    Vector search over the index bound to `field`.

    Attributes:
        field: Embedding field of the entity type (e.g. "signature", "source")
        query_text: Free text to embed
        top_k: Maximum candidates emitted
        min_score: Similarity floor, applied before the top_k cap
    """

    kind: Literal["semantic"] = "semantic"
    field: str
    query_text: str
    top_k: int
    min_score: float = 0.0

    model_config = ConfigDict(frozen=True)


class ExpandStage(BaseModel):
    """Attach entities reachable within `depth` hops as context."""

    kind: Literal["expand"] = "expand"
    relationship_type: str
    direction: Direction = "outgoing"
    depth: int = 1

    model_config = ConfigDict(frozen=True)


class RerankStage(BaseModel):
    """
    Ask an LLM judge to score each candidate against a question.

    Attributes:
        question: Natural-language relevance question
        provider: LLMProvider used as the judge
        batch_size: Candidates per judge call
        parallelism: Maximum concurrent judge calls
        top_k: Keep at most this many candidates after merging
        min_score: Drop candidates whose merged score is below this
        score_merging: Name of a registered merge function
        weights: Merge weights keyed by stage kind ("vector", "llm")
    """

    kind: Literal["rerank"] = "rerank"
    question: str
    provider: Any = Field(exclude=True)
    batch_size: int
    parallelism: int
    top_k: int | None = None
    min_score: float | None = None
    score_merging: str = "weighted"
    weights: dict[str, float] | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


PipelineStage = Annotated[
    Union[FilterStage, SemanticStage, ExpandStage, RerankStage],
    Field(discriminator="kind"),
]
