"""
Query Pipeline Types

LLM Output Schemas:
    - RerankEvaluation: Judge score for one candidate
    - RerankResponse: Judge output for one batch
"""

from pydantic import BaseModel, Field


class RerankEvaluation(BaseModel):
    """
    The judge's verdict on one candidate of a batch.

    Ids are batch-local positions ("0", "1", ...) as listed in the prompt,
    not store ids. Scores outside [0, 1] are clamped by the rerank stage.
    """

    id: str = Field(
        ..., description="Position of the item in the list, e.g. \"0\""
    )
    score: float = Field(
        ..., description="Relevance from 0.0 (irrelevant) to 1.0 (exactly what is asked)"
    )
    reasoning: str | None = Field(
        default=None, description="One sentence explaining the score"
    )


class RerankResponse(BaseModel):
    """Judge output for a batch of candidates."""

    evaluations: list[RerankEvaluation] = Field(
        default_factory=list,
        description="One evaluation per listed item",
    )
