"""
Pipeline Stage Executors

Modules:
    filter: Structural predicate stage
    semantic: Vector search stage
    expand: Relationship expansion stage
    rerank: LLM rerank stage
"""

from ragforge.query.stages.expand import RelationshipExpander
from ragforge.query.stages.filter import StructuralFilter
from ragforge.query.stages.rerank import DEGRADED_LLM_SCORE, LLMReranker
from ragforge.query.stages.semantic import SemanticSearcher

__all__ = [
    "StructuralFilter",
    "SemanticSearcher",
    "RelationshipExpander",
    "LLMReranker",
    "DEGRADED_LLM_SCORE",
]
