"""
Query Module

Hybrid retrieval pipelines: build, validate and execute.

Components:
    - builder: QueryBuilder (fluent, immutable)
    - pipeline: QueryPipeline executor and its QueryRuntime
    - validation: Static validation pass run by build()
    - stages: Filter, semantic, expand and rerank stage executors
    - scoring: Score merge registry ("replace", "weighted", custom)
    - prompt: Judge prompt synthesis from EntityContext
    - types: Judge response schema (RerankResponse)
"""

from ragforge.query.builder import QueryBuilder
from ragforge.query.pipeline import QueryPipeline, QueryRuntime
from ragforge.query.scoring import (
    available_mergers,
    get_merger,
    register_merger,
    unregister_merger,
)
from ragforge.query.stages import DEGRADED_LLM_SCORE
from ragforge.query.types import RerankEvaluation, RerankResponse

__all__ = [
    "QueryBuilder",
    "QueryPipeline",
    "QueryRuntime",
    "register_merger",
    "unregister_merger",
    "get_merger",
    "available_mergers",
    "DEGRADED_LLM_SCORE",
    "RerankEvaluation",
    "RerankResponse",
]
