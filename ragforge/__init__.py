"""
RagForge - Hybrid Retrieval Pipelines over Property Graphs

A pip-installable Python library for querying a knowledge graph of code
(or any other domain) by chaining structural filters, dual-embedding
vector search, relationship expansion, and LLM reranking.

Example:
    >>> from ragforge import RagClient
    >>> client = RagClient(store, embeddings)
    >>> result = await (
    ...     client.query("Scope")
    ...     .where(type="function")
    ...     .semantic_search("signature", "parse file", top_k=50)
    ...     .semantic_search("source", "validate syntax", top_k=10)
    ...     .rerank("Which scope validates syntax?", llm)
    ...     .execute()
    ... )
    >>> for r in result:
    ...     print(r.entity["name"], r.score)

Main Classes:
    RagClient: Primary entry point (one per store)
    QueryBuilder: Fluent pipeline builder
    RFConfig: Configuration management
    EntityContext: Per-domain entity description
"""

__version__ = "0.4.0"

# Public API - lazy imports to avoid loading optional dependencies
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "RagClient":
        from ragforge.api.client import RagClient
        return RagClient

    if name == "RFConfig":
        from ragforge.config.settings import RFConfig
        return RFConfig

    if name in ("QueryBuilder", "QueryPipeline"):
        from ragforge import query
        return getattr(query, name)

    # Types
    if name in (
        "EntityContext",
        "EntityField",
        "EnrichmentField",
        "EmbeddingField",
        "DEFAULT_SCOPE_CONTEXT",
        "SearchResult",
        "PipelineResult",
    ):
        from ragforge import types
        return getattr(types, name)

    raise AttributeError(f"module 'ragforge' has no attribute {name!r}")


__all__ = [
    # Main classes
    "RagClient",
    "QueryBuilder",
    "QueryPipeline",
    "RFConfig",

    # Types
    "EntityContext",
    "EntityField",
    "EnrichmentField",
    "EmbeddingField",
    "DEFAULT_SCOPE_CONTEXT",
    "SearchResult",
    "PipelineResult",

    # Version
    "__version__",
]
