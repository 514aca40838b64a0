"""
RagClient - Primary Entry Point

One client per graph store. The client owns the store lifecycle, the
embedding provider, the default judge, the configuration and the registry
of EntityContexts, and hands out immutable QueryBuilders. The store is
initialized on first use, so `async with` is optional.

Example:
    >>> client = RagClient(store, embeddings, llm)
    >>> result = await (
    ...     client.query("Scope")
    ...     .semantic_search("signature", "parse a config file", top_k=50)
    ...     .rerank("Which scope loads configuration from disk?")
    ...     .execute()
    ... )

    # Or open an on-disk knowledge base with providers from config
    >>> async with RagClient.open("./my_kb") as client:
    ...     n = await client.query("Scope").where(type="function").count()
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from ragforge.errors import PipelineValidationError
from ragforge.query import QueryBuilder, QueryRuntime
from ragforge.types.context import DEFAULT_SCOPE_CONTEXT, ContextRegistry

if TYPE_CHECKING:
    from ragforge.config.settings import RFConfig
    from ragforge.providers.base import EmbeddingProvider, LLMProvider
    from ragforge.storage.base import GraphStore
    from ragforge.types.context import EntityContext


class RagClient:
    """
    Query entry point over one GraphStore.

    Args:
        store: Graph store to query
        embeddings: Embedding provider for semantic stages (None disables them)
        llm: Default judge for rerank stages (a stage may pass its own)
        config: Optional configuration. Uses defaults if not provided.
        contexts: EntityContexts to register (DEFAULT_SCOPE_CONTEXT always is)
    """

    def __init__(
        self,
        store: "GraphStore",
        embeddings: "EmbeddingProvider | None" = None,
        llm: "LLMProvider | None" = None,
        *,
        config: "RFConfig | None" = None,
        contexts: list["EntityContext"] | None = None,
    ) -> None:
        if config is None:
            from ragforge.config import RFConfig
            config = RFConfig()
        self._config = config
        self._store = store
        self._embeddings = embeddings
        self._llm = llm
        self._registry = ContextRegistry([DEFAULT_SCOPE_CONTEXT, *(contexts or [])])
        self._initialized = False

    @classmethod
    def open(
        cls,
        path: str | Path,
        config: "RFConfig | None" = None,
        *,
        contexts: list["EntityContext"] | None = None,
    ) -> "RagClient":
        """
        Client over an on-disk knowledge base, with providers built from config.

        Args:
            path: Knowledge base directory (see ParquetGraphStore)
            config: Optional configuration. Uses defaults if not provided.
            contexts: Additional EntityContexts
        """
        if config is None:
            from ragforge.config import RFConfig
            config = RFConfig()

        from ragforge.storage.parquet.backend import ParquetGraphStore
        store = ParquetGraphStore(path, config)
        return cls(
            store,
            create_embedding_provider(config),
            create_llm_provider(config),
            config=config,
            contexts=contexts,
        )

    # === Lifecycle ===

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        await self._store.initialize()
        self._initialized = True

    async def __aenter__(self) -> "RagClient":
        """Async context manager entry."""
        await self._ensure_initialized()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Release the store."""
        if self._initialized:
            await self._store.close()
        self._initialized = False

    # === Properties ===

    @property
    def store(self) -> "GraphStore":
        return self._store

    @property
    def config(self) -> "RFConfig":
        """Current configuration."""
        return self._config

    @property
    def contexts(self) -> ContextRegistry:
        return self._registry

    # === Queries ===

    def register_context(self, context: "EntityContext") -> None:
        """Add or replace the EntityContext of context.type."""
        self._registry.register(context)

    def query(self, entity_type: str) -> QueryBuilder:
        """
        Start a pipeline over one entity type.

        Raises:
            PipelineValidationError: If no EntityContext is registered for the type
        """
        if entity_type not in self._registry:
            raise PipelineValidationError(
                f"unknown entity type {entity_type!r} "
                f"(registered: {self._registry.types()})"
            )
        runtime = QueryRuntime(
            store=self._store,
            config=self._config,
            embeddings=self._embeddings,
            llm=self._llm,
            ensure_ready=self._ensure_initialized,
        )
        return QueryBuilder(runtime, self._registry.get(entity_type))


# === Provider factories ===


def create_llm_provider(config: "RFConfig") -> "LLMProvider":
    """Create the judge LLM provider named by config.llm_provider."""
    provider = config.llm_provider.lower()

    if provider == "openai":
        from ragforge.providers.llm.openai import OpenAILLMProvider
        return OpenAILLMProvider(
            api_key=config.openai_api_key,
            model=config.llm_model,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")


def create_embedding_provider(config: "RFConfig") -> "EmbeddingProvider":
    """Create the embedding provider named by config.embedding_provider."""
    provider = config.embedding_provider.lower()

    if provider == "openai":
        from ragforge.providers.embedding.openai import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider(
            api_key=config.openai_api_key,
            model=config.embedding_model,
        )
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")
