"""
OpenAI Embedding Provider (LangChain-based)

Implements EmbeddingProvider interface using LangChain's OpenAIEmbeddings.

Supports:
    - Batch embedding generation (embed)
    - Single text embedding (embed_single)

Models:
    - text-embedding-3-large: 3072 dimensions, best quality
    - text-embedding-3-small: 1536 dimensions, faster/cheaper

Any client failure surfaces as EmbeddingUnavailableError so callers can
tell "text embedding unavailable" apart from "index unavailable".

Example:
    >>> provider = OpenAIEmbeddingProvider(model="text-embedding-3-small")
    >>> vector = await provider.embed_single("parse file")
    >>> print(len(vector))
    1536
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from ragforge.errors import EmbeddingUnavailableError
from ragforge.providers.base import EmbeddingProvider
from ragforge.types.results import UsageRecord
from ragforge.utils.telemetry import current_stage, record_usage

if TYPE_CHECKING:
    from langchain_openai import OpenAIEmbeddings


# Model dimensions mapping
MODEL_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}

DEFAULT_MODEL = "text-embedding-3-small"


def _get_openai_embeddings(
    api_key: str | None = None,
    model: str = DEFAULT_MODEL,
) -> "OpenAIEmbeddings":
    """
    Get an OpenAIEmbeddings instance.

    Uses lazy import to avoid requiring langchain-openai unless actually used.

    Raises:
        ImportError: If langchain-openai package is not installed
    """
    try:
        from langchain_openai import OpenAIEmbeddings
    except ImportError:
        raise ImportError(
            "OpenAI embedding provider requires the 'langchain-openai' package. "
            "Install with: pip install ragforge[openai]"
        )

    if api_key:
        from pydantic import SecretStr
        return OpenAIEmbeddings(model=model, api_key=SecretStr(api_key))
    return OpenAIEmbeddings(model=model)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embedding provider implementation using LangChain.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY environment variable.
        model: Model to use (default: "text-embedding-3-small")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._dimensions = MODEL_DIMENSIONS.get(model, 1536)
        # Lazy initialization
        self._client: OpenAIEmbeddings | None = None

    def _get_client(self) -> "OpenAIEmbeddings":
        """Get or create the OpenAIEmbeddings client."""
        if self._client is None:
            self._client = _get_openai_embeddings(
                api_key=self._api_key,
                model=self._model,
            )
        return self._client

    @property
    def dimensions(self) -> int:
        """Embedding dimensions for the current model."""
        return self._dimensions

    @property
    def model_name(self) -> str:
        """Current model name."""
        return self._model

    def _record(self, operation: str, start_ns: int, ok: bool, count: int) -> None:
        record_usage(
            UsageRecord(
                provider="openai",
                model=self._model,
                operation=operation,
                stage=current_stage(),
                latency_ms=(time.perf_counter_ns() - start_ns) // 1_000_000,
                ok=ok,
                input_count=count,
            )
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors (same order as input)
        """
        if not texts:
            return []

        client = self._get_client()
        start = time.perf_counter_ns()

        # LangChain's embed_documents is synchronous, run in thread pool
        try:
            embeddings = await asyncio.to_thread(client.embed_documents, texts)
        except Exception as exc:
            self._record("embed", start, ok=False, count=len(texts))
            raise EmbeddingUnavailableError(
                f"OpenAI embedding failed ({self._model}): {exc}", provider="openai"
            ) from exc

        self._record("embed", start, ok=True, count=len(texts))
        return embeddings

    async def embed_single(self, text: str) -> list[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """
        client = self._get_client()
        start = time.perf_counter_ns()

        # LangChain's embed_query is synchronous, run in thread pool
        try:
            embedding = await asyncio.to_thread(client.embed_query, text)
        except Exception as exc:
            self._record("embed_single", start, ok=False, count=1)
            raise EmbeddingUnavailableError(
                f"OpenAI embedding failed ({self._model}): {exc}", provider="openai"
            ) from exc

        self._record("embed_single", start, ok=True, count=1)
        return embedding

    def with_model(self, model: str) -> "OpenAIEmbeddingProvider":
        """Return a new provider instance with a different model."""
        return OpenAIEmbeddingProvider(api_key=self._api_key, model=model)
