"""
LLM and Embedding Providers

Provider-agnostic interfaces for judge and embedding operations.

Modules:
    base: Abstract provider interfaces
    llm/: LLM provider implementations
    embedding/: Embedding provider implementations

Supported LLM Providers:
    - OpenAI (gpt-5-mini, gpt-4o-mini) via LangChain

Supported Embedding Providers:
    - OpenAI (text-embedding-3-small/large) via LangChain

Design:
    - All providers implement abstract interfaces (LLMProvider, EmbeddingProvider)
    - Lazy import to avoid requiring all dependencies
    - Structured output support via LangChain's with_structured_output
    - Outages mapped onto ProviderUnavailableError subclasses

Example:
    >>> from ragforge.providers import LLMProvider, EmbeddingProvider
    >>> from ragforge.providers.llm import OpenAILLMProvider
    >>> from ragforge.providers.embedding import OpenAIEmbeddingProvider
"""

from ragforge.providers.base import EmbeddingProvider, LLMProvider

__all__ = ["LLMProvider", "EmbeddingProvider"]
