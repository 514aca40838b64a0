"""
LLM Provider Implementations

Modules:
    openai: OpenAI provider (gpt-5-mini, gpt-4o-mini)

Each provider implements the LLMProvider interface with:
    - generate_structured(): Structured output (Pydantic schema)

Example:
    >>> from ragforge.providers.llm import OpenAILLMProvider
    >>> provider = OpenAILLMProvider(model="gpt-5-mini")
    >>> result = await provider.generate_structured(prompt, RerankResponse)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ragforge.providers.llm.openai import OpenAILLMProvider


def __getattr__(name: str):
    """Lazy import of providers to avoid requiring all dependencies."""
    if name == "OpenAILLMProvider":
        from ragforge.providers.llm.openai import OpenAILLMProvider
        return OpenAILLMProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["OpenAILLMProvider"]
