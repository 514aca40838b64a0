"""
Public API

Modules:
    client: RagClient and provider factories
"""

from ragforge.api.client import RagClient, create_embedding_provider, create_llm_provider

__all__ = ["RagClient", "create_llm_provider", "create_embedding_provider"]
