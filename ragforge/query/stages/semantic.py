"""
Vector Search Stage

Embeds the query text and searches the vector index bound to one
embedding field of the entity type.

Algorithm:
    1. Embed query_text (own timeout; failure is fatal)
    2. Search the field's index (own timeout). With an incoming set the
       search is restricted to incoming ids and over-fetches
       max(top_k * overfetch_factor, overfetch_min) hits.
    3. Intersect with the incoming set; the similarity becomes the score
       and is recorded under the stage's breakdown label.
    4. Drop hits below min_score, then cap at top_k.

An empty intersection yields an empty set, not an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ragforge.errors import (
    EmbeddingUnavailableError,
    PipelineValidationError,
    RagForgeError,
    StoreQueryError,
)
from ragforge.types.candidates import Candidate, CandidateSet, sort_by_score

if TYPE_CHECKING:
    from ragforge.config.settings import RFConfig
    from ragforge.providers.base import EmbeddingProvider
    from ragforge.storage.base import GraphStore
    from ragforge.types.context import EntityContext
    from ragforge.types.stages import SemanticStage

logger = logging.getLogger(__name__)


class SemanticSearcher:
    """Semantic stage backed by an EmbeddingProvider and GraphStore.vector_search()."""

    def __init__(
        self,
        store: "GraphStore",
        embeddings: "EmbeddingProvider",
        config: "RFConfig",
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.config = config

    def overfetch_limit(self, top_k: int) -> int:
        return max(top_k * self.config.query_overfetch_factor, self.config.query_overfetch_min)

    async def embed_query(self, text: str) -> list[float]:
        """
        Embed the query text.

        Raises:
            EmbeddingUnavailableError: On timeout or any provider failure
        """
        try:
            return await asyncio.wait_for(
                self.embeddings.embed_single(text),
                timeout=self.config.embedding_timeout,
            )
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise EmbeddingUnavailableError(
                f"Embedding timed out after {self.config.embedding_timeout}s"
            ) from exc
        except RagForgeError:
            raise
        except Exception as exc:
            raise EmbeddingUnavailableError(f"Embedding failed: {exc}") from exc

    async def search(
        self,
        index_name: str,
        vector: list[float],
        limit: int,
        min_score: float,
        restrict_ids: list[str] | None,
    ) -> list[tuple[str, float]]:
        """
        Query a vector index.

        Raises:
            IndexMissingError: If the index does not exist
            StoreQueryError: On timeout or any other store failure
        """
        try:
            return await asyncio.wait_for(
                self.store.vector_search(
                    index_name,
                    vector,
                    limit,
                    min_score=min_score,
                    restrict_ids=restrict_ids,
                ),
                timeout=self.config.vector_timeout,
            )
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise StoreQueryError(
                f"Vector search on {index_name} timed out after {self.config.vector_timeout}s"
            ) from exc

    async def run(
        self,
        stage: "SemanticStage",
        incoming: CandidateSet | None,
        *,
        entity_context: "EntityContext",
        label: str,
    ) -> CandidateSet:
        """
        Apply the stage.

        Args:
            stage: Semantic search configuration
            incoming: Prior candidate set (None = whole corpus)
            entity_context: Context of the queried entity type
            label: Breakdown label, e.g. "vector:signature"
        """
        index_name = entity_context.index_for(stage.field)
        if index_name is None:
            raise PipelineValidationError(
                f"{entity_context.type} has no embedding field {stage.field!r}"
            )

        vector = await self.embed_query(stage.query_text)

        if incoming is None:
            hits = await self.search(index_name, vector, stage.top_k, stage.min_score, None)
            candidates = [
                Candidate(id=node_id, score=score, score_breakdown={label: score})
                for node_id, score in hits
                if score >= stage.min_score
            ][: stage.top_k]
            logger.debug(f"{label}: {len(candidates)} hits from {index_name}")
            return CandidateSet(entity_type=entity_context.type, candidates=candidates)

        hits = await self.search(
            index_name,
            vector,
            self.overfetch_limit(stage.top_k),
            stage.min_score,
            incoming.ids(),
        )
        similarity = {node_id: score for node_id, score in hits if score >= stage.min_score}

        # Walk the incoming order so equal similarities keep prior positions
        survivors = [
            c.with_score(label, similarity[c.id])
            for c in incoming.candidates
            if c.id in similarity
        ]
        narrowed = sort_by_score(survivors)[: stage.top_k]
        logger.debug(
            f"{label}: {len(narrowed)}/{len(incoming)} candidates kept from {index_name}"
        )
        return incoming.replace(narrowed)
