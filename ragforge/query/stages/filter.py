"""
Structural Filter Stage

Runs a predicate against the store. As the first stage it establishes the
corpus; later it only narrows the incoming set (order and scores kept).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ragforge.types.candidates import Candidate, CandidateSet

if TYPE_CHECKING:
    from ragforge.storage.base import GraphStore
    from ragforge.types.stages import FilterStage

logger = logging.getLogger(__name__)

# Score given to every entity a leading filter admits
FILTER_SCORE = 1.0


class StructuralFilter:
    """Predicate stage backed by GraphStore.query_ids()."""

    def __init__(self, store: "GraphStore") -> None:
        self.store = store

    async def run(
        self,
        stage: "FilterStage",
        incoming: CandidateSet | None,
        *,
        entity_type: str,
        label: str | None,
    ) -> CandidateSet:
        """
        Apply the stage.

        Args:
            stage: Filter configuration
            incoming: Prior candidate set (None = whole corpus)
            entity_type: Entity type being queried
            label: Breakdown label (only used when establishing the corpus)
        """
        restrict = incoming.ids() if incoming is not None else None
        ids = await self.store.query_ids(entity_type, stage.predicate, restrict_ids=restrict)

        if incoming is None:
            breakdown = {label: FILTER_SCORE} if label else {}
            candidates = [
                Candidate(id=node_id, score=FILTER_SCORE, score_breakdown=breakdown)
                for node_id in ids
            ]
            logger.debug(f"Filter admitted {len(candidates)} {entity_type} entities")
            return CandidateSet(entity_type=entity_type, candidates=candidates)

        keep = set(ids)
        narrowed = [c for c in incoming.candidates if c.id in keep]
        logger.debug(f"Filter kept {len(narrowed)}/{len(incoming)} candidates")
        return incoming.replace(narrowed)
