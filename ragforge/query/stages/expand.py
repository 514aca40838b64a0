"""
Relationship Expansion Stage

Attaches entities reachable along one relationship type as context.
Candidates are never removed, reordered or rescored.

Traversal:
    Bounded BFS per candidate, deduplicated per candidate (the candidate
    itself is never attached), stopping at `depth` hops regardless of
    cycles. Each hop issues one batched neighbour lookup covering the
    frontier of every candidate.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ragforge.types.candidates import CandidateSet, RelatedEntity

if TYPE_CHECKING:
    from ragforge.storage.base import GraphStore
    from ragforge.types.context import Direction
    from ragforge.types.stages import ExpandStage

logger = logging.getLogger(__name__)


class RelationshipExpander:
    """Expansion stage backed by GraphStore.neighbors()."""

    def __init__(self, store: "GraphStore") -> None:
        self.store = store

    async def traverse(
        self,
        start_ids: list[str],
        relationship_type: str,
        direction: "Direction",
        depth: int,
    ) -> dict[str, list[tuple[str, int]]]:
        """
        Bounded BFS from every start id.

        Returns:
            start id -> [(reached id, distance)] in discovery order
        """
        visited: dict[str, set[str]] = {sid: {sid} for sid in start_ids}
        frontier: dict[str, list[str]] = {sid: [sid] for sid in start_ids}
        reached: dict[str, list[tuple[str, int]]] = {sid: [] for sid in start_ids}

        for distance in range(1, depth + 1):
            hop_ids = sorted({node for nodes in frontier.values() for node in nodes})
            if not hop_ids:
                break

            adjacency = await self.store.neighbors(hop_ids, relationship_type, direction)

            for sid in start_ids:
                next_frontier: list[str] = []
                for node in frontier[sid]:
                    for neighbor in adjacency.get(node, []):
                        if neighbor in visited[sid]:
                            continue
                        visited[sid].add(neighbor)
                        reached[sid].append((neighbor, distance))
                        next_frontier.append(neighbor)
                frontier[sid] = next_frontier

        return reached

    async def run(self, stage: "ExpandStage", incoming: CandidateSet) -> CandidateSet:
        """Attach RelatedEntity entries to every incoming candidate."""
        reached = await self.traverse(
            incoming.ids(), stage.relationship_type, stage.direction, stage.depth
        )

        all_ids = sorted({node for hits in reached.values() for node, _ in hits})
        records = await self.store.get_entities(all_ids) if all_ids else {}

        expanded = []
        for candidate in incoming.candidates:
            related = [
                RelatedEntity(
                    entity=records.get(node, {self.store.id_field: node}),
                    relationship_type=stage.relationship_type,
                    direction=stage.direction,
                    distance=distance,
                )
                for node, distance in reached.get(candidate.id, [])
            ]
            expanded.append(candidate.with_related(related) if related else candidate)

        logger.debug(
            f"Expand {stage.relationship_type} ({stage.direction}, depth={stage.depth}): "
            f"{len(all_ids)} related entities over {len(incoming)} candidates"
        )
        return incoming.replace(expanded)
