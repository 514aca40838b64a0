"""
Shared fixtures for retrieval pipeline tests.

Fakes:
    - make_embeddings: Deterministic embedding provider (fixed vectors per text,
      hash-seeded random vectors otherwise)
    - make_judge: LLM judge scoring items by the `name` line of each prompt item
"""

import asyncio
import re
import zlib
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from ragforge.api.client import RagClient
from ragforge.config.settings import RFConfig
from ragforge.query.types import RerankEvaluation, RerankResponse
from ragforge.storage.memory.backend import MemoryGraphStore

SIGNATURE_INDEX = "scopeEmbeddingsSignature"
SOURCE_INDEX = "scopeEmbeddingsSource"

_ITEM_RE = re.compile(r"\[Item (\d+)\]\nname: (.*)")


def hash_vector(text: str, dim: int = 8) -> list[float]:
    """Deterministic pseudo-random vector for a text."""
    rng = np.random.default_rng(zlib.crc32(text.encode()))
    return [float(x) for x in rng.normal(size=dim)]


def unit_at(similarity: float) -> list[float]:
    """2-d unit vector whose cosine with (1, 0) equals `similarity`."""
    return [similarity, float(np.sqrt(1.0 - similarity**2))]


def prompt_items(prompt: str) -> list[tuple[int, str]]:
    """(position, name) of every [Item N] block in a judge prompt."""
    return [(int(m.group(1)), m.group(2)) for m in _ITEM_RE.finditer(prompt)]


def make_embeddings(fixed: dict[str, list[float]] | None = None, dim: int = 8) -> MagicMock:
    """Create a mock embedding provider."""
    fixed = fixed or {}

    async def _embed_single(text: str) -> list[float]:
        return fixed.get(text) or hash_vector(text, dim)

    embeddings = MagicMock()
    embeddings.embed_single = AsyncMock(side_effect=_embed_single)
    embeddings.embed = AsyncMock(
        side_effect=lambda texts: [fixed.get(t) or hash_vector(t, dim) for t in texts]
    )
    embeddings.dimensions = dim
    embeddings.model_name = "test-embedding"
    return embeddings


def make_judge(
    scores: dict[str, float] | None = None,
    *,
    default: float = 0.5,
    behaviour: Callable[[list[str]], Any] | None = None,
) -> MagicMock:
    """
    Create a mock judge.

    Items are scored from `scores` by entity name (else `default`). When
    `behaviour` is given it is awaited (if a coroutine) with the batch's
    names first; it may sleep, raise, or return a replacement response.
    """
    scores = scores or {}

    async def _generate_structured(
        prompt: str, schema: type, *, system: str | None = None
    ) -> Any:
        items = prompt_items(prompt)
        if behaviour is not None:
            outcome = behaviour([name for _, name in items])
            if asyncio.iscoroutine(outcome):
                outcome = await outcome
            if outcome is not None:
                return outcome
        return RerankResponse(
            evaluations=[
                RerankEvaluation(
                    id=str(position),
                    score=scores.get(name, default),
                    reasoning=f"judged {name}",
                )
                for position, name in items
            ]
        )

    llm = MagicMock()
    llm.generate_structured = AsyncMock(side_effect=_generate_structured)
    llm.model_name = "test-judge"
    return llm


def scope(uuid: str, name: str | None = None, **props: Any) -> dict[str, Any]:
    """A Scope record with the required prompt fields filled in."""
    record = {
        "uuid": uuid,
        "name": name or uuid,
        "type": "function",
        "file": f"src/{uuid}.ts",
    }
    record.update(props)
    return record


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def config() -> RFConfig:
    """Create a test configuration."""
    return RFConfig(
        openai_api_key=None,
        rerank_batch_size=5,
        rerank_parallelism=2,
        llm_timeout=1.0,
        embedding_timeout=1.0,
        vector_timeout=1.0,
        query_overfetch_min=10,
    )


@pytest.fixture
def store() -> MemoryGraphStore:
    """Empty in-memory store."""
    return MemoryGraphStore()


@pytest.fixture
def corpus() -> MemoryGraphStore:
    """
    500 Scope nodes, 80 of them functions.

    Nodes s000..s499; the first 80 are functions, the rest classes.
    Both vector indices hold hash vectors for every node.
    """
    store = MemoryGraphStore()
    records = [
        scope(f"s{i:03d}", type="function" if i < 80 else "class", startLine=i)
        for i in range(500)
    ]
    store.add_nodes("Scope", records)
    store.add_embeddings(
        SIGNATURE_INDEX, {r["uuid"]: hash_vector(f"sig-{r['uuid']}") for r in records}
    )
    store.add_embeddings(
        SOURCE_INDEX, {r["uuid"]: hash_vector(f"src-{r['uuid']}") for r in records}
    )
    return store


@pytest.fixture
def embeddings() -> MagicMock:
    return make_embeddings()


@pytest.fixture
def judge() -> MagicMock:
    return make_judge()


@pytest.fixture
def client(corpus: MemoryGraphStore, embeddings: MagicMock, judge: MagicMock,
           config: RFConfig) -> RagClient:
    """Client over the 500-node corpus."""
    return RagClient(corpus, embeddings, judge, config=config)
