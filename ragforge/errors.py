"""
Error Taxonomy

Exceptions raised by the retrieval pipeline.

Hierarchy:
    RagForgeError
    ├── PipelineValidationError   Bad stage configuration (raised before any I/O)
    ├── ProviderUnavailableError  Embedding or judge provider unreachable (fatal)
    │   ├── EmbeddingUnavailableError
    │   └── JudgeUnavailableError
    ├── StoreQueryError           Generic graph store failure or timeout
    │   ├── IndexMissingError     Named vector index does not exist
    │   └── StoreUnavailableError Store temporarily unavailable
    └── JudgeResponseError        Malformed judge output (recoverable per batch)

Propagation:
    - Validation errors surface synchronously from build()/execute()
      before stage 1 runs.
    - Provider outages and store failures propagate through execute().
    - JudgeResponseError never escapes a rerank stage: the batch is
      degraded and reported on PipelineResult.diagnostics instead.
"""

from __future__ import annotations


class RagForgeError(Exception):
    """Base class for all RagForge errors."""


class PipelineValidationError(RagForgeError, ValueError):
    """
    A pipeline stage is misconfigured.

    Raised by the static validation pass: unknown field or relationship,
    non-positive batch size, weights naming an undefined score key, etc.

    Attributes:
        stage_index: Position of the offending stage (None for pipeline-level errors)
    """

    def __init__(self, message: str, *, stage_index: int | None = None) -> None:
        if stage_index is not None:
            message = f"stage {stage_index}: {message}"
        super().__init__(message)
        self.stage_index = stage_index


class ProviderUnavailableError(RagForgeError):
    """An external provider (embedding or LLM) could not be reached."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class EmbeddingUnavailableError(ProviderUnavailableError):
    """The query text could not be embedded."""


class JudgeUnavailableError(ProviderUnavailableError):
    """The LLM judge provider is down (not a single bad batch)."""


class StoreQueryError(RagForgeError):
    """A graph store query failed."""


class IndexMissingError(StoreQueryError):
    """
    A named vector index does not exist.

    Callers can catch this to trigger index creation or embedding backfill.

    Attributes:
        index_name: Name of the missing index
    """

    def __init__(self, index_name: str) -> None:
        super().__init__(f"Vector index not found: {index_name}")
        self.index_name = index_name


class StoreUnavailableError(StoreQueryError):
    """The graph store is temporarily unavailable (e.g. locked by ingestion)."""


class JudgeResponseError(RagForgeError):
    """The judge's response could not be parsed into evaluations."""
