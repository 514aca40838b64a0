"""
RFConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> client = RagClient(store, embeddings)

    >>> # Explicit configuration
    >>> config = RFConfig(
    ...     rerank_batch_size=5,
    ...     rerank_parallelism=2,
    ... )
    >>> client = RagClient(store, embeddings, config=config)

    >>> # From config file
    >>> config = RFConfig.from_file("./ragforge.toml")

Environment Variables:
    RAGFORGE_LLM_PROVIDER - LLM provider name (reranking judge)
    RAGFORGE_LLM_MODEL - Model for the reranking judge
    RAGFORGE_EMBEDDING_PROVIDER - Embedding provider name
    RAGFORGE_EMBEDDING_MODEL - Embedding model name
    RAGFORGE_RERANK_BATCH_SIZE - Candidates per judge call
    RAGFORGE_RERANK_PARALLELISM - Max concurrent judge calls
    RAGFORGE_LLM_TIMEOUT - Seconds before a judge call is abandoned
    RAGFORGE_EMBEDDING_TIMEOUT - Seconds before an embedding call fails
    RAGFORGE_VECTOR_TIMEOUT - Seconds before a vector index query fails
    OPENAI_API_KEY - OpenAI API key (standard name)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

# TOML support: tomllib is built-in for Python 3.11+, use tomli for 3.10
try:
    import tomllib

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomllib.load(f))

except ImportError:
    import tomli

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomli.load(f))


class RFConfig:
    """Configuration for RagForge."""

    # === LLM Configuration ===

    llm_provider: str = "openai"
    """LLM provider used for the reranking judge: "openai" """

    llm_model: str = "gpt-5-mini"
    """Model for relevance judgments"""

    # === Embedding Configuration ===

    embedding_provider: str = "openai"
    """Embedding provider: "openai" """

    embedding_model: str = "text-embedding-3-small"
    """Embedding model name (must match the model used to build the indices)"""

    embedding_dimensions: int = 1536
    """Embedding vector dimensions (provider-dependent)"""

    # === API Keys ===

    openai_api_key: str | None = None

    # === Query Configuration ===

    query_default_top_k: int = 10
    """Default topK for semantic search stages"""

    query_default_min_score: float = 0.0
    """Default similarity floor for semantic search stages"""

    query_overfetch_factor: int = 3
    """Multiplier on topK when a semantic stage is restricted to prior candidates"""

    query_overfetch_min: int = 100
    """Lower bound on the over-fetched neighbour count"""

    query_expand_depth: int = 1
    """Default hop count for relationship expansion"""

    query_max_expand_depth: int = 5
    """Largest depth accepted by expand()"""

    # === Rerank Configuration ===

    rerank_batch_size: int = 10
    """Candidates per judge call"""

    rerank_parallelism: int = 3
    """Maximum concurrent judge calls (worker pool size)"""

    rerank_score_merging: str = "weighted"
    """Score merge strategy: "weighted" or "replace" """

    rerank_vector_weight: float = 0.3
    """Default weight of the last non-LLM score in weighted merging"""

    rerank_llm_weight: float = 0.7
    """Default weight of the judge score in weighted merging"""

    rerank_normalize_weights: bool = True
    """Rescale weighted-merge weights so they sum to 1"""

    rerank_degraded_score: float = 0.0
    """Judge score assigned to candidates whose batch failed"""

    # === Timeouts (seconds) ===

    embedding_timeout: float = 30.0
    """Timeout for a single query embedding call"""

    vector_timeout: float = 30.0
    """Timeout for a single vector index query"""

    llm_timeout: float = 60.0
    """Timeout for a single judge call (one rerank batch)"""

    # === Storage Configuration ===

    parquet_compression: str = "zstd"
    """Parquet compression: "zstd", "snappy", "gzip", "none" """

    lancedb_metric: str = "cosine"
    """Distance metric for LanceDB vector search"""

    store_lock_timeout: float = 30.0
    """Seconds to wait for the knowledge base write lock"""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option
        """
        # Load from environment first
        self._load_from_env()

        # Apply explicit overrides
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        import os

        # API keys (standard names)
        self.openai_api_key = os.getenv("OPENAI_API_KEY")

        # RAGFORGE_* prefixed settings
        if provider := os.getenv("RAGFORGE_LLM_PROVIDER"):
            self.llm_provider = provider
        if model := os.getenv("RAGFORGE_LLM_MODEL"):
            self.llm_model = model
        if provider := os.getenv("RAGFORGE_EMBEDDING_PROVIDER"):
            self.embedding_provider = provider
        if model := os.getenv("RAGFORGE_EMBEDDING_MODEL"):
            self.embedding_model = model
        if batch_size := os.getenv("RAGFORGE_RERANK_BATCH_SIZE"):
            self.rerank_batch_size = int(batch_size)
        if parallelism := os.getenv("RAGFORGE_RERANK_PARALLELISM"):
            self.rerank_parallelism = int(parallelism)
        if timeout := os.getenv("RAGFORGE_LLM_TIMEOUT"):
            self.llm_timeout = float(timeout)
        if timeout := os.getenv("RAGFORGE_EMBEDDING_TIMEOUT"):
            self.embedding_timeout = float(timeout)
        if timeout := os.getenv("RAGFORGE_VECTOR_TIMEOUT"):
            self.vector_timeout = float(timeout)

    @classmethod
    def from_file(cls, path: str | Path) -> "RFConfig":
        """
        Load configuration from TOML file.

        The TOML file can contain any configuration option as a key.
        Nested sections are flattened with underscores.

        Example TOML:
            [llm]
            provider = "openai"
            model = "gpt-5-mini"

            [rerank]
            batch_size = 5
            parallelism = 2

            [timeouts]
            llm = 20.0

        Args:
            path: Path to TOML configuration file

        Returns:
            RFConfig instance with values from file

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)

        flat_config: dict[str, Any] = {}

        # Map section names to config key prefixes
        section_mapping = {
            "llm": "llm_",
            "embedding": "embedding_",
            "api_keys": "",  # api_keys.openai -> openai_api_key
            "query": "query_",
            "rerank": "rerank_",
            "timeouts": "",  # timeouts.llm -> llm_timeout
            "storage": "",
        }

        for section, prefix in section_mapping.items():
            if section in data:
                for key, value in data[section].items():
                    if section == "api_keys":
                        flat_config[f"{key}_api_key"] = value
                    elif section == "timeouts":
                        flat_config[f"{key}_timeout"] = value
                    else:
                        flat_config[f"{prefix}{key}"] = value

        # Also support flat top-level keys
        for key, value in data.items():
            if key not in section_mapping and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "RFConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        API keys are excluded for security.

        Args:
            path: Path to write TOML configuration file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, str | int | float | bool | None]] = {
            "llm": {
                "provider": self.llm_provider,
                "model": self.llm_model,
            },
            "embedding": {
                "provider": self.embedding_provider,
                "model": self.embedding_model,
                "dimensions": self.embedding_dimensions,
            },
            "query": {
                "default_top_k": self.query_default_top_k,
                "default_min_score": self.query_default_min_score,
                "overfetch_factor": self.query_overfetch_factor,
                "overfetch_min": self.query_overfetch_min,
                "expand_depth": self.query_expand_depth,
                "max_expand_depth": self.query_max_expand_depth,
            },
            "rerank": {
                "batch_size": self.rerank_batch_size,
                "parallelism": self.rerank_parallelism,
                "score_merging": self.rerank_score_merging,
                "vector_weight": self.rerank_vector_weight,
                "llm_weight": self.rerank_llm_weight,
                "normalize_weights": self.rerank_normalize_weights,
                "degraded_score": self.rerank_degraded_score,
            },
            "timeouts": {
                "embedding": self.embedding_timeout,
                "vector": self.vector_timeout,
                "llm": self.llm_timeout,
            },
            "storage": {
                "parquet_compression": self.parquet_compression,
                "lancedb_metric": self.lancedb_metric,
                "store_lock_timeout": self.store_lock_timeout,
            },
        }

        # Build TOML string manually (avoids extra dependency)
        lines = ["# RagForge Configuration", ""]

        for section_name, section_values in sections.items():
            lines.append(f"[{section_name}]")
            for key, value in section_values.items():
                if isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, (int, float)):
                    lines.append(f"{key} = {value}")
            lines.append("")

        lines.extend([
            "# API keys should be set via environment variables:",
            "# OPENAI_API_KEY",
            "",
        ])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "RFConfig":
        """Return new config with specified overrides."""
        new_config = RFConfig.__new__(RFConfig)
        for key in dir(self):
            if not key.startswith("_") and not callable(getattr(self, key)):
                setattr(new_config, key, getattr(self, key))
        for key, value in kwargs.items():
            if not hasattr(self, key):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(new_config, key, value)
        return new_config

    def default_weights(self) -> dict[str, float]:
        """Weighted-merge weights used when a rerank stage names none."""
        return {"vector": self.rerank_vector_weight, "llm": self.rerank_llm_weight}
