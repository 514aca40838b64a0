"""
Score Merging

Named merge functions that combine a judge score with a candidate's prior
scores. Rerank stages look mergers up by name; callers may register their own.

Built-in mergers:
    - replace: The judge score becomes the candidate score
    - weighted: weights["vector"] * <last non-llm score> + weights["llm"] * judge score

Example:
    >>> @register_merger("max")
    ... def merge_max(candidate, llm_score, weights):
    ...     return max(candidate.score, llm_score)
"""

from collections.abc import Callable, Mapping

from ragforge.types.candidates import Candidate

MergeFunction = Callable[[Candidate, float, Mapping[str, float]], float]

# Keys a rerank stage may weight
WEIGHT_KEYS = frozenset({"vector", "llm"})

_MERGERS: dict[str, MergeFunction] = {}


def register_merger(
    name: str, fn: MergeFunction | None = None
) -> MergeFunction | Callable[[MergeFunction], MergeFunction]:
    """
    Register a merge function under a name. Usable as a decorator.

    Raises:
        ValueError: If the name is already registered
    """
    def _register(func: MergeFunction) -> MergeFunction:
        if name in _MERGERS:
            raise ValueError(f"Score merger {name!r} is already registered")
        _MERGERS[name] = func
        return func

    if fn is not None:
        return _register(fn)
    return _register


def unregister_merger(name: str) -> None:
    """Remove a registered merger (no-op if absent)."""
    _MERGERS.pop(name, None)


def get_merger(name: str) -> MergeFunction:
    """
    Look up a merge function.

    Raises:
        KeyError: If no merger has that name
    """
    try:
        return _MERGERS[name]
    except KeyError:
        raise KeyError(
            f"Unknown score merging {name!r}. Available: {', '.join(available_mergers())}"
        ) from None


def available_mergers() -> list[str]:
    return sorted(_MERGERS)


def clamp_score(score: float) -> float:
    """Clamp a judge score into [0, 1]."""
    return min(1.0, max(0.0, float(score)))


def resolve_weights(
    weights: Mapping[str, float] | None,
    defaults: Mapping[str, float],
    *,
    normalize: bool = True,
) -> dict[str, float]:
    """
    Validate merge weights and fill in defaults.

    Keys missing from explicit weights count as 0. When `normalize` is set,
    weights that do not sum to 1 are divided by their sum.

    Raises:
        ValueError: On unknown keys, negative weights, or a zero sum
    """
    source = defaults if weights is None else weights
    unknown = set(source) - WEIGHT_KEYS
    if unknown:
        raise ValueError(
            f"Unknown weight keys {sorted(unknown)}; expected a subset of {sorted(WEIGHT_KEYS)}"
        )

    resolved = {key: float(source.get(key, 0.0)) for key in sorted(WEIGHT_KEYS)}
    if any(w < 0 for w in resolved.values()):
        raise ValueError(f"Weights must be non-negative, got {resolved}")

    total = sum(resolved.values())
    if total <= 0:
        raise ValueError("Weights must not all be zero")
    if normalize and abs(total - 1.0) > 1e-9:
        resolved = {key: w / total for key, w in resolved.items()}
    return resolved


@register_merger("replace")
def merge_replace(
    candidate: Candidate, llm_score: float, weights: Mapping[str, float]
) -> float:
    return llm_score


@register_merger("weighted")
def merge_weighted(
    candidate: Candidate, llm_score: float, weights: Mapping[str, float]
) -> float:
    prior = candidate.last_score()
    if prior is None:
        prior = candidate.score
    return weights.get("vector", 0.0) * prior + weights.get("llm", 0.0) * llm_score
