"""Tests for the score merge registry."""

import pytest

from ragforge.query.scoring import (
    available_mergers,
    clamp_score,
    get_merger,
    merge_weighted,
    register_merger,
    resolve_weights,
    unregister_merger,
)
from ragforge.types.candidates import Candidate

DEFAULTS = {"vector": 0.3, "llm": 0.7}


class TestRegistry:
    """Named merge functions."""

    def test_builtins_registered(self) -> None:
        assert {"replace", "weighted"} <= set(available_mergers())

    def test_register_as_decorator(self) -> None:
        @register_merger("max_of_both")
        def merge_max(candidate, llm_score, weights):
            return max(candidate.score, llm_score)

        try:
            candidate = Candidate(id="a", score=0.6)
            assert get_merger("max_of_both")(candidate, 0.2, {}) == 0.6
            assert "max_of_both" in available_mergers()
        finally:
            unregister_merger("max_of_both")

        assert "max_of_both" not in available_mergers()

    def test_duplicate_name_raises(self) -> None:
        with pytest.raises(ValueError, match="already registered"):
            register_merger("weighted", lambda c, s, w: s)

    def test_unknown_name_lists_available(self) -> None:
        with pytest.raises(KeyError, match="replace"):
            get_merger("geometric")


class TestWeighted:
    """weighted: vector weight x last non-llm score + llm weight x judge score."""

    def test_reference_values(self) -> None:
        a = Candidate(id="a", score=0.92, score_breakdown={"vector:signature": 0.92})
        b = Candidate(id="b", score=0.88, score_breakdown={"vector:signature": 0.88})

        assert merge_weighted(a, 0.4, DEFAULTS) == pytest.approx(0.556)
        assert merge_weighted(b, 0.9, DEFAULTS) == pytest.approx(0.894)

    def test_falls_back_to_current_score(self) -> None:
        candidate = Candidate(id="a", score=0.5)

        assert merge_weighted(candidate, 1.0, DEFAULTS) == pytest.approx(0.85)

    @pytest.mark.parametrize("vector", [0.0, 0.3, 1.0])
    @pytest.mark.parametrize("llm", [0.0, 0.6, 1.0])
    def test_bounded_by_unit_interval(self, vector: float, llm: float) -> None:
        candidate = Candidate(id="a", score=vector, score_breakdown={"vector:x": vector})

        assert 0.0 <= merge_weighted(candidate, llm, DEFAULTS) <= 1.0


class TestResolveWeights:
    """Validation and normalisation of merge weights."""

    def test_defaults_used_when_none(self) -> None:
        assert resolve_weights(None, DEFAULTS) == DEFAULTS

    def test_missing_key_counts_as_zero(self) -> None:
        assert resolve_weights({"llm": 1.0}, DEFAULTS) == {"llm": 1.0, "vector": 0.0}

    def test_normalised_by_sum(self) -> None:
        resolved = resolve_weights({"vector": 1, "llm": 3}, DEFAULTS)

        assert resolved == {"vector": pytest.approx(0.25), "llm": pytest.approx(0.75)}

    def test_normalisation_can_be_disabled(self) -> None:
        resolved = resolve_weights({"vector": 1, "llm": 3}, DEFAULTS, normalize=False)

        assert resolved == {"vector": 1.0, "llm": 3.0}

    @pytest.mark.parametrize(
        "weights",
        [{"bm25": 1.0}, {"vector": -0.1, "llm": 1.1}, {"vector": 0, "llm": 0}],
    )
    def test_invalid_weights_raise(self, weights: dict) -> None:
        with pytest.raises(ValueError):
            resolve_weights(weights, DEFAULTS)


def test_clamp_score() -> None:
    assert clamp_score(1.5) == 1.0
    assert clamp_score(-0.2) == 0.0
    assert clamp_score(0.42) == 0.42
