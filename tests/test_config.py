"""Tests for RFConfig layering and TOML persistence."""

from pathlib import Path

import pytest

from ragforge.config import RFConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "OPENAI_API_KEY",
        "RAGFORGE_LLM_MODEL",
        "RAGFORGE_RERANK_BATCH_SIZE",
        "RAGFORGE_RERANK_PARALLELISM",
        "RAGFORGE_LLM_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestRFConfig:
    def test_defaults(self) -> None:
        config = RFConfig()

        assert config.rerank_batch_size == 10
        assert config.rerank_parallelism == 3
        assert config.rerank_degraded_score == 0.0
        assert config.default_weights() == {"vector": 0.3, "llm": 0.7}
        assert config.openai_api_key is None

    def test_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("RAGFORGE_LLM_MODEL", "gpt-judge")
        monkeypatch.setenv("RAGFORGE_RERANK_BATCH_SIZE", "4")
        monkeypatch.setenv("RAGFORGE_LLM_TIMEOUT", "2.5")

        config = RFConfig()

        assert config.openai_api_key == "sk-test"
        assert config.llm_model == "gpt-judge"
        assert config.rerank_batch_size == 4
        assert config.llm_timeout == 2.5

    def test_kwargs_override_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RAGFORGE_RERANK_PARALLELISM", "8")

        assert RFConfig(rerank_parallelism=1).rerank_parallelism == 1

    def test_unknown_option_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown configuration option"):
            RFConfig(rerank_bacth_size=3)

    def test_with_overrides_copies(self) -> None:
        base = RFConfig(rerank_batch_size=5)

        derived = base.with_overrides(llm_timeout=0.5)

        assert derived.rerank_batch_size == 5
        assert derived.llm_timeout == 0.5
        assert base.llm_timeout == 60.0
        with pytest.raises(ValueError):
            base.with_overrides(nope=1)


class TestConfigFile:
    def test_sections_are_flattened(self, tmp_path: Path) -> None:
        path = tmp_path / "ragforge.toml"
        path.write_text(
            "\n".join(
                [
                    "[llm]",
                    'model = "gpt-judge"',
                    "[rerank]",
                    "batch_size = 7",
                    'score_merging = "replace"',
                    "[timeouts]",
                    "llm = 12.0",
                    "[storage]",
                    "store_lock_timeout = 1.5",
                ]
            )
        )

        config = RFConfig.from_file(path)

        assert config.llm_model == "gpt-judge"
        assert config.rerank_batch_size == 7
        assert config.rerank_score_merging == "replace"
        assert config.llm_timeout == 12.0
        assert config.store_lock_timeout == 1.5

    def test_round_trip(self, tmp_path: Path) -> None:
        original = RFConfig(
            rerank_batch_size=4,
            rerank_normalize_weights=False,
            query_overfetch_min=25,
            openai_api_key="sk-secret",
        )
        path = tmp_path / "nested" / "ragforge.toml"

        original.to_file(path)
        loaded = RFConfig.from_file(path)

        assert "sk-secret" not in path.read_text()
        assert loaded.rerank_batch_size == 4
        assert loaded.rerank_normalize_weights is False
        assert loaded.query_overfetch_min == 25
        assert loaded.openai_api_key is None

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            RFConfig.from_file(tmp_path / "absent.toml")
