"""Tests for request-scoped usage telemetry."""

from ragforge.types.results import UsageRecord
from ragforge.utils.telemetry import (
    UsageCollector,
    current_stage,
    record_usage,
    telemetry_collector,
    telemetry_stage,
)


def _record(stage: str, latency_ms: int, ok: bool = True) -> UsageRecord:
    return UsageRecord(
        provider="openai",
        model="gpt-5-mini",
        operation="generate_structured",
        stage=stage,
        latency_ms=latency_ms,
        ok=ok,
    )


def test_usage_collector_aggregates_by_stage() -> None:
    """Collector should total calls, failures and latency per stage."""
    collector = UsageCollector()
    collector.add(_record("3:rerank", 15))
    collector.add(_record("3:rerank", 20, ok=False))
    collector.add(_record("1:semantic", 5))

    summary = collector.summary()

    assert summary["3:rerank"] == {"calls": 2, "failures": 1, "latency_ms": 35}
    assert summary["1:semantic"] == {"calls": 1, "failures": 0, "latency_ms": 5}
    assert len(collector.records) == 3


def test_record_usage_without_collector_is_noop() -> None:
    """Recording outside telemetry_collector() must not fail or leak."""
    record_usage(_record("0:filter", 1))

    collector = UsageCollector()
    with telemetry_collector(collector):
        record_usage(_record("0:filter", 1))
    record_usage(_record("0:filter", 1))

    assert len(collector.records) == 1


def test_stage_label_is_scoped() -> None:
    """telemetry_stage() sets the label only inside its block."""
    assert current_stage() == "unknown"
    with telemetry_stage("2:expand"):
        assert current_stage() == "2:expand"
        with telemetry_stage("3:rerank"):
            assert current_stage() == "3:rerank"
        assert current_stage() == "2:expand"
    assert current_stage() == "unknown"
