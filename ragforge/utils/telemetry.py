"""
Request-scoped usage telemetry helpers.

Telemetry is enabled by attaching a UsageCollector via contextvars.
Providers read the active collector/stage and emit usage records
automatically; with no collector attached, record_usage() is a no-op.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar

from ragforge.types.results import UsageRecord

_COLLECTOR: ContextVar[UsageCollector | None] = ContextVar(
    "ragforge_usage_collector",
    default=None,
)
_STAGE: ContextVar[str] = ContextVar("ragforge_usage_stage", default="unknown")


class UsageCollector:
    """Accumulates provider usage records for one request."""

    def __init__(self) -> None:
        self._records: list[UsageRecord] = []

    def add(self, record: UsageRecord) -> None:
        """Add one usage record."""
        self._records.append(record)

    @property
    def records(self) -> list[UsageRecord]:
        return list(self._records)

    def summary(self) -> dict[str, dict[str, int]]:
        """Calls, failures and total latency per stage label."""
        by_stage: dict[str, dict[str, int]] = {}
        for record in self._records:
            stage = by_stage.setdefault(
                record.stage, {"calls": 0, "failures": 0, "latency_ms": 0}
            )
            stage["calls"] += 1
            stage["latency_ms"] += record.latency_ms
            if not record.ok:
                stage["failures"] += 1
        return by_stage


@contextmanager
def telemetry_collector(collector: UsageCollector | None):
    """Set active request collector for provider instrumentation."""
    token = _COLLECTOR.set(collector)
    try:
        yield
    finally:
        _COLLECTOR.reset(token)


@contextmanager
def telemetry_stage(stage: str):
    """Set pipeline stage label for provider instrumentation."""
    token = _STAGE.set(stage)
    try:
        yield
    finally:
        _STAGE.reset(token)


def current_stage() -> str:
    """Return currently active telemetry stage label."""
    return _STAGE.get()


def record_usage(record: UsageRecord) -> None:
    """Add record to active collector if telemetry is enabled."""
    collector = _COLLECTOR.get()
    if collector is not None:
        collector.add(record)
