"""
Utility Functions

Modules:
    telemetry: Request-scoped provider usage records
"""

from ragforge.utils.telemetry import (
    UsageCollector,
    current_stage,
    record_usage,
    telemetry_collector,
    telemetry_stage,
)

__all__ = [
    "UsageCollector",
    "telemetry_collector",
    "telemetry_stage",
    "current_stage",
    "record_usage",
]
