"""Pure alert rules over the latest snapshot, suggestions and configuration."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any

from profiler.config import ProfilerConfig
from profiler.models import (
    SEVERITY_CRITICAL,
    SEVERITY_WARNING,
    OptimizationSuggestion,
    ProfilerSnapshot,
)
from profiler.suggestions import LARGE_HEAP_BYTES, format_float

SEVERITY_INFO = "info"


@dataclass(frozen=True)
class Alert:
    id: str
    severity: str
    message: str
    source: str
    created_at: dt.datetime

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        return payload


def _format_percent(value: float) -> str:
    return format_float(min(max(value, 0.0), 100.0))


def build_alerts(
    snapshot: ProfilerSnapshot,
    suggestions: Iterable[OptimizationSuggestion],
    config: ProfilerConfig,
    now: dt.datetime,
) -> list[Alert]:
    """Derive alerts in rule order: bootstrap, heap size, retention, escalation."""
    if snapshot.is_empty:
        if not config.alerting_enabled:
            return []
        return [
            Alert(
                id="bootstrap-no-samples",
                severity=SEVERITY_INFO,
                message="No profiler samples collected yet; service may still be starting.",
                source="bootstrap",
                created_at=now,
            )
        ]
    if not config.alerting_enabled:
        return []

    alerts: list[Alert] = []
    if snapshot.heap_alloc_bytes > LARGE_HEAP_BYTES:
        alerts.append(
            Alert(
                id="heap-high",
                severity=SEVERITY_WARNING,
                message=(
                    "Heap allocation exceeds 512MB; consider reviewing retention and"
                    " allocation hot paths."
                ),
                source="heap",
                created_at=now,
            )
        )

    for stat in snapshot.top_retentions:
        if stat.retained_percent < config.memory_spike_threshold_percent:
            continue
        severity = SEVERITY_WARNING
        if stat.retained_percent >= config.high_retention_threshold_percent:
            severity = SEVERITY_CRITICAL
        alerts.append(
            Alert(
                id=f"retention-{stat.type_name}-{stat.tag}",
                severity=severity,
                message=(
                    f"Allocation type {stat.type_name} (tag={stat.tag}) retains"
                    f" ~{_format_percent(stat.retained_percent)}% of heap; consider applying"
                    " optimization suggestions."
                ),
                source="retention",
                created_at=now,
            )
        )

    for suggestion in suggestions:
        if suggestion.severity != SEVERITY_CRITICAL:
            continue
        alerts.append(
            Alert(
                id=f"critical-suggestion-{suggestion.type_name}-{suggestion.tag}",
                severity=SEVERITY_CRITICAL,
                message=suggestion.message,
                source="suggestion",
                created_at=now,
            )
        )
    return alerts
