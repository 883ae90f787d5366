"""Value types shared by the profiler engine, alert rules and the HTTP layer."""

from __future__ import annotations

import datetime as dt
import itertools
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any

SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"

_ID_LOCK = Lock()
_ID_COUNTER = itertools.count(1)


def next_id(prefix: str) -> str:
    """Return a process-wide unique, monotonically numbered identifier."""
    with _ID_LOCK:
        n = next(_ID_COUNTER)
    return f"{prefix}-{n}"


def _isoformat(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(dt.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class AllocationStat:
    type_name: str
    tag: str
    alloc_count: int = 0
    total_alloc_bytes: int = 0
    average_alloc_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RetentionStat:
    type_name: str
    tag: str
    retained_bytes: int = 0
    retained_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OptimizationSuggestion:
    id: str
    type_name: str
    tag: str
    severity: str
    message: str
    created_at: dt.datetime

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = _isoformat(self.created_at)
        return payload


@dataclass(frozen=True)
class HeapStats:
    """One reading from a heap-stat source."""

    heap_alloc_bytes: int = 0
    heap_inuse_bytes: int = 0
    heap_idle_bytes: int = 0
    heap_released_bytes: int = 0
    num_gc: int = 0
    last_gc_unix: int = 0
    next_gc_bytes: int = 0
    total_alloc_bytes: int = 0


@dataclass(frozen=True)
class ProfilerSnapshot:
    """Immutable point-in-time view of heap counters plus top-K tables.

    ``timestamp`` is ``None`` only for :data:`EMPTY_SNAPSHOT`.
    """

    timestamp: dt.datetime | None = None
    heap_alloc_bytes: int = 0
    heap_inuse_bytes: int = 0
    heap_idle_bytes: int = 0
    heap_released_bytes: int = 0
    num_gc: int = 0
    last_gc_unix: int = 0
    next_gc_bytes: int = 0
    total_alloc_bytes: int = 0
    top_allocations: tuple[AllocationStat, ...] = field(default_factory=tuple)
    top_retentions: tuple[RetentionStat, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return self.timestamp is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _isoformat(self.timestamp),
            "heap_alloc_bytes": self.heap_alloc_bytes,
            "heap_inuse_bytes": self.heap_inuse_bytes,
            "heap_idle_bytes": self.heap_idle_bytes,
            "heap_released_bytes": self.heap_released_bytes,
            "num_gc": self.num_gc,
            "last_gc_unix": self.last_gc_unix,
            "next_gc_bytes": self.next_gc_bytes,
            "total_alloc_bytes": self.total_alloc_bytes,
            "top_allocations": [stat.to_dict() for stat in self.top_allocations],
            "top_retentions": [stat.to_dict() for stat in self.top_retentions],
        }


EMPTY_SNAPSHOT = ProfilerSnapshot()
