"""Bounded snapshot history and snapshot assembly.

The history is a fixed-capacity FIFO backed by ``deque(maxlen=...)``: appending
past capacity evicts the oldest snapshot in O(1), so the buffer always holds
the most recent ``capacity`` snapshots in the order their cycles completed.
"""

from __future__ import annotations

import datetime as dt
from collections import deque
from collections.abc import Sequence
from typing import TypeAlias

from profiler.models import (
    EMPTY_SNAPSHOT,
    AllocationStat,
    HeapStats,
    ProfilerSnapshot,
    RetentionStat,
)

DEFAULT_TOP_N = 10

SnapshotDeque: TypeAlias = deque[ProfilerSnapshot]


class SnapshotHistory:
    """Ring buffer of the last ``capacity`` snapshots.

    A non-positive capacity disables history: appends are dropped and every
    query answers with empty results.
    """

    _capacity: int
    _snapshots: SnapshotDeque

    def __init__(self, capacity: int) -> None:
        self._capacity = max(0, capacity)
        self._snapshots = deque(maxlen=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._snapshots)

    def append(self, snapshot: ProfilerSnapshot) -> None:
        if self._capacity == 0:
            return
        self._snapshots.append(snapshot)

    def query(self, limit: int) -> list[ProfilerSnapshot]:
        """Return the newest ``limit`` snapshots, oldest first.

        ``limit <= 0`` or a limit beyond the stored count returns everything.
        """
        count = len(self._snapshots)
        if limit <= 0 or limit >= count:
            return list(self._snapshots)
        return [self._snapshots[i] for i in range(count - limit, count)]

    def latest(self) -> ProfilerSnapshot:
        if not self._snapshots:
            return EMPTY_SNAPSHOT
        return self._snapshots[-1]


def build_snapshot(
    heap: HeapStats,
    now: dt.datetime,
    allocations: Sequence[AllocationStat],
    retentions: Sequence[RetentionStat],
    *,
    top_n: int = DEFAULT_TOP_N,
) -> ProfilerSnapshot:
    """Assemble a snapshot from one heap reading and pre-sorted top tables."""
    return ProfilerSnapshot(
        timestamp=now,
        heap_alloc_bytes=heap.heap_alloc_bytes,
        heap_inuse_bytes=heap.heap_inuse_bytes,
        heap_idle_bytes=heap.heap_idle_bytes,
        heap_released_bytes=heap.heap_released_bytes,
        num_gc=heap.num_gc,
        last_gc_unix=heap.last_gc_unix,
        next_gc_bytes=heap.next_gc_bytes,
        total_alloc_bytes=heap.total_alloc_bytes,
        top_allocations=tuple(allocations[:top_n]),
        top_retentions=tuple(retentions[:top_n]),
    )
