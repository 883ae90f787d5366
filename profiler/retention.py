"""Retention estimates derived from the allocation ledger.

Retained bytes are approximated by cumulative allocated bytes per key; there
is no liveness tracing, so the figure is a conservative, non-decreasing proxy.
"""

from __future__ import annotations

from collections.abc import Iterable

from profiler.models import AllocationStat, RetentionStat

RetentionTable = dict[tuple[str, str], RetentionStat]


def update_retentions(
    table: RetentionTable,
    allocations: Iterable[AllocationStat],
    heap_alloc_bytes: int,
) -> None:
    """Recompute ``table`` in place against one heap reading.

    Caller must hold the profiler lock so every entry reflects the same heap
    reading.
    """
    if heap_alloc_bytes <= 0:
        # Percentages are undefined against an empty heap.
        table.clear()
        return

    for alloc in allocations:
        key = (alloc.type_name, alloc.tag)
        retained = alloc.total_alloc_bytes
        if retained == 0:
            table.pop(key, None)
            continue
        percent = max(0.0, 100.0 * retained / heap_alloc_bytes)
        table[key] = RetentionStat(
            type_name=alloc.type_name,
            tag=alloc.tag,
            retained_bytes=retained,
            retained_percent=percent,
        )


def top_retentions(table: RetentionTable, limit: int) -> list[RetentionStat]:
    """Return retention stats sorted by retained bytes, largest first."""
    stats = sorted(table.values(), key=lambda s: (s.type_name, s.tag))
    stats.sort(key=lambda s: s.retained_bytes, reverse=True)
    if limit <= 0 or limit > len(stats):
        return stats
    return stats[:limit]
