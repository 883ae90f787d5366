"""Heuristic optimization suggestions for high-retention allocation keys."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable

from profiler.models import (
    SEVERITY_CRITICAL,
    SEVERITY_WARNING,
    HeapStats,
    OptimizationSuggestion,
    RetentionStat,
    next_id,
)

LARGE_HEAP_BYTES = 512 * 1024 * 1024

# First matching rule wins; substrings are compared against the lowercased type name.
HINT_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("byte", "buffer", "memoryview"),
        " Consider pooling or reusing buffers and avoiding excessive copying of byte data.",
    ),
    (
        ("request", "response", "message"),
        " Consider reducing the lifetime of request/response/message objects"
        " or avoiding storing them globally.",
    ),
    (
        ("dict", "map", "cache"),
        " Consider bounding cache size, using LRU strategies, or evicting entries"
        " more aggressively.",
    ),
)
DEFAULT_HINT = (
    " Consider reviewing allocation patterns, object lifetimes, and potential"
    " pooling opportunities."
)
LARGE_HEAP_HINT = (
    " Overall heap is quite large; consider reducing retention to mitigate GC pressure."
)


def format_float(value: float, decimals: int = 1) -> str:
    """Fixed-point formatting that truncates rather than rounds."""
    if decimals <= 0:
        return str(int(max(value, 0.0) + 0.5))
    mult = 10**decimals
    sign = "-" if value < 0 else ""
    whole, frac = divmod(int(abs(value) * mult), mult)
    return f"{sign}{whole}.{frac:0{decimals}d}"


def hint_for(type_name: str) -> str:
    lowered = type_name.lower()
    for needles, hint in HINT_RULES:
        if any(needle in lowered for needle in needles):
            return hint
    return DEFAULT_HINT


def build_message(stat: RetentionStat, heap: HeapStats, threshold: float) -> str:
    parts = [f"High memory retention detected for {stat.type_name}"]
    if stat.tag:
        parts.append(f" (tag={stat.tag})")
    parts.append(
        f". Retains ~{format_float(stat.retained_percent)}% of heap,"
        f" threshold={format_float(threshold)}%."
    )
    parts.append(hint_for(stat.type_name))
    if heap.heap_alloc_bytes > LARGE_HEAP_BYTES:
        parts.append(LARGE_HEAP_HINT)
    return "".join(parts)


def generate_suggestions(
    retentions: Iterable[RetentionStat],
    heap: HeapStats,
    threshold: float,
    now: dt.datetime,
) -> list[OptimizationSuggestion]:
    """Return one suggestion per retention entry at or above ``threshold``.

    A non-positive threshold disables generation. Output order follows the
    retention table; callers that need a ranking sort it themselves.
    """
    suggestions: list[OptimizationSuggestion] = []
    if threshold <= 0:
        return suggestions

    for stat in retentions:
        if stat.retained_percent < threshold:
            continue
        severity = SEVERITY_WARNING
        if stat.retained_percent > 2 * threshold:
            severity = SEVERITY_CRITICAL
        suggestions.append(
            OptimizationSuggestion(
                id=next_id("suggestion"),
                type_name=stat.type_name,
                tag=stat.tag,
                severity=severity,
                message=build_message(stat, heap, threshold),
                created_at=now,
            )
        )
    return suggestions
