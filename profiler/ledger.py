"""Allocation ledger keyed by ``(type name, tag)``.

Size estimates are O(1) heuristics meant for relative comparisons, never
exact accounting: containers are sized as ``len * slot size`` using the
shallow size of their first element instead of walking the whole object.
"""

from __future__ import annotations

import array
import logging
import sys
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from profiler.models import AllocationStat

logger = logging.getLogger(__name__)

DEFAULT_TAG = "default"
_SEQUENCE_TYPES = (list, tuple, set, frozenset, deque)
_BYTES_TYPES = (bytes, bytearray)


@runtime_checkable
class SizeHint(Protocol):
    """Objects that know their own allocation footprint."""

    def __alloc_size__(self) -> int: ...


@dataclass(frozen=True)
class Ref:
    """Pointer-like wrapper; sized as the value it points to."""

    target: Any


@dataclass(frozen=True)
class Sized:
    """Caller-declared shape: an explicit type name and byte size."""

    type_name: str
    nbytes: int


def normalize_tag(tag: Any) -> str:
    if tag is None:
        return DEFAULT_TAG
    tag = str(tag).strip()
    return tag or DEFAULT_TAG


def type_name_of(value: Any) -> str:
    if isinstance(value, Sized):
        return value.type_name
    if isinstance(value, Ref):
        return "*" + type_name_of(value.target)
    typ = type(value)
    if typ.__module__ == "builtins":
        return typ.__qualname__
    return f"{typ.__module__}.{typ.__qualname__}"


def _first(iterable: Any) -> Any:
    return next(iter(iterable))


def estimate_size(value: Any) -> int:
    """Return a shallow byte estimate for ``value`` (0 means "do not record")."""
    if value is None:
        return 0
    if isinstance(value, Sized):
        return max(0, int(value.nbytes))
    if isinstance(value, Ref):
        return estimate_size(value.target)
    if isinstance(value, SizeHint):
        return max(0, int(value.__alloc_size__()))
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, _BYTES_TYPES):
        return len(value)
    if isinstance(value, memoryview):
        return value.nbytes
    if isinstance(value, array.array):
        return len(value) * value.itemsize
    if isinstance(value, Mapping):
        if not value:
            return 0
        key, item = _first(value.items())
        return len(value) * (sys.getsizeof(key) + sys.getsizeof(item))
    if isinstance(value, _SEQUENCE_TYPES):
        if not value:
            return 0
        return len(value) * sys.getsizeof(_first(value))
    return sys.getsizeof(value)


def observe(value: Any) -> tuple[str, int] | None:
    """Derive ``(type_name, size)`` for a tracked value, or ``None`` to skip it.

    Never raises: values without a usable size or type name are dropped.
    """
    if value is None:
        return None
    try:
        size = estimate_size(value)
        type_name = type_name_of(value)
    except Exception:
        logger.debug("profiler: dropping value with unknown size", exc_info=True)
        return None
    if size <= 0 or not isinstance(type_name, str) or not type_name:
        return None
    return type_name, size


class _Entry:
    __slots__ = ("type_name", "tag", "count", "total")

    def __init__(self, type_name: str, tag: str) -> None:
        self.type_name = type_name
        self.tag = tag
        self.count = 0
        self.total = 0

    def to_stat(self) -> AllocationStat:
        average = self.total // self.count if self.count else 0
        return AllocationStat(
            type_name=self.type_name,
            tag=self.tag,
            alloc_count=self.count,
            total_alloc_bytes=self.total,
            average_alloc_bytes=average,
        )


class AllocationLedger:
    """Cumulative counters per ledger key.

    Entries are never removed. The ledger does no locking of its own; the
    owning profiler serialises every call.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, type_name: str, tag: str, size: int) -> None:
        key = (type_name, tag)
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(type_name, tag)
            self._entries[key] = entry
        entry.count += 1
        entry.total += size

    def get(self, type_name: str, tag: str) -> AllocationStat | None:
        entry = self._entries.get((type_name, normalize_tag(tag)))
        return entry.to_stat() if entry is not None else None

    def entries(self) -> list[AllocationStat]:
        return [entry.to_stat() for entry in self._entries.values()]

    def top(self, limit: int) -> list[AllocationStat]:
        """Return copies sorted by total bytes, largest first."""
        stats = sorted(self.entries(), key=lambda s: (s.type_name, s.tag))
        stats.sort(key=lambda s: s.total_alloc_bytes, reverse=True)
        if limit <= 0 or limit > len(stats):
            return stats
        return stats[:limit]
