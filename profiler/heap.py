"""Heap statistics for the current interpreter process.

Scope: tracemalloc traced bytes for the Python heap, psutil RSS/VMS for the
process footprint, and the ``gc`` module for collector counters.
"""

from __future__ import annotations

import gc
import logging
import time
import tracemalloc
from collections.abc import Callable
from threading import Lock

import psutil

from profiler.models import HeapStats

logger = logging.getLogger(__name__)

HeapSource = Callable[[], HeapStats]


class _GcClock:
    """Record the wall-clock time of the last completed collection."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._installed = False
        self.last_gc_unix = 0

    def _on_gc(self, phase: str, _info: dict) -> None:
        if phase == "stop":
            self.last_gc_unix = int(time.time())

    def install(self) -> None:
        with self._lock:
            if self._installed:
                return
            gc.callbacks.append(self._on_gc)
            self._installed = True


_GC_CLOCK = _GcClock()


class ProcessHeapSource:
    """Callable heap-stat source backed by tracemalloc, psutil and gc."""

    def __init__(self, *, frame_limit: int = 1) -> None:
        self._frame_limit = max(1, frame_limit)
        self._process = psutil.Process()
        _GC_CLOCK.install()

    def __call__(self) -> HeapStats:
        if not tracemalloc.is_tracing():
            logger.info("profiler: starting tracemalloc (frames=%d)", self._frame_limit)
            tracemalloc.start(self._frame_limit)
        current, peak = tracemalloc.get_traced_memory()
        memory = self._process.memory_info()
        threshold0 = gc.get_threshold()[0]
        count0 = gc.get_count()[0]
        return HeapStats(
            heap_alloc_bytes=current,
            heap_inuse_bytes=memory.rss,
            heap_idle_bytes=max(memory.vms - memory.rss, 0),
            heap_released_bytes=max(peak - current, 0),
            num_gc=sum(generation["collections"] for generation in gc.get_stats()),
            last_gc_unix=_GC_CLOCK.last_gc_unix,
            # CPython collects by object count, so this counts allocations, not bytes.
            next_gc_bytes=max(threshold0 - count0, 0),
            total_alloc_bytes=peak,
        )
