"""The profiler state engine.

One lock guards the allocation ledger, the retention table, the suggestion
list, the snapshot history and the last-sample timestamp. Producers hold it
only to bump one ledger entry; a sampling cycle holds it from the heap read
through the snapshot append, so retention, suggestions and the appended
snapshot always describe the same heap reading.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import enum
import logging
from collections.abc import Callable
from threading import Lock
from typing import Any

from capture.trigger import CaptureTrigger
from profiler.config import ProfilerConfig
from profiler.heap import HeapSource, ProcessHeapSource
from profiler.history import DEFAULT_TOP_N, SnapshotHistory, build_snapshot
from profiler.ledger import AllocationLedger, normalize_tag, observe
from profiler.models import (
    AllocationStat,
    OptimizationSuggestion,
    ProfilerSnapshot,
    RetentionStat,
)
from profiler.retention import RetentionTable, top_retentions, update_retentions
from profiler.suggestions import generate_suggestions
from profiler.tracker import Tracker

logger = logging.getLogger(__name__)

MIN_INTERVAL_S = 0.1


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ProfilerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SAMPLING = "sampling"
    STOPPED = "stopped"


class Profiler:
    """Sample heap stats, aggregate tracked allocations and keep bounded history."""

    def __init__(
        self,
        config: ProfilerConfig,
        *,
        heap_source: HeapSource | None = None,
        capture_trigger: CaptureTrigger | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._config = config
        self._heap_source = heap_source or ProcessHeapSource(frame_limit=config.tracemalloc_frames)
        self._capture = capture_trigger or CaptureTrigger(config)
        self._clock = clock or _utcnow
        self._lock = Lock()
        self._ledger = AllocationLedger()
        self._retentions: RetentionTable = {}
        self._suggestions: list[OptimizationSuggestion] = []
        self._history = SnapshotHistory(config.max_history_samples)
        self._last_sample_at: dt.datetime | None = None
        self._skipped_cycles = 0
        self._state = ProfilerState.IDLE
        self._task: asyncio.Task[None] | None = None

    @property
    def config(self) -> ProfilerConfig:
        return self._config

    @property
    def capture_trigger(self) -> CaptureTrigger:
        return self._capture

    @property
    def state(self) -> ProfilerState:
        return self._state

    # Producer API

    def track_allocation(self, value: Any, tag: str = "") -> None:
        """Attribute one allocation of ``value`` to ``tag``. Never raises."""
        observed = observe(value)
        if observed is None:
            return
        type_name, size = observed
        tag = normalize_tag(tag)
        with self._lock:
            self._ledger.add(type_name, tag, size)

    record = track_allocation

    def tracker(self, base_tag: str = "") -> Tracker:
        return Tracker(self, base_tag)

    # Sampling

    def sample_once(self, now: dt.datetime | None = None) -> ProfilerSnapshot | None:
        """Run one full cycle; return the appended snapshot or ``None`` if skipped."""
        snapshot, capture_due = self._sample(now)
        if capture_due:
            # The file write happens outside the lock so producers are not held up.
            self._capture.capture(snapshot.timestamp)
        return snapshot

    def _sample(self, now: dt.datetime | None) -> tuple[ProfilerSnapshot | None, bool]:
        with self._lock:
            try:
                heap = self._heap_source()
            except Exception:
                self._skipped_cycles += 1
                logger.warning(
                    "profiler: heap stats unavailable; skipping cycle (skipped=%d)",
                    self._skipped_cycles,
                    exc_info=True,
                )
                return None, False
            now = now or self._clock()
            previous_state = self._state
            self._state = ProfilerState.SAMPLING
            try:
                update_retentions(self._retentions, self._ledger.entries(), heap.heap_alloc_bytes)
                self._suggestions = generate_suggestions(
                    self._retentions.values(),
                    heap,
                    self._config.high_retention_threshold_percent,
                    now,
                )
                snapshot = build_snapshot(
                    heap,
                    now,
                    self._ledger.top(DEFAULT_TOP_N),
                    top_retentions(self._retentions, DEFAULT_TOP_N),
                )
                self._history.append(snapshot)
                self._last_sample_at = now
                capture_due = self._capture.should_capture(snapshot.top_retentions, now)
            finally:
                self._state = previous_state
            suggestion_count = len(self._suggestions)

        logger.debug(
            "profiler: sampled heap_alloc=%d allocations=%d retentions=%d suggestions=%d",
            snapshot.heap_alloc_bytes,
            len(snapshot.top_allocations),
            len(snapshot.top_retentions),
            suggestion_count,
        )
        return snapshot, capture_due

    async def run_sampling_loop(self) -> None:
        """Sample every ``sampling_interval_ms`` until cancelled.

        Cancellation is observed while sleeping between cycles or while a
        capture is written on a worker thread; the locked part of a cycle
        always completes. A failing cycle is logged and the loop keeps ticking.
        """
        interval_s = self._config.sampling_interval_s
        if interval_s <= 0:
            logger.warning(
                "profiler: interval_s=%s is non-positive; clamping to %ss",
                interval_s,
                MIN_INTERVAL_S,
            )
            interval_s = MIN_INTERVAL_S
        iteration = 0
        try:
            while True:
                try:
                    await asyncio.sleep(interval_s)
                except asyncio.CancelledError:
                    logger.info("profiler: loop cancelled during sleep (iteration=%s)", iteration)
                    raise
                iteration += 1
                try:
                    snapshot, capture_due = self._sample(None)
                    if capture_due:
                        # Keep the event loop serving requests while the dump is written.
                        await asyncio.to_thread(self._capture.capture, snapshot.timestamp)
                except Exception:
                    logger.exception("profiler: sampling cycle failed (iteration=%s)", iteration)
        finally:
            self._state = ProfilerState.STOPPED

    def start(self) -> asyncio.Task[None]:
        """Launch the sampling loop on the running event loop.

        Only the first call has any effect; later calls return the same task.
        """
        with self._lock:
            if self._task is not None:
                return self._task
            self._task = asyncio.create_task(self.run_sampling_loop())
            self._state = ProfilerState.RUNNING
        logger.info(
            "profiler: starting sampling loop interval_ms=%d history=%d threshold=%.1f",
            self._config.sampling_interval_ms,
            self._config.max_history_samples,
            self._config.high_retention_threshold_percent,
        )
        return self._task

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self._state = ProfilerState.STOPPED
        logger.info("profiler: sampling loop stopped")

    # Query API

    def latest(self) -> ProfilerSnapshot:
        with self._lock:
            return self._history.latest()

    def history(self, limit: int = 0) -> list[ProfilerSnapshot]:
        with self._lock:
            return self._history.query(limit)

    def top_allocations(self, limit: int = DEFAULT_TOP_N) -> list[AllocationStat]:
        with self._lock:
            return self._ledger.top(limit)

    def top_retentions(self, limit: int = DEFAULT_TOP_N) -> list[RetentionStat]:
        with self._lock:
            return top_retentions(self._retentions, limit)

    def suggestions(self) -> list[OptimizationSuggestion]:
        with self._lock:
            return list(self._suggestions)

    def last_sample_time(self) -> dt.datetime | None:
        with self._lock:
            return self._last_sample_at

    def skipped_cycles(self) -> int:
        with self._lock:
            return self._skipped_cycles

    def capture_count(self) -> int:
        return self._capture.count
