"""Liveness and readiness checks for the profiling agent."""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable

from profiler.engine import Profiler


class HealthChecker:
    """Judge readiness from how recently the profiler produced a sample.

    With no sample yet, the agent is ready during a grace period of two
    sampling intervals after startup. After the first sample it stays ready
    while the last sample is at most three intervals old.
    """

    def __init__(
        self,
        profiler: Profiler,
        *,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._profiler = profiler
        self._clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))
        self.started_at = self._clock()

    def mark_started(self) -> None:
        self.started_at = self._clock()

    def liveness(self) -> str | None:
        """Return ``None`` while the process should be considered alive."""
        return None

    def readiness(self) -> str | None:
        """Return ``None`` when ready, otherwise the reason it is not."""
        interval = dt.timedelta(milliseconds=self._profiler.config.sampling_interval_ms)
        now = self._clock()
        last = self._profiler.last_sample_time()
        if last is None:
            if now - self.started_at < 2 * interval:
                return None
            return "profiler has not produced any samples yet"
        if now - last > 3 * interval:
            return "profiler samples are stale"
        return None
