"""Decide when a sampling cycle should capture a heap snapshot."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterable
from pathlib import Path
from threading import Lock

from capture.heap import DEFAULT_PREFIX, CaptureError, capture_heap, rotate
from profiler.config import ProfilerConfig
from profiler.models import SEVERITY_CRITICAL, SEVERITY_WARNING, RetentionStat

logger = logging.getLogger(__name__)


def severity_matches(severity: str, wanted: Iterable[str]) -> bool:
    severity = severity.strip().lower()
    return any(severity == item.strip().lower() for item in wanted)


class CaptureTrigger:
    """Cooldown-gated heap capture driven by retention thresholds.

    Critical captures fire at the high-retention threshold and are wanted when
    listed in ``profile_capture_on_severities`` or when that list is empty;
    warning captures fire at the memory-spike threshold when listed.
    """

    def __init__(self, config: ProfilerConfig, *, prefix: str = DEFAULT_PREFIX) -> None:
        self._config = config
        self._prefix = prefix
        self._lock = Lock()
        self._last_capture: dt.datetime | None = None
        self._count = 0

    @property
    def enabled(self) -> bool:
        return self._config.profile_capture_enabled

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def last_capture(self) -> dt.datetime | None:
        with self._lock:
            return self._last_capture

    def _cooldown_elapsed(self, now: dt.datetime) -> bool:
        if self._last_capture is None:
            return True
        cooldown = dt.timedelta(seconds=max(0, self._config.profile_capture_min_interval_sec))
        return now - self._last_capture >= cooldown

    def should_capture(self, retentions: Iterable[RetentionStat], now: dt.datetime) -> bool:
        if not self.enabled:
            return False
        severities = self._config.profile_capture_on_severities
        want_critical = not severities or severity_matches(SEVERITY_CRITICAL, severities)
        want_warning = severity_matches(SEVERITY_WARNING, severities)
        triggered = False
        for stat in retentions:
            if want_critical and stat.retained_percent >= self._config.high_retention_threshold_percent:
                triggered = True
                break
            if want_warning and stat.retained_percent >= self._config.memory_spike_threshold_percent:
                triggered = True
                break
        if not triggered:
            return False
        with self._lock:
            return self._cooldown_elapsed(now)

    def capture(self, now: dt.datetime, *, reason: str = "auto") -> Path | None:
        """Write and rotate one capture; failures are logged, never raised."""
        try:
            path = self.capture_or_raise(now)
        except CaptureError as exc:
            logger.warning("capture: %s heap capture failed: %s", reason, exc)
            return None
        logger.info("capture: %s heap snapshot captured path=%s", reason, path)
        return path

    def capture_or_raise(self, now: dt.datetime) -> Path:
        path = capture_heap(
            self._config.profile_capture_dir,
            self._prefix,
            frame_limit=self._config.tracemalloc_frames,
            now=now,
        )
        rotate(self._config.profile_capture_dir, self._config.profile_capture_max_files, self._prefix)
        with self._lock:
            self._last_capture = now
            self._count += 1
        return path
