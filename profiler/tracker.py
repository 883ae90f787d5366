"""Request-scoped allocation trackers handed explicitly to application code."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from profiler.engine import Profiler


class TrackerProtocol(Protocol):
    def track(self, value: Any, subtag: str = "") -> None: ...


def join_tag(base_tag: str, subtag: str) -> str:
    base_tag = base_tag.strip()
    subtag = subtag.strip()
    if base_tag and subtag:
        return f"{base_tag}:{subtag}"
    return base_tag or subtag


class Tracker:
    """Bind a profiler to a base tag, e.g. ``"orders:GET /orders"``.

    Usage::

        tracker = profiler.tracker("orders")
        tracker.track(payload, "decode")  # tag "orders:decode"
    """

    def __init__(self, profiler: Profiler, base_tag: str = "") -> None:
        self._profiler = profiler
        self.base_tag = base_tag.strip()

    def track(self, value: Any, subtag: str = "") -> None:
        self._profiler.track_allocation(value, join_tag(self.base_tag, subtag or ""))

    def child(self, subtag: str) -> Tracker:
        return Tracker(self._profiler, join_tag(self.base_tag, subtag))


class _NoopTracker:
    base_tag = ""

    def track(self, value: Any, subtag: str = "") -> None:
        return None


NOOP_TRACKER = _NoopTracker()
