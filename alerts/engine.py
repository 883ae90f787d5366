"""In-memory store for the most recently built alert set."""

from __future__ import annotations

import datetime as dt
from threading import Lock

from alerts.rules import Alert


class AlertStore:
    """Keep the latest alerts; callers always receive copies."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._alerts: list[Alert] = []

    def replace(self, alerts: list[Alert]) -> None:
        with self._lock:
            self._alerts = list(alerts)

    def current(self) -> list[Alert]:
        with self._lock:
            return list(self._alerts)

    def prune_older_than(self, max_age: dt.timedelta, now: dt.datetime) -> None:
        cutoff = now - max_age
        with self._lock:
            self._alerts = [alert for alert in self._alerts if alert.created_at > cutoff]
