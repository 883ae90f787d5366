"""Alerts derived from profiler snapshots and suggestions."""

from alerts.engine import AlertStore
from alerts.rules import Alert, build_alerts

__all__ = ["Alert", "AlertStore", "build_alerts"]
