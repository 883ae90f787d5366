"""Prometheus exporter fed from the profiler's latest snapshot."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Gauge,
    Histogram,
    generate_latest,
)

from profiler.engine import Profiler

__all__ = ["CONTENT_TYPE_LATEST", "PrometheusExporter"]


class PrometheusExporter:
    """Per-app registry so several agents can live in one process (tests)."""

    def __init__(self, profiler: Profiler, registry: CollectorRegistry | None = None) -> None:
        self._profiler = profiler
        self.registry = registry or CollectorRegistry()
        self.heap_alloc = Gauge(
            "memprof_heap_alloc_bytes",
            "Traced heap bytes according to the latest snapshot.",
            registry=self.registry,
        )
        self.heap_inuse = Gauge(
            "memprof_heap_inuse_bytes",
            "Resident bytes according to the latest snapshot.",
            registry=self.registry,
        )
        self.heap_idle = Gauge(
            "memprof_heap_idle_bytes",
            "Reserved but non-resident bytes according to the latest snapshot.",
            registry=self.registry,
        )
        self.heap_released = Gauge(
            "memprof_heap_released_bytes",
            "Traced bytes freed since the peak according to the latest snapshot.",
            registry=self.registry,
        )
        self.num_gc = Gauge(
            "memprof_num_gc",
            "Completed GC collections according to the latest snapshot.",
            registry=self.registry,
        )
        self.suggestions = Gauge(
            "memprof_suggestions",
            "Optimization suggestions produced by the latest cycle.",
            registry=self.registry,
        )
        self.skipped_cycles = Gauge(
            "memprof_skipped_cycles",
            "Sampling cycles skipped because heap stats were unavailable.",
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "memprof_http_request_duration_seconds",
            "HTTP request latency by route.",
            ("path",),
            registry=self.registry,
        )

    def refresh(self) -> None:
        snapshot = self._profiler.latest()
        self.heap_alloc.set(snapshot.heap_alloc_bytes)
        self.heap_inuse.set(snapshot.heap_inuse_bytes)
        self.heap_idle.set(snapshot.heap_idle_bytes)
        self.heap_released.set(snapshot.heap_released_bytes)
        self.num_gc.set(snapshot.num_gc)
        self.suggestions.set(len(self._profiler.suggestions()))
        self.skipped_cycles.set(self._profiler.skipped_cycles())

    def render(self) -> bytes:
        self.refresh()
        return generate_latest(self.registry)
