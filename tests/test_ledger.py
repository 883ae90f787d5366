from __future__ import annotations

import array
import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from profiler.config import ProfilerConfig
from profiler.engine import Profiler
from profiler.ledger import (
    DEFAULT_TAG,
    AllocationLedger,
    Ref,
    Sized,
    estimate_size,
    observe,
    type_name_of,
)
from profiler.models import HeapStats


class Payload:
    def __init__(self) -> None:
        self.value = 42


class _Hinted:
    def __alloc_size__(self) -> int:
        return 96


class _Unsizable:
    def __sizeof__(self) -> int:
        raise RuntimeError("no size for you")


def _profiler() -> Profiler:
    return Profiler(ProfilerConfig(), heap_source=lambda: HeapStats(heap_alloc_bytes=1))


def test_estimate_size_heuristics() -> None:
    assert estimate_size("héllo") == 6
    assert estimate_size(b"abcd") == 4
    assert estimate_size(bytearray(10)) == 10
    assert estimate_size(memoryview(b"abcdef")) == 6
    assert estimate_size(array.array("d", [1.0] * 4)) == 32
    assert estimate_size([1, 2, 3]) == 3 * sys.getsizeof(1)
    assert estimate_size({"a": 1, "b": 2}) == 2 * (sys.getsizeof("a") + sys.getsizeof(1))
    assert estimate_size(Ref(b"abc")) == 3
    assert estimate_size(Sized("Frame", 64)) == 64
    assert estimate_size(_Hinted()) == 96
    payload = Payload()
    assert estimate_size(payload) == sys.getsizeof(payload)


@pytest.mark.parametrize("value", [None, [], {}, "", b"", Ref(None), Sized("Empty", 0)])
def test_observe_skips_zero_sized_values(value: object) -> None:
    assert observe(value) is None


def test_type_names() -> None:
    assert type_name_of(b"x") == "bytes"
    assert type_name_of({}) == "dict"
    assert type_name_of(Ref([1])) == "*list"
    assert type_name_of(Sized("proto.Frame", 8)) == "proto.Frame"
    name = type_name_of(Payload())
    # Module name depends on how pytest imports this file.
    assert name.endswith(".Payload")


def test_ledger_counters_accumulate() -> None:
    ledger = AllocationLedger()
    for size in (10, 20, 35):
        ledger.add("bytes", "upload", size)

    stat = ledger.get("bytes", "upload")
    assert stat is not None
    assert stat.alloc_count == 3
    assert stat.total_alloc_bytes == 65
    assert stat.average_alloc_bytes == 65 // 3


def test_record_normalizes_empty_tag() -> None:
    profiler = _profiler()
    profiler.record(b"abc", "")
    profiler.record(b"abcd", "   ")

    (stat,) = profiler.top_allocations(0)
    assert stat.tag == DEFAULT_TAG
    assert stat.alloc_count == 2
    assert stat.total_alloc_bytes == 7


def test_record_drops_noise_and_never_raises() -> None:
    profiler = _profiler()
    profiler.track_allocation(None, "x")
    profiler.track_allocation([], "x")
    profiler.track_allocation(_Unsizable(), "x")

    assert profiler.top_allocations(0) == []


def test_top_allocations_orders_by_bytes_then_key() -> None:
    ledger = AllocationLedger()
    ledger.add("b", "t", 100)
    ledger.add("a", "t", 100)
    ledger.add("c", "t", 500)
    ledger.add("d", "t", 1)

    top = ledger.top(3)
    assert [(s.type_name, s.total_alloc_bytes) for s in top] == [
        ("c", 500),
        ("a", 100),
        ("b", 100),
    ]
    assert len(ledger.top(0)) == 4
    assert len(ledger.top(99)) == 4


def test_concurrent_records_do_not_lose_updates() -> None:
    profiler = _profiler()
    callers = 8
    per_caller = 500
    barrier = threading.Barrier(callers)

    def worker() -> None:
        barrier.wait()
        for _ in range(per_caller):
            profiler.record(Sized("Temp", 16), "concurrency")

    threads = [threading.Thread(target=worker) for _ in range(callers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    (stat,) = profiler.top_allocations(1)
    assert stat.alloc_count == callers * per_caller
    assert stat.total_alloc_bytes == callers * per_caller * 16
    assert stat.average_alloc_bytes == 16


@pytest.mark.stress
def test_concurrent_records_under_sampling_pressure() -> None:
    profiler = _profiler()
    callers = 50
    per_caller = 2000
    done = threading.Event()

    def sampler() -> None:
        while not done.is_set():
            profiler.sample_once()

    def worker() -> None:
        for _ in range(per_caller):
            profiler.record(Sized("Temp", 8), "stress")

    sampling = threading.Thread(target=sampler)
    sampling.start()
    threads = [threading.Thread(target=worker) for _ in range(callers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    done.set()
    sampling.join()

    (stat,) = profiler.top_allocations(1)
    assert stat.alloc_count == callers * per_caller


def test_malformed_type_names_are_dropped_and_sampling_continues() -> None:
    profiler = _profiler()
    profiler.record(b"abc", "ok")
    profiler.record(Sized(None, 8), "bad")
    profiler.record(Sized(3, 8), "bad")
    profiler.record(Sized("", 8), "bad")
    profiler.record(Ref(Sized(None, 8)), "bad")

    snapshot = profiler.sample_once()

    assert snapshot is not None
    assert [(s.type_name, s.tag) for s in profiler.top_allocations(0)] == [("bytes", "ok")]
    assert [s.type_name for s in snapshot.top_allocations] == ["bytes"]
    assert [s.type_name for s in profiler.top_retentions(0)] == ["bytes"]
