import gc
import sys
import tracemalloc
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from profiler.heap import ProcessHeapSource


def test_process_heap_source_reads_live_stats(tracemalloc_guard):
    source = ProcessHeapSource(frame_limit=2)
    source()
    assert tracemalloc.is_tracing()
    ballast = [bytearray(1024) for _ in range(64)]
    gc.collect()

    stats = source()

    assert ballast
    assert stats.heap_alloc_bytes > 0
    assert stats.total_alloc_bytes >= stats.heap_alloc_bytes
    assert stats.heap_inuse_bytes > 0
    assert stats.heap_idle_bytes >= 0
    assert stats.heap_released_bytes >= 0
    assert stats.num_gc >= 1
    assert stats.last_gc_unix > 0
    assert stats.next_gc_bytes >= 0
