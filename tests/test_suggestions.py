import datetime as dt
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from profiler.models import HeapStats, RetentionStat
from profiler.suggestions import (
    DEFAULT_HINT,
    LARGE_HEAP_BYTES,
    LARGE_HEAP_HINT,
    format_float,
    generate_suggestions,
    hint_for,
)

NOW = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)
HEAP = HeapStats(heap_alloc_bytes=1000)


def _stat(type_name: str, percent: float, tag: str = "t") -> RetentionStat:
    return RetentionStat(type_name, tag, retained_bytes=int(percent * 10), retained_percent=percent)


def test_severity_boundaries():
    retentions = [_stat("a", 9.9), _stat("b", 10.0), _stat("c", 20.0), _stat("d", 20.1)]
    suggestions = generate_suggestions(retentions, HEAP, 10.0, NOW)

    by_type = {s.type_name: s.severity for s in suggestions}
    assert by_type == {"b": "warning", "c": "warning", "d": "critical"}


def test_non_positive_threshold_disables_suggestions():
    assert generate_suggestions([_stat("a", 99.0)], HEAP, 0.0, NOW) == []
    assert generate_suggestions([_stat("a", 99.0)], HEAP, -5.0, NOW) == []


def test_suggestion_ids_are_unique_and_timestamped():
    suggestions = generate_suggestions([_stat("a", 50.0), _stat("b", 50.0)], HEAP, 10.0, NOW)
    assert len({s.id for s in suggestions}) == 2
    assert all(s.id.startswith("suggestion-") for s in suggestions)
    assert all(s.created_at == NOW for s in suggestions)


def test_message_includes_tag_percent_and_threshold():
    (suggestion,) = generate_suggestions([_stat("bytes", 25.06, tag="upload")], HEAP, 10.0, NOW)
    assert suggestion.message.startswith(
        "High memory retention detected for bytes (tag=upload). Retains ~25.0% of heap, threshold=10.0%."
    )
    assert "pooling or reusing buffers" in suggestion.message


@pytest.mark.parametrize(
    ("type_name", "needle"),
    [
        ("bytes", "reusing buffers"),
        ("io.BufferedReader", "reusing buffers"),
        ("HTTPRequest", "request/response/message"),
        ("app.Message", "request/response/message"),
        ("dict", "bounding cache size"),
        ("LRUCache", "bounding cache size"),
        ("Widget", "reviewing allocation patterns"),
    ],
)
def test_hint_selection(type_name, needle):
    assert needle in hint_for(type_name)


def test_first_matching_hint_wins():
    # "bytes" beats "dict" because byte hints are checked first.
    assert "reusing buffers" in hint_for("BytesDict")
    assert hint_for("Widget") == DEFAULT_HINT


def test_large_heap_appends_gc_pressure_hint():
    big_heap = HeapStats(heap_alloc_bytes=LARGE_HEAP_BYTES + 1)
    (suggestion,) = generate_suggestions([_stat("Widget", 50.0)], big_heap, 10.0, NOW)
    assert suggestion.message.endswith(LARGE_HEAP_HINT)

    (suggestion,) = generate_suggestions([_stat("Widget", 50.0)], HEAP, 10.0, NOW)
    assert LARGE_HEAP_HINT not in suggestion.message


@pytest.mark.parametrize(
    ("value", "expected"),
    [(25.06, "25.0"), (0.0, "0.0"), (99.99, "99.9"), (-1.25, "-1.2"), (100.0, "100.0")],
)
def test_format_float_truncates(value, expected):
    assert format_float(value) == expected


def test_format_float_zero_decimals_rounds():
    assert format_float(2.5, 0) == "3"
    assert format_float(2.4, 0) == "2"
