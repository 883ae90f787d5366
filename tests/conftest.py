"""Shared pytest fixtures and markers for memprof-agent tests.

Tests marked ``stress`` hammer the engine from many threads and only run
with ``-m stress`` or ``--run-stress``.
"""

import sys
import tracemalloc
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))


def pytest_addoption(parser):
    parser.addoption(
        "--run-stress",
        action="store_true",
        default=False,
        help="Run multi-threaded stress tests",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "stress: multi-threaded engine stress test (skipped by default)"
    )


def pytest_collection_modifyitems(config, items):
    markexpr = config.getoption("-m") or ""
    if "stress" in markexpr or config.getoption("--run-stress"):
        return
    skip_stress = pytest.mark.skip(reason="stress test (use -m stress or --run-stress)")
    for item in items:
        if "stress" in item.keywords:
            item.add_marker(skip_stress)


@pytest.fixture
def tracemalloc_guard():
    """Stop tracemalloc after the test if the test was the one to start it."""
    was_tracing = tracemalloc.is_tracing()
    yield
    if not was_tracing and tracemalloc.is_tracing():
        tracemalloc.stop()
