"""Build metadata, overridable through the environment at deploy time."""

from __future__ import annotations

import os

VERSION = os.getenv("MEMPROF_VERSION", "0.1.0")
COMMIT = os.getenv("MEMPROF_COMMIT", "none")
BUILD_DATE = os.getenv("MEMPROF_BUILD_DATE", "unknown")


def version_string() -> str:
    return f"version={VERSION} commit={COMMIT} build_date={BUILD_DATE}"
