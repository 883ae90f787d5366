"""Write tracemalloc heap snapshots to disk and keep the directory bounded.

Captured files can be loaded later with ``tracemalloc.Snapshot.load(path)``.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import tracemalloc
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CAPTURE_DIR = "./profiles"
DEFAULT_PREFIX = "heap"
CAPTURE_SUFFIX = ".tmsnap"


class CaptureError(RuntimeError):
    """Raised when a heap snapshot cannot be written."""


def _capture_name(prefix: str, now: dt.datetime) -> str:
    stamp = now.astimezone(dt.timezone.utc).strftime("%Y%m%d-%H%M%S%fZ")
    return f"{prefix}-{stamp}{CAPTURE_SUFFIX}"


def capture_heap(
    directory: str | os.PathLike[str] | None,
    prefix: str = DEFAULT_PREFIX,
    *,
    frame_limit: int = 1,
    now: dt.datetime | None = None,
) -> Path:
    """Dump a tracemalloc snapshot into ``directory`` and return the file path."""
    target_dir = Path(str(directory).strip() if directory else DEFAULT_CAPTURE_DIR)
    prefix = prefix or DEFAULT_PREFIX
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CaptureError(f"capture: mkdir {target_dir}: {exc}") from exc

    path = target_dir / _capture_name(prefix, now or dt.datetime.now(dt.timezone.utc))
    if not tracemalloc.is_tracing():
        tracemalloc.start(max(1, frame_limit))
    try:
        tracemalloc.take_snapshot().dump(str(path))
    except OSError as exc:
        path.unlink(missing_ok=True)
        raise CaptureError(f"capture: write heap snapshot {path}: {exc}") from exc
    return path


def rotate(directory: str | os.PathLike[str], max_files: int, prefix: str = DEFAULT_PREFIX) -> None:
    """Keep only the newest ``max_files`` captures matching ``prefix``.

    A non-positive ``max_files`` disables rotation. Listing or removal errors
    are logged and otherwise ignored.
    """
    if max_files <= 0:
        return
    try:
        entries = list(os.scandir(directory))
    except OSError:
        logger.debug("capture: rotation skipped, cannot list %s", directory, exc_info=True)
        return

    files: list[tuple[float, str, str]] = []
    for entry in entries:
        if not entry.is_file():
            continue
        if prefix and not entry.name.startswith(prefix + "-"):
            continue
        try:
            files.append((entry.stat().st_mtime, entry.name, entry.path))
        except OSError:
            continue
    # Names embed the capture time, so they break mtime ties.
    files.sort(reverse=True)
    for _mtime, _name, path in files[max_files:]:
        try:
            os.remove(path)
        except OSError:
            logger.warning("capture: failed to remove old capture %s", path)
