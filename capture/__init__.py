"""Heap-profile capture to disk with rotation and a cooldown trigger."""

from capture.heap import CaptureError, capture_heap, rotate
from capture.trigger import CaptureTrigger

__all__ = ["CaptureError", "CaptureTrigger", "capture_heap", "rotate"]
