"""Detector interface consumed by the rate controller."""

from __future__ import annotations

from typing import Protocol

from posetrace.core.types import DetectionResult, Frame


class PoseDetector(Protocol):
    """Minimal landmark detector interface.

    Implementations are treated as not thread-safe; the controller only calls
    `detect` from inside its concurrency guard.
    """

    def detect(self, frame: Frame, timestamp_ms: int) -> DetectionResult:
        """Return zero or more candidate poses for `frame`."""

    def close(self) -> None:
        """Release model resources."""
