"""Region-of-interest gating for multi-person frames."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from posetrace.core.landmarks import ROI_KEY_LANDMARKS
from posetrace.core.types import LandmarkArray


def _clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v


@dataclass(frozen=True)
class RoiBox:
    """Normalized rectangle `(x, y, width, height)` inside the unit square."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def clamped(cls, x: float, y: float, width: float, height: float) -> "RoiBox":
        """Build a box that stays within [0, 1] on both axes."""

        cx = _clamp(float(x), 0.0, 1.0)
        cy = _clamp(float(y), 0.0, 1.0)
        cw = _clamp(float(width), 0.0, 1.0 - cx)
        ch = _clamp(float(height), 0.0, 1.0 - cy)
        return cls(cx, cy, cw, ch)

    def contains(self, px: float, py: float) -> bool:
        # Inclusive on all four edges.
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class RoiConfig:
    min_visibility: float = 0.3
    min_inside_ratio: float = 0.6
    key_landmarks: tuple[int, ...] = ROI_KEY_LANDMARKS


class RoiGate:
    """Decides whether a detected pose belongs to the selected region.

    A pose qualifies when at least `min_inside_ratio` of its visible key landmarks
    (nose, shoulders, elbows, hips) fall inside the box. Landmarks at or below
    `min_visibility` are ignored, which keeps partially occluded athletes selectable.
    """

    def __init__(self, box: RoiBox | None = None, enabled: bool = False, config: RoiConfig | None = None) -> None:
        self.box = box
        self.enabled = bool(enabled and box is not None)
        self.config = config or RoiConfig()

    @property
    def active(self) -> bool:
        return self.enabled and self.box is not None

    def set_box(self, x: float, y: float, width: float, height: float) -> RoiBox:
        self.box = RoiBox.clamped(x, y, width, height)
        self.enabled = True
        return self.box

    def clear(self) -> None:
        self.box = None
        self.enabled = False

    def toggle(self) -> bool:
        """Flip gating; gating stays off while no box is set."""

        self.enabled = (not self.enabled) and self.box is not None
        return self.enabled

    def accepts(self, landmarks: LandmarkArray | None) -> bool:
        # Single read of the box: set/clear may run on another thread.
        box = self.box
        if not self.enabled or box is None:
            return True
        return self._accepts_in(box, landmarks)

    def _accepts_in(self, box: RoiBox, landmarks: LandmarkArray | None) -> bool:
        if landmarks is None or len(landmarks) == 0:
            return False
        cfg = self.config

        visible = 0
        inside = 0
        for idx in cfg.key_landmarks:
            if idx >= len(landmarks):
                continue
            x, y, _z, vis = landmarks[idx]
            # NaN visibility compares False, so absent slots drop out here.
            if not vis > cfg.min_visibility or not (np.isfinite(x) and np.isfinite(y)):
                continue
            visible += 1
            if box.contains(float(x), float(y)):
                inside += 1

        if visible == 0:
            return False
        return inside / visible >= cfg.min_inside_ratio

    def select(self, candidates: list[LandmarkArray]) -> int | None:
        """Return the index of the first accepted candidate, or `None`."""

        if not candidates:
            return None
        box = self.box
        if not self.enabled or box is None:
            return 0
        for i, cand in enumerate(candidates):
            if self._accepts_in(box, cand):
                return i
        return None
