"""Step-wise adaptive quality control.

Throughput far below target trades accuracy for speed (skip more frames, accept
lower confidence); throughput far above target does the opposite. Inside the
band `[0.8, 1.2] * target` nothing changes, which keeps the settings from
oscillating between neighbouring steps.
"""

from __future__ import annotations

from dataclasses import dataclass

LOW_BAND = 0.8
HIGH_BAND = 1.2
MAX_FRAME_SKIP = 4
MIN_FRAME_SKIP = 1
MIN_CONFIDENCE_FLOOR = 0.1
MIN_CONFIDENCE_CAP = 0.7


@dataclass(frozen=True)
class QualityAdjustment:
    frame_skip: int
    min_confidence: float
    changed: bool


def adjust_quality(
    current_fps: float,
    target_fps: float,
    frame_skip: int,
    min_confidence: float,
) -> QualityAdjustment:
    """Return the next `(frame_skip, min_confidence)` for an observed throughput."""

    if target_fps <= 0:
        raise ValueError("target_fps must be > 0")

    new_skip = int(frame_skip)
    new_conf = float(min_confidence)
    if current_fps < LOW_BAND * target_fps:
        new_skip = min(new_skip + 1, MAX_FRAME_SKIP)
        new_conf = max(new_conf - 0.1, MIN_CONFIDENCE_FLOOR)
    elif current_fps > HIGH_BAND * target_fps:
        new_skip = max(new_skip - 1, MIN_FRAME_SKIP)
        new_conf = min(new_conf + 0.05, MIN_CONFIDENCE_CAP)

    # Round away float drift from repeated +/- steps (0.3 - 0.1 -> 0.2, not 0.19999).
    new_conf = round(new_conf, 4)
    changed = new_skip != frame_skip or new_conf != round(float(min_confidence), 4)
    return QualityAdjustment(frame_skip=new_skip, min_confidence=new_conf, changed=changed)
