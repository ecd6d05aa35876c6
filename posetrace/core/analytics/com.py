"""Segment-weighted center of mass and center-of-gravity height."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from posetrace.core.landmarks import BODY_SEGMENTS, COG_WEIGHTS, BodySegment
from posetrace.core.types import LandmarkArray, Point3

MIN_VISIBILITY = 0.5


def _visible_mask(rows: np.ndarray, min_visibility: float) -> np.ndarray:
    finite = np.isfinite(rows[:, :3]).all(axis=1)
    vis = np.nan_to_num(rows[:, 3], nan=0.0)
    return finite & (vis > min_visibility)


def compute_com(
    landmarks: LandmarkArray | None,
    segments: Sequence[BodySegment] = BODY_SEGMENTS,
    min_visibility: float = MIN_VISIBILITY,
) -> Point3 | None:
    """Return the weighted centroid of the visible body segments.

    Each segment contributes the mean of its qualifying landmarks, weighted by its
    mass fraction. Segments without a qualifying landmark are left out of both the
    sum and the total weight, so partial visibility re-normalizes the rest.
    Returns `None` when nothing qualifies or the result is not finite.
    """

    if landmarks is None or len(landmarks) == 0:
        return None
    n = len(landmarks)
    weighted = np.zeros(3, dtype=np.float64)
    total = 0.0
    for seg in segments:
        idx = [i for i in seg.indices if i < n]
        if not idx:
            continue
        rows = landmarks[idx]
        mask = _visible_mask(rows, min_visibility)
        if not mask.any():
            continue
        centroid = rows[mask, :3].mean(axis=0)
        weighted += centroid * seg.weight
        total += seg.weight

    if total <= 0.0:
        return None
    com = weighted / total
    if not np.isfinite(com).all():
        return None
    return (float(com[0]), float(com[1]), float(com[2]))


def compute_cog_height(
    landmarks: LandmarkArray | None,
    min_visibility: float = MIN_VISIBILITY,
) -> float | None:
    """Weighted mean `y` of hips, knees and ankles (visible ones only)."""

    if landmarks is None or len(landmarks) == 0:
        return None
    total = 0.0
    weighted = 0.0
    for idx, weight in COG_WEIGHTS:
        if idx >= len(landmarks):
            continue
        y = landmarks[idx, 1]
        vis = landmarks[idx, 3]
        if not np.isfinite(y) or not vis > min_visibility:
            continue
        weighted += float(y) * weight
        total += weight
    if total <= 0.0:
        return None
    return weighted / total
