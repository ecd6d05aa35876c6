"""Static registry for the 33-point pose schema.

Index, name, skeleton edges, and body segment membership all live here so the ROI
gate, the CoM calculator, and keypoint filtering agree by construction.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from posetrace.core.types import LandmarkArray

NUM_LANDMARKS = 33

LANDMARK_NAMES: tuple[str, ...] = (
    "nose",
    "left_eye_inner",
    "left_eye",
    "left_eye_outer",
    "right_eye_inner",
    "right_eye",
    "right_eye_outer",
    "left_ear",
    "right_ear",
    "mouth_left",
    "mouth_right",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_pinky",
    "right_pinky",
    "left_index",
    "right_index",
    "left_thumb",
    "right_thumb",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
    "left_heel",
    "right_heel",
    "left_foot_index",
    "right_foot_index",
)

_INDEX_BY_NAME: dict[str, int] = {name: i for i, name in enumerate(LANDMARK_NAMES)}

# Skeleton edges. Some torso/limb edges appear twice on purpose: consumers draw
# the list as-is and existing exports carry the duplicates.
POSE_CONNECTIONS: tuple[tuple[int, int], ...] = (
    # face
    (0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8), (9, 10),
    # torso
    (11, 12), (11, 13), (12, 14), (13, 15), (14, 16), (11, 23), (12, 24), (23, 24),
    # left arm
    (11, 13), (13, 15), (15, 17), (15, 19), (15, 21), (17, 19),
    # right arm
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
    # left leg
    (23, 25), (25, 27), (27, 29), (27, 31), (29, 31),
    # right leg
    (24, 26), (26, 28), (28, 30), (28, 32), (30, 32),
)


@dataclass(frozen=True)
class BodySegment:
    """Landmark membership and mass fraction (percent of body mass)."""

    name: str
    indices: tuple[int, ...]
    weight: float


BODY_SEGMENTS: tuple[BodySegment, ...] = (
    BodySegment("head", tuple(range(0, 11)), 8.26),
    BodySegment("torso", (11, 12, 23, 24), 48.33),
    BodySegment("left_upper_arm", (11, 13), 2.71),
    BodySegment("right_upper_arm", (12, 14), 2.71),
    BodySegment("left_forearm", (13, 15), 1.62),
    BodySegment("right_forearm", (14, 16), 1.62),
    BodySegment("left_hand", (15, 17, 19, 21), 0.61),
    BodySegment("right_hand", (16, 18, 20, 22), 0.61),
    BodySegment("left_thigh", (23, 25), 10.5),
    BodySegment("right_thigh", (24, 26), 10.5),
    BodySegment("left_shank", (25, 27), 4.75),
    BodySegment("right_shank", (26, 28), 4.75),
    BodySegment("left_foot", (27, 29, 31), 1.43),
    BodySegment("right_foot", (28, 30, 32), 1.43),
)

# nose, shoulders, elbows, hips
ROI_KEY_LANDMARKS: tuple[int, ...] = (11, 12, 13, 14, 23, 24, 0)

# (index, weight) pairs for center-of-gravity height: hips, knees, ankles.
COG_WEIGHTS: tuple[tuple[int, float], ...] = (
    (23, 0.3),
    (24, 0.3),
    (25, 0.2),
    (26, 0.2),
    (27, 0.1),
    (28, 0.1),
)


def landmark_index(name: str) -> int:
    """Return the slot index for a landmark name (raises `KeyError` if unknown)."""

    return _INDEX_BY_NAME[name]


def landmark_name(index: int) -> str:
    if not 0 <= index < NUM_LANDMARKS:
        raise IndexError(f"landmark index out of range: {index}")
    return LANDMARK_NAMES[index]


def empty_landmarks() -> LandmarkArray:
    """Return a landmark set with every slot absent."""

    return np.full((NUM_LANDMARKS, 4), np.nan, dtype=np.float64)


def landmarks_from_points(
    points: Iterable[Sequence[float] | None],
) -> LandmarkArray:
    """Build a landmark set from up to 33 `(x, y, z[, visibility])` entries.

    `None` entries stay absent. A missing visibility column is filled with 1.0.
    """

    out = empty_landmarks()
    for i, p in enumerate(points):
        if i >= NUM_LANDMARKS:
            break
        if p is None:
            continue
        vals = [float(v) for v in p]
        if len(vals) == 3:
            vals.append(1.0)
        if len(vals) != 4:
            raise ValueError(f"landmark {i} must have 3 or 4 values, got {len(vals)}")
        out[i] = vals
    return out


def as_landmark_array(data: object) -> LandmarkArray | None:
    """Coerce array-like input to a `(33, 4)` float array, or `None` if unusable."""

    if data is None:
        return None
    arr = np.asarray(data, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] not in (3, 4):
        return None
    out = empty_landmarks()
    n = min(arr.shape[0], NUM_LANDMARKS)
    out[:n, : arr.shape[1]] = arr[:n]
    if arr.shape[1] == 3:
        out[:n, 3] = 1.0
    return out


def filter_connections(selected: Iterable[int]) -> list[tuple[int, int]]:
    """Return skeleton edges whose both ends are selected (all edges if none are)."""

    chosen = set(selected)
    if not chosen:
        return list(POSE_CONNECTIONS)
    return [(a, b) for a, b in POSE_CONNECTIONS if a in chosen and b in chosen]
