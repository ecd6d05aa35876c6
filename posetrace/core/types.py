"""Shared type definitions used across posetrace.

Landmark sets are plain numpy arrays of shape (33, 4) holding `x, y, z, visibility`
per anatomical slot. An absent slot is a row of NaN so downstream math can mask it
with `np.isfinite` instead of special-casing missing keypoints.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

Frame = np.ndarray

# shape: (33, 4) -> x, y, z, visibility
LandmarkArray = np.ndarray
Point3 = tuple[float, float, float]


@dataclass
class DetectionResult:
    """Raw detector output: zero or more candidate poses."""

    landmark_sets: list[LandmarkArray] = field(default_factory=list)
    world_landmark_sets: list[LandmarkArray] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.landmark_sets)


@dataclass
class PoseFrame:
    """Detection outcome stored for one video frame.

    A frame with `detected=False` still occupies its cache slot so the controller
    does not re-run detection for it.
    """

    frame_number: int
    landmarks: LandmarkArray | None
    world_landmarks: LandmarkArray | None
    timestamp: float
    confidence: float = 0.0
    detected: bool = False
    total_poses_detected: int = 0
    reason: str | None = None


@dataclass
class MotionSample:
    """One entry of the motion history."""

    com: Point3
    timestamp: float
    world_landmarks: LandmarkArray | None = None


@dataclass(frozen=True)
class SpeedMetrics:
    """Snapshot published by the speed calculator after each update."""

    center_of_mass: Point3 = (0.0, 0.0, 0.0)
    center_of_mass_normalized: Point3 | None = None
    center_of_gravity_height: float = 0.0
    velocity: Point3 = (0.0, 0.0, 0.0)
    speed: float = 0.0
    general_moving_speed: float = 0.0
    landmark_speed: float = 0.0
    speed_landmark: str = "right_foot_index"
    is_valid: bool = False
    scaling_factor: float = 1.0
