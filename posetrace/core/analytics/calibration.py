"""Metric calibration for world-landmark speeds."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# Average height the pose model's world space is tuned for.
REFERENCE_HEIGHT_CM = 170.0
# Badminton court (width, length) in meters.
STANDARD_COURT_M = (13.4, 6.1)


class Calibration:
    """Scaling applied to world landmarks before speeds are derived.

    Height calibration scales by `player_height / 170`. Court calibration
    replaces it with the ratio of the average court side to a standard court.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.player_height_cm = REFERENCE_HEIGHT_CM
        self.use_height = False
        self.court_width_m, self.court_length_m = STANDARD_COURT_M
        self.court_ratio: float | None = None
        self.use_court = False
        self.camera_distance_m = 10.0
        self.use_camera_distance = False

    def set_player_height(self, height_cm: float) -> bool:
        if not 0.0 < height_cm < 300.0:
            logger.warning("Ignoring invalid player height: %s", height_cm)
            return False
        self.player_height_cm = float(height_cm)
        self.use_height = True
        return True

    def set_court_dimensions(self, width_m: float, length_m: float) -> bool:
        if not (width_m > 0.0 and length_m > 0.0):
            logger.warning("Ignoring invalid court dimensions: %s x %s", width_m, length_m)
            return False
        self.court_width_m = float(width_m)
        self.court_length_m = float(length_m)
        standard = sum(STANDARD_COURT_M) / 2.0
        self.court_ratio = ((width_m + length_m) / 2.0) / standard
        self.use_court = True
        return True

    def set_camera_distance(self, distance_m: float) -> bool:
        if not distance_m > 0.0:
            logger.warning("Ignoring invalid camera distance: %s", distance_m)
            return False
        self.camera_distance_m = float(distance_m)
        self.use_camera_distance = True
        return True

    @property
    def scaling_factor(self) -> float:
        factor = 1.0
        if self.use_height:
            factor *= self.player_height_cm / REFERENCE_HEIGHT_CM
        if self.use_court and self.court_ratio:
            factor = self.court_ratio
        return factor

    @property
    def accuracy(self) -> int:
        acc = 0
        if self.use_height:
            acc += 20
        if self.use_court:
            acc += 40
        if self.use_camera_distance:
            acc += 25
        return min(acc, 95)

    @property
    def is_calibrated(self) -> bool:
        return self.accuracy > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "player_height_cm": self.player_height_cm,
            "use_height": self.use_height,
            "court_width_m": self.court_width_m,
            "court_length_m": self.court_length_m,
            "use_court": self.use_court,
            "camera_distance_m": self.camera_distance_m,
            "use_camera_distance": self.use_camera_distance,
            "scaling_factor": self.scaling_factor,
            "accuracy": self.accuracy,
            "is_calibrated": self.is_calibrated,
        }
