"""Motion history and speed derivation.

`SpeedCalculator.update` turns one (landmarks, world landmarks, timestamp) triple
into a new `SpeedMetrics` snapshot. Snapshots are immutable and swapped in as a
whole, so readers never observe a half-applied update.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from collections.abc import Iterator
from dataclasses import replace

import numpy as np

from posetrace.core.analytics.calibration import Calibration
from posetrace.core.analytics.com import MIN_VISIBILITY, compute_cog_height, compute_com
from posetrace.core.analytics.smoothing import IdentitySmoother, Smoother
from posetrace.core.landmarks import as_landmark_array, landmark_index
from posetrace.core.types import LandmarkArray, MotionSample, Point3, SpeedMetrics

logger = logging.getLogger(__name__)

MAX_SPEED = 50.0
MAX_TIME_DELTA = 1.0


class MotionHistory:
    """Bounded FIFO of motion samples; the oldest sample is evicted on overflow."""

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 2:
            raise ValueError("capacity must be >= 2")
        self.capacity = int(capacity)
        self._samples: deque[MotionSample] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[MotionSample]:
        return iter(self._samples)

    def append(self, sample: MotionSample) -> None:
        self._samples.append(sample)

    def latest_pair(self) -> tuple[MotionSample, MotionSample] | None:
        """Return `(previous, latest)` or `None` with fewer than two samples."""

        if len(self._samples) < 2:
            return None
        return self._samples[-2], self._samples[-1]

    def clear(self) -> None:
        self._samples.clear()


def _clamp_speed(value: float, limit: float) -> float:
    return min(max(value, 0.0), limit)


class SpeedCalculator:
    """Center-of-mass tracking plus velocity and speed estimates."""

    def __init__(
        self,
        history_size: int = 10,
        speed_landmark: str = "right_foot_index",
        *,
        max_speed: float = MAX_SPEED,
        calibration: Calibration | None = None,
        smoother: Smoother | None = None,
    ) -> None:
        self.history = MotionHistory(history_size)
        self.max_speed = float(max_speed)
        self.calibration = calibration or Calibration()
        self.smoother: Smoother = smoother or IdentitySmoother()
        self._speed_landmark = speed_landmark
        self._speed_landmark_index = landmark_index(speed_landmark)
        self._metrics = SpeedMetrics(speed_landmark=speed_landmark)
        self._lock = threading.Lock()

    @property
    def metrics(self) -> SpeedMetrics:
        return self._metrics

    @property
    def speed_landmark(self) -> str:
        return self._speed_landmark

    def set_speed_landmark(self, name: str) -> None:
        idx = landmark_index(name)
        with self._lock:
            self._speed_landmark = name
            self._speed_landmark_index = idx
            self._metrics = replace(self._metrics, speed_landmark=name, landmark_speed=0.0)

    def _invalidate(self) -> SpeedMetrics:
        self._metrics = replace(self._metrics, is_valid=False)
        return self._metrics

    def _landmark_speed(
        self,
        current: LandmarkArray | None,
        previous: LandmarkArray | None,
        time_delta: float,
    ) -> float:
        if current is None or previous is None:
            return 0.0
        idx = self._speed_landmark_index
        if idx >= len(current) or idx >= len(previous):
            return 0.0
        a = current[idx]
        b = previous[idx]
        if not (a[3] > MIN_VISIBILITY and b[3] > MIN_VISIBILITY):
            return 0.0
        dist = float(np.linalg.norm(a[:3] - b[:3]))
        if not math.isfinite(dist):
            return 0.0
        return _clamp_speed(dist / time_delta, self.max_speed)

    def update(
        self,
        landmarks: LandmarkArray | None,
        world_landmarks: LandmarkArray | None,
        timestamp: float,
    ) -> SpeedMetrics:
        """Feed one detection and return the published snapshot.

        Invalid input leaves every field untouched except `is_valid=False`.
        """

        with self._lock:
            lms = as_landmark_array(landmarks)
            world = as_landmark_array(world_landmarks)
            if lms is None or world is None:
                logger.debug("Speed update rejected: empty landmark set")
                return self._invalidate()
            try:
                ts = float(timestamp)
            except (TypeError, ValueError):
                ts = math.nan
            if not math.isfinite(ts) or ts < 0:
                logger.debug("Speed update rejected: bad timestamp %r", timestamp)
                return self._invalidate()

            scale = self.calibration.scaling_factor
            if scale != 1.0:
                world[:, :3] *= scale

            com = compute_com(world)
            if com is None:
                return self._invalidate()
            com = self.smoother.apply(com)
            com_normalized = compute_com(lms)
            cog_height = compute_cog_height(lms) or 0.0

            self.history.append(MotionSample(com=com, timestamp=ts, world_landmarks=world))

            prev_metrics = self._metrics
            velocity: Point3 = prev_metrics.velocity
            speed = prev_metrics.speed
            general_speed = prev_metrics.general_moving_speed
            landmark_speed = prev_metrics.landmark_speed

            pair = self.history.latest_pair()
            if pair is not None:
                previous, latest = pair
                time_delta = latest.timestamp - previous.timestamp
                # Rejects rewinds, duplicates and seek gaps.
                if 0.0 < time_delta < MAX_TIME_DELTA:
                    v = (np.asarray(latest.com) - np.asarray(previous.com)) / time_delta
                    if np.isfinite(v).all():
                        velocity = (float(v[0]), float(v[1]), float(v[2]))
                        speed = _clamp_speed(float(np.linalg.norm(v)), self.max_speed)
                        general_speed = _clamp_speed(math.hypot(v[0], v[2]), self.max_speed)
                    landmark_speed = self._landmark_speed(
                        latest.world_landmarks, previous.world_landmarks, time_delta
                    )

            self._metrics = SpeedMetrics(
                center_of_mass=com,
                center_of_mass_normalized=com_normalized,
                center_of_gravity_height=float(cog_height),
                velocity=velocity,
                speed=speed,
                general_moving_speed=general_speed,
                landmark_speed=landmark_speed,
                speed_landmark=self._speed_landmark,
                is_valid=True,
                scaling_factor=scale,
            )
            return self._metrics

    def reset(self) -> None:
        """Clear history and zero every published field."""

        with self._lock:
            self.history.clear()
            self.smoother.reset()
            self._metrics = SpeedMetrics(speed_landmark=self._speed_landmark)

    def cleanup(self) -> None:
        self.reset()
        self.calibration.reset()
