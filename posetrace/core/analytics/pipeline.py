"""Pose analysis pipeline orchestration.

This module ties the rate-controlled detector, the frame cache, and the speed
calculator into the surface consumers use: submit frames in playback order, then
query poses and motion metrics by frame number.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import numpy as np

from posetrace.core.analytics.motion import SpeedCalculator
from posetrace.core.analytics.smoothing import make_smoother
from posetrace.core.cache import FramePoseCache
from posetrace.core.config.settings import PoseSettings, roi_from_settings
from posetrace.core.controller import DetectionRateController, DetectorFactory
from posetrace.core.detectors.base import PoseDetector
from posetrace.core.landmarks import (
    LANDMARK_NAMES,
    NUM_LANDMARKS,
    POSE_CONNECTIONS,
    filter_connections,
    landmark_index,
)
from posetrace.core.roi import RoiGate
from posetrace.core.types import Frame, LandmarkArray, PoseFrame, SpeedMetrics

logger = logging.getLogger(__name__)

# Settings captured by the detector factory, the cache or the speed history when
# a pipeline is built; changing any of them needs a new pipeline.
REBUILD_FIELDS = frozenset(
    {
        "model_path",
        "running_mode",
        "num_poses",
        "min_pose_presence_confidence",
        "min_tracking_confidence",
        "cache_capacity",
        "history_size",
        "smoothing",
        "smoothing_gain",
        "smoothing_window",
    }
)


def mediapipe_factory(settings: PoseSettings) -> DetectorFactory:
    """Return a factory building a MediaPipe detector at a given min confidence."""

    def _create(min_confidence: float) -> PoseDetector:
        from posetrace.core.detectors.mediapipe_pose import MediaPipePoseDetector

        return MediaPipePoseDetector(
            settings.model_path,
            running_mode=settings.running_mode,
            num_poses=settings.num_poses,
            min_pose_detection_confidence=min_confidence,
            min_pose_presence_confidence=settings.min_pose_presence_confidence,
            min_tracking_confidence=settings.min_tracking_confidence,
        )

    return _create


class PosePipeline:
    """Per-video pose analysis.

    Responsibilities:
    - feed frames to the `DetectionRateController`
    - update the `SpeedCalculator` whenever a fresh pose is detected
    - answer pose, export and keypoint-filter queries by frame number
    """

    def __init__(
        self,
        controller: DetectionRateController,
        speed: SpeedCalculator | None = None,
    ) -> None:
        self.controller = controller
        self.speed = speed or SpeedCalculator()
        self._selected: tuple[int, ...] = ()
        self._last_status: str | None = None

    @classmethod
    def from_settings(
        cls,
        settings: PoseSettings,
        detector: PoseDetector | None = None,
        detector_factory: DetectorFactory | None = None,
    ) -> "PosePipeline":
        """Build a pipeline wired from settings.

        Without an explicit detector or factory, a MediaPipe factory is used and
        the detector is created lazily by `initialize()`.
        """

        if detector is None and detector_factory is None:
            detector_factory = mediapipe_factory(settings)
        roi = RoiGate()
        box = roi_from_settings(settings)
        if box is not None:
            roi.set_box(*box)
        controller = DetectionRateController(
            detector,
            detector_factory=detector_factory,
            cache=FramePoseCache(settings.cache_capacity),
            roi_gate=roi,
            frame_skip=settings.frame_skip,
            max_fps=settings.max_fps,
            playback_rate=settings.playback_rate,
            min_confidence=settings.min_pose_detection_confidence,
        )
        speed = SpeedCalculator(
            history_size=settings.history_size,
            speed_landmark=settings.speed_landmark,
            smoother=make_smoother(
                settings.smoothing,
                gain=settings.smoothing_gain,
                window=settings.smoothing_window,
            ),
        )
        if settings.player_height_cm is not None:
            speed.calibration.set_player_height(settings.player_height_cm)
        return cls(controller, speed)

    def initialize(self) -> bool:
        return self.controller.initialize()

    @property
    def last_status(self) -> str | None:
        return self._last_status

    def process_frame(self, frame: Frame, timestamp: float, frame_number: int) -> PoseFrame | None:
        """Submit one frame and return the pose to display for it."""

        result = self.controller.submit_frame_with_status(frame, timestamp, frame_number)
        self._last_status = result.status
        pose = result.pose
        if result.status == "detected" and pose is not None and pose.detected:
            self.speed.update(pose.landmarks, pose.world_landmarks, pose.timestamp)
        return pose

    # -- queries -----------------------------------------------------------

    def query_pose(self, frame_number: int) -> PoseFrame | None:
        return self.controller.lookup(frame_number)

    def current_speed_metrics(self) -> SpeedMetrics:
        return self.speed.metrics

    def export_pose_data(self, frame_number: int) -> dict[str, Any] | None:
        """Return a self-describing record for a detected frame, else `None`."""

        pose = self.query_pose(frame_number)
        if pose is None or not pose.detected:
            return None
        return {
            "type": "pose",
            "frame": pose.frame_number,
            "timestamp": pose.timestamp,
            "landmarks": _rows(pose.landmarks),
            "world_landmarks": _rows(pose.world_landmarks),
            "confidence": pose.confidence,
            "connections": [list(c) for c in POSE_CONNECTIONS],
            "landmark_names": list(LANDMARK_NAMES),
        }

    def landmark_by_name(self, frame_number: int, name: str) -> tuple[float, float, float, float] | None:
        idx = landmark_index(name)
        pose = self.query_pose(frame_number)
        if pose is None or pose.landmarks is None:
            return None
        row = pose.landmarks[idx]
        if not np.isfinite(row[:3]).all():
            return None
        return (float(row[0]), float(row[1]), float(row[2]), float(row[3]))

    def pose_confidence(self, frame_number: int) -> float:
        pose = self.query_pose(frame_number)
        return pose.confidence if pose is not None else 0.0

    def frames_with_poses(self) -> list[int]:
        return self.controller.frames_with_poses()

    # -- keypoint selection ------------------------------------------------

    @property
    def selected_keypoints(self) -> tuple[int, ...]:
        return self._selected

    def set_selected_keypoints(self, indices: Iterable[int]) -> tuple[int, ...]:
        chosen = sorted({int(i) for i in indices})
        bad = [i for i in chosen if not 0 <= i < NUM_LANDMARKS]
        if bad:
            raise ValueError(f"landmark indices out of range: {bad}")
        self._selected = tuple(chosen)
        return self._selected

    def filtered_connections(self) -> list[tuple[int, int]]:
        return filter_connections(self._selected)

    def filtered_landmarks(self, frame_number: int) -> LandmarkArray | None:
        """Landmarks for a frame with unselected slots masked to NaN."""

        pose = self.query_pose(frame_number)
        if pose is None or pose.landmarks is None:
            return None
        if not self._selected:
            return pose.landmarks.copy()
        out = np.full_like(pose.landmarks, np.nan)
        idx = list(self._selected)
        out[idx] = pose.landmarks[idx]
        return out

    def apply_settings(self, old: PoseSettings, new: PoseSettings) -> None:
        """Apply live-tunable fields of `new` without dropping cached poses.

        Fields in `REBUILD_FIELDS` are ignored here. ROI, speed landmark and
        player height are only touched when they differ from `old`, so runtime
        ROI or landmark changes survive unrelated config updates.
        """

        self.controller.update_settings(
            frame_skip=new.frame_skip,
            max_fps=new.max_fps,
            playback_rate=new.playback_rate,
            min_confidence=new.min_pose_detection_confidence,
        )
        box = roi_from_settings(new)
        if box != roi_from_settings(old):
            if box is None:
                self.controller.clear_roi()
            else:
                self.controller.set_roi(*box)
        if new.speed_landmark != old.speed_landmark:
            self.speed.set_speed_landmark(new.speed_landmark)
        if new.player_height_cm != old.player_height_cm:
            if new.player_height_cm is None:
                self.speed.calibration.reset()
            else:
                self.speed.calibration.set_player_height(new.player_height_cm)

    # -- lifecycle ---------------------------------------------------------

    def reset(self) -> None:
        """Forget cached poses and motion state (e.g. after switching videos)."""

        self.controller.clear_all()
        self.speed.reset()

    def close(self) -> None:
        self.controller.close()
        self.speed.cleanup()


def _rows(landmarks: LandmarkArray | None) -> list[dict[str, float] | None] | None:
    if landmarks is None:
        return None
    out: list[dict[str, float] | None] = []
    for row in landmarks:
        if not np.isfinite(row[:3]).all():
            out.append(None)
            continue
        vis = float(row[3]) if np.isfinite(row[3]) else 0.0
        out.append({"x": float(row[0]), "y": float(row[1]), "z": float(row[2]), "visibility": vis})
    return out
