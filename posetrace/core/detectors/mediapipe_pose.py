"""MediaPipe Tasks PoseLandmarker adapter."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import cv2
import mediapipe as mp
import numpy as np

from posetrace.core.landmarks import empty_landmarks
from posetrace.core.types import DetectionResult, Frame, LandmarkArray

logger = logging.getLogger(__name__)


def _to_array(landmarks: Any) -> LandmarkArray:
    out = empty_landmarks()
    for i, lm in enumerate(list(landmarks)[: len(out)]):
        vis = getattr(lm, "visibility", None)
        out[i] = (
            float(lm.x),
            float(lm.y),
            float(getattr(lm, "z", 0.0) or 0.0),
            1.0 if vis is None else float(vis),
        )
    return out


class MediaPipePoseDetector:
    """Wrap a MediaPipe `PoseLandmarker` behind the `PoseDetector` interface.

    In VIDEO mode MediaPipe rejects timestamps that do not strictly increase, so
    outgoing timestamps are bumped to `last + 1` when the caller repeats or rewinds.
    """

    def __init__(
        self,
        model_path: str,
        *,
        running_mode: str = "VIDEO",
        num_poses: int = 1,
        min_pose_detection_confidence: float = 0.3,
        min_pose_presence_confidence: float = 0.3,
        min_tracking_confidence: float = 0.3,
    ) -> None:
        path = Path(model_path)
        if not path.exists():
            raise RuntimeError(f"Pose landmarker model not found: {path}")
        mode = running_mode.upper()
        if mode not in {"VIDEO", "IMAGE"}:
            raise ValueError("running_mode must be VIDEO|IMAGE")

        from mediapipe.tasks.python.core.base_options import BaseOptions
        from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions, RunningMode

        options = PoseLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(path)),
            running_mode=RunningMode.VIDEO if mode == "VIDEO" else RunningMode.IMAGE,
            num_poses=int(num_poses),
            min_pose_detection_confidence=float(min_pose_detection_confidence),
            min_pose_presence_confidence=float(min_pose_presence_confidence),
            min_tracking_confidence=float(min_tracking_confidence),
        )
        self.running_mode = mode
        self._landmarker: Any = PoseLandmarker.create_from_options(options)
        self._last_ts_ms = -1
        self._lock = threading.Lock()
        logger.info("MediaPipe PoseLandmarker ready (mode=%s, model=%s)", mode, path)

    def detect(self, frame: Frame, timestamp_ms: int) -> DetectionResult:
        if self._landmarker is None:
            raise RuntimeError("detector is closed")
        if frame is None or not isinstance(frame, np.ndarray) or frame.ndim != 3:
            raise ValueError("expected a BGR frame of shape (H, W, 3)")

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        with self._lock:
            if self.running_mode == "VIDEO":
                ts = max(int(timestamp_ms), self._last_ts_ms + 1)
                self._last_ts_ms = ts
                result = self._landmarker.detect_for_video(mp_image, ts)
            else:
                result = self._landmarker.detect(mp_image)

        poses = getattr(result, "pose_landmarks", None) or []
        world = getattr(result, "pose_world_landmarks", None) or []
        landmark_sets = [_to_array(p) for p in poses]
        world_sets = [_to_array(w) for w in world]
        # Keep the two lists aligned; world output can be missing on some builds.
        while len(world_sets) < len(landmark_sets):
            world_sets.append(empty_landmarks())
        return DetectionResult(landmark_sets=landmark_sets, world_landmark_sets=world_sets)

    def close(self) -> None:
        """Release MediaPipe model resources."""

        with self._lock:
            if self._landmarker is not None:
                self._landmarker.close()
                self._landmarker = None
                logger.info("MediaPipe PoseLandmarker released")

    def __enter__(self) -> "MediaPipePoseDetector":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
