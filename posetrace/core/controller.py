"""Detection rate control.

`DetectionRateController` decides, frame by frame, whether the landmark detector
runs or the cached pose is served. Decision order for `submit_frame`:

1. disabled or uninitialized -> nothing
2. fewer than `1 / max_fps / playback_rate` seconds since the last detection -> cache
3. `frame_number % frame_skip != 0` -> cache
4. a detection is already in flight -> cache
5. otherwise detect, gate by ROI, and overwrite the cache slot for the frame
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from posetrace.core.analytics.quality import QualityAdjustment, adjust_quality
from posetrace.core.cache import FramePoseCache
from posetrace.core.detectors.base import PoseDetector
from posetrace.core.roi import RoiBox, RoiGate
from posetrace.core.types import DetectionResult, Frame, LandmarkArray, PoseFrame

logger = logging.getLogger(__name__)

DetectorFactory = Callable[[float], PoseDetector]

REASON_NO_POSE = "no_pose_detected"
REASON_OUTSIDE_ROI = "pose_outside_roi"


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of one `submit_frame_with_status` call.

    status is one of: disabled, throttled, skipped, busy, detected, failed.
    """

    status: str
    pose: PoseFrame | None


def pose_confidence(landmarks: LandmarkArray | None) -> float:
    """Mean visibility over all slots; absent slots count as zero."""

    if landmarks is None or len(landmarks) == 0:
        return 0.0
    return float(np.nan_to_num(landmarks[:, 3], nan=0.0).mean())


class DetectionRateController:
    """Owns the detector, the frame cache and the ROI gate for one video."""

    def __init__(
        self,
        detector: PoseDetector | None = None,
        *,
        detector_factory: DetectorFactory | None = None,
        cache: FramePoseCache | None = None,
        roi_gate: RoiGate | None = None,
        frame_skip: int = 2,
        max_fps: float = 30.0,
        playback_rate: float = 1.0,
        min_confidence: float = 0.3,
        enabled: bool = True,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        if detector is None and detector_factory is None:
            raise ValueError("either detector or detector_factory is required")
        self.detector = detector
        self.detector_factory = detector_factory
        self.cache = cache or FramePoseCache()
        self.roi = roi_gate or RoiGate()
        self.frame_skip = int(frame_skip)
        self.max_fps = float(max_fps)
        self.playback_rate = float(playback_rate)
        self.min_confidence = float(min_confidence)
        self.enabled = bool(enabled)
        self.last_error: str | None = None
        self._clock = clock
        self._guard = threading.Lock()
        self._processing = False
        self._reinit_pending = False
        self._last_detection_at: float | None = None
        self._detection_fps = 0.0
        self._throughput_fps = 0.0
        self._fps_alpha = 0.1
        self._validate()

    def _validate(self) -> None:
        if self.frame_skip < 1:
            raise ValueError("frame_skip must be >= 1")
        if self.max_fps <= 0:
            raise ValueError("max_fps must be > 0")
        if self.playback_rate <= 0:
            raise ValueError("playback_rate must be > 0")

    # -- lifecycle ---------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self.detector is not None

    def initialize(self) -> bool:
        """Create the detector from the factory if needed.

        On failure the error is logged and kept in `last_error`; calling again retries.
        """

        if self.detector is not None:
            return True
        if self.detector_factory is None:
            self.last_error = "No pose detector available"
            return False
        try:
            self.detector = self.detector_factory(self.min_confidence)
        except Exception:
            self.last_error = "Failed to initialize pose detector"
            logger.exception(self.last_error)
            return False
        self.last_error = None
        logger.info("Pose detector initialized (min_confidence=%.2f)", self.min_confidence)
        return True

    def _recreate_detector(self) -> None:
        # Called with the guard held. The old detector stays in service until a
        # replacement exists; a failed attempt is retried before the next detection.
        if self.detector_factory is None:
            self._reinit_pending = False
            return
        try:
            fresh = self.detector_factory(self.min_confidence)
        except Exception:
            self.last_error = "Failed to recreate pose detector"
            logger.exception(self.last_error)
            return
        self._reinit_pending = False
        old, self.detector = self.detector, fresh
        if old is not None:
            try:
                old.close()
            except Exception:
                logger.exception("Failed to close pose detector")
        logger.info("Pose detector recreated (min_confidence=%.2f)", self.min_confidence)

    def close(self) -> None:
        """Release the detector and drop every cached pose."""

        with self._guard:
            if self.detector is not None:
                self.detector.close()
                self.detector = None
            self.cache.clear()
            self._last_detection_at = None
            self._detection_fps = 0.0
            self._throughput_fps = 0.0

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        return self.enabled

    # -- settings ----------------------------------------------------------

    @property
    def min_interval(self) -> float:
        """Minimum seconds between detector calls."""

        return 1.0 / self.max_fps / self.playback_rate

    def update_settings(self, **changes: Any) -> None:
        """Update frame_skip, max_fps, playback_rate and/or min_confidence.

        A confidence change takes effect when the detector is next recreated,
        which happens before the next detection when a factory is available.
        """

        unknown = set(changes) - {"frame_skip", "max_fps", "playback_rate", "min_confidence"}
        if unknown:
            raise ValueError(f"unknown settings: {sorted(unknown)}")
        previous = (self.frame_skip, self.max_fps, self.playback_rate, self.min_confidence)
        if "frame_skip" in changes:
            self.frame_skip = int(changes["frame_skip"])
        if "max_fps" in changes:
            self.max_fps = float(changes["max_fps"])
        if "playback_rate" in changes:
            self.playback_rate = float(changes["playback_rate"])
        try:
            self._validate()
        except ValueError:
            self.frame_skip, self.max_fps, self.playback_rate, self.min_confidence = previous
            raise
        if "min_confidence" in changes:
            conf = float(changes["min_confidence"])
            if conf != self.min_confidence:
                self.min_confidence = conf
                self._reinit_pending = self.detector_factory is not None

    def adjust_performance(self, current_fps: float, target_fps: float = 30.0) -> QualityAdjustment:
        adj = adjust_quality(current_fps, target_fps, self.frame_skip, self.min_confidence)
        if adj.changed:
            logger.info(
                "Quality adjusted: fps=%.1f target=%.1f -> frame_skip=%d min_confidence=%.2f",
                current_fps,
                target_fps,
                adj.frame_skip,
                adj.min_confidence,
            )
            self.update_settings(frame_skip=adj.frame_skip, min_confidence=adj.min_confidence)
        return adj

    def auto_adjust(self, target_fps: float) -> QualityAdjustment | None:
        """Step quality from measured detector throughput.

        The target is capped at `max_fps * playback_rate`, the most detections
        per second the throttle lets through. Returns `None` before any timing.
        """

        if self._throughput_fps <= 0.0:
            return None
        return self.adjust_performance(self._throughput_fps, min(target_fps, self.effective_max_fps))

    # -- ROI ---------------------------------------------------------------

    def set_roi(self, x: float, y: float, width: float, height: float) -> RoiBox:
        return self.roi.set_box(x, y, width, height)

    def clear_roi(self) -> None:
        self.roi.clear()

    def toggle_roi(self) -> bool:
        return self.roi.toggle()

    # -- detection ---------------------------------------------------------

    def lookup(self, frame_number: int) -> PoseFrame | None:
        return self.cache.lookup(frame_number, radius=2 * self.frame_skip)

    def submit_frame(self, frame: Frame, timestamp: float, frame_number: int) -> PoseFrame | None:
        return self.submit_frame_with_status(frame, timestamp, frame_number).pose

    def submit_frame_with_status(self, frame: Frame, timestamp: float, frame_number: int) -> SubmitResult:
        if frame_number < 0:
            raise ValueError("frame_number must be >= 0")
        if not self.enabled or self.detector is None:
            return SubmitResult("disabled", None)

        now = self._clock()
        if self._last_detection_at is not None and now - self._last_detection_at < self.min_interval:
            return SubmitResult("throttled", self.lookup(frame_number))
        if frame_number % self.frame_skip != 0:
            return SubmitResult("skipped", self.lookup(frame_number))
        if not self._guard.acquire(blocking=False):
            logger.debug("Detection in flight; serving cache for frame %d", frame_number)
            return SubmitResult("busy", self.lookup(frame_number))

        self._processing = True
        try:
            if self._reinit_pending:
                self._recreate_detector()
            detector = self.detector
            if detector is None:
                return SubmitResult("failed", self.lookup(frame_number))
            start = self._clock()
            try:
                result = detector.detect(frame, int(round(timestamp * 1000.0)))
            except Exception:
                self.last_error = f"Pose detection failed for frame {frame_number}"
                logger.exception(self.last_error)
                return SubmitResult("failed", self.lookup(frame_number))
            finished = self._clock()

            pose = self._build_pose(result, timestamp, frame_number)
            self.cache.put(pose)
            self._last_detection_at = finished
            self._update_fps(finished - start)
            self.last_error = None
            return SubmitResult("detected", pose)
        finally:
            self._processing = False
            self._guard.release()

    def _build_pose(self, result: DetectionResult, timestamp: float, frame_number: int) -> PoseFrame:
        candidates = list(result.landmark_sets)
        chosen = self.roi.select(candidates)
        if chosen is None:
            reason = REASON_OUTSIDE_ROI if candidates else REASON_NO_POSE
            logger.debug("Frame %d: %s (%d candidates)", frame_number, reason, len(candidates))
            return PoseFrame(
                frame_number=frame_number,
                landmarks=None,
                world_landmarks=None,
                timestamp=timestamp,
                detected=False,
                total_poses_detected=len(candidates),
                reason=reason,
            )
        landmarks = candidates[chosen]
        world_sets = result.world_landmark_sets
        world = world_sets[chosen] if chosen < len(world_sets) else None
        return PoseFrame(
            frame_number=frame_number,
            landmarks=landmarks,
            world_landmarks=world,
            timestamp=timestamp,
            confidence=pose_confidence(landmarks),
            detected=True,
            total_poses_detected=len(candidates),
        )

    def _ema(self, current: float, instant: float) -> float:
        if current == 0.0:
            return instant
        return (1.0 - self._fps_alpha) * current + self._fps_alpha * instant

    def _update_fps(self, duration: float) -> None:
        # detection_fps is capped by the throttle; throughput_fps is what the
        # detector could sustain and is the input to quality adjustment.
        self._detection_fps = self._ema(self._detection_fps, 1.0 / max(duration, self.min_interval))
        if duration > 0:
            self._throughput_fps = self._ema(self._throughput_fps, 1.0 / duration)

    # -- cache management --------------------------------------------------

    def clear_pose(self, frame_number: int) -> bool:
        return self.cache.delete(frame_number)

    def clear_all(self) -> None:
        self.cache.clear()

    def frames_with_poses(self) -> list[int]:
        return self.cache.frames(detected_only=True)

    @property
    def detection_fps(self) -> float:
        return self._detection_fps

    @property
    def throughput_fps(self) -> float:
        """Smoothed `1 / detection duration`, not limited by `max_fps`."""

        return self._throughput_fps

    @property
    def effective_max_fps(self) -> float:
        return self.max_fps * self.playback_rate

    def performance_stats(self) -> dict[str, Any]:
        return {
            "detection_fps": self._detection_fps,
            "throughput_fps": self._throughput_fps,
            "is_processing": self._processing,
            "cache_size": len(self.cache),
            "frame_skip": self.frame_skip,
            "max_fps": self.max_fps,
            "min_confidence": self.min_confidence,
            "roi_enabled": self.roi.active,
            "enabled": self.enabled,
            "last_error": self.last_error,
        }
