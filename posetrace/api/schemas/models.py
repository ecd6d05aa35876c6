"""Pydantic models for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from posetrace.core.landmarks import LANDMARK_NAMES


class LandmarkSchema(BaseModel):
    """Single landmark payload."""

    x: float
    y: float
    z: float
    visibility: float


class PoseFrameSchema(BaseModel):
    """Cached pose for one frame."""

    frame_number: int
    timestamp: float
    confidence: float
    detected: bool
    total_poses_detected: int
    reason: str | None = None
    landmarks: list[LandmarkSchema | None] | None = None
    world_landmarks: list[LandmarkSchema | None] | None = None


class SpeedMetricsSchema(BaseModel):
    """Latest motion metrics."""

    center_of_mass: tuple[float, float, float]
    center_of_mass_normalized: tuple[float, float, float] | None = None
    center_of_gravity_height: float
    velocity: tuple[float, float, float]
    speed: float
    general_moving_speed: float
    landmark_speed: float
    speed_landmark: str
    is_valid: bool
    scaling_factor: float


class StatsSchema(BaseModel):
    """Detection throughput and controller state."""

    detection_fps: float
    throughput_fps: float
    loop_fps: float
    is_processing: bool
    cache_size: int
    frame_skip: int
    max_fps: float
    min_confidence: float
    roi_enabled: bool
    enabled: bool
    latest_frame: int | None = None
    error: str | None = None


class RoiSchema(BaseModel):
    """Normalized region of interest."""

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)


class RoiStateSchema(BaseModel):
    """ROI gating state after a toggle or clear."""

    roi_enabled: bool


class SpeedLandmarkSchema(BaseModel):
    """Landmark whose own speed is reported in speed metrics."""

    name: str

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        if v not in LANDMARK_NAMES:
            raise ValueError(f"unknown landmark name: {v}")
        return v


class KeypointSelectionSchema(BaseModel):
    """Landmark indices kept by filtered exports; empty means all."""

    indices: list[int] = Field(default_factory=list)
    connections: list[tuple[int, int]] = Field(default_factory=list)


class ConfigSchema(BaseModel):
    """Runtime configuration payload."""

    video_source: str
    video_path: str | None = None
    rtsp_url: str | None = None
    model_path: str
    running_mode: str = "VIDEO"
    num_poses: int = Field(default=1, ge=1)
    min_pose_detection_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    min_pose_presence_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    frame_skip: int = Field(default=2, ge=1)
    max_fps: float = Field(default=30.0, gt=0)
    playback_rate: float = Field(default=1.0, gt=0)
    cache_capacity: int = Field(default=10000, ge=1)
    roi_enabled: bool = False
    roi_x: float = Field(default=0.0, ge=0.0, le=1.0)
    roi_y: float = Field(default=0.0, ge=0.0, le=1.0)
    roi_width: float = Field(default=1.0, ge=0.0, le=1.0)
    roi_height: float = Field(default=1.0, ge=0.0, le=1.0)
    speed_landmark: str = "right_foot_index"
    history_size: int = Field(default=10, ge=2)
    smoothing: str = "none"
    smoothing_gain: float = Field(default=0.5, gt=0.0, le=1.0)
    smoothing_window: int = Field(default=3, ge=1)
    player_height_cm: float | None = Field(default=None, gt=0.0, lt=300.0)
    auto_adjust_quality: bool = False
    target_fps: float = Field(default=30.0, gt=0)

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file", "rtsp"}:
            raise ValueError("video_source must be webcam|file|rtsp")
        return v

    @field_validator("running_mode")
    @classmethod
    def _validate_running_mode(cls, v: str) -> str:
        v2 = v.strip().upper()
        if v2 not in {"VIDEO", "IMAGE"}:
            raise ValueError("running_mode must be VIDEO|IMAGE")
        return v2

    @field_validator("speed_landmark")
    @classmethod
    def _validate_speed_landmark(cls, v: str) -> str:
        if v not in LANDMARK_NAMES:
            raise ValueError(f"unknown landmark name: {v}")
        return v

    @field_validator("smoothing")
    @classmethod
    def _validate_smoothing(cls, v: str) -> str:
        v2 = v.strip().lower()
        if v2 not in {"none", "exponential", "window"}:
            raise ValueError("smoothing must be none|exponential|window")
        return v2


class ConfigPatchSchema(BaseModel):
    """Partial configuration update; omitted fields keep their current value.

    Range and name checks run when the patch is merged into the settings.
    """

    video_source: str | None = None
    video_path: str | None = None
    rtsp_url: str | None = None
    model_path: str | None = None
    running_mode: str | None = None
    num_poses: int | None = None
    min_pose_detection_confidence: float | None = None
    min_pose_presence_confidence: float | None = None
    min_tracking_confidence: float | None = None
    frame_skip: int | None = None
    max_fps: float | None = None
    playback_rate: float | None = None
    cache_capacity: int | None = None
    roi_enabled: bool | None = None
    roi_x: float | None = None
    roi_y: float | None = None
    roi_width: float | None = None
    roi_height: float | None = None
    speed_landmark: str | None = None
    history_size: int | None = None
    smoothing: str | None = None
    smoothing_gain: float | None = None
    smoothing_window: int | None = None
    player_height_cm: float | None = None
    auto_adjust_quality: bool | None = None
    target_fps: float | None = None
