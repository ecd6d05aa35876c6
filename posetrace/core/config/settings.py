"""Pose pipeline configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `PTR_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from posetrace.core.landmarks import LANDMARK_NAMES


def _unit_interval(name: str, v: float) -> float:
    if not 0.0 <= float(v) <= 1.0:
        raise ValueError(f"{name} must be in [0, 1]")
    return float(v)


class PoseSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `PTR_` env overrides."""

    video_source: str = Field("file", description="webcam|file|rtsp")
    video_path: str | None = None
    rtsp_url: str | None = None

    # MediaPipe Tasks model bundle (pose_landmarker_{lite,full,heavy}.task).
    model_path: str = "models/pose_landmarker_full.task"
    running_mode: str = Field("VIDEO", description="VIDEO|IMAGE")
    num_poses: int = 1
    min_pose_detection_confidence: float = 0.3
    min_pose_presence_confidence: float = 0.3
    min_tracking_confidence: float = 0.3

    # Run the detector on every Nth frame; other frames reuse cached poses.
    frame_skip: int = 2
    # Upper bound on detector calls per second of playback.
    max_fps: float = 30.0
    playback_rate: float = 1.0
    cache_capacity: int = 10000

    roi_enabled: bool = False
    roi_x: float = 0.0
    roi_y: float = 0.0
    roi_width: float = 1.0
    roi_height: float = 1.0

    speed_landmark: str = "right_foot_index"
    history_size: int = 10
    smoothing: str = Field("none", description="none|exponential|window")
    smoothing_gain: float = 0.5
    smoothing_window: int = 3
    # cm; None keeps world landmarks unscaled.
    player_height_cm: float | None = None

    auto_adjust_quality: bool = False
    target_fps: float = 30.0

    model_config = SettingsConfigDict(env_prefix="PTR_", validate_assignment=True)

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file", "rtsp"}:
            raise ValueError("video_source must be webcam|file|rtsp")
        return v

    @field_validator("running_mode")
    @classmethod
    def _validate_running_mode(cls, v: str) -> str:
        v2 = str(v).strip().upper()
        if v2 not in {"VIDEO", "IMAGE"}:
            raise ValueError("running_mode must be VIDEO|IMAGE")
        return v2

    @field_validator("num_poses")
    @classmethod
    def _validate_num_poses(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("num_poses must be >= 1")
        return int(v)

    @field_validator("min_pose_detection_confidence")
    @classmethod
    def _validate_min_detection(cls, v: float) -> float:
        return _unit_interval("min_pose_detection_confidence", v)

    @field_validator("min_pose_presence_confidence")
    @classmethod
    def _validate_min_presence(cls, v: float) -> float:
        return _unit_interval("min_pose_presence_confidence", v)

    @field_validator("min_tracking_confidence")
    @classmethod
    def _validate_min_tracking(cls, v: float) -> float:
        return _unit_interval("min_tracking_confidence", v)

    @field_validator("frame_skip")
    @classmethod
    def _validate_frame_skip(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("frame_skip must be >= 1")
        return v

    @field_validator("max_fps")
    @classmethod
    def _validate_max_fps(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("max_fps must be > 0")
        return float(v)

    @field_validator("playback_rate")
    @classmethod
    def _validate_playback_rate(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("playback_rate must be > 0")
        return float(v)

    @field_validator("cache_capacity")
    @classmethod
    def _validate_cache_capacity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_capacity must be >= 1")
        return v

    @field_validator("roi_x")
    @classmethod
    def _validate_roi_x(cls, v: float) -> float:
        return _unit_interval("roi_x", v)

    @field_validator("roi_y")
    @classmethod
    def _validate_roi_y(cls, v: float) -> float:
        return _unit_interval("roi_y", v)

    @field_validator("roi_width")
    @classmethod
    def _validate_roi_width(cls, v: float) -> float:
        return _unit_interval("roi_width", v)

    @field_validator("roi_height")
    @classmethod
    def _validate_roi_height(cls, v: float) -> float:
        return _unit_interval("roi_height", v)

    @field_validator("speed_landmark")
    @classmethod
    def _validate_speed_landmark(cls, v: str) -> str:
        if v not in LANDMARK_NAMES:
            raise ValueError(f"unknown landmark name: {v}")
        return v

    @field_validator("history_size")
    @classmethod
    def _validate_history_size(cls, v: int) -> int:
        if v < 2:
            raise ValueError("history_size must be >= 2")
        return v

    @field_validator("smoothing")
    @classmethod
    def _validate_smoothing(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"none", "exponential", "window"}:
            raise ValueError("smoothing must be none|exponential|window")
        return v2

    @field_validator("smoothing_gain")
    @classmethod
    def _validate_smoothing_gain(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("smoothing_gain must be in (0, 1]")
        return float(v)

    @field_validator("smoothing_window")
    @classmethod
    def _validate_smoothing_window(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("smoothing_window must be >= 1")
        return v

    @field_validator("player_height_cm")
    @classmethod
    def _validate_player_height(cls, v: float | None) -> float | None:
        if v is None:
            return v
        if not 0.0 < float(v) < 300.0:
            raise ValueError("player_height_cm must be in (0, 300)")
        return float(v)

    @field_validator("target_fps")
    @classmethod
    def _validate_target_fps(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("target_fps must be > 0")
        return float(v)


def settings_to_dict(settings: PoseSettings) -> dict[str, Any]:
    return settings.model_dump()


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/posetrace.config.yml)."""

    return Path(os.getenv("PTR_CONFIG", "config/posetrace.config.yml"))


def load_settings() -> PoseSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = PoseSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return PoseSettings(**merged)


def roi_from_settings(settings: PoseSettings) -> tuple[float, float, float, float] | None:
    """Return the configured ROI box, or `None` when ROI gating is off."""

    if not settings.roi_enabled:
        return None
    return (settings.roi_x, settings.roi_y, settings.roi_width, settings.roi_height)
