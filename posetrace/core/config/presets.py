from __future__ import annotations

from typing import Any


# Detection presets. Each one is a partial settings patch.
#
# Notes:
# - frame_skip: run the landmarker every N frames (cached poses reused in between)
# - max_fps: throttle on detector calls, independent of playback FPS
# - min_*_confidence: MediaPipe thresholds, applied when the detector is recreated


PRESETS: dict[str, dict[str, Any]] = {
    # Every frame, strict thresholds. Best for frame-by-frame review.
    "accuracy": {
        "frame_skip": 1,
        "max_fps": 60.0,
        "min_pose_detection_confidence": 0.5,
        "min_pose_presence_confidence": 0.5,
        "min_tracking_confidence": 0.5,
        "auto_adjust_quality": False,
    },
    # Default playback analysis.
    "balanced": {
        "frame_skip": 2,
        "max_fps": 30.0,
        "min_pose_detection_confidence": 0.3,
        "min_pose_presence_confidence": 0.3,
        "min_tracking_confidence": 0.3,
        "auto_adjust_quality": False,
    },
    # Live overlay on slow machines; lets the quality controller step down.
    "realtime": {
        "frame_skip": 3,
        "max_fps": 15.0,
        "target_fps": 15.0,
        "min_pose_detection_confidence": 0.2,
        "min_pose_presence_confidence": 0.2,
        "min_tracking_confidence": 0.2,
        "auto_adjust_quality": True,
    },
}


PRESET_LABELS: dict[str, str] = {
    "accuracy": "Accuracy",
    "balanced": "Balanced",
    "realtime": "Real-time",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "settings": PRESETS[preset_id],
        }
        for preset_id in PRESETS.keys()
    ]


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
