from pathlib import Path

import pytest

from posetrace.core.config import settings as cfg


def test_load_settings_reads_updated_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("frame_skip: 3\nmax_fps: 20\n", encoding="utf-8")
    monkeypatch.setenv("PTR_CONFIG", str(conf_path))

    first = cfg.load_settings()
    assert first.frame_skip == 3
    assert first.max_fps == 20.0

    conf_path.write_text("frame_skip: 1\nmax_fps: 60\n", encoding="utf-8")

    second = cfg.load_settings()
    assert second.frame_skip == 1
    assert second.max_fps == 60.0


def test_load_settings_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("min_pose_detection_confidence: 0.2\n", encoding="utf-8")
    monkeypatch.setenv("PTR_CONFIG", str(conf_path))
    monkeypatch.setenv("PTR_MIN_POSE_DETECTION_CONFIDENCE", "0.6")

    settings = cfg.load_settings()
    assert settings.min_pose_detection_confidence == 0.6


def test_missing_yaml_falls_back_to_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PTR_CONFIG", str(tmp_path / "missing.yml"))
    settings = cfg.load_settings()
    assert settings.frame_skip == 2
    assert settings.max_fps == 30.0
    assert settings.speed_landmark == "right_foot_index"


def test_config_path_defaults_when_env_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("PTR_CONFIG", raising=False)
    path = cfg._config_path()
    assert str(path).replace("\\", "/").endswith("config/posetrace.config.yml")


def test_frame_skip_and_rates_validation():
    with pytest.raises(ValueError):
        cfg.PoseSettings(frame_skip=0)
    with pytest.raises(ValueError):
        cfg.PoseSettings(max_fps=0)
    with pytest.raises(ValueError):
        cfg.PoseSettings(playback_rate=-1)
    with pytest.raises(ValueError):
        cfg.PoseSettings(target_fps=0)
    with pytest.raises(ValueError):
        cfg.PoseSettings(cache_capacity=0)
    assert cfg.PoseSettings(frame_skip=1).frame_skip == 1


def test_confidence_validation_edges():
    with pytest.raises(ValueError):
        cfg.PoseSettings(min_pose_detection_confidence=-0.1)
    with pytest.raises(ValueError):
        cfg.PoseSettings(min_tracking_confidence=1.01)
    assert cfg.PoseSettings(min_pose_presence_confidence=1.0).min_pose_presence_confidence == 1.0


def test_source_and_mode_validation():
    with pytest.raises(ValueError):
        cfg.PoseSettings(video_source="nope")
    assert cfg.PoseSettings(running_mode=" image ").running_mode == "IMAGE"
    with pytest.raises(ValueError):
        cfg.PoseSettings(running_mode="LIVE_STREAM")
    with pytest.raises(ValueError):
        cfg.PoseSettings(num_poses=0)


def test_motion_settings_validation():
    with pytest.raises(ValueError):
        cfg.PoseSettings(speed_landmark="tail")
    with pytest.raises(ValueError):
        cfg.PoseSettings(history_size=1)
    with pytest.raises(ValueError):
        cfg.PoseSettings(smoothing="kalman")
    with pytest.raises(ValueError):
        cfg.PoseSettings(smoothing_gain=0.0)
    with pytest.raises(ValueError):
        cfg.PoseSettings(player_height_cm=300.0)
    assert cfg.PoseSettings(smoothing="Window").smoothing == "window"


def test_roi_settings():
    with pytest.raises(ValueError):
        cfg.PoseSettings(roi_x=1.5)
    with pytest.raises(ValueError):
        cfg.PoseSettings(roi_height=-0.1)
    assert cfg.roi_from_settings(cfg.PoseSettings()) is None
    on = cfg.PoseSettings(roi_enabled=True, roi_x=0.1, roi_y=0.2, roi_width=0.3, roi_height=0.4)
    assert cfg.roi_from_settings(on) == (0.1, 0.2, 0.3, 0.4)


def test_settings_to_dict_includes_expected_keys():
    data = cfg.settings_to_dict(cfg.PoseSettings(video_source="webcam"))
    assert data["video_source"] == "webcam"
    assert "frame_skip" in data
