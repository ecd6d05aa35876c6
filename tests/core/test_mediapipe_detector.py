import importlib
from types import SimpleNamespace

import numpy as np
import pytest

from posetrace.core.detectors import mediapipe_pose
from posetrace.core.detectors.mediapipe_pose import MediaPipePoseDetector

FRAME = np.zeros((8, 8, 3), dtype=np.uint8)


def _lm(x, y, z=0.0, visibility=None):
    return SimpleNamespace(x=x, y=y, z=z, visibility=visibility)


class FakeLandmarker:
    instances: list["FakeLandmarker"] = []

    def __init__(self, options):
        self.options = options
        self.video_timestamps: list[int] = []
        self.image_calls = 0
        self.closed = False
        self.result = SimpleNamespace(pose_landmarks=[], pose_world_landmarks=[])

    @classmethod
    def create_from_options(cls, options):
        inst = cls(options)
        cls.instances.append(inst)
        return inst

    def detect_for_video(self, image, timestamp_ms):
        self.video_timestamps.append(timestamp_ms)
        return self.result

    def detect(self, image):
        self.image_calls += 1
        return self.result

    def close(self):
        self.closed = True


@pytest.fixture
def model_file(tmp_path, monkeypatch):
    FakeLandmarker.instances = []
    monkeypatch.setattr(
        importlib.import_module("mediapipe.tasks.python.vision"), "PoseLandmarker", FakeLandmarker
    )
    path = tmp_path / "pose_landmarker_lite.task"
    path.write_bytes(b"model")
    return str(path)


def test_missing_model_raises(tmp_path):
    with pytest.raises(RuntimeError):
        MediaPipePoseDetector(str(tmp_path / "nope.task"))


def test_unknown_running_mode_rejected(model_file):
    with pytest.raises(ValueError):
        MediaPipePoseDetector(model_file, running_mode="LIVE_STREAM")


def test_options_carry_thresholds(model_file):
    MediaPipePoseDetector(model_file, num_poses=2, min_pose_detection_confidence=0.45)
    opts = FakeLandmarker.instances[0].options
    assert opts.num_poses == 2
    assert opts.min_pose_detection_confidence == pytest.approx(0.45)


def test_video_timestamps_strictly_increase(model_file):
    det = MediaPipePoseDetector(model_file)
    for ts in (100, 100, 50, 200):
        det.detect(FRAME, ts)
    assert FakeLandmarker.instances[0].video_timestamps == [100, 101, 102, 200]


def test_image_mode_skips_timestamps(model_file):
    det = MediaPipePoseDetector(model_file, running_mode="image")
    det.detect(FRAME, 0)
    det.detect(FRAME, 0)
    fake = FakeLandmarker.instances[0]
    assert fake.image_calls == 2
    assert fake.video_timestamps == []


def test_missing_visibility_defaults_to_one_and_world_is_padded(model_file):
    det = MediaPipePoseDetector(model_file)
    fake = FakeLandmarker.instances[0]
    first = [_lm(0.1, 0.2, 0.3, visibility=0.4)] + [_lm(0.5, 0.5)] * 32
    second = [_lm(0.7, 0.8)] * 10
    fake.result = SimpleNamespace(
        pose_landmarks=[first, second],
        pose_world_landmarks=[[_lm(1.0, 2.0, 3.0, 0.9)] * 33],
    )

    result = det.detect(FRAME, 0)
    assert len(result) == 2
    a, b = result.landmark_sets
    assert a.shape == (33, 4)
    assert tuple(a[0]) == pytest.approx((0.1, 0.2, 0.3, 0.4))
    assert a[1, 3] == 1.0
    # Short landmark lists leave the remaining slots absent.
    assert b[9, 3] == 1.0
    assert np.isnan(b[10]).all()

    world_a, world_b = result.world_landmark_sets
    assert world_a[0, 2] == pytest.approx(3.0)
    assert np.isnan(world_b).all()


def test_bad_frame_and_close(model_file):
    det = MediaPipePoseDetector(model_file)
    with pytest.raises(ValueError):
        det.detect(np.zeros((8, 8)), 0)
    with det:
        pass
    assert FakeLandmarker.instances[0].closed is True
    with pytest.raises(RuntimeError):
        det.detect(FRAME, 0)
    det.close()


def test_module_converts_landmark_objects():
    arr = mediapipe_pose._to_array([_lm(0.5, 0.25, None, None)])
    assert tuple(arr[0]) == (0.5, 0.25, 0.0, 1.0)
    assert np.isnan(arr[1:]).all()
