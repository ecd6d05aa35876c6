import itertools

import numpy as np
import pytest
from fastapi.testclient import TestClient

from posetrace.api.main import app
from posetrace.api.services import state as engine_state
from posetrace.api.services.state import get_engine
from posetrace.core.analytics.pipeline import PosePipeline
from posetrace.core.config.settings import PoseSettings
from posetrace.core.controller import DetectionRateController
from posetrace.core.landmarks import LANDMARK_NAMES
from posetrace.core.types import DetectionResult

FRAME = np.zeros((8, 8, 3), dtype=np.uint8)


class StepDetector:
    def __init__(self):
        self.calls = 0

    def detect(self, frame, timestamp_ms):
        arr = np.zeros((33, 4))
        arr[:, 0] = 0.4 + 0.01 * self.calls
        arr[:, 1] = 0.5
        arr[:, 3] = 0.9
        self.calls += 1
        return DetectionResult(landmark_sets=[arr], world_landmark_sets=[arr.copy()])

    def close(self):
        pass


class DummyEngine:
    def __init__(self, frames=0, error=None):
        controller = DetectionRateController(
            StepDetector(),
            frame_skip=1,
            clock=lambda ticks=itertools.count(): float(next(ticks)),
        )
        self.pipeline = PosePipeline(controller)
        self.last_error = error
        self._latest = None
        self._frame = None
        self.running = False
        for i in range(frames):
            self._latest = self.pipeline.process_frame(FRAME, i * 0.1, i)
            self._frame = i

    def latest_pose(self):
        return self._latest

    def latest_frame_number(self):
        return self._frame

    def loop_fps(self):
        return 12.5


@pytest.fixture
def client_with_engine():
    def _make(engine):
        app.dependency_overrides[get_engine] = lambda: engine
        return TestClient(app)

    yield _make
    app.dependency_overrides.pop(get_engine, None)


def test_health_endpoint_does_not_start_engine(monkeypatch):
    monkeypatch.setattr(engine_state, "_engine", None)
    client = TestClient(app)
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "engine": "idle", "detector_ready": False}
    assert engine_state._engine is None


def test_health_reports_engine_state(monkeypatch):
    engine = DummyEngine()
    engine.running = True
    monkeypatch.setattr(engine_state, "_engine", engine)
    data = TestClient(app).get("/health").json()
    assert data["engine"] == "running"
    assert data["detector_ready"] is True


def test_latest_pose_missing_returns_404(client_with_engine):
    client = client_with_engine(DummyEngine())
    res = client.get("/pose/latest")
    assert res.status_code == 404


def test_latest_pose(client_with_engine):
    client = client_with_engine(DummyEngine(frames=2))
    res = client.get("/pose/latest")
    assert res.status_code == 200
    data = res.json()
    assert data["frame_number"] == 1
    assert data["detected"] is True
    assert data["total_poses_detected"] == 1
    assert len(data["landmarks"]) == 33
    assert data["landmarks"][0]["visibility"] == pytest.approx(0.9)


def test_pose_by_frame_uses_nearby_lookup(client_with_engine):
    client = client_with_engine(DummyEngine(frames=2))
    res = client.get("/pose/2")
    assert res.status_code == 200
    assert res.json()["frame_number"] == 1

    assert client.get("/pose/40").status_code == 404


def test_negative_frame_number_is_rejected(client_with_engine):
    client = client_with_engine(DummyEngine(frames=1))
    assert client.get("/pose/-1").status_code == 422
    assert client.get("/pose/-1/export").status_code == 422


def test_export_pose(client_with_engine):
    client = client_with_engine(DummyEngine(frames=1))
    res = client.get("/pose/0/export")
    assert res.status_code == 200
    data = res.json()
    assert data["type"] == "pose"
    assert data["frame"] == 0
    assert data["landmark_names"] == list(LANDMARK_NAMES)
    assert data["connections"]

    assert client.get("/pose/5/export").status_code == 404


def test_speed_metrics(client_with_engine):
    client = client_with_engine(DummyEngine(frames=3))
    res = client.get("/metrics/speed")
    assert res.status_code == 200
    data = res.json()
    assert data["is_valid"] is True
    assert data["speed"] == pytest.approx(0.1)
    assert data["speed_landmark"] == "right_foot_index"
    assert data["center_of_mass"][0] == pytest.approx(0.42)


def test_speed_metrics_before_any_detection(client_with_engine):
    client = client_with_engine(DummyEngine())
    data = client.get("/metrics/speed").json()
    assert data["is_valid"] is False
    assert data["speed"] == 0.0


def test_roi_set_and_clear(client_with_engine):
    engine = DummyEngine()
    client = client_with_engine(engine)
    res = client.post("/roi", json={"x": 0.8, "y": 0.1, "width": 0.5, "height": 0.5})
    assert res.status_code == 200
    box = res.json()
    assert box["x"] == pytest.approx(0.8)
    assert box["width"] == pytest.approx(0.2)
    assert engine.pipeline.controller.roi.active

    res = client.delete("/roi")
    assert res.json() == {"roi_enabled": False}
    assert not engine.pipeline.controller.roi.active

    assert client.post("/roi", json={"x": 2, "y": 0, "width": 1, "height": 1}).status_code == 422


def test_stats(client_with_engine):
    client = client_with_engine(DummyEngine(frames=2))
    res = client.get("/stats")
    assert res.status_code == 200
    data = res.json()
    assert data["loop_fps"] == 12.5
    assert data["throughput_fps"] == pytest.approx(1.0)
    assert data["cache_size"] == 2
    assert data["latest_frame"] == 1
    assert data["frame_skip"] == 1
    assert data["enabled"] is True
    assert data["error"] is None


def test_stats_reports_engine_error(client_with_engine):
    client = client_with_engine(DummyEngine(error="Failed to initialize video source"))
    data = client.get("/stats").json()
    assert data["error"] == "Failed to initialize video source"
    assert data["latest_frame"] is None


@pytest.fixture
def isolated_state(monkeypatch):
    previous = (engine_state._settings, engine_state._engine)
    engine_state._settings = PoseSettings()
    engine_state._engine = None
    monkeypatch.setattr(engine_state, "load_settings", lambda: PoseSettings())
    yield
    engine_state._settings, engine_state._engine = previous


def test_get_config(isolated_state):
    client = TestClient(app)
    res = client.get("/config")
    assert res.status_code == 200
    data = res.json()
    assert data["frame_skip"] == 2
    assert data["speed_landmark"] == "right_foot_index"


def test_update_config(isolated_state):
    client = TestClient(app)
    payload = client.get("/config").json()
    payload["frame_skip"] = 4
    payload["smoothing"] = "Exponential"
    res = client.post("/config", json=payload)
    assert res.status_code == 200
    assert res.json()["frame_skip"] == 4
    assert res.json()["smoothing"] == "exponential"
    assert engine_state._settings.frame_skip == 4


def test_update_config_rejects_invalid(isolated_state):
    client = TestClient(app)
    payload = client.get("/config").json()
    payload["speed_landmark"] = "tail"
    assert client.post("/config", json=payload).status_code == 422


def test_presets_list_and_apply(isolated_state):
    client = TestClient(app)
    res = client.get("/config/presets")
    assert res.status_code == 200
    ids = {p["id"] for p in res.json()["presets"]}
    assert "realtime" in ids

    res = client.post("/config/presets/accuracy")
    assert res.status_code == 200
    assert res.json()["frame_skip"] == engine_state._settings.frame_skip

    assert client.post("/config/presets/turbo").status_code == 404


def test_patch_config_changes_only_given_fields(isolated_state):
    engine_state._settings = PoseSettings(max_fps=12.0)
    client = TestClient(app)
    res = client.patch("/config", json={"frame_skip": 3})
    assert res.status_code == 200
    data = res.json()
    assert data["frame_skip"] == 3
    assert data["max_fps"] == 12.0


def test_patch_config_validation_error_is_422(isolated_state):
    client = TestClient(app)
    res = client.patch("/config", json={"speed_landmark": "tail"})
    assert res.status_code == 422
    assert engine_state._settings.speed_landmark == "right_foot_index"


def test_reload_config_discards_in_memory_changes(isolated_state):
    engine_state._settings = PoseSettings(frame_skip=4)
    res = TestClient(app).post("/config/reload")
    assert res.status_code == 200
    assert res.json()["frame_skip"] == 2


def test_config_change_retunes_running_engine_in_place(isolated_state, monkeypatch):
    from posetrace.api.services.engine import PoseEngine

    engine = PoseEngine(PoseSettings(), pipeline=DummyEngine(frames=2).pipeline)
    monkeypatch.setattr(engine_state, "_engine", engine)
    res = TestClient(app).patch("/config", json={"frame_skip": 3, "max_fps": 10.0})
    assert res.status_code == 200
    assert engine_state._engine is engine
    assert engine.pipeline.controller.frame_skip == 3
    assert engine.pipeline.frames_with_poses() == [0, 1]


def test_roi_toggle(client_with_engine):
    engine = DummyEngine()
    client = client_with_engine(engine)
    assert client.post("/roi/toggle").json() == {"roi_enabled": False}
    client.post("/roi", json={"x": 0.1, "y": 0.1, "width": 0.5, "height": 0.5})
    assert client.post("/roi/toggle").json() == {"roi_enabled": False}
    assert client.post("/roi/toggle").json() == {"roi_enabled": True}
    assert engine.pipeline.controller.roi.active


def test_speed_landmark_selection(client_with_engine):
    engine = DummyEngine()
    client = client_with_engine(engine)
    res = client.put("/metrics/speed/landmark", json={"name": "left_wrist"})
    assert res.status_code == 200
    assert res.json() == {"name": "left_wrist"}
    assert client.get("/metrics/speed").json()["speed_landmark"] == "left_wrist"
    assert client.put("/metrics/speed/landmark", json={"name": "tail"}).status_code == 422


def test_keypoint_selection(client_with_engine):
    engine = DummyEngine()
    client = client_with_engine(engine)
    assert client.get("/keypoints").json()["indices"] == []

    res = client.put("/keypoints", json={"indices": [13, 11, 15, 11]})
    assert res.status_code == 200
    data = res.json()
    assert data["indices"] == [11, 13, 15]
    assert data["connections"]
    assert all(a in (11, 13, 15) and b in (11, 13, 15) for a, b in data["connections"])

    assert client.put("/keypoints", json={"indices": [40]}).status_code == 422
