import json
import os
import subprocess
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest


def _make_dummy_video(path: Path, frames: int = 5, size=(64, 64)):
    fourcc = cv2.VideoWriter_fourcc(*"MJPG")
    writer = cv2.VideoWriter(str(path), fourcc, 5.0, size)
    if not writer.isOpened():
        pytest.skip("OpenCV build cannot write MJPG video on this platform")
    for i in range(frames):
        frame = np.full((size[1], size[0], 3), i * 20, dtype=np.uint8)
        writer.write(frame)
    writer.release()


def test_run_on_video_cli_writes_one_record_per_frame(tmp_path: Path):
    video_path = tmp_path / "clip.avi"
    out_path = tmp_path / "nested" / "poses.json"
    _make_dummy_video(video_path)

    cap = cv2.VideoCapture(str(video_path))
    ok, frame = cap.read()
    cap.release()
    if not ok or frame is None:
        pytest.skip("OpenCV backend cannot read generated video on this platform")

    env = os.environ.copy()
    env["PYTHONPATH"] = env.get("PYTHONPATH", ".") + os.pathsep + str(Path(__file__).resolve().parents[1])

    cmd = [
        sys.executable,
        "-m",
        "posetrace.tools.run_on_video",
        "--input",
        str(video_path),
        "--output",
        str(out_path),
        "--max-frames",
        "3",
        "--mock",
    ]
    result = subprocess.run(cmd, env=env, capture_output=True, text=True)
    assert result.returncode == 0, result.stderr
    assert "Wrote 3 frame records" in result.stdout

    data = json.loads(out_path.read_text())
    assert [r["frame"] for r in data] == [0, 1, 2]
    # The mock detector never finds anyone.
    assert all(r["status"] == "detected" for r in data)
    assert all(r["pose"]["detected"] is False for r in data)
    assert data[0]["pose"]["reason"] == "no_pose_detected"
    assert data[-1]["speed"]["is_valid"] is False


def test_run_on_video_cli_missing_input(tmp_path: Path):
    env = os.environ.copy()
    env["PYTHONPATH"] = env.get("PYTHONPATH", ".") + os.pathsep + str(Path(__file__).resolve().parents[1])
    cmd = [
        sys.executable,
        "-m",
        "posetrace.tools.run_on_video",
        "--input",
        str(tmp_path / "missing.avi"),
        "--output",
        str(tmp_path / "out.json"),
        "--mock",
    ]
    result = subprocess.run(cmd, env=env, capture_output=True, text=True)
    assert result.returncode != 0
    assert not (tmp_path / "out.json").exists()
