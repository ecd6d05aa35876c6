from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path

import cv2
import numpy as np

from posetrace.core.analytics.pipeline import PosePipeline
from posetrace.core.config.settings import PoseSettings
from posetrace.core.types import DetectionResult


class _DummyDetector:
    def detect(self, frame, timestamp_ms):  # pragma: no cover - trivial
        return DetectionResult()

    def close(self):  # pragma: no cover - trivial
        return None


def _to_jsonable(obj):
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, np.ndarray):
        # NaN marks absent landmarks; JSON has no NaN.
        return np.where(np.isfinite(obj), obj, None).tolist()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    if isinstance(obj, float) and not np.isfinite(obj):
        return None
    return obj


def run(args):
    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        raise SystemExit(f"Cannot open video {args.input}")
    fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0) or 30.0

    settings = PoseSettings(
        model_path=args.model,
        frame_skip=args.frame_skip,
        # Offline runs are not throttled by wall clock.
        max_fps=1e6,
    )
    pipeline = PosePipeline.from_settings(
        settings,
        detector=_DummyDetector() if args.mock else None,
    )
    if not pipeline.initialize():
        raise SystemExit(f"Cannot initialize detector: {pipeline.controller.last_error}")

    outputs = []
    frame_number = 0
    while True:
        ok, frame = cap.read()
        if not ok:
            break
        pose = pipeline.process_frame(frame, frame_number / fps, frame_number)
        outputs.append(
            {
                "frame": frame_number,
                "status": pipeline.last_status,
                "pose": _to_jsonable(pose) if pose is not None else None,
                "speed": _to_jsonable(pipeline.current_speed_metrics()),
            }
        )
        frame_number += 1
        if args.max_frames and len(outputs) >= args.max_frames:
            break
    cap.release()
    pipeline.close()
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    print(f"Wrote {len(outputs)} frame records to {out_path}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Run pose pipeline on a video")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--model", default="models/pose_landmarker_full.task")
    parser.add_argument("--frame-skip", type=int, default=1, help="Detect every N frames")
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument(
        "--mock", action="store_true", help="Use dummy detector (no model download)"
    )
    run(parser.parse_args())
