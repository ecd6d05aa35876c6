"""Pose, export, speed, ROI and keypoint-selection endpoints."""

from __future__ import annotations

from typing import Any

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, Path

from posetrace.api.schemas.models import (
    KeypointSelectionSchema,
    LandmarkSchema,
    PoseFrameSchema,
    RoiSchema,
    RoiStateSchema,
    SpeedLandmarkSchema,
    SpeedMetricsSchema,
)
from posetrace.api.services.engine import PoseEngine
from posetrace.api.services.state import get_engine
from posetrace.core.types import LandmarkArray, PoseFrame

router = APIRouter()


def _landmarks(arr: LandmarkArray | None) -> list[LandmarkSchema | None] | None:
    if arr is None:
        return None
    out: list[LandmarkSchema | None] = []
    for x, y, z, vis in arr:
        if not (np.isfinite(x) and np.isfinite(y) and np.isfinite(z)):
            out.append(None)
            continue
        out.append(
            LandmarkSchema(x=float(x), y=float(y), z=float(z), visibility=float(np.nan_to_num(vis)))
        )
    return out


def pose_to_schema(pose: PoseFrame) -> PoseFrameSchema:
    return PoseFrameSchema(
        frame_number=pose.frame_number,
        timestamp=pose.timestamp,
        confidence=pose.confidence,
        detected=pose.detected,
        total_poses_detected=pose.total_poses_detected,
        reason=pose.reason,
        landmarks=_landmarks(pose.landmarks),
        world_landmarks=_landmarks(pose.world_landmarks),
    )


@router.get("/pose/latest", response_model=PoseFrameSchema)
def latest_pose(engine: PoseEngine = Depends(get_engine)) -> PoseFrameSchema:
    """Return the pose served for the most recently processed frame."""

    pose = engine.latest_pose()
    if pose is None:
        raise HTTPException(status_code=404, detail="No pose available yet")
    return pose_to_schema(pose)


@router.get("/pose/{frame_number}", response_model=PoseFrameSchema)
def get_pose(
    frame_number: int = Path(ge=0),
    engine: PoseEngine = Depends(get_engine),
) -> PoseFrameSchema:
    """Return the cached pose for a frame, falling back to the nearest detected frame."""

    pose = engine.pipeline.query_pose(frame_number)
    if pose is None:
        raise HTTPException(status_code=404, detail="No pose cached near this frame")
    return pose_to_schema(pose)


@router.get("/pose/{frame_number}/export")
def export_pose(
    frame_number: int = Path(ge=0),
    engine: PoseEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Return a self-describing pose record (landmarks plus naming tables)."""

    data = engine.pipeline.export_pose_data(frame_number)
    if data is None:
        raise HTTPException(status_code=404, detail="No detected pose for this frame")
    return data


@router.get("/metrics/speed", response_model=SpeedMetricsSchema)
def speed_metrics(engine: PoseEngine = Depends(get_engine)) -> SpeedMetricsSchema:
    """Return the latest center-of-mass and speed metrics."""

    m = engine.pipeline.current_speed_metrics()
    return SpeedMetricsSchema(
        center_of_mass=m.center_of_mass,
        center_of_mass_normalized=m.center_of_mass_normalized,
        center_of_gravity_height=m.center_of_gravity_height,
        velocity=m.velocity,
        speed=m.speed,
        general_moving_speed=m.general_moving_speed,
        landmark_speed=m.landmark_speed,
        speed_landmark=m.speed_landmark,
        is_valid=m.is_valid,
        scaling_factor=m.scaling_factor,
    )


@router.post("/roi", response_model=RoiSchema)
def set_roi(roi: RoiSchema, engine: PoseEngine = Depends(get_engine)) -> RoiSchema:
    """Enable ROI gating with a normalized box (clamped to the unit square)."""

    box = engine.pipeline.controller.set_roi(roi.x, roi.y, roi.width, roi.height)
    return RoiSchema(x=box.x, y=box.y, width=box.width, height=box.height)


@router.delete("/roi", response_model=RoiStateSchema)
def clear_roi(engine: PoseEngine = Depends(get_engine)) -> RoiStateSchema:
    """Disable ROI gating and forget the box."""

    engine.pipeline.controller.clear_roi()
    return RoiStateSchema(roi_enabled=False)


@router.post("/roi/toggle", response_model=RoiStateSchema)
def toggle_roi(engine: PoseEngine = Depends(get_engine)) -> RoiStateSchema:
    """Flip ROI gating; stays off when no box has been set."""

    return RoiStateSchema(roi_enabled=engine.pipeline.controller.toggle_roi())


@router.put("/metrics/speed/landmark", response_model=SpeedLandmarkSchema)
def set_speed_landmark(body: SpeedLandmarkSchema, engine: PoseEngine = Depends(get_engine)) -> SpeedLandmarkSchema:
    engine.pipeline.speed.set_speed_landmark(body.name)
    return SpeedLandmarkSchema(name=engine.pipeline.speed.speed_landmark)


def _selection(engine: PoseEngine) -> KeypointSelectionSchema:
    return KeypointSelectionSchema(
        indices=list(engine.pipeline.selected_keypoints),
        connections=engine.pipeline.filtered_connections(),
    )


@router.get("/keypoints", response_model=KeypointSelectionSchema)
def get_keypoints(engine: PoseEngine = Depends(get_engine)) -> KeypointSelectionSchema:
    return _selection(engine)


@router.put("/keypoints", response_model=KeypointSelectionSchema)
def set_keypoints(body: KeypointSelectionSchema, engine: PoseEngine = Depends(get_engine)) -> KeypointSelectionSchema:
    """Select landmark indices (0-32); an empty list selects every landmark."""

    try:
        engine.pipeline.set_selected_keypoints(body.indices)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return _selection(engine)
