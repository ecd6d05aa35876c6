"""Stats endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from posetrace.api.schemas.models import StatsSchema
from posetrace.api.services.engine import PoseEngine
from posetrace.api.services.state import get_engine

router = APIRouter()


@router.get("/stats", response_model=StatsSchema)
def stats(engine: PoseEngine = Depends(get_engine)) -> StatsSchema:
    """Return detection throughput and controller state."""

    perf = engine.pipeline.controller.performance_stats()
    return StatsSchema(
        detection_fps=perf["detection_fps"],
        throughput_fps=perf["throughput_fps"],
        loop_fps=engine.loop_fps(),
        is_processing=perf["is_processing"],
        cache_size=perf["cache_size"],
        frame_skip=perf["frame_skip"],
        max_fps=perf["max_fps"],
        min_confidence=perf["min_confidence"],
        roi_enabled=perf["roi_enabled"],
        enabled=perf["enabled"],
        latest_frame=engine.latest_frame_number(),
        error=engine.last_error or perf["last_error"],
    )
