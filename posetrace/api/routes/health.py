"""Liveness and engine status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from posetrace.api.services.state import current_engine

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, Any]:
    """Report process liveness plus engine state; never starts the engine."""

    engine = current_engine()
    if engine is None:
        return {"status": "ok", "engine": "idle", "detector_ready": False}
    return {
        "status": "ok",
        "engine": "running" if engine.running else "stopped",
        "detector_ready": engine.pipeline.controller.initialized,
    }
