"""Configuration endpoints.

Changes are held in memory only; persist them in the YAML file or `PTR_*`
environment variables.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from posetrace.api.schemas.models import ConfigPatchSchema, ConfigSchema
from posetrace.api.services import state
from posetrace.core.config.presets import list_presets, preset_patch
from posetrace.core.config.settings import settings_to_dict

router = APIRouter(prefix="/config", tags=["config"])


def _apply(patch: dict[str, Any] | None) -> ConfigSchema:
    try:
        settings = state.update_settings(patch)
    except ValidationError as exc:
        detail = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
        raise HTTPException(status_code=422, detail=detail) from None
    return ConfigSchema(**settings_to_dict(settings))


@router.get("", response_model=ConfigSchema)
def get_config() -> ConfigSchema:
    return ConfigSchema(**settings_to_dict(state.get_settings()))


@router.post("", response_model=ConfigSchema)
def replace_config(cfg: ConfigSchema) -> ConfigSchema:
    """Replace every field. Source or model changes restart the engine."""

    return _apply(cfg.model_dump())


@router.patch("", response_model=ConfigSchema)
def patch_config(patch: ConfigPatchSchema) -> ConfigSchema:
    """Change only the given fields; rate, ROI and motion fields apply in place."""

    return _apply(patch.model_dump(exclude_unset=True))


@router.post("/reload", response_model=ConfigSchema)
def reload_config() -> ConfigSchema:
    """Discard in-memory changes and re-read YAML plus environment."""

    return _apply(None)


@router.get("/presets")
def get_presets() -> dict[str, list[dict[str, object]]]:
    return {"presets": list_presets()}


@router.post("/presets/{preset_id}", response_model=ConfigSchema)
def apply_preset(preset_id: str) -> ConfigSchema:
    try:
        patch = preset_patch(preset_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown preset: {preset_id}") from None
    return _apply(patch)
