"""Process-wide settings and the running `PoseEngine`.

Config changes are applied to the running engine when only detection-rate,
ROI or motion fields change, keeping the pose cache and speed history. A new
video source, model or cache/history layout replaces the engine.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Any

from posetrace.api.services.engine import PoseEngine
from posetrace.core.config.settings import PoseSettings, load_settings, settings_to_dict

logger = logging.getLogger(__name__)

_settings: PoseSettings | None = None
_engine: PoseEngine | None = None
_lock = RLock()


def get_settings() -> PoseSettings:
    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings()
        return _settings


def current_engine() -> PoseEngine | None:
    """Return the engine if one has been started, without creating it."""

    return _engine


def get_engine() -> PoseEngine:
    """FastAPI dependency: the shared engine, started on first use."""

    global _engine
    with _lock:
        if _engine is None:
            _engine = PoseEngine(get_settings())
            _engine.start()
        return _engine


def update_settings(patch: dict[str, Any] | None = None) -> PoseSettings:
    """Merge `patch` into the current settings and push them to the engine.

    Without a patch, settings are re-read from YAML and the environment.
    Validation errors propagate and leave the current settings untouched.
    """

    global _settings, _engine
    with _lock:
        if patch:
            merged = {**settings_to_dict(get_settings()), **patch}
            new = PoseSettings(**merged)
        else:
            new = load_settings()
        _settings = new
        if _engine is not None and not _engine.reconfigure(new):
            logger.info("Restarting pose engine with new settings")
            _engine.stop()
            _engine = PoseEngine(new)
            _engine.start()
        return new


def stop_engine() -> None:
    global _engine
    with _lock:
        if _engine is not None:
            _engine.stop()
            _engine = None
