from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from posetrace.core.analytics.pipeline import REBUILD_FIELDS, PosePipeline
from posetrace.core.config.settings import PoseSettings, settings_to_dict
from posetrace.core.types import PoseFrame
from posetrace.core.video_sources.base import FileSource, RTSPSource, VideoSource, WebcamSource

logger = logging.getLogger(__name__)

SOURCE_FIELDS = frozenset({"video_source", "video_path", "rtsp_url"})


class PoseEngine:
    """Runs the read -> detect -> measure loop on a single background thread.

    Frames are submitted only from that thread. The HTTP layer reads poses and
    metrics and may retune the pipeline in place through `reconfigure`.
    """

    def __init__(
        self,
        settings: PoseSettings,
        pipeline: PosePipeline | None = None,
        source_factory: Callable[[PoseSettings], VideoSource] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.settings = settings
        self.pipeline = pipeline or PosePipeline.from_settings(settings)
        self._source_factory = source_factory or _make_source
        self._clock = clock
        self.source: VideoSource | None = None
        self.running = False
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._latest_pose: PoseFrame | None = None
        self._latest_frame_number: int | None = None
        self._loop_fps = 0.0
        self._fps_alpha = 0.1
        self._last_loop_at: float | None = None
        self._last_adjust_at: float | None = None
        self.last_error: str | None = None

    def start(self) -> None:
        """Start the processing thread.

        Safe to call multiple times; subsequent calls while running are ignored.
        """

        if self.running:
            return
        if not self.pipeline.initialize():
            self.last_error = self.pipeline.controller.last_error or "Failed to initialize pose detector"
            return
        try:
            self.source = self._source_factory(self.settings)
        except Exception:
            self.last_error = "Failed to initialize video source"
            logger.exception(self.last_error)
            return
        self.running = True
        self.last_error = None
        self._thread = threading.Thread(target=self._process_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the processing thread, close the source and release the detector."""

        self.running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)
        if self.source:
            self.source.close()
            self.source = None
        self.pipeline.close()

    def step(self) -> bool:
        """Read and process a single frame. Returns False when no frame was available."""

        if self.source is None:
            return False
        item = self.source.read()
        if item is None:
            return False
        pose = self.pipeline.process_frame(item.image, item.timestamp, item.frame_number)
        now = self._clock()
        with self._lock:
            self._latest_pose = pose
            self._latest_frame_number = item.frame_number
            if self._last_loop_at is not None:
                dt = now - self._last_loop_at
                if dt > 0:
                    instant = 1.0 / dt
                    self._loop_fps = (
                        instant
                        if self._loop_fps == 0.0
                        else self._loop_fps * (1.0 - self._fps_alpha) + instant * self._fps_alpha
                    )
            self._last_loop_at = now
        self._maybe_adjust_quality(now)
        return True

    def _maybe_adjust_quality(self, now: float) -> None:
        if not self.settings.auto_adjust_quality:
            return
        if self._last_adjust_at is not None and now - self._last_adjust_at < 1.0:
            return
        self._last_adjust_at = now
        self.pipeline.controller.auto_adjust(self.settings.target_fps)

    def reconfigure(self, settings: PoseSettings) -> bool:
        """Apply new settings to the running pipeline.

        Returns False, changing nothing, when a source or model field differs;
        the caller must then replace the engine.
        """

        old = settings_to_dict(self.settings)
        new = settings_to_dict(settings)
        changed = {name for name in new if old.get(name) != new[name]}
        restart = changed & (SOURCE_FIELDS | REBUILD_FIELDS)
        if restart:
            logger.info("Settings change needs a restart: %s", sorted(restart))
            return False
        self.pipeline.apply_settings(self.settings, settings)
        self.settings = settings
        if changed:
            logger.info("Applied settings in place: %s", sorted(changed))
        return True

    def _process_loop(self) -> None:
        logger.debug("Process loop started")
        while self.running:
            try:
                got_frame = self.step()
            except Exception:
                self.last_error = "Pipeline processing failed"
                logger.exception(self.last_error)
                time.sleep(0.05)
                continue
            if not got_frame:
                time.sleep(0.02)

    def latest_pose(self) -> PoseFrame | None:
        with self._lock:
            return self._latest_pose

    def latest_frame_number(self) -> int | None:
        with self._lock:
            return self._latest_frame_number

    def loop_fps(self) -> float:
        with self._lock:
            return float(self._loop_fps)


def _make_source(settings: PoseSettings) -> VideoSource:
    """Instantiate the configured `VideoSource`."""

    if settings.video_source == "file" and settings.video_path:
        video_path = Path(settings.video_path)
        if not video_path.exists():
            raise RuntimeError(f"Video path not found: {video_path}")
        return FileSource(str(video_path))
    if settings.video_source == "rtsp" and settings.rtsp_url:
        return RTSPSource(settings.rtsp_url)
    return WebcamSource(0)
