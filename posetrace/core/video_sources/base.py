"""Video source abstractions.

The engine consumes frames through a small interface (`VideoSource`) so the
capture implementation (webcam/file/RTSP) can be swapped without affecting the
pose pipeline. Every frame carries its index and a timestamp in seconds.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import cv2

from posetrace.core.types import Frame

logger = logging.getLogger(__name__)


@dataclass
class SourceFrame:
    image: Frame
    timestamp: float
    frame_number: int


class VideoSource(ABC):
    """Base interface for anything that can produce video frames."""

    @abstractmethod
    def read(self) -> SourceFrame | None:
        """Return the next frame, or `None` when unavailable."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any underlying resources."""

        raise NotImplementedError


class OpenCVSource(VideoSource):
    """A `VideoSource` backed by `cv2.VideoCapture`.

    Live sources are stamped with seconds since the first frame.
    """

    def __init__(self, source: str | int) -> None:
        self.cap = cv2.VideoCapture(source)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {source}")
        self._frame_number = 0
        self._started_at: float | None = None

    def read(self) -> SourceFrame | None:
        ok, frame = self.cap.read()
        if not ok:
            return None
        now = time.perf_counter()
        if self._started_at is None:
            self._started_at = now
        out = SourceFrame(frame, now - self._started_at, self._frame_number)
        self._frame_number += 1
        return out

    def close(self) -> None:
        """Release the underlying OpenCV capture."""

        self.cap.release()


class WebcamSource(OpenCVSource):
    """Webcam capture; tries the default backend then DirectShow."""

    def __init__(self, index: int = 0) -> None:
        self.cap = None
        for backend in (cv2.CAP_ANY, cv2.CAP_DSHOW):
            cap = cv2.VideoCapture(index, backend)
            if cap.isOpened():
                self.cap = cap
                logger.info("Opened camera index=%s backend=%s", index, backend)
                break
            cap.release()
        if self.cap is None:
            raise RuntimeError(f"Failed to open video source: {index}")
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._frame_number = 0
        self._started_at = None


class FileSource(OpenCVSource):
    """Video file source paced to the container FPS.

    Timestamps are `frame_number / fps`. At EOF the file is rewound when `loop`
    is set, restarting frame numbers at zero.
    """

    def __init__(self, path: str, loop: bool = True, realtime: bool = True) -> None:
        super().__init__(path)
        self.loop = loop
        self.realtime = realtime
        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self.fps = fps if fps > 0.0 else 30.0
        self._start_perf: float | None = None

    def read(self) -> SourceFrame | None:
        ok, frame = self.cap.read()
        if not ok:
            if not self.loop or not self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0):
                return None
            self._frame_number = 0
            self._start_perf = None
            ok, frame = self.cap.read()
            if not ok:
                return None

        if self._start_perf is None:
            self._start_perf = time.perf_counter()
        idx = self._frame_number
        self._frame_number += 1
        ts = idx / self.fps
        if self.realtime:
            # Pace output to the file's FPS instead of decoding as fast as possible.
            delay = ts - (time.perf_counter() - self._start_perf)
            if delay > 0:
                time.sleep(delay)
        return SourceFrame(frame, ts, idx)


class RTSPSource(OpenCVSource):
    """RTSP stream source, preferring the FFmpeg backend."""

    def __init__(self, url: str) -> None:
        self.cap = None
        backend = getattr(cv2, "CAP_FFMPEG", None)
        cap = cv2.VideoCapture(url, backend) if backend is not None else cv2.VideoCapture(url)
        if not cap.isOpened():
            cap.release()
            cap = cv2.VideoCapture(url)
        if not cap.isOpened():
            raise RuntimeError(f"Failed to open RTSP source: {url}")
        self.cap = cap
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._frame_number = 0
        self._started_at = None
