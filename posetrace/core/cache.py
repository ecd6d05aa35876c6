"""Frame-addressed pose cache with nearest-frame fallback."""

from __future__ import annotations

import threading
from collections import OrderedDict

from posetrace.core.types import PoseFrame


class FramePoseCache:
    """Bounded store of `PoseFrame` keyed by frame number.

    Entries are replaced, never mutated. When `capacity` is exceeded the entry
    written longest ago is evicted.
    """

    def __init__(self, capacity: int = 10000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._entries: OrderedDict[int, PoseFrame] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, frame_number: object) -> bool:
        with self._lock:
            return frame_number in self._entries

    def put(self, pose: PoseFrame) -> None:
        if pose.frame_number < 0:
            raise ValueError("frame_number must be >= 0")
        with self._lock:
            self._entries.pop(pose.frame_number, None)
            self._entries[pose.frame_number] = pose
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def get(self, frame_number: int) -> PoseFrame | None:
        with self._lock:
            return self._entries.get(frame_number)

    def lookup(self, frame_number: int, radius: int) -> PoseFrame | None:
        """Exact hit, else the nearest detected entry within `radius` frames.

        Ties go to the lower frame number. An exact hit is returned even when it
        holds no detection.
        """

        with self._lock:
            hit = self._entries.get(frame_number)
            if hit is not None:
                return hit
            best: PoseFrame | None = None
            best_dist = radius + 1
            # Walking outward from the lower side first resolves ties toward the lower frame.
            for dist in range(1, radius + 1):
                for candidate in (frame_number - dist, frame_number + dist):
                    entry = self._entries.get(candidate)
                    if entry is not None and entry.detected and dist < best_dist:
                        best = entry
                        best_dist = dist
                if best is not None:
                    break
            return best

    def delete(self, frame_number: int) -> bool:
        with self._lock:
            return self._entries.pop(frame_number, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def frames(self, detected_only: bool = True) -> list[int]:
        """Return sorted frame numbers (only detected ones by default)."""

        with self._lock:
            return sorted(
                f for f, p in self._entries.items() if p.detected or not detected_only
            )
