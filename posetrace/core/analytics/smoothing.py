"""Pluggable center-of-mass smoothing strategies.

The speed calculator uses `IdentitySmoother` unless configured otherwise; the
other strategies are opt-in.
"""

from __future__ import annotations

from collections import deque
from typing import Protocol

from posetrace.core.types import Point3


class Smoother(Protocol):
    def apply(self, value: Point3) -> Point3:
        """Return the smoothed value for a new measurement."""

    def reset(self) -> None:
        """Forget all previous measurements."""


class IdentitySmoother:
    def apply(self, value: Point3) -> Point3:
        return value

    def reset(self) -> None:
        return None


def exponential_step(last: float, measurement: float, gain: float) -> float:
    """Single-pole filter step: `last + gain * (measurement - last)`."""

    return last + gain * (measurement - last)


class ExponentialSmoother:
    def __init__(self, gain: float = 0.5) -> None:
        if not 0.0 < gain <= 1.0:
            raise ValueError("gain must be in (0, 1]")
        self.gain = float(gain)
        self._last: Point3 | None = None

    def apply(self, value: Point3) -> Point3:
        if self._last is None:
            self._last = value
            return value
        lx, ly, lz = self._last
        vx, vy, vz = value
        out = (
            exponential_step(lx, vx, self.gain),
            exponential_step(ly, vy, self.gain),
            exponential_step(lz, vz, self.gain),
        )
        self._last = out
        return out

    def reset(self) -> None:
        self._last = None


class WindowAverageSmoother:
    def __init__(self, window: int = 3) -> None:
        if window <= 0:
            raise ValueError("window must be >= 1")
        self._values: deque[Point3] = deque(maxlen=int(window))

    def apply(self, value: Point3) -> Point3:
        self._values.append(value)
        n = float(len(self._values))
        return (
            sum(v[0] for v in self._values) / n,
            sum(v[1] for v in self._values) / n,
            sum(v[2] for v in self._values) / n,
        )

    def reset(self) -> None:
        self._values.clear()


def make_smoother(kind: str, *, gain: float = 0.5, window: int = 3) -> Smoother:
    """Build a smoother by name: `none`, `exponential` or `window`."""

    kind = kind.strip().lower()
    if kind in {"", "none", "identity"}:
        return IdentitySmoother()
    if kind == "exponential":
        return ExponentialSmoother(gain)
    if kind == "window":
        return WindowAverageSmoother(window)
    raise ValueError(f"unknown smoothing strategy: {kind}")
