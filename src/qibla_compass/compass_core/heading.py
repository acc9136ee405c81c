from __future__ import annotations

"""
heading.py
==========
Magnetometer sample -> compass heading.

The raw angle is atan2(y, x) in [0, 360); the calibration offset aligns the
sensor's x axis with the visual top of the device and is subtracted from it.
Baseline behaviour is unsmoothed: one sample in, one heading out.
``HeadingSmoother`` is an optional EMA stage on top.
"""

import math
from typing import Optional

import numpy as np

from .bearing import normalize_bearing
from .errors import SensorFailure
from .model import DEFAULT_CALIBRATION_OFFSET_DEG, MagnetometerSample


def raw_angle_deg(x: float, y: float) -> float:
    """Angle of the (x, y) field vector from the sensor x axis, in [0, 360)."""
    if x == 0 and y == 0:
        return 0.0
    angle = math.degrees(math.atan2(y, x))
    if angle < 0:
        angle += 360.0
    return normalize_bearing(angle)


def normalize_heading(
    sample: MagnetometerSample,
    calibration_offset_deg: float = DEFAULT_CALIBRATION_OFFSET_DEG,
) -> float:
    """
    Convert one magnetometer sample into a heading in [0, 360).

    A zero horizontal field (x == 0 and y == 0) yields 0 instead of an
    undefined angle.

    Raises
    ------
    SensorFailure
        If a sample component is NaN or infinite.
    ValueError
        If ``calibration_offset_deg`` is not finite.
    """
    if not math.isfinite(calibration_offset_deg):
        raise ValueError("calibration_offset_deg must be a finite float")
    if not sample.is_finite():
        raise SensorFailure(f"non-finite magnetometer sample: {sample}")
    if sample.x == 0 and sample.y == 0:
        return 0.0
    return normalize_bearing(raw_angle_deg(sample.x, sample.y) - calibration_offset_deg)


def normalize_headings(
    xs,
    ys,
    calibration_offset_deg: float = DEFAULT_CALIBRATION_OFFSET_DEG,
) -> np.ndarray:
    """
    Vectorised ``normalize_heading`` over arrays of x and y components.

    Non-finite components propagate as NaN in the output; callers decide how
    to treat them.
    """
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"xs and ys must have the same shape, got {x.shape} and {y.shape}")
    raw = np.degrees(np.arctan2(y, x))
    raw = np.where(raw < 0, raw + 360.0, raw)
    out = np.mod(raw - calibration_offset_deg, 360.0)
    out = np.where(out >= 360.0, 0.0, out)
    zero = (x == 0) & (y == 0)
    return np.where(zero, 0.0, out)


class HeadingSmoother:
    """
    Exponential moving average of headings on the unit circle.

    Averaging unit vectors instead of raw degrees keeps 359 and 1 blending
    through 0 rather than 180.
    """

    def __init__(self, alpha: float) -> None:
        if not (0.0 < alpha <= 1.0):
            raise ValueError("alpha must be in the range (0.0, 1.0]")
        self.alpha = float(alpha)
        self._vector: Optional[tuple[float, float]] = None

    def reset(self) -> None:
        self._vector = None

    def update(self, heading_deg: float) -> float:
        rad = math.radians(heading_deg)
        sample = (math.cos(rad), math.sin(rad))
        if self._vector is None:
            self._vector = sample
        else:
            a = self.alpha
            self._vector = (
                a * sample[0] + (1 - a) * self._vector[0],
                a * sample[1] + (1 - a) * self._vector[1],
            )
        return self.value()

    def value(self) -> Optional[float]:
        if self._vector is None:
            return None
        cx, sy = self._vector
        if cx == 0 and sy == 0:
            # Two opposite headings cancelled out exactly.
            return 0.0
        return normalize_bearing(math.degrees(math.atan2(sy, cx)))


__all__ = [
    "raw_angle_deg",
    "normalize_heading",
    "normalize_headings",
    "HeadingSmoother",
]
