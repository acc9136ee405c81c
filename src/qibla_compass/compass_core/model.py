from __future__ import annotations

"""
model.py
========
Data models shared across the compass pipeline.

Value objects are frozen dataclasses so a fix, a sample or a rotation can be
handed to the rendering layer without defensive copies. Angles are always in
decimal degrees.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Optional

from .errors import CompassError


# A point on the Earth's surface.
@dataclass(frozen=True)
class GeoCoordinate:
    # Latitude in decimal degrees (south negative).
    latitude_deg: float
    # Longitude in decimal degrees (east positive).
    longitude_deg: float


# Fixed reference point: the Kaaba, Mecca.
KAABA = GeoCoordinate(latitude_deg=21.4225, longitude_deg=39.8262)


# One raw magnetometer reading, in arbitrary but consistent units.
@dataclass(frozen=True)
class MagnetometerSample:
    x: float
    y: float
    z: float = 0.0

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))


@dataclass(frozen=True)
class RotationPair:
    """
    Rendering projection of one (heading, bearing) pair.

    Attributes
    ----------
    dial_rotation_deg : float
        Rotation applied to the whole dial so that north stays up on screen.
    pointer_rotation_deg : float
        Angle of the target indicator inside the (rotating) dial frame.
    """

    dial_rotation_deg: float
    pointer_rotation_deg: float

    @property
    def screen_pointer_deg(self) -> float:
        """Indicator angle relative to the top of the screen, in [0, 360)."""
        angle = (self.pointer_rotation_deg + self.dial_rotation_deg) % 360.0
        return 0.0 if angle >= 360.0 else angle


class CompassSessionState(enum.Enum):
    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    LOCATING = "locating"
    READY = "ready"
    PERMISSION_ERROR = "permission_error"
    LOCATION_ERROR = "location_error"
    SENSOR_ERROR = "sensor_error"

    @property
    def is_error(self) -> bool:
        return self in _ERROR_STATES

    @property
    def can_retry(self) -> bool:
        return self in _RETRYABLE_STATES


_ERROR_STATES = frozenset(
    {
        CompassSessionState.PERMISSION_ERROR,
        CompassSessionState.LOCATION_ERROR,
        CompassSessionState.SENSOR_ERROR,
    }
)
_RETRYABLE_STATES = frozenset(
    {
        CompassSessionState.PERMISSION_ERROR,
        CompassSessionState.LOCATION_ERROR,
    }
)


class PermissionStatus(enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"


# Portrait-mode correction between the sensor's x axis and the top of the
# device. Subtracted from the raw atan2 angle.
DEFAULT_CALIBRATION_OFFSET_DEG = 90.0
DEFAULT_INTERVAL_MS = 100


@dataclass(frozen=True)
class SessionConfig:
    """
    Explicit per-session configuration.

    Attributes
    ----------
    interval_ms : int
        Magnetometer sampling interval in milliseconds. Must be > 0.
    calibration_offset_deg : float
        Angle subtracted from the raw sensor angle. Device and orientation
        dependent; the default matches a phone held in portrait.
    smoothing_alpha : Optional[float]
        EMA factor in (0, 1]. None disables smoothing.
    target : GeoCoordinate
        Reference point the bearing is computed toward.
    """

    interval_ms: int = DEFAULT_INTERVAL_MS
    calibration_offset_deg: float = DEFAULT_CALIBRATION_OFFSET_DEG
    smoothing_alpha: Optional[float] = None
    target: GeoCoordinate = field(default=KAABA)

    def __post_init__(self) -> None:
        if int(self.interval_ms) <= 0:
            raise ValueError("interval_ms must be > 0")
        if not math.isfinite(self.calibration_offset_deg):
            raise ValueError("calibration_offset_deg must be a finite float")
        if self.smoothing_alpha is not None:
            if not (0.0 < self.smoothing_alpha <= 1.0):
                raise ValueError("smoothing_alpha must be in (0, 1] when provided")


@dataclass(frozen=True)
class CompassSnapshot:
    """Everything the rendering layer may read about a session."""

    state: CompassSessionState
    heading_deg: Optional[float] = None
    bearing_deg: Optional[float] = None
    rotation: Optional[RotationPair] = None
    error: Optional[CompassError] = None
    sample_count: int = 0

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    @property
    def can_retry(self) -> bool:
        return self.state.can_retry

    @property
    def display_heading(self) -> Optional[int]:
        if self.heading_deg is None:
            return None
        return int(round(self.heading_deg)) % 360

    @property
    def display_bearing(self) -> Optional[int]:
        if self.bearing_deg is None:
            return None
        return int(round(self.bearing_deg)) % 360


__all__ = [
    "GeoCoordinate",
    "KAABA",
    "MagnetometerSample",
    "RotationPair",
    "CompassSessionState",
    "PermissionStatus",
    "DEFAULT_CALIBRATION_OFFSET_DEG",
    "DEFAULT_INTERVAL_MS",
    "SessionConfig",
    "CompassSnapshot",
]
