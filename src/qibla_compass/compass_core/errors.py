from __future__ import annotations

"""
errors.py
=========
Failure taxonomy of a compass session.

Every error carries a human-readable default message and whether the user
may retry. The session resolves them into error states; none of them is
expected to reach the rendering layer as an exception.
"""

from typing import Optional


class CompassError(Exception):
    """Base class for compass failures."""

    default_message = "Compass failure."
    retryable = False

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class PermissionDenied(CompassError):
    """The user declined foreground location access."""

    default_message = "Location permission denied."
    retryable = True


class LocationUnavailable(CompassError):
    """The location provider could not resolve a position fix."""

    default_message = "Could not determine current location."
    retryable = True


class SensorUnavailable(CompassError):
    """The device has no usable magnetometer. Permanent for the session."""

    default_message = "Magnetometer not available on this device."


class SensorFailure(CompassError):
    """The magnetometer delivered an unusable (non-finite) reading."""

    default_message = "Magnetometer stopped delivering valid data."


class CalculationError(CompassError, ValueError):
    """Invalid coordinate passed to the bearing calculator."""

    default_message = "Invalid coordinate for bearing calculation."


__all__ = [
    "CompassError",
    "PermissionDenied",
    "LocationUnavailable",
    "SensorUnavailable",
    "SensorFailure",
    "CalculationError",
]
