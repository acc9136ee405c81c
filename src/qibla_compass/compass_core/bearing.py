from __future__ import annotations

"""
bearing.py
==========
Initial great-circle bearing between two points on a sphere.

Let phi1, phi2 be origin/target latitudes and dlon the target-minus-origin
longitude difference, all in radians:

    theta = atan2(sin(dlon) * cos(phi2),
                  cos(phi1) * sin(phi2) - sin(phi1) * cos(phi2) * cos(dlon))

The result is converted to degrees and folded into [0, 360). Coincident
points have no defined bearing; 0 is returned by convention.
"""

import math

from .errors import CalculationError
from .model import KAABA, GeoCoordinate

# Two coordinates closer than this on both axes are treated as identical.
COINCIDENT_EPS_DEG = 1e-12


def validate_coordinate(coord: GeoCoordinate, name: str = "coordinate") -> None:
    """
    Raise ``CalculationError`` unless ``coord`` is a finite lat/lon pair in range.

    Latitude must lie in [-90, 90] and longitude in [-180, 180]. Values are
    never clamped.
    """
    lat = coord.latitude_deg
    lon = coord.longitude_deg
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise CalculationError(f"{name} has non-finite components: ({lat}, {lon})")
    if not (-90.0 <= lat <= 90.0):
        raise CalculationError(f"{name} latitude {lat} outside [-90, 90]")
    if not (-180.0 <= lon <= 180.0):
        raise CalculationError(f"{name} longitude {lon} outside [-180, 180]")


def normalize_bearing(theta_deg: float) -> float:
    """Fold an angle in degrees into [0, 360)."""
    value = ((theta_deg % 360.0) + 360.0) % 360.0
    # Tiny negative inputs round up to exactly 360.0 in floating point.
    if value >= 360.0:
        return 0.0
    return value + 0.0  # drop a -0.0 sign


def compute_bearing(origin: GeoCoordinate, target: GeoCoordinate) -> float:
    """
    Return the initial great-circle bearing from ``origin`` to ``target``.

    Parameters
    ----------
    origin : GeoCoordinate
        Starting point, decimal degrees.
    target : GeoCoordinate
        Destination point, decimal degrees.

    Returns
    -------
    float
        Clockwise angle from true north in [0, 360).

    Raises
    ------
    CalculationError
        If either coordinate is non-finite or out of range.
    """
    validate_coordinate(origin, "origin")
    validate_coordinate(target, "target")

    if (
        abs(origin.latitude_deg - target.latitude_deg) <= COINCIDENT_EPS_DEG
        and abs(origin.longitude_deg - target.longitude_deg) <= COINCIDENT_EPS_DEG
    ):
        return 0.0

    phi1 = math.radians(origin.latitude_deg)
    phi2 = math.radians(target.latitude_deg)
    dlon = math.radians(target.longitude_deg - origin.longitude_deg)

    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    return normalize_bearing(math.degrees(math.atan2(y, x)))


def qibla_bearing(origin: GeoCoordinate) -> float:
    """Bearing from ``origin`` toward the Kaaba."""
    return compute_bearing(origin, KAABA)


__all__ = [
    "COINCIDENT_EPS_DEG",
    "validate_coordinate",
    "normalize_bearing",
    "compute_bearing",
    "qibla_bearing",
]
