from __future__ import annotations

"""
rotation.py
===========
Compose the device heading and the target bearing into rendering angles.

Frame: the whole dial is rotated by ``-heading`` so north stays up on screen,
and the target indicator is painted once at ``bearing`` on the dial face.
Its on-screen angle is therefore implicitly ``bearing - heading``. Adding a
world-fixed marker on top of the rotating dial would count the heading twice.
"""

from .bearing import normalize_bearing
from .model import RotationPair

_CARDINALS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


def wrap_degrees(angle_deg: float) -> float:
    """Fold any finite angle into [0, 360)."""
    return normalize_bearing(angle_deg)


def angle_difference(a_deg: float, b_deg: float) -> float:
    """Signed shortest rotation from ``b`` to ``a``, in (-180, 180]."""
    d = wrap_degrees(a_deg - b_deg)
    return d - 360.0 if d > 180.0 else d


def compose_rotation(heading_deg: float, bearing_deg: float) -> RotationPair:
    """
    Return the dial and pointer rotations for one (heading, bearing) pair.

    Parameters
    ----------
    heading_deg : float
        Device heading in [0, 360).
    bearing_deg : float
        Bearing toward the target in [0, 360).

    Returns
    -------
    RotationPair
        ``dial_rotation_deg = -heading`` and ``pointer_rotation_deg = bearing``.
    """
    return RotationPair(
        dial_rotation_deg=-heading_deg + 0.0,
        pointer_rotation_deg=bearing_deg,
    )


def cardinal_label(angle_deg: float) -> str:
    """8-point compass label ("N", "NE", ...) for a heading or bearing."""
    index = int((wrap_degrees(angle_deg) + 22.5) / 45.0) % 8
    return _CARDINALS[index]


__all__ = [
    "wrap_degrees",
    "angle_difference",
    "compose_rotation",
    "cardinal_label",
]
