"""
compass_io.trace
================

Write compass session traces (one row per processed magnetometer sample) to
a tab-separated values (TSV) file with a fixed schema.

What this module provides
-------------------------
- `TraceMetadata`: file-level metadata (origin, target, bearing, calibration
  offset, sampling interval, software version, creation timestamp).
- `TraceRow`: one processed sample (index, heading, bearing, dial and
  pointer rotations, on-screen indicator angle).
- `trace_row_from_snapshot(snapshot)`: build a row from a READY snapshot.
- `write_trace_tsv(path, metadata, rows, append=True)`: write or append.
- `SchemaMismatchError`: raised when appending to a file whose column header
  does not match the expected schema.

File format
-----------
1) A commented metadata block (lines starting with '#').
2) One header line:
   sample, heading, bearing, dial_rotation, pointer_rotation, screen_pointer
3) Data rows, tab separated. Angles are written with **exactly four decimal
   places**; non-finite values are written as "NaN".

When overwriting (`append=False`) the file is written to `path + ".tmp"` and
then moved into place with `os.replace`.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, TextIO

from qibla_compass.compass_core.model import (
    CompassSessionState,
    CompassSnapshot,
    GeoCoordinate,
)

__all__ = [
    "TraceMetadata",
    "TraceRow",
    "SchemaMismatchError",
    "trace_row_from_snapshot",
    "write_trace_tsv",
]


# =============================================================================
# Exceptions
# =============================================================================


class SchemaMismatchError(ValueError):
    """
    Raised when appending to an existing file whose column header line does not
    match the trace schema. The message includes the path, the expected header
    and the found header.
    """

    pass


# =============================================================================
# Data models
# =============================================================================


@dataclass(frozen=True)
class TraceMetadata:
    """
    Container for file-level metadata written as commented header lines.

    Attributes
    ----------
    origin : GeoCoordinate
        Position fix the bearing was computed from.
    target_name : str
        Human-readable name of the reference point (e.g., "Kaaba").
    target : GeoCoordinate
        Reference point coordinates.
    bearing_deg : float
        Session bearing toward the target, in [0, 360).
    calibration_offset_deg : float
        Offset subtracted from the raw magnetometer angle.
    interval_ms : int
        Sampling interval. Must be > 0.
    software_version : str
        Version string of the tool that wrote the file.
    created_at_iso : Optional[str], default None
        ISO 8601 creation time. If None, current UTC time is used.
    """

    origin: GeoCoordinate
    target_name: str
    target: GeoCoordinate
    bearing_deg: float
    calibration_offset_deg: float
    interval_ms: int
    software_version: str
    created_at_iso: Optional[str] = None

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if not (0.0 <= self.bearing_deg < 360.0):
            raise ValueError("bearing_deg must be in [0, 360)")


@dataclass(frozen=True)
class TraceRow:
    """
    One processed sample.

    Attributes
    ----------
    sample : int
        1-based index of the sample within the session. Must be >= 1.
    heading_deg : float
        Device heading in [0, 360).
    bearing_deg : float
        Target bearing in [0, 360).
    dial_rotation_deg : float
        Dial rotation (``-heading``).
    pointer_rotation_deg : float
        Indicator angle in the dial frame (``bearing``).
    screen_pointer_deg : float
        Indicator angle relative to the top of the screen.
    """

    sample: int
    heading_deg: float
    bearing_deg: float
    dial_rotation_deg: float
    pointer_rotation_deg: float
    screen_pointer_deg: float

    def __post_init__(self) -> None:
        if self.sample < 1:
            raise ValueError("sample index must be >= 1")
        for name, val in (
            ("heading_deg", self.heading_deg),
            ("bearing_deg", self.bearing_deg),
        ):
            if not (0.0 <= val < 360.0):
                raise ValueError(f"{name} must be in [0, 360)")


def trace_row_from_snapshot(snapshot: CompassSnapshot) -> TraceRow:
    """
    Build a `TraceRow` from a READY snapshot that has processed a sample.

    Raises
    ------
    ValueError
        If the snapshot is not READY or carries no rotation yet.
    """
    if snapshot.state is not CompassSessionState.READY or snapshot.rotation is None:
        raise ValueError(f"snapshot in state {snapshot.state.name} has no reading")
    rot = snapshot.rotation
    return TraceRow(
        sample=snapshot.sample_count,
        heading_deg=snapshot.heading_deg,
        bearing_deg=snapshot.bearing_deg,
        dial_rotation_deg=rot.dial_rotation_deg,
        pointer_rotation_deg=rot.pointer_rotation_deg,
        screen_pointer_deg=rot.screen_pointer_deg,
    )


# =============================================================================
# Public API
# =============================================================================


def write_trace_tsv(
    path: str,
    metadata: TraceMetadata,
    rows: Iterable[TraceRow],
    append: bool = True,
) -> None:
    """
    Write (or append) a trace TSV with a commented metadata block and a fixed
    column header.

    Parameters
    ----------
    path : str
        Output file path.
    metadata : TraceMetadata
        Written in the commented header when the file is created.
    rows : Iterable[TraceRow]
        Rows to write.
    append : bool, default True
        If True and the file exists, validate its header and append. If
        False, create/overwrite the file atomically.

    Raises
    ------
    SchemaMismatchError
        When appending to a file whose header does not match the schema.
    ValueError
        If the file is present but appears to contain no header line.
    """
    creating_new = not os.path.exists(path)

    if not append:
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", newline="", encoding="utf-8") as f:
            _write_metadata_block(f, metadata)
            _write_column_header(f)
            for r in rows:
                f.write(_row_to_tsv(r))
        os.replace(tmp_path, path)
        return

    if not creating_new:
        _check_header_or_raise(path)
    mode = "a" if not creating_new else "w"
    with open(path, mode, newline="", encoding="utf-8") as f:
        if creating_new:
            _write_metadata_block(f, metadata)
            _write_column_header(f)
        for r in rows:
            f.write(_row_to_tsv(r))


# =============================================================================
# Internal helpers
# =============================================================================


def _write_metadata_block(f: TextIO, md: TraceMetadata) -> None:
    created = md.created_at_iso or datetime.now(timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )

    f.write(
        f"# Origin: {md.origin.latitude_deg:.6f}, {md.origin.longitude_deg:.6f}\n"
    )
    f.write(
        f"# Target: {md.target_name} "
        f"({md.target.latitude_deg:.6f}, {md.target.longitude_deg:.6f})\n"
    )
    f.write(f"# Bearing: {md.bearing_deg:.4f} deg\n")
    f.write(f"# Calibration offset: {md.calibration_offset_deg} deg\n")
    f.write(f"# Sampling interval: {md.interval_ms} ms\n")

    # Column dictionary
    f.write("# sample: 1-based sample index\n")
    f.write("# heading: device heading from magnetic north, deg\n")
    f.write("# bearing: initial great-circle bearing to target, deg\n")
    f.write("# dial_rotation: dial rotation (-heading), deg\n")
    f.write("# pointer_rotation: indicator angle on the dial face, deg\n")
    f.write("# screen_pointer: indicator angle from screen top, deg\n")

    # Provenance
    f.write(f"# Generated with software version: {md.software_version}\n")
    f.write(f"# Created at: {created}\n")
    f.write("\n")


def _write_column_header(f: TextIO) -> None:
    f.write("\t".join(_expected_columns()) + "\n")


def _fmt_4dec_or_nan(x: Optional[float]) -> str:
    if x is None or not math.isfinite(x):
        return "NaN"
    return f"{x:.4f}"


def _row_to_tsv(r: TraceRow) -> str:
    fields = [
        str(r.sample),
        _fmt_4dec_or_nan(r.heading_deg),
        _fmt_4dec_or_nan(r.bearing_deg),
        _fmt_4dec_or_nan(r.dial_rotation_deg),
        _fmt_4dec_or_nan(r.pointer_rotation_deg),
        _fmt_4dec_or_nan(r.screen_pointer_deg),
    ]
    return "\t".join(fields) + "\n"


def _expected_columns() -> list[str]:
    return [
        "sample",
        "heading",
        "bearing",
        "dial_rotation",
        "pointer_rotation",
        "screen_pointer",
    ]


def _check_header_or_raise(path: str) -> None:
    """
    Ensure the existing file at `path` has the trace column schema.

    Comment lines and blank lines are skipped; the first remaining line is
    compared column by column with the expected header.
    """
    expected_cols = _expected_columns()

    header_line: Optional[str] = None
    with open(path, "r", newline="", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            header_line = line
            break

    if header_line is None:
        raise ValueError(f"File '{path}' appears to contain no column header")

    if header_line.split("\t") != expected_cols:
        raise SchemaMismatchError(
            "Existing file schema does not match expected header.\n"
            f"Path:     {path}\n"
            f"Expected: {chr(9).join(expected_cols)}\n"
            f"Found:    {header_line}\n"
            "Hint: If you intend to replace the file, "
            "call write_trace_tsv(..., append=False)."
        )
