"""
compass_io.samples
==================

Read recorded magnetometer samples for replay.

File format
-----------
A delimited text file (tab preferred) with a header line. Lines starting
with '#' are comments. Required columns: ``x`` and ``y``; ``z`` is optional
and defaults to 0.0. Missing cells or the literal ``NaN`` are kept as NaN:
during replay they surface as a sensor failure, exactly like a real sensor
that stops delivering usable data.

Example
-------
    # recorded on a phone held flat, portrait
    x	y	z
    0.0	1.0	-0.4
    0.7	0.7	-0.4
"""

from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd

from qibla_compass.compass_core.heading import normalize_headings
from qibla_compass.compass_core.model import (
    DEFAULT_CALIBRATION_OFFSET_DEG,
    MagnetometerSample,
)

__all__ = [
    "read_samples_frame",
    "read_samples_tsv",
    "summarize_headings",
]


def read_samples_frame(path: str) -> pd.DataFrame:
    """
    Load a sample file into a DataFrame with float columns ``x``, ``y``, ``z``.

    Raises
    ------
    ValueError
        If the ``x`` or ``y`` column is missing.
    """
    # Try strict TSV first. If it fails, fall back to auto-detect.
    try:
        df = pd.read_csv(path, sep="\t", comment="#")
    except (pd.errors.ParserError, UnicodeDecodeError):
        df = pd.read_csv(path, sep=None, engine="python", comment="#")
    if len(df.columns) == 1 and any(d in str(df.columns[0]) for d in ",; "):
        # Single column under strict TSV means another delimiter was used.
        df = pd.read_csv(path, sep=None, engine="python", comment="#")

    df.columns = [str(c).strip() for c in df.columns]

    required = {"x", "y"}
    missing = sorted(c for c in required if c not in df.columns)
    if missing:
        raise ValueError(
            f"Missing required columns {missing} in '{path}'. "
            f"Found columns: {list(df.columns)}"
        )
    if "z" not in df.columns:
        df["z"] = 0.0

    out = df[["x", "y", "z"]].apply(pd.to_numeric, errors="coerce").astype(float)
    return out.reset_index(drop=True)


def read_samples_tsv(path: str) -> List[MagnetometerSample]:
    """Load a sample file as a list of ``MagnetometerSample`` (NaN preserved)."""
    df = read_samples_frame(path)
    return [
        MagnetometerSample(float(x), float(y), float(z))
        for x, y, z in df.itertuples(index=False, name=None)
    ]


def summarize_headings(
    df: pd.DataFrame,
    calibration_offset_deg: float = DEFAULT_CALIBRATION_OFFSET_DEG,
) -> pd.DataFrame:
    """
    Per-sample headings for a sample frame.

    Returns a copy of ``df`` with a ``heading`` column in [0, 360) and a
    boolean ``valid`` column (False where any component is non-finite; the
    heading is NaN there).
    """
    out = df.copy()
    xyz = out[["x", "y", "z"]].to_numpy(dtype=float)
    valid = np.isfinite(xyz).all(axis=1)
    headings = normalize_headings(out["x"], out["y"], calibration_offset_deg)
    out["heading"] = np.where(valid, headings, np.nan)
    out["valid"] = valid
    return out
