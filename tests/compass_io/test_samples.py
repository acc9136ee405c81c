from __future__ import annotations

import math

import pytest

from qibla_compass.compass_io.samples import (
    read_samples_frame,
    read_samples_tsv,
    summarize_headings,
)
from qibla_compass.compass_core.model import MagnetometerSample


def test_read_tsv_with_comment(sample_tsv):
    path = sample_tsv("x\ty\tz\n1.0\t0.0\t-0.4\n0.0\t1.0\t-0.4\n")
    samples = read_samples_tsv(path)
    assert samples == [
        MagnetometerSample(1.0, 0.0, -0.4),
        MagnetometerSample(0.0, 1.0, -0.4),
    ]


def test_z_column_is_optional(sample_tsv):
    df = read_samples_frame(sample_tsv("x\ty\n0.5\t0.5\n"))
    assert list(df.columns) == ["x", "y", "z"]
    assert df.loc[0, "z"] == 0.0


def test_comma_separated_fallback(sample_tsv):
    samples = read_samples_tsv(sample_tsv("x,y,z\n1,2,3\n", name="samples.csv"))
    assert samples == [MagnetometerSample(1.0, 2.0, 3.0)]


def test_missing_cells_become_nan(sample_tsv):
    samples = read_samples_tsv(sample_tsv("x\ty\tz\nNaN\t1.0\t0.0\n\t1.0\t0.0\n"))
    assert len(samples) == 2
    assert all(math.isnan(s.x) for s in samples)
    assert not samples[0].is_finite()


def test_missing_required_column(sample_tsv):
    with pytest.raises(ValueError, match="Missing required columns"):
        read_samples_frame(sample_tsv("x\tz\n1.0\t0.0\n"))


def test_summarize_headings_marks_invalid_rows(sample_tsv):
    df = read_samples_frame(
        sample_tsv("x\ty\tz\n0.0\t1.0\t0.0\n1.0\t0.0\tNaN\n-1.0\t0.0\t0.0\n")
    )
    out = summarize_headings(df, calibration_offset_deg=90.0)
    assert list(out["valid"]) == [True, False, True]
    assert out.loc[0, "heading"] == pytest.approx(0.0)
    assert math.isnan(out.loc[1, "heading"])
    assert out.loc[2, "heading"] == pytest.approx(90.0)
    assert "heading" not in df.columns
