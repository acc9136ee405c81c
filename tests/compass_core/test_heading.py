from __future__ import annotations

import math

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from qibla_compass.compass_core.errors import SensorFailure
from qibla_compass.compass_core.heading import (
    HeadingSmoother,
    normalize_heading,
    normalize_headings,
    raw_angle_deg,
)
from qibla_compass.compass_core.model import (
    DEFAULT_CALIBRATION_OFFSET_DEG,
    MagnetometerSample,
)


def _component():
    return st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)


def _offset():
    return st.floats(min_value=-720.0, max_value=720.0, allow_nan=False, allow_infinity=False)


_SAMPLE = st.builds(MagnetometerSample, _component(), _component(), _component())


@settings(max_examples=300)
@given(sample=_SAMPLE, offset=_offset())
def test_heading_always_in_range(sample, offset):
    h = normalize_heading(sample, offset)
    assert 0.0 <= h < 360.0


@pytest.mark.parametrize("offset", [0.0, 90.0, -90.0, 33.3])
def test_zero_field_is_zero(offset):
    assert normalize_heading(MagnetometerSample(0.0, 0.0, 0.0), offset) == 0.0
    # z does not matter for the degenerate case
    assert normalize_heading(MagnetometerSample(0.0, 0.0, 42.0), offset) == 0.0


@pytest.mark.parametrize(
    "x, y, expected",
    [
        (1.0, 0.0, 0.0),
        (0.0, 1.0, 90.0),
        (-1.0, 0.0, 180.0),
        (0.0, -1.0, 270.0),
        (1.0, 1.0, 45.0),
        (1.0, -1.0, 315.0),
    ],
)
def test_raw_angle_without_offset(x, y, expected):
    assert normalize_heading(MagnetometerSample(x, y, 0.0), 0.0) == pytest.approx(expected)
    assert raw_angle_deg(x, y) == pytest.approx(expected)


def test_portrait_offset_subtracts_ninety():
    # Field along +y reads 90 raw; in portrait that is north.
    assert DEFAULT_CALIBRATION_OFFSET_DEG == 90.0
    assert normalize_heading(MagnetometerSample(0.0, 1.0, 0.0)) == pytest.approx(0.0)
    # Raw 0 wraps to 270 rather than going negative.
    assert normalize_heading(MagnetometerSample(1.0, 0.0, 0.0)) == pytest.approx(270.0)


def test_offset_is_applied_modulo_360():
    s = MagnetometerSample(0.0, 1.0, 0.0)
    assert normalize_heading(s, 450.0) == pytest.approx(0.0)
    assert normalize_heading(s, -270.0) == pytest.approx(0.0)


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
def test_non_finite_sample_is_sensor_failure(bad):
    with pytest.raises(SensorFailure):
        normalize_heading(MagnetometerSample(bad, 1.0, 0.0), 0.0)
    with pytest.raises(SensorFailure):
        normalize_heading(MagnetometerSample(1.0, 1.0, bad), 0.0)


def test_non_finite_offset_rejected():
    with pytest.raises(ValueError):
        normalize_heading(MagnetometerSample(1.0, 0.0, 0.0), math.nan)


def test_vectorised_matches_scalar():
    xs = np.array([1.0, 0.0, -1.0, 0.0, 0.0, 0.3, -2.5])
    ys = np.array([0.0, 1.0, 0.0, -1.0, 0.0, -0.7, 1.1])
    out = normalize_headings(xs, ys, 90.0)
    expected = [normalize_heading(MagnetometerSample(x, y), 90.0) for x, y in zip(xs, ys)]
    np.testing.assert_allclose(out, expected, atol=1e-12)
    assert out[4] == 0.0  # zero field
    assert np.all((out >= 0.0) & (out < 360.0))


def test_vectorised_shape_mismatch():
    with pytest.raises(ValueError):
        normalize_headings([1.0, 2.0], [1.0], 0.0)


def test_vectorised_propagates_nan():
    out = normalize_headings([np.nan, 1.0], [0.0, 0.0], 0.0)
    assert math.isnan(out[0])
    assert out[1] == 0.0


# --- Smoothing extension ---


def test_smoother_first_sample_passes_through():
    sm = HeadingSmoother(alpha=0.3)
    assert sm.value() is None
    assert sm.update(123.0) == pytest.approx(123.0)


def test_smoother_blends_across_north():
    sm = HeadingSmoother(alpha=0.5)
    sm.update(350.0)
    out = sm.update(10.0)
    # Blend of 350 and 10 is 0, not 180.
    assert min(out, 360.0 - out) == pytest.approx(0.0, abs=1e-9)


def test_smoother_alpha_one_is_unsmoothed():
    sm = HeadingSmoother(alpha=1.0)
    for h in (10.0, 200.0, 359.0):
        assert sm.update(h) == pytest.approx(h)


def test_smoother_reset():
    sm = HeadingSmoother(alpha=0.2)
    sm.update(90.0)
    sm.reset()
    assert sm.value() is None
    assert sm.update(270.0) == pytest.approx(270.0)


@pytest.mark.parametrize("alpha", [0.0, -0.1, 1.5])
def test_smoother_alpha_validation(alpha):
    with pytest.raises(ValueError):
        HeadingSmoother(alpha)
