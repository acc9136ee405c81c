from __future__ import annotations

import pytest

from qibla_compass.compass_core.config_loader import (
    DEFAULTS,
    apply_sets,
    dump_effective_config,
    load_config,
    location_from_dict,
    merge_dicts,
    parse_scalar,
    _emit_kv,
    session_config_from_dict,
    toml,
    toml_value,
)
from qibla_compass.compass_core.model import KAABA, GeoCoordinate


def _write(tmp_path, text, name="compass.toml"):
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_defaults_only():
    cfg = load_config()
    sc = session_config_from_dict(cfg)
    assert sc.interval_ms == 100
    assert sc.calibration_offset_deg == 90.0
    assert sc.target == KAABA
    assert location_from_dict(cfg) is None


def test_file_then_overrides(tmp_path):
    path = _write(
        tmp_path,
        "[compass]\ninterval_ms = 250\nsmoothing_alpha = 0.4\n"
        "[location]\nlatitude_deg = 48.8566\nlongitude_deg = 2.3522\n",
    )
    cfg = load_config(path, ["compass.interval_ms=50", "sensor.loop=true"])
    sc = session_config_from_dict(cfg)
    assert sc.interval_ms == 50
    assert sc.smoothing_alpha == pytest.approx(0.4)
    # untouched defaults survive the merge
    assert sc.calibration_offset_deg == 90.0
    assert cfg["sensor"]["loop"] is True
    assert location_from_dict(cfg) == GeoCoordinate(48.8566, 2.3522)


def test_overrides_do_not_leak_into_defaults():
    load_config(None, ["compass.interval_ms=7", "target.name=Elsewhere"])
    assert DEFAULTS["compass"]["interval_ms"] == 100
    assert DEFAULTS["target"]["name"] == "Kaaba"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.toml"))


def test_set_requires_equals():
    with pytest.raises(ValueError):
        apply_sets({}, ["compass.interval_ms"])


def test_set_creates_nested_tables():
    cfg = apply_sets({}, ["output.trace_file=out/trace.tsv"])
    assert cfg == {"output": {"trace_file": "out/trace.tsv"}}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("False", False),
        ("42", 42),
        ("-90.5", -90.5),
        ("1e-3", 1e-3),
        ("Kaaba", "Kaaba"),
    ],
)
def test_parse_scalar(raw, expected):
    assert parse_scalar(raw) == expected


def test_merge_dicts_is_recursive():
    out = merge_dicts({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
    assert out == {"a": {"x": 1, "y": 3}, "b": 1}


def test_location_requires_both_axes():
    assert location_from_dict({"location": {"latitude_deg": 10.0}}) is None


def test_invalid_values_surface_as_value_error():
    cfg = load_config(None, ["compass.interval_ms=0"])
    with pytest.raises(ValueError):
        session_config_from_dict(cfg)


def test_dump_effective_config_lists_sections():
    text = dump_effective_config(load_config(None, ["location.latitude_deg=1.5"]))
    for section in ("[compass]", "[target]", "[sensor]"):
        assert section in text
    assert "interval_ms = 100" in text
    assert "latitude_deg = 1.5" in text


@pytest.mark.parametrize(
    "value",
    [r"C:\data\sweep.tsv", 'say "qibla"', r'mixed \"quote'],
)
def test_toml_value_strings_parse_back(value):
    assert toml.loads(f"p = {toml_value(value)}")["p"] == value


def test_emitted_config_with_windows_path_is_valid_toml():
    cfg = load_config(None, [r"sensor.samples_file=C:\data\sweep.tsv"])
    parsed = toml.loads(_emit_kv(cfg, prefix=""))
    assert parsed["sensor"]["samples_file"] == r"C:\data\sweep.tsv"
    assert parsed["compass"]["interval_ms"] == 100
