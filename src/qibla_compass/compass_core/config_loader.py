from __future__ import annotations

"""
config_loader.py
================
Compose the effective compass configuration from TOML files and ``--set``
overrides, and turn it into an explicit ``SessionConfig``.

Merge order: defaults -> file -> ``--set key.path=value`` overrides.
"""

import copy
import os
from typing import Any, Dict, Iterable, Optional

try:
    import tomllib as toml  # py311+
except ImportError:
    import tomli as toml  # fallback for older envs

from .model import (
    DEFAULT_CALIBRATION_OFFSET_DEG,
    DEFAULT_INTERVAL_MS,
    KAABA,
    GeoCoordinate,
    SessionConfig,
)

DEFAULTS: Dict[str, Any] = {
    "compass": {
        "interval_ms": DEFAULT_INTERVAL_MS,
        "calibration_offset_deg": DEFAULT_CALIBRATION_OFFSET_DEG,
    },
    "target": {
        "name": "Kaaba",
        "latitude_deg": KAABA.latitude_deg,
        "longitude_deg": KAABA.longitude_deg,
    },
    "location": {},
    "sensor": {"loop": False},
    "output": {},
}


def load_toml(path: str) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return toml.load(f)


def merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_dicts(out[k], v)
        else:
            out[k] = v
    return out


def apply_sets(cfg: Dict[str, Any], sets: Iterable[str]) -> Dict[str, Any]:
    for item in sets:
        if "=" not in item:
            raise ValueError(f"--set requires key=value, got: {item}")
        key, val = item.split("=", 1)
        path = key.strip().split(".")
        cursor = cfg
        for p in path[:-1]:
            if p not in cursor or not isinstance(cursor[p], dict):
                cursor[p] = {}
            cursor = cursor[p]
        # parse bool, int, float, or keep string
        cursor[path[-1]] = parse_scalar(val.strip())
    return cfg


def parse_scalar(s: str):
    sl = s.lower()
    if sl in ("true", "false"):
        return sl == "true"
    try:
        if "." in s or "e" in sl:
            return float(s)
        return int(s)
    except ValueError:
        return s


def load_config(
    path: Optional[str] = None,
    set_overrides: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    Return the effective configuration dict.

    Parameters
    ----------
    path : str or None
        TOML file to merge over the defaults. ``None`` uses defaults only.
    set_overrides : iterable of str
        ``key.path=value`` items applied last.

    Raises
    ------
    FileNotFoundError
        If ``path`` is given but does not exist.
    """
    cfg = copy.deepcopy(DEFAULTS)
    if path:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")
        cfg = merge_dicts(cfg, load_toml(path))
    return apply_sets(cfg, set_overrides)


def session_config_from_dict(cfg: Dict[str, Any]) -> SessionConfig:
    compass = cfg.get("compass", {})
    target = cfg.get("target", {})
    alpha = compass.get("smoothing_alpha")
    return SessionConfig(
        interval_ms=int(compass.get("interval_ms", DEFAULT_INTERVAL_MS)),
        calibration_offset_deg=float(
            compass.get("calibration_offset_deg", DEFAULT_CALIBRATION_OFFSET_DEG)
        ),
        smoothing_alpha=float(alpha) if alpha is not None else None,
        target=GeoCoordinate(
            latitude_deg=float(target.get("latitude_deg", KAABA.latitude_deg)),
            longitude_deg=float(target.get("longitude_deg", KAABA.longitude_deg)),
        ),
    )


def location_from_dict(cfg: Dict[str, Any]) -> Optional[GeoCoordinate]:
    """Static position fix from the ``[location]`` table, if both axes are set."""
    loc = cfg.get("location", {})
    if "latitude_deg" not in loc or "longitude_deg" not in loc:
        return None
    return GeoCoordinate(float(loc["latitude_deg"]), float(loc["longitude_deg"]))


def dump_effective_config(cfg: Dict[str, Any]) -> str:
    try:
        import tomli_w  # type: ignore
    except ImportError:
        # Manual minimal TOML emitter
        return _emit_kv(cfg, prefix="")
    return tomli_w.dumps(cfg)  # type: ignore


def _emit_kv(d: Dict[str, Any], prefix: str) -> str:
    lines = []
    scalars = {}
    subtables = {}
    for k, v in d.items():
        if isinstance(v, dict):
            subtables[k] = v
        else:
            scalars[k] = v
    for k, v in scalars.items():
        lines.append(f"{k} = {toml_value(v)}")
    for k, sub in subtables.items():
        lines.append("")
        lines.append(f"[{prefix}{k}]")
        body = _emit_kv(sub, prefix + k + ".")
        if body:
            lines.append(body)
    return "\n".join(lines)


def toml_value(v):
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, list):
        inner = ", ".join([toml_value(x) for x in v])
        return f"[{inner}]"
    s = str(v).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{s}"'


__all__ = [
    "DEFAULTS",
    "load_toml",
    "merge_dicts",
    "apply_sets",
    "parse_scalar",
    "load_config",
    "session_config_from_dict",
    "location_from_dict",
    "dump_effective_config",
]
