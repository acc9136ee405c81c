from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Dict, List, Optional, Tuple

from qibla_compass.compass_core.config_loader import (
    dump_effective_config,
    load_config,
    location_from_dict,
    session_config_from_dict,
)
from qibla_compass.compass_core.model import (
    CompassSessionState,
    CompassSnapshot,
    MagnetometerSample,
    SessionConfig,
)
from qibla_compass.compass_core.providers import (
    ReplayMagnetometer,
    StaticLocationProvider,
    StaticPermissionProvider,
)
from qibla_compass.compass_core.rotation import cardinal_label
from qibla_compass.compass_core.session import CompassSession
from qibla_compass.compass_io.samples import read_samples_tsv
from qibla_compass.compass_io.trace import (
    TraceMetadata,
    TraceRow,
    trace_row_from_snapshot,
    write_trace_tsv,
)

logger = logging.getLogger("qibla_compass_cli")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="qibla_compass_cli",
        description="Run a simulated compass session toward the Qibla.",
    )
    p.add_argument("--config", help="TOML configuration file")
    p.add_argument(
        "--set",
        action="append",
        default=[],
        help="Override config key=value (repeatable).",
    )
    p.add_argument(
        "--dump-effective-config",
        action="store_true",
        help="Print final merged config and exit.",
    )
    p.add_argument("--lat", type=float, help="Latitude of the position fix (deg)")
    p.add_argument("--lon", type=float, help="Longitude of the position fix (deg)")
    p.add_argument("--samples", help="Magnetometer replay file (TSV with x, y, z)")
    p.add_argument(
        "--sample",
        action="append",
        default=[],
        metavar="X,Y,Z",
        help="Inline magnetometer sample (repeatable). Used when --samples is absent.",
    )
    p.add_argument(
        "--duration",
        type=float,
        help="Seconds to stay READY (default: long enough to replay every sample).",
    )
    p.add_argument(
        "--deny-permission",
        action="store_true",
        help="Simulate the user declining location access.",
    )
    p.add_argument("--out", help="Write a session trace TSV to this path")
    p.add_argument(
        "--log-dir",
        default="logs",
        help="Directory where the run log will be created ('' disables it).",
    )
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    return p


def _software_version() -> str:
    try:
        return version("qibla-compass")
    except PackageNotFoundError:
        return "dev"


def _init_logging(log_dir: str, verbose: bool) -> Optional[str]:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    root = logging.getLogger()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setLevel(level if verbose else logging.WARNING)
    console.setFormatter(fmt)
    root.addHandler(console)

    if not log_dir:
        return None
    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")
    path = os.path.join(log_dir, f"run_{stamp}.log")
    fh = logging.FileHandler(path, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(fmt)
    root.addHandler(fh)
    return path


def _parse_inline_sample(text: str) -> MagnetometerSample:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) not in (2, 3):
        raise ValueError(f"--sample expects X,Y or X,Y,Z, got: {text}")
    values = [float(p) for p in parts]
    return MagnetometerSample(*values)


def _resolve_inputs(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    if args.lat is not None:
        cfg.setdefault("location", {})["latitude_deg"] = args.lat
    if args.lon is not None:
        cfg.setdefault("location", {})["longitude_deg"] = args.lon
    if args.samples:
        cfg.setdefault("sensor", {})["samples_file"] = args.samples
    if args.out:
        cfg.setdefault("output", {})["trace_file"] = args.out
    return cfg


def _load_samples(cfg: Dict[str, Any], inline: List[str]) -> List[MagnetometerSample]:
    path = cfg.get("sensor", {}).get("samples_file")
    if path:
        return read_samples_tsv(path)
    return [_parse_inline_sample(s) for s in inline]


async def _run_session(
    session: CompassSession, duration_s: float
) -> Tuple[CompassSnapshot, List[TraceRow]]:
    rows: List[TraceRow] = []

    def record(snap: CompassSnapshot) -> None:
        if snap.state is CompassSessionState.READY and snap.rotation is not None:
            rows.append(trace_row_from_snapshot(snap))

    session.subscribe(record)
    state = await session.start()
    if state is CompassSessionState.READY and duration_s > 0:
        await asyncio.sleep(duration_s)
    final = session.snapshot()
    session.stop()
    return final, rows


def _print_snapshot(snap: CompassSnapshot) -> None:
    print(f"State: {snap.state.name}")
    if snap.error is not None:
        retry = "yes" if snap.can_retry else "no"
        print(f"Error: {snap.error_message} (retry: {retry})")
    if snap.bearing_deg is not None:
        print(
            f"Qibla bearing: {snap.bearing_deg:.4f} deg "
            f"({snap.display_bearing} deg, {cardinal_label(snap.bearing_deg)})"
        )
    if snap.heading_deg is not None and snap.rotation is not None:
        print(
            f"Heading: {snap.heading_deg:.4f} deg "
            f"({snap.display_heading} deg, {cardinal_label(snap.heading_deg)})"
        )
        print(f"Dial rotation: {snap.rotation.dial_rotation_deg:.4f} deg")
        print(f"Pointer rotation: {snap.rotation.pointer_rotation_deg:.4f} deg")
        print(f"Indicator from screen top: {snap.rotation.screen_pointer_deg:.4f} deg")
    print(f"Samples processed: {snap.sample_count}")


def _write_trace(
    path: str,
    cfg: Dict[str, Any],
    session_cfg: SessionConfig,
    final: CompassSnapshot,
    rows: List[TraceRow],
) -> None:
    origin = location_from_dict(cfg)
    if origin is None or final.bearing_deg is None:
        logger.warning("No position fix; trace file not written")
        return
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    md = TraceMetadata(
        origin=origin,
        target_name=str(cfg.get("target", {}).get("name", "Kaaba")),
        target=session_cfg.target,
        bearing_deg=final.bearing_deg,
        calibration_offset_deg=session_cfg.calibration_offset_deg,
        interval_ms=session_cfg.interval_ms,
        software_version=_software_version(),
    )
    write_trace_tsv(path, md, rows, append=False)
    print(f"Trace TSV: {path} ({len(rows)} rows)")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config(args.config, args.set)
    cfg = _resolve_inputs(cfg, args)

    print("----- Effective configuration -----")
    print(dump_effective_config(cfg).rstrip())
    print("-----------------------------------")
    if args.dump_effective_config:
        return 0

    log_path = _init_logging(args.log_dir, args.verbose)
    if log_path:
        print(f"Log file: {log_path}")

    session_cfg = session_config_from_dict(cfg)
    samples = _load_samples(cfg, args.sample)
    logger.info("Loaded %d magnetometer samples", len(samples))

    duration = args.duration
    if duration is None:
        duration = len(samples) * session_cfg.interval_ms / 1000.0 + 0.05

    session = CompassSession(
        permissions=StaticPermissionProvider(granted=not args.deny_permission),
        locations=StaticLocationProvider(location_from_dict(cfg)),
        magnetometer=ReplayMagnetometer(
            samples,
            repeat=bool(cfg.get("sensor", {}).get("loop", False)),
            available=bool(samples),
        ),
        config=session_cfg,
    )
    final, rows = asyncio.run(_run_session(session, duration))
    _print_snapshot(final)

    trace_path = cfg.get("output", {}).get("trace_file")
    if trace_path and final.bearing_deg is not None:
        _write_trace(trace_path, cfg, session_cfg, final, rows)

    return 0 if final.state is CompassSessionState.READY else 2


if __name__ == "__main__":
    raise SystemExit(main())
