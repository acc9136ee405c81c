"""
qibla_session_example.py
========================

Purpose
-------
Walk through one compass session end to end with simulated collaborators:
permission is granted, the position fix resolves to Paris, and a recorded
magnetometer sweep is replayed while the device turns in place.

What this example does
----------------------
1. Builds a `SessionConfig` (100 ms sampling, portrait calibration offset).
2. Wires a `CompassSession` to `StaticPermissionProvider`,
   `StaticLocationProvider` and a `ReplayMagnetometer` fed from
   ``data/turn_in_place.tsv``.
3. Subscribes a listener that prints every snapshot, so you can watch the
   state transitions and, once READY, the heading and the dial/indicator
   rotations change sample by sample.
4. Stops the session, which releases the magnetometer subscription.

Notice how the indicator angle from the top of the screen (bearing minus
heading) shrinks toward 0 as the device turns toward the Qibla.

How to run
----------
    python examples/qibla_session_example.py
"""

import asyncio
import os

from qibla_compass.compass_core.model import CompassSnapshot, GeoCoordinate, SessionConfig
from qibla_compass.compass_core.providers import (
    ReplayMagnetometer,
    StaticLocationProvider,
    StaticPermissionProvider,
)
from qibla_compass.compass_core.rotation import cardinal_label
from qibla_compass.compass_core.session import CompassSession
from qibla_compass.compass_io.samples import read_samples_tsv

HERE = os.path.dirname(os.path.abspath(__file__))
PARIS = GeoCoordinate(48.8566, 2.3522)


def show(snap: CompassSnapshot) -> None:
    if snap.rotation is None:
        print(f"[{snap.state.name}] {snap.error_message or ''}")
        return
    print(
        f"[{snap.state.name}] heading={snap.display_heading:3d} "
        f"{cardinal_label(snap.heading_deg):>2}  "
        f"qibla={snap.display_bearing:3d}  "
        f"dial={snap.rotation.dial_rotation_deg:8.2f}  "
        f"indicator={snap.rotation.screen_pointer_deg:7.2f}"
    )


async def main() -> None:
    samples = read_samples_tsv(os.path.join(HERE, "data", "turn_in_place.tsv"))
    cfg = SessionConfig(interval_ms=100)

    session = CompassSession(
        permissions=StaticPermissionProvider(granted=True),
        locations=StaticLocationProvider(PARIS),
        magnetometer=ReplayMagnetometer(samples),
        config=cfg,
    )
    session.subscribe(show)

    async with session:
        await asyncio.sleep(len(samples) * cfg.interval_ms / 1000.0 + 0.05)


if __name__ == "__main__":
    asyncio.run(main())
