from __future__ import annotations

"""
providers.py
============
Collaborator contracts consumed by the compass session, plus simulated
implementations used by the CLI, the examples and the tests.

The session never talks to a platform API directly: permission, location and
magnetometer access come in through these three protocols.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Protocol

from .errors import LocationUnavailable, SensorUnavailable
from .model import GeoCoordinate, MagnetometerSample, PermissionStatus

logger = logging.getLogger(__name__)

SampleCallback = Callable[[MagnetometerSample], None]


class PermissionProvider(Protocol):
    """Asks the user for foreground location access."""

    async def request_foreground_location_permission(self) -> PermissionStatus: ...


class LocationProvider(Protocol):
    """Resolves a single position fix. Raises ``LocationUnavailable`` on failure."""

    async def get_current_position(self) -> GeoCoordinate: ...


class MagneticFieldProvider(Protocol):
    """Interval-driven magnetometer subscription."""

    def is_available(self) -> bool: ...

    def subscribe(self, interval_ms: int, callback: SampleCallback) -> Hashable: ...

    def unsubscribe(self, handle: Hashable) -> None: ...


# =============================================================================
# Simulated providers
# =============================================================================


class StaticPermissionProvider:
    """Answers every permission request with the same status."""

    def __init__(self, granted: bool = True, delay_s: float = 0.0) -> None:
        self.granted = granted
        self.delay_s = delay_s
        self.requests = 0

    async def request_foreground_location_permission(self) -> PermissionStatus:
        self.requests += 1
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)
        return PermissionStatus.GRANTED if self.granted else PermissionStatus.DENIED


class StaticLocationProvider:
    """Returns a fixed coordinate, or fails when none is configured."""

    def __init__(
        self, coordinate: Optional[GeoCoordinate] = None, delay_s: float = 0.0
    ) -> None:
        self.coordinate = coordinate
        self.delay_s = delay_s
        self.requests = 0

    async def get_current_position(self) -> GeoCoordinate:
        self.requests += 1
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)
        if self.coordinate is None:
            raise LocationUnavailable("No position fix available.")
        return self.coordinate


@dataclass
class _ReplaySubscription:
    callback: SampleCallback
    interval_s: float
    index: int = 0
    timer: Optional[asyncio.TimerHandle] = None


class ReplayMagnetometer:
    """
    Deliver a fixed list of samples on an asyncio timer.

    The first sample is delivered on the next loop iteration after
    ``subscribe``; subsequent ones every ``interval_ms``. With ``repeat`` the
    list is replayed forever, otherwise the subscription goes quiet once
    exhausted. ``subscribe`` must be called from a running event loop.
    """

    def __init__(
        self,
        samples: Iterable[MagnetometerSample],
        repeat: bool = False,
        available: bool = True,
    ) -> None:
        self._samples = list(samples)
        self._repeat = repeat
        self._available = available
        self._subs: Dict[int, _ReplaySubscription] = {}
        self._ids = itertools.count(1)
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0

    @property
    def active_subscriptions(self) -> int:
        return len(self._subs)

    def is_available(self) -> bool:
        return self._available

    def subscribe(self, interval_ms: int, callback: SampleCallback) -> int:
        if not self._available:
            raise SensorUnavailable()
        loop = asyncio.get_running_loop()
        self.subscribe_calls += 1
        sub_id = next(self._ids)
        sub = _ReplaySubscription(callback=callback, interval_s=interval_ms / 1000.0)
        self._subs[sub_id] = sub
        sub.timer = loop.call_soon(self._tick, sub_id)
        logger.debug("Replay subscription %d opened (%d ms)", sub_id, interval_ms)
        return sub_id

    def unsubscribe(self, handle: Any) -> None:
        self.unsubscribe_calls += 1
        sub = self._subs.pop(handle, None)
        if sub is None:
            return
        if sub.timer is not None:
            sub.timer.cancel()
        logger.debug("Replay subscription %s closed", handle)

    def _tick(self, sub_id: int) -> None:
        sub = self._subs.get(sub_id)
        if sub is None:
            return
        if sub.index >= len(self._samples):
            if not self._repeat or not self._samples:
                sub.timer = None
                return
            sub.index = 0
        sample = self._samples[sub.index]
        sub.index += 1
        # Re-arm first so an unsubscribe inside the callback cancels it.
        sub.timer = asyncio.get_running_loop().call_later(
            sub.interval_s, self._tick, sub_id
        )
        sub.callback(sample)


__all__ = [
    "SampleCallback",
    "PermissionProvider",
    "LocationProvider",
    "MagneticFieldProvider",
    "StaticPermissionProvider",
    "StaticLocationProvider",
    "ReplayMagnetometer",
]
