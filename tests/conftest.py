from __future__ import annotations

import asyncio
import itertools
from typing import Dict, List, Optional

import pytest

from qibla_compass.compass_core.errors import LocationUnavailable, SensorUnavailable
from qibla_compass.compass_core.model import (
    GeoCoordinate,
    MagnetometerSample,
    PermissionStatus,
    SessionConfig,
)

# ---------- Test doubles ----------


class ManualMagnetometer:
    """Magnetometer whose samples are pushed by the test, synchronously."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.callbacks: Dict[int, object] = {}
        self.subscribe_calls = 0
        self.unsubscribed: List[int] = []
        self.intervals: List[int] = []
        self._ids = itertools.count(1)

    def is_available(self) -> bool:
        return self.available

    def subscribe(self, interval_ms, callback):
        if not self.available:
            raise SensorUnavailable()
        self.subscribe_calls += 1
        self.intervals.append(interval_ms)
        sub_id = next(self._ids)
        self.callbacks[sub_id] = callback
        return sub_id

    def unsubscribe(self, handle) -> None:
        self.unsubscribed.append(handle)
        self.callbacks.pop(handle, None)

    def emit(self, sample: MagnetometerSample) -> None:
        for cb in list(self.callbacks.values()):
            cb(sample)


class GatedPermissions:
    """Permission prompt that stays open until the test answers it."""

    def __init__(self, status: PermissionStatus = PermissionStatus.GRANTED) -> None:
        self.status = status
        self.gate: Optional[asyncio.Event] = None
        self.requests = 0

    async def request_foreground_location_permission(self) -> PermissionStatus:
        self.requests += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.status


class GatedLocation:
    """Location provider that resolves when the test opens the gate."""

    def __init__(
        self,
        coordinate: Optional[GeoCoordinate] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.coordinate = coordinate
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.requests = 0

    async def get_current_position(self) -> GeoCoordinate:
        self.requests += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.coordinate is None:
            raise LocationUnavailable()
        return self.coordinate


# ---------- Shared fixtures ----------


@pytest.fixture
def mecca_origin() -> GeoCoordinate:
    """Origin just south-west of Mecca used by the end-to-end scenario."""
    return GeoCoordinate(21.0, 39.0)


@pytest.fixture
def zero_offset_config() -> SessionConfig:
    return SessionConfig(interval_ms=100, calibration_offset_deg=0.0)


@pytest.fixture
def magnetometer() -> ManualMagnetometer:
    return ManualMagnetometer()


@pytest.fixture
def sample_tsv(tmp_path):
    """Write a small replay file with a comment line and return its path."""

    def _writer(body: str, name: str = "samples.tsv") -> str:
        p = tmp_path / name
        p.write_text("# recorded sweep\n" + body, encoding="utf-8")
        return str(p)

    return _writer


@pytest.fixture
def unavailable_magnetometer() -> ManualMagnetometer:
    return ManualMagnetometer(available=False)


@pytest.fixture
def gated_permissions():
    def _make(status: PermissionStatus = PermissionStatus.GRANTED) -> GatedPermissions:
        return GatedPermissions(status)

    return _make


@pytest.fixture
def gated_location():
    def _make(
        coordinate: Optional[GeoCoordinate] = None,
        error: Optional[Exception] = None,
    ) -> GatedLocation:
        return GatedLocation(coordinate, error)

    return _make
