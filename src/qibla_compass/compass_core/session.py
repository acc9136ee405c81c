from __future__ import annotations

"""
session.py
==========
Compass state machine: permission -> one-shot location fix -> bearing ->
magnetometer stream -> rotation snapshots for the rendering layer.

Transitions
-----------
    IDLE                  --start()-->      REQUESTING_PERMISSION
    REQUESTING_PERMISSION --granted-->      LOCATING
    REQUESTING_PERMISSION --denied-->       PERMISSION_ERROR
    LOCATING              --position-->     READY
    LOCATING              --failure-->      LOCATION_ERROR
    READY                 --sensor fault--> SENSOR_ERROR
    PERMISSION_ERROR      --retry()-->      REQUESTING_PERMISSION
    LOCATION_ERROR        --retry()-->      REQUESTING_PERMISSION
    any                   --stop()-->       IDLE

There is no terminal state. ``stop()`` releases the magnetometer
subscription unconditionally and invalidates any permission or location
request still in flight, so a late answer cannot move the machine out of
IDLE. Failures are resolved into error states and never raised to callers.
"""

import logging
from typing import Callable, List, Optional

from .bearing import compute_bearing
from .errors import (
    CalculationError,
    CompassError,
    LocationUnavailable,
    PermissionDenied,
    SensorFailure,
    SensorUnavailable,
)
from .heading import HeadingSmoother, normalize_heading
from .model import (
    CompassSessionState,
    CompassSnapshot,
    GeoCoordinate,
    MagnetometerSample,
    PermissionStatus,
    RotationPair,
    SessionConfig,
)
from .providers import LocationProvider, MagneticFieldProvider, PermissionProvider
from .rotation import compose_rotation
from .sensor_stream import SensorStreamManager

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[CompassSnapshot], None]

_ERROR_STATES = (
    (PermissionDenied, CompassSessionState.PERMISSION_ERROR),
    (LocationUnavailable, CompassSessionState.LOCATION_ERROR),
    (SensorUnavailable, CompassSessionState.SENSOR_ERROR),
    (SensorFailure, CompassSessionState.SENSOR_ERROR),
)


def error_state_for(error: CompassError) -> CompassSessionState:
    """Map a compass error to the session state it resolves to."""
    for exc_type, state in _ERROR_STATES:
        if isinstance(error, exc_type):
            return state
    raise ValueError(f"No session state for {type(error).__name__}")


class CompassSession:
    """
    One compass session bound to its three collaborators.

    Parameters
    ----------
    permissions : PermissionProvider
        Foreground location permission prompt.
    locations : LocationProvider
        One-shot position fix.
    magnetometer : MagneticFieldProvider
        Interval-driven magnetometer samples.
    config : SessionConfig, optional
        Sampling interval, calibration offset, smoothing and target.
    """

    def __init__(
        self,
        permissions: PermissionProvider,
        locations: LocationProvider,
        magnetometer: MagneticFieldProvider,
        config: Optional[SessionConfig] = None,
    ) -> None:
        self._permissions = permissions
        self._locations = locations
        self._config = config or SessionConfig()
        self._sensor = SensorStreamManager(magnetometer)
        self._smoother = (
            HeadingSmoother(self._config.smoothing_alpha)
            if self._config.smoothing_alpha is not None
            else None
        )
        self._listeners: List[SnapshotListener] = []
        self._epoch = 0
        self._state = CompassSessionState.IDLE
        self._error: Optional[CompassError] = None
        self._origin: Optional[GeoCoordinate] = None
        self._bearing: Optional[float] = None
        self._heading: Optional[float] = None
        self._rotation: Optional[RotationPair] = None
        self._sample_count = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def state(self) -> CompassSessionState:
        return self._state

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def sensor(self) -> SensorStreamManager:
        return self._sensor

    @property
    def origin(self) -> Optional[GeoCoordinate]:
        return self._origin

    def snapshot(self) -> CompassSnapshot:
        return CompassSnapshot(
            state=self._state,
            heading_deg=self._heading,
            bearing_deg=self._bearing,
            rotation=self._rotation,
            error=self._error,
            sample_count=self._sample_count,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register ``listener`` for every new snapshot; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def start(self) -> CompassSessionState:
        if self._state is not CompassSessionState.IDLE:
            logger.warning("start() ignored in state %s", self._state.name)
            return self._state
        await self._acquire()
        return self._state

    async def retry(self) -> CompassSessionState:
        if not self._state.can_retry:
            logger.warning("retry() ignored in state %s", self._state.name)
            return self._state
        await self._acquire()
        return self._state

    def stop(self) -> None:
        """Tear the session down to IDLE from any state."""
        self._epoch += 1
        try:
            self._sensor.stop()
        except Exception:
            logger.exception("Releasing the magnetometer subscription failed")
        self._clear_readings()
        self._origin = None
        self._bearing = None
        self._error = None
        self._transition(CompassSessionState.IDLE)

    async def __aenter__(self) -> "CompassSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _acquire(self) -> None:
        self._epoch += 1
        epoch = self._epoch
        self._error = None
        self._transition(CompassSessionState.REQUESTING_PERMISSION)

        try:
            status = await self._permissions.request_foreground_location_permission()
        except Exception as e:
            if epoch == self._epoch:
                logger.warning("Permission request failed: %s", e)
                self._fail(LocationUnavailable(f"Permission request failed: {e}"))
            return
        if epoch != self._epoch:
            logger.debug("Discarding permission answer from a stopped attempt")
            return
        if status is not PermissionStatus.GRANTED:
            self._fail(PermissionDenied())
            return

        self._transition(CompassSessionState.LOCATING)
        if epoch != self._epoch:
            return
        try:
            origin = await self._locations.get_current_position()
        except LocationUnavailable as e:
            if epoch == self._epoch:
                self._fail(e)
            return
        except Exception as e:
            if epoch == self._epoch:
                logger.warning("Location provider failed: %s", e)
                self._fail(LocationUnavailable(f"Location provider failed: {e}"))
            return
        if epoch != self._epoch:
            logger.debug("Discarding position fix from a stopped attempt")
            return

        self._origin = origin
        self._bearing = self._compute_bearing(origin)
        self._clear_readings()
        self._transition(CompassSessionState.READY)
        # A listener may have stopped the session while being told about READY.
        if epoch != self._epoch:
            return
        try:
            self._sensor.start(
                self._config.interval_ms, self._on_sample, self._on_sensor_error
            )
        except SensorUnavailable as e:
            if epoch == self._epoch:
                self._fail(e)

    def _compute_bearing(self, origin: GeoCoordinate) -> float:
        try:
            return compute_bearing(origin, self._config.target)
        except CalculationError:
            logger.exception(
                "Bearing calculation failed for %s; falling back to 0", origin
            )
            return 0.0

    def _on_sample(self, sample: MagnetometerSample) -> None:
        heading = normalize_heading(sample, self._config.calibration_offset_deg)
        if self._smoother is not None:
            heading = self._smoother.update(heading)
        self._heading = heading
        self._rotation = compose_rotation(heading, self._bearing or 0.0)
        self._sample_count += 1
        self._notify()

    def _on_sensor_error(self, error: CompassError) -> None:
        self._fail(error)

    def _fail(self, error: CompassError) -> None:
        self._sensor.stop()
        self._clear_readings()
        self._error = error
        self._transition(error_state_for(error))

    def _clear_readings(self) -> None:
        self._heading = None
        self._rotation = None
        self._sample_count = 0
        if self._smoother is not None:
            self._smoother.reset()

    def _transition(self, new_state: CompassSessionState) -> None:
        old = self._state
        if old is new_state:
            return
        self._state = new_state
        if self._error is not None:
            logger.info("%s -> %s (%s)", old.name, new_state.name, self._error)
        else:
            logger.info("%s -> %s", old.name, new_state.name)
        self._notify()

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)


__all__ = [
    "SnapshotListener",
    "error_state_for",
    "CompassSession",
]
