from __future__ import annotations

"""
sensor_stream.py
================
Lifecycle of the single magnetometer subscription of a compass session.

Guarantees
----------
- At most one active subscription. ``start`` while active atomically replaces
  the previous one: the old provider subscription is released before the new
  one is registered, so two callbacks never receive samples concurrently.
- ``stop`` is idempotent. Stopping an already released or stale handle is a
  no-op.
- Every handle carries a cancellation token. Samples the provider still
  delivers after release are dropped, so no callback fires once ``stop``
  has returned.
- A sample arriving while the previous one is still being processed is
  dropped instead of overlapping.
- A non-finite sample releases the subscription and is reported once through
  ``on_error`` as ``SensorFailure``. There is no automatic retry.
"""

import asyncio
import contextlib
import itertools
import logging
from typing import (
    AsyncIterator,
    Callable,
    Hashable,
    Iterator,
    Optional,
    Union,
)

from .errors import CompassError, SensorFailure, SensorUnavailable
from .model import MagnetometerSample
from .providers import MagneticFieldProvider, SampleCallback

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[CompassError], None]

_handle_ids = itertools.count(1)


class SubscriptionHandle:
    """Opaque token for one subscription; ``active`` until released."""

    def __init__(self, interval_ms: int) -> None:
        self.id = next(_handle_ids)
        self.interval_ms = interval_ms
        self._provider_handle: Optional[Hashable] = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def __repr__(self) -> str:
        state = "active" if self._active else "released"
        return f"SubscriptionHandle(id={self.id}, {self.interval_ms} ms, {state})"


class SensorStreamManager:
    """Owns the magnetometer subscription on behalf of one session."""

    def __init__(self, provider: MagneticFieldProvider) -> None:
        self._provider = provider
        self._handle: Optional[SubscriptionHandle] = None
        self._busy = False
        self.delivered = 0
        self.dropped = 0

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        return self._handle

    @property
    def active(self) -> bool:
        return self._handle is not None and self._handle.active

    def start(
        self,
        interval_ms: int,
        on_sample: SampleCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        """
        Subscribe to magnetometer samples every ``interval_ms`` milliseconds.

        Raises
        ------
        SensorUnavailable
            If the device has no usable magnetometer. Nothing is subscribed.
        ValueError
            If ``interval_ms`` is not positive.
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if not self._provider.is_available():
            raise SensorUnavailable()

        if self.active:
            logger.info("Replacing active magnetometer subscription %r", self._handle)
            self.stop(self._handle)

        handle = SubscriptionHandle(interval_ms)

        def deliver(sample: MagnetometerSample) -> None:
            self._deliver(handle, sample, on_sample, on_error)

        try:
            handle._provider_handle = self._provider.subscribe(interval_ms, deliver)
        except SensorUnavailable:
            handle._active = False
            raise
        except Exception as e:
            handle._active = False
            raise SensorUnavailable(f"Magnetometer subscription failed: {e}") from e

        self._handle = handle
        logger.debug("Magnetometer subscription started: %r", handle)
        return handle

    def stop(self, handle: Optional[SubscriptionHandle] = None) -> None:
        """Release ``handle`` (default: the active one). Safe to call repeatedly."""
        target = handle if handle is not None else self._handle
        if target is None or not target.active:
            return
        target._active = False
        if self._handle is target:
            self._handle = None
        self._provider.unsubscribe(target._provider_handle)
        logger.debug("Magnetometer subscription released: %r", target)

    def _deliver(
        self,
        handle: SubscriptionHandle,
        sample: MagnetometerSample,
        on_sample: SampleCallback,
        on_error: Optional[ErrorCallback],
    ) -> None:
        if not handle.active:
            self.dropped += 1
            logger.debug("Dropped sample for released %r", handle)
            return
        if self._busy:
            self.dropped += 1
            logger.debug("Dropped overlapping sample for %r", handle)
            return
        if not sample.is_finite():
            self.stop(handle)
            err = SensorFailure(f"Magnetometer delivered a non-finite sample: {sample}")
            logger.warning("%s", err)
            if on_error is not None:
                on_error(err)
            return
        self._busy = True
        try:
            on_sample(sample)
        finally:
            self._busy = False
        self.delivered += 1

    @contextlib.contextmanager
    def subscription(
        self,
        interval_ms: int,
        on_sample: SampleCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Iterator[SubscriptionHandle]:
        """Scoped subscription, released on every exit path."""
        handle = self.start(interval_ms, on_sample, on_error)
        try:
            yield handle
        finally:
            self.stop(handle)

    async def stream(self, interval_ms: int) -> AsyncIterator[MagnetometerSample]:
        """
        Iterate over samples as an async stream.

        Only the latest undelivered sample is kept. A sensor failure is raised
        from the iteration. Closing or cancelling the iteration releases the
        subscription.
        """
        queue: asyncio.Queue[Union[MagnetometerSample, CompassError]] = asyncio.Queue(
            maxsize=1
        )

        def put(item: Union[MagnetometerSample, CompassError]) -> None:
            if queue.full():
                queue.get_nowait()
                self.dropped += 1
            queue.put_nowait(item)

        handle = self.start(interval_ms, put, put)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, CompassError):
                    raise item
                yield item
        finally:
            self.stop(handle)


__all__ = [
    "ErrorCallback",
    "SubscriptionHandle",
    "SensorStreamManager",
]
