"""
Purpose: LocationSource, the single entry point for "where am I".
What it does:
- get_current_location(): one-shot fix, short timeout, never raises.
  Any device failure resolves to the fallback sample (default city center).
- start_tracking()/stop_tracking(): one continuous device watch per source.
- tracking()/samples(): scoped variants that always release the watch,
  even if the consumer is cancelled mid-stream.

Rule: LocationSource owns the device watch id. Nobody else calls clear_watch.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Callable, Optional

from tracking.policy import TrackingPolicy, default_tracking_policy

from .devices import GeolocationDevice, GeolocationError
from .models import LocationSample, utcnow

logger = logging.getLogger(__name__)

SampleCallback = Callable[[LocationSample], None]

# sentinel: "use the policy fallback sample"
_POLICY_FALLBACK = object()


class LocationSource:
    """
    Wraps a GeolocationDevice with timeouts, staleness tolerance and a
    fallback so downstream consumers always receive a value.
    """

    def __init__(self, device: GeolocationDevice, policy: Optional[TrackingPolicy] = None):
        self.device = device
        self.policy = policy or default_tracking_policy()

        self.latest: Optional[LocationSample] = None
        self._watch_id: Optional[int] = None
        self._on_sample: Optional[SampleCallback] = None
        self._delivered = False

    @property
    def is_tracking(self) -> bool:
        return self._watch_id is not None

    def fallback_sample(self) -> LocationSample:
        # fresh timestamp so the fallback never looks older than a real fix
        return replace(self.policy.fallback_sample, timestamp=utcnow())

    # ----------------
    # One-shot
    # ----------------

    async def get_current_location(
        self,
        *,
        high_accuracy: bool = True,
        timeout: Optional[float] = None,
        maximum_age: Optional[float] = None,
        fallback=_POLICY_FALLBACK,
    ) -> Optional[LocationSample]:
        """
        One-shot position.

        Args:
            high_accuracy: ask the device for GPS grade accuracy
            timeout: seconds, defaults to policy.one_shot_timeout_s (<= 10)
            maximum_age: seconds of cached fix accepted, defaults to policy
            fallback: returned on failure, defaults to policy.fallback_sample

        Returns:
            the device sample, or the fallback. Never raises on device errors.
        """
        timeout = self.policy.one_shot_timeout_s if timeout is None else timeout
        maximum_age = self.policy.one_shot_maximum_age_s if maximum_age is None else maximum_age
        if fallback is _POLICY_FALLBACK:
            fallback = self.fallback_sample()

        try:
            return await asyncio.wait_for(
                self.device.get_position(high_accuracy=high_accuracy, timeout=timeout, maximum_age=maximum_age),
                timeout=timeout,
            )
        except GeolocationError as error:
            logger.warning("getCurrentLocation failed: %s, using fallback", error)
        except asyncio.TimeoutError:
            logger.warning("getCurrentLocation timed out after %ss, using fallback", timeout)
        except Exception:
            # any device failure resolves to the fallback
            logger.exception("getCurrentLocation crashed, using fallback")

        return fallback

    # ----------------
    # Continuous tracking
    # ----------------

    def start_tracking(self, on_sample: Optional[SampleCallback] = None) -> None:
        """
        Open the continuous device watch and forward each fix to `on_sample`.
        Calling it while already tracking keeps the existing watch and only
        resets internal state (and the callback, when a new one is given).
        """
        if on_sample is not None:
            self._on_sample = on_sample
        self.latest = None
        self._delivered = False

        if self._watch_id is not None:
            logger.debug("start_tracking called while tracking, state reset")
            return

        self._watch_id = self.device.watch_position(
            self._handle_position,
            self._handle_error,
            high_accuracy=True,
            timeout=self.policy.watch_timeout_s,
            maximum_age=self.policy.watch_maximum_age_s,
        )
        logger.info("GPS tracking started (watch %s)", self._watch_id)

    def stop_tracking(self) -> None:
        """Release the device watch. Safe to call any number of times."""
        if self._watch_id is not None:
            self.device.clear_watch(self._watch_id)
            logger.info("GPS tracking stopped (watch %s)", self._watch_id)
        self._watch_id = None
        self._on_sample = None

    @asynccontextmanager
    async def tracking(self, on_sample: Optional[SampleCallback] = None) -> AsyncIterator[LocationSource]:
        self.start_tracking(on_sample)
        try:
            yield self
        finally:
            self.stop_tracking()

    async def samples(self) -> AsyncIterator[LocationSample]:
        """
        Async stream of fixes. Only the newest unread fix is buffered, a slow
        consumer skips intermediate ones. The watch is released when the
        consumer stops iterating.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        def put_latest(sample: LocationSample) -> None:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(sample)

        self.start_tracking(put_latest)
        try:
            while True:
                yield await queue.get()
        finally:
            self.stop_tracking()

    # ----------------
    # Device callbacks
    # ----------------

    def _handle_position(self, sample: LocationSample) -> None:
        if self._watch_id is None:
            # late callback after stop_tracking
            return
        self._deliver(sample)

    def _handle_error(self, error: GeolocationError) -> None:
        if self._watch_id is None:
            return
        logger.warning("GPS watch error: %s", error)
        if not self._delivered:
            self._deliver(self.fallback_sample())

    def _deliver(self, sample: LocationSample) -> None:
        self.latest = sample
        self._delivered = True
        if self._on_sample is None:
            return
        try:
            self._on_sample(sample)
        except Exception:
            logger.exception("Location callback failed for sample %s", sample.address)
