"""
Purpose: Driver side location publishing.
What it does:
- LocationPublisher.publish(sample): fire-and-forget broadcast of every GPS
  fix on the push channel (driver-location + cache-driver-location), tagged
  with the driver id and the active delivery id.
- Optional REST persistence (PATCH /users/{id}/location), capped at one call
  per policy.persist_interval_s. Broadcast is the primary channel, the REST
  write only keeps "last known location" fresh for pollers.
- DriverLocationSharer: ties a LocationSource to a publisher for the
  lifetime of an active delivery.

Failures are logged and never retried: the next GPS sample supersedes a lost one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Set

from backend.channels import CACHE_DRIVER_LOCATION, DRIVER_LOCATION, PushChannel
from backend.client import BackendClient, BackendError
from tracking.policy import TrackingPolicy, default_tracking_policy

from .models import LocationSample
from .source import LocationSource

logger = logging.getLogger(__name__)


class LocationPublisher:
    """
    Pushes driver samples out. No acknowledgement, no retry.
    """

    def __init__(
        self,
        driver_id: str,
        channel: Optional[PushChannel] = None,
        client: Optional[BackendClient] = None,
        delivery_id: Optional[str] = None,
        policy: Optional[TrackingPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.driver_id = driver_id
        self.channel = channel
        self.client = client
        self.delivery_id = delivery_id
        self.policy = policy or default_tracking_policy()
        self.clock = clock

        self.published = 0
        self.persisted = 0
        self._last_persist_at: Optional[float] = None
        self._pending: Set[asyncio.Task] = set()

    def payload(self, sample: LocationSample) -> Dict[str, Any]:
        payload = {
            "driverId": self.driver_id,
            "location": {"latitude": sample.latitude, "longitude": sample.longitude},
            "accuracy": sample.accuracy,
            "address": sample.address,
            "timestamp": sample.to_payload()["timestamp"],
        }
        if self.delivery_id:
            payload["deliveryId"] = self.delivery_id
        return payload

    def should_persist(self) -> bool:
        if self.client is None or self.policy.persist_interval_s is None:
            return False
        if self._last_persist_at is None:
            return True
        return self.clock() - self._last_persist_at >= self.policy.persist_interval_s

    def publish(self, sample: LocationSample) -> None:
        """
        Schedule the broadcast (and the REST write when due) and return
        immediately. Must be called from the event loop thread.
        """
        if self.channel is not None:
            self._spawn(self._broadcast(sample))

        if self.should_persist():
            # claim the slot now so samples arriving during the call don't also persist
            self._last_persist_at = self.clock()
            self._spawn(self._persist(sample))

    def _spawn(self, coroutine) -> None:
        task = asyncio.ensure_future(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _broadcast(self, sample: LocationSample) -> None:
        payload = self.payload(sample)
        try:
            await self.channel.emit(DRIVER_LOCATION, payload)
            await self.channel.emit(CACHE_DRIVER_LOCATION, payload)
            self.published += 1
        except Exception as e:
            # transport errors vary by channel (redis, socket, closed loopback)
            logger.warning("Live location broadcast failed for driver %s: %s", self.driver_id, e)

    async def _persist(self, sample: LocationSample) -> None:
        try:
            await asyncio.to_thread(self.client.update_user_location, self.driver_id, sample)
            self.persisted += 1
        except BackendError as e:
            logger.warning("Location persist failed for driver %s: %s", self.driver_id, e)

    async def drain(self) -> None:
        """Wait for every in-flight send to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight sends."""
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._pending.clear()


class DriverLocationSharer:
    """
    Driver side session: share live location for one active delivery.

        async with DriverLocationSharer(source, publisher) as sharer:
            ...  # every GPS fix is published until the block exits
    """

    def __init__(self, source: LocationSource, publisher: LocationPublisher):
        self.source = source
        self.publisher = publisher
        self.current_location: Optional[LocationSample] = None

    @property
    def is_sharing(self) -> bool:
        return self.source.is_tracking

    def _on_sample(self, sample: LocationSample) -> None:
        self.current_location = sample
        self.publisher.publish(sample)

    async def start(self) -> None:
        self.source.start_tracking(self._on_sample)
        # initial fix for display, falls back like every one-shot call.
        # A watch fix that lands while waiting is newer and wins.
        initial = await self.source.get_current_location()
        if self.current_location is None:
            self.current_location = initial
        logger.info(
            "Driver %s sharing location for delivery %s",
            self.publisher.driver_id, self.publisher.delivery_id,
        )

    async def stop(self) -> None:
        self.source.stop_tracking()
        await self.publisher.drain()

    async def __aenter__(self) -> DriverLocationSharer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.source.stop_tracking()
        if exc_type is None:
            await self.publisher.drain()
        else:
            await self.publisher.aclose()
