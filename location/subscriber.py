"""
Purpose: Customer side location intake (pull and push).
What it does:
- DriverLocationPoller: GET the driver's last known location every 3 s
- DeliveryPoller: GET the tracked request every 5 s
- ChannelLocationSubscriber: driver-location events from the push channel

All three feed the injected TrackingStore, which keeps only the newest value
per entity. Each poll tick runs as its own task, so a slow response can land
after a faster, newer one: samples are stamped with the time their request
was issued and the store drops the older one.

Rule: every poller owns its timer. stop() cancels the timer and every
in-flight poll, and the async context managers call it on the way out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from backend.channels import DRIVER_LOCATION, PushChannel
from backend.client import BackendClient, BackendError
from orders.models import DeliveryRequest
from orders.state_machine import is_terminal, is_trackable
from tracking.policy import TrackingPolicy, default_tracking_policy
from tracking.store import TrackingStore

from .models import LocationSample, utcnow

logger = logging.getLogger(__name__)


class IntervalPoller:
    """
    Runs `poll()` every `interval_s` seconds until stopped or until
    `should_continue()` turns false. The first poll happens immediately.
    """

    name = "poller"

    def __init__(self, interval_s: float, should_continue: Optional[Callable[[], bool]] = None):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.interval_s = interval_s
        self.should_continue = should_continue
        self.poll_count = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def poll(self):
        raise NotImplementedError

    def start(self) -> None:
        if self.is_running:
            return
        self._timer = asyncio.ensure_future(self._run())
        logger.debug("%s started (every %ss)", self.name, self.interval_s)

    async def _run(self) -> None:
        while True:
            if self.should_continue is not None and not self.should_continue():
                logger.info("%s stopped: nothing left to track", self.name)
                return
            self.poll_count += 1
            task = asyncio.ensure_future(self.poll())
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            await asyncio.sleep(self.interval_s)

    def stop(self) -> None:
        """Cancel the timer and in-flight polls. Idempotent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._in_flight):
            task.cancel()
        self._in_flight.clear()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()


class DriverLocationPoller(IntervalPoller):
    """
    Pull mode: the driver's last known location from the REST backend.
    """

    name = "driver location poller"

    def __init__(
        self,
        client: BackendClient,
        store: TrackingStore,
        driver_id: str,
        policy: Optional[TrackingPolicy] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ):
        policy = policy or default_tracking_policy()
        super().__init__(policy.location_poll_interval_s, should_continue)
        self.client = client
        self.store = store
        self.driver_id = driver_id

    async def poll(self) -> Optional[LocationSample]:
        """
        One poll. Returns the fetched sample (even if the store judged it
        stale), or None when the backend has nothing or the call failed.
        """
        requested_at = utcnow()
        try:
            sample = await asyncio.to_thread(self.client.get_user_location, self.driver_id, requested_at)
        except BackendError as e:
            logger.warning("Error fetching driver location: %s", e)
            return None

        if sample is None:
            return None

        self.store.offer_location(self.driver_id, sample)
        return sample


class DeliveryPoller(IntervalPoller):
    """
    Polls the tracked request. Stops on its own once the request reaches a
    terminal status (completed, cancelled).
    """

    name = "delivery poller"

    def __init__(
        self,
        client: BackendClient,
        store: TrackingStore,
        user_id: str,
        request_id: str,
        policy: Optional[TrackingPolicy] = None,
    ):
        policy = policy or default_tracking_policy()
        super().__init__(policy.request_poll_interval_s, self._still_open)
        self.client = client
        self.store = store
        self.user_id = user_id
        self.request_id = request_id

    def _still_open(self) -> bool:
        request = self.store.delivery(self.request_id)
        return request is None or not is_terminal(request.status)

    async def poll(self) -> Optional[DeliveryRequest]:
        try:
            request = await asyncio.to_thread(self.client.get_request, self.user_id, self.request_id)
        except BackendError as e:
            logger.warning("Error loading request %s: %s", self.request_id, e)
            return None

        if request is None:
            logger.warning("Request %s not found", self.request_id)
            return None

        self.store.offer_delivery(request)
        return request


def delivery_is_trackable(store: TrackingStore, request_id: str) -> Callable[[], bool]:
    """
    should_continue predicate for location pollers: keep going while the
    request has a driver on the road. Unknown requests keep polling until
    the first delivery snapshot arrives.
    """

    def predicate() -> bool:
        request = store.delivery(request_id)
        return request is None or is_trackable(request.status)

    return predicate


class ChannelLocationSubscriber:
    """
    Push mode: driver-location events for one driver.
    """

    def __init__(self, channel: PushChannel, store: TrackingStore, driver_id: str):
        self.channel = channel
        self.store = store
        self.driver_id = driver_id
        self._subscribed = False
        self._unsubscribers = []

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    def on_location_update(self, callback: Callable[[Optional[LocationSample]], None]) -> Callable[[], None]:
        """
        Call `callback` with every accepted sample of this driver.
        Returns the function that removes the callback.
        """

        def listener(entity_id: str, sample: Optional[LocationSample]) -> None:
            if entity_id == self.driver_id:
                callback(sample)

        remove = self.store.on_location(listener)
        self._unsubscribers.append(remove)
        return remove

    def handle_event(self, payload) -> None:
        if not isinstance(payload, dict) or str(payload.get("driverId")) != self.driver_id:
            return

        location = dict(payload.get("location") or {})
        if payload.get("timestamp") is not None:
            location.setdefault("timestamp", payload["timestamp"])
        if payload.get("accuracy") is not None:
            location.setdefault("accuracy", payload["accuracy"])
        if payload.get("address"):
            location.setdefault("address", payload["address"])

        try:
            sample = LocationSample.from_payload(location)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed driver-location event: %s", e)
            return

        self.store.offer_location(self.driver_id, sample)

    async def start(self) -> None:
        if self._subscribed:
            return
        await self.channel.subscribe(DRIVER_LOCATION, self.handle_event)
        self._subscribed = True

    async def stop(self) -> None:
        if self._subscribed:
            await self.channel.unsubscribe(DRIVER_LOCATION, self.handle_event)
            self._subscribed = False
        for remove in self._unsubscribers:
            remove()
        self._unsubscribers.clear()

    async def __aenter__(self) -> ChannelLocationSubscriber:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
