"""
Purpose: Orchestrator for one customer tracking screen (the "glue").
What it does:
Owns every moving part behind TrackingView for one delivery:

- DeliveryPoller (request status every 5 s, stops on completed/cancelled)
- the driver location feed, started once a driver is on the road:
    push (ChannelLocationSubscriber) when a channel is given,
    pull (DriverLocationPoller every 3 s) otherwise
- the view refresh on every accepted store change

Teardown is deterministic: leaving `async with TrackingSession(...)` (or
calling stop()) cancels timers, in-flight polls and channel subscriptions
and clears the map, whatever state the delivery is in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set

from backend.channels import PushChannel
from backend.client import BackendClient
from location.models import LocationSample
from location.subscriber import (
    ChannelLocationSubscriber,
    DeliveryPoller,
    DriverLocationPoller,
    delivery_is_trackable,
)
from orders.models import DeliveryRequest, Place
from orders.state_machine import is_trackable

from .policy import TrackingPolicy, default_tracking_policy
from .store import TrackingStore
from .surface import MapSurface
from .view import TrackingSnapshot, TrackingView

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[TrackingSnapshot], None]


class TrackingSession:
    def __init__(
        self,
        client: BackendClient,
        user_id: str,
        request_id: str,
        *,
        home: Optional[Place] = None,
        channel: Optional[PushChannel] = None,
        surface: Optional[MapSurface] = None,
        store: Optional[TrackingStore] = None,
        policy: Optional[TrackingPolicy] = None,
        on_update: Optional[SnapshotCallback] = None,
    ):
        self.client = client
        self.user_id = user_id
        self.request_id = request_id
        self.channel = channel
        self.store = store or TrackingStore()
        self.policy = policy or default_tracking_policy()
        self.on_update = on_update

        self.view = TrackingView(self.store, request_id, home=home, surface=surface)
        self.delivery_poller = DeliveryPoller(client, self.store, user_id, request_id, self.policy)
        self.location_poller: Optional[DriverLocationPoller] = None
        self.subscriber: Optional[ChannelLocationSubscriber] = None

        self.driver_id: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._started = False

    @property
    def snapshot(self) -> TrackingSnapshot:
        return self.view.snapshot

    # --- lifecycle ---

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._listeners.append(self.store.on_delivery(self._on_delivery))
        self._listeners.append(self.store.on_location(self._on_location))

        # the store may already hold the request (shared store)
        current = self.store.delivery(self.request_id)
        if current is not None:
            self._on_delivery(current)

        self.delivery_poller.start()

    async def stop(self) -> None:
        self.delivery_poller.stop()

        for remove in self._listeners:
            remove()
        self._listeners.clear()

        # a driver switch may still be starting a feed
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

        await self._stop_location_feed()
        self.view.close()
        self._started = False

    async def __aenter__(self) -> TrackingSession:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --- store callbacks ---

    def _on_delivery(self, request: DeliveryRequest) -> None:
        if request.id != self.request_id:
            return

        if is_trackable(request.status) and request.driver_id:
            if request.driver_id != self.driver_id:
                self._spawn(self._switch_driver(request.driver_id))
        elif self.driver_id is not None and not is_trackable(request.status):
            # completed / cancelled: tracking ends
            self._spawn(self._stop_location_feed())

        self._refresh()

    def _on_location(self, entity_id: str, sample: Optional[LocationSample]) -> None:
        if entity_id == self.driver_id:
            self._refresh()

    def _refresh(self) -> None:
        snapshot = self.view.update()
        if self.on_update is not None:
            self.on_update(snapshot)

    # --- driver location feed ---

    async def _switch_driver(self, driver_id: str) -> None:
        await self._stop_location_feed()
        self.driver_id = driver_id

        if self.channel is not None:
            self.subscriber = ChannelLocationSubscriber(self.channel, self.store, driver_id)
            await self.subscriber.start()
            logger.info("Tracking driver %s via push channel", driver_id)
        else:
            self.location_poller = DriverLocationPoller(
                self.client,
                self.store,
                driver_id,
                self.policy,
                should_continue=delivery_is_trackable(self.store, self.request_id),
            )
            self.location_poller.start()
            logger.info("Tracking driver %s via polling", driver_id)

    async def _stop_location_feed(self) -> None:
        if self.location_poller is not None:
            self.location_poller.stop()
            self.location_poller = None
        if self.subscriber is not None:
            await self.subscriber.stop()
            self.subscriber = None

    def _spawn(self, coroutine) -> None:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
