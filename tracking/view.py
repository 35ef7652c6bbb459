"""
Purpose: The tracking view state (what the customer sees for one delivery).
What it does:
Derives everything from the store: status copy, ETA, the "connecting" state
and the map target. The copy and the marker behavior are a pure function of
the delivery status the backend reports; nothing here drives transitions.

The presentation layer (terminal, HTML, whatever skin) only reads
TrackingSnapshot. A missing or broken map never breaks the snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional

from location.models import Coordinate, LocationSample
from orders.models import DeliveryRequest, DeliveryStatus, Place
from orders.state_machine import is_terminal, is_trackable
from routing.eta_service import ETAEstimate, estimate_eta

from .reconciler import MapReconciler, MapTarget
from .store import TrackingStore
from .surface import MapSurface, MapUnavailableError

logger = logging.getLogger(__name__)

STATUS_MESSAGES: Dict[DeliveryStatus, str] = {
    DeliveryStatus.PENDING: "Looking for a driver...",
    DeliveryStatus.ACCEPTED: "Driver is on the way to the store",
    DeliveryStatus.SHOPPING: "Driver is shopping for your items",
    DeliveryStatus.DELIVERING: "Driver is on the way to you",
    DeliveryStatus.COMPLETED: "Delivery completed!",
    DeliveryStatus.CANCELLED: "Request was cancelled",
}

HEADLINES: Dict[DeliveryStatus, str] = {
    DeliveryStatus.PENDING: "Finding your driver",
    DeliveryStatus.ACCEPTED: "Driver heading to store",
    DeliveryStatus.SHOPPING: "Driver shopping for items",
    DeliveryStatus.DELIVERING: "Driver coming to you",
    DeliveryStatus.COMPLETED: "Delivery completed",
    DeliveryStatus.CANCELLED: "Delivery cancelled",
}

CONNECTING_MESSAGE = "Connecting to driver..."

# the pickup marker only matters while the driver is going to / inside the store
PICKUP_VISIBLE = frozenset({DeliveryStatus.ACCEPTED, DeliveryStatus.SHOPPING})


@dataclass(frozen=True)
class TrackingSnapshot:
    request_id: str
    status: Optional[DeliveryStatus]
    headline: str
    message: str
    eta: Optional[ETAEstimate] = None
    driver_location: Optional[LocationSample] = None
    connecting: bool = False
    map_available: bool = False

    @property
    def eta_minutes(self) -> Optional[int]:
        return self.eta.minutes if self.eta else None

    def as_text(self) -> str:
        """Plain text rendering, used when there is no map."""
        lines = [self.headline, self.message]
        if self.connecting:
            lines.append(CONNECTING_MESSAGE)
        if self.eta is not None:
            lines.append(f"ETA: {self.eta.minutes} min ({self.eta.distance_km:.1f} km)")
        return "\n".join(lines)


def reference_point(request: DeliveryRequest, home: Optional[Place] = None) -> Optional[Coordinate]:
    """
    The customer's fixed point on the map: the home address when it is set
    (non zero), otherwise the delivery address.
    """
    if home is not None and home.is_set():
        return home.coordinate
    if request.delivery_location is not None and request.delivery_location.is_set():
        return request.delivery_location.coordinate
    return None


class TrackingView:
    """
    One delivery's tracking screen state.

    update() recomputes the snapshot and reconciles the map, call it whenever
    the store reports a new driver sample or a new delivery snapshot.
    """

    def __init__(
        self,
        store: TrackingStore,
        request_id: str,
        home: Optional[Place] = None,
        surface: Optional[MapSurface] = None,
        reconciler: Optional[MapReconciler] = None,
    ):
        self.store = store
        self.request_id = request_id
        self.home = home
        self.surface = surface
        self.reconciler = reconciler or MapReconciler()
        self.snapshot = TrackingSnapshot(
            request_id=request_id,
            status=None,
            headline="Loading delivery...",
            message="",
        )

    def driver_location(self, request: DeliveryRequest) -> Optional[LocationSample]:
        if request.driver_id is None:
            return None
        return self.store.latest(request.driver_id)

    def map_target(self, request: DeliveryRequest) -> MapTarget:
        driver = self.driver_location(request)
        pickup = None
        if request.status in PICKUP_VISIBLE and request.pickup_location is not None and request.pickup_location.is_set():
            pickup = request.pickup_location.coordinate
        return MapTarget(
            reference=reference_point(request, self.home),
            driver=driver.coordinate if driver else None,
            pickup=pickup,
        )

    def render(self) -> TrackingSnapshot:
        """Pure snapshot from the store, no map side effects."""
        request = self.store.delivery(self.request_id)
        if request is None:
            return TrackingSnapshot(
                request_id=self.request_id,
                status=None,
                headline="Loading delivery...",
                message="",
                map_available=self.surface is not None,
            )

        status = request.status
        driver = self.driver_location(request)
        reference = reference_point(request, self.home)

        eta = None
        if driver is not None and reference is not None and not is_terminal(status):
            eta = estimate_eta(driver, reference)

        return TrackingSnapshot(
            request_id=self.request_id,
            status=status,
            headline=HEADLINES.get(status, status.value),
            message=STATUS_MESSAGES.get(status, status.value),
            eta=eta,
            driver_location=driver,
            connecting=driver is None and is_trackable(status),
            map_available=self.surface is not None,
        )

    def update(self) -> TrackingSnapshot:
        snapshot = self.render()
        request = self.store.delivery(self.request_id)

        if request is not None and self.surface is not None:
            try:
                self.reconciler.apply(self.surface, self.map_target(request))
            except MapUnavailableError as e:
                logger.warning("Map unavailable, showing text status only: %s", e)
                snapshot = replace(snapshot, map_available=False)

        self.snapshot = snapshot
        return snapshot

    def close(self) -> None:
        """Remove every layer this view drew."""
        if self.surface is None:
            return
        try:
            self.reconciler.clear(self.surface)
        except MapUnavailableError as e:
            logger.debug("Map already gone on close: %s", e)
            self.reconciler.reset()
