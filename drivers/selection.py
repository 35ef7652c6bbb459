"""
Purpose: Nearby driver discovery for the customer dashboard.
What it does:
Keeps the set of online drivers around the customer up to date from two
feeds and ranks them by heuristic ETA:

- REST: GET /drivers/available?lat&lng&radius (one-shot refresh)
- push: driver-locations (full list), driver-status-changed (online/offline),
  driver-location (single driver moved)

The discovery center is the customer's home address when set, otherwise the
detected city center.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from backend.channels import (
    DRIVER_LOCATION,
    DRIVER_LOCATIONS,
    DRIVER_STATUS_CHANGED,
    GET_DRIVER_LOCATIONS,
    PushChannel,
)
from backend.client import BackendClient, BackendError
from location.models import Coordinate
from orders.models import Place
from routing.cities import CityResolver
from routing.eta_service import ETAEstimate, estimate_eta
from tracking.policy import TrackingPolicy, default_tracking_policy

from .models import AvailableDriver

logger = logging.getLogger(__name__)


def filter_eligible_drivers(drivers: List[AvailableDriver]) -> List[AvailableDriver]:
    """
    Returns only drivers who are online.
    """
    return [driver for driver in drivers if driver.is_online]


async def discovery_center(home: Optional[Place], resolver: CityResolver) -> Coordinate:
    """
    Home address if the customer set one, else the center of their city.
    """
    if home is not None and home.is_set():
        return home.coordinate

    city = await resolver.resolve()
    return city.center


class DriverDiscovery:
    def __init__(
        self,
        client: BackendClient,
        channel: Optional[PushChannel] = None,
        customer_id: Optional[str] = None,
        policy: Optional[TrackingPolicy] = None,
    ):
        self.client = client
        self.channel = channel
        self.customer_id = customer_id
        self.policy = policy or default_tracking_policy()
        self.drivers: Dict[str, AvailableDriver] = {}
        self._subscribed = False

    # --- REST ---

    async def refresh(self, center: Coordinate) -> List[AvailableDriver]:
        """
        Replace the known set with the backend's list around `center`.
        On failure the previous set is kept.
        """
        try:
            drivers = await asyncio.to_thread(
                self.client.get_available_drivers,
                center.latitude,
                center.longitude,
                self.policy.discovery_radius_km,
            )
        except BackendError as e:
            logger.warning("Failed to fetch available drivers: %s", e)
            return list(self.drivers.values())

        self.drivers = {driver.id: driver for driver in filter_eligible_drivers(drivers)}
        logger.info("Found %d available drivers", len(self.drivers))
        return list(self.drivers.values())

    # --- push handlers ---

    def handle_driver_locations(self, payload: Any) -> None:
        """Full list from the backend replaces what we know."""
        if not isinstance(payload, list):
            logger.warning("Ignoring driver-locations payload of type %s", type(payload).__name__)
            return

        drivers = {}
        for item in payload:
            try:
                driver = AvailableDriver.from_api(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed driver entry: %s", e)
                continue
            if driver.is_online:
                drivers[driver.id] = driver
        self.drivers = drivers

    def handle_status_changed(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        driver_id = payload.get("driverId")
        if driver_id is None:
            return

        if not payload.get("isOnline", True):
            if self.drivers.pop(str(driver_id), None) is not None:
                logger.info("Driver %s went offline", driver_id)

    def handle_driver_location(self, payload: Any) -> None:
        """Move a known driver. Unknown drivers wait for the next full list."""
        if not isinstance(payload, dict):
            return
        driver_id = payload.get("driverId")
        known = self.drivers.get(str(driver_id)) if driver_id is not None else None
        if known is None:
            return

        try:
            location = Coordinate.from_dict(payload["location"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Bad location for driver %s: %s", driver_id, e)
            return

        self.drivers[known.id] = AvailableDriver(
            id=known.id,
            location=location,
            name=known.name,
            is_online=known.is_online,
            vehicle=known.vehicle,
        )

    # --- lifecycle ---

    async def start(self, center: Optional[Coordinate] = None) -> None:
        if center is not None:
            await self.refresh(center)

        if self.channel is None or self._subscribed:
            return

        await self.channel.subscribe(DRIVER_LOCATIONS, self.handle_driver_locations)
        await self.channel.subscribe(DRIVER_STATUS_CHANGED, self.handle_status_changed)
        await self.channel.subscribe(DRIVER_LOCATION, self.handle_driver_location)
        self._subscribed = True

        await self.channel.emit(GET_DRIVER_LOCATIONS, {"customerId": self.customer_id})

    async def stop(self) -> None:
        if self.channel is None or not self._subscribed:
            return
        await self.channel.unsubscribe(DRIVER_LOCATIONS, self.handle_driver_locations)
        await self.channel.unsubscribe(DRIVER_STATUS_CHANGED, self.handle_status_changed)
        await self.channel.unsubscribe(DRIVER_LOCATION, self.handle_driver_location)
        self._subscribed = False

    async def __aenter__(self) -> DriverDiscovery:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --- ranking ---

    def nearby(self, center: Coordinate, radius_km: Optional[float] = None) -> List[Tuple[AvailableDriver, ETAEstimate]]:
        """
        Online drivers within `radius_km` of center, closest first.
        """
        radius_km = self.policy.discovery_radius_km if radius_km is None else radius_km

        ranked = []
        for driver in filter_eligible_drivers(list(self.drivers.values())):
            eta = estimate_eta(driver.location, center)
            if eta.distance_km <= radius_km:
                ranked.append((driver, eta))

        ranked.sort(key=lambda pair: pair[1].distance_km)
        return ranked
