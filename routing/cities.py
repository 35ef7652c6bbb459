"""
Purpose: Coarse city detection from a GPS fix.
What it does:
Maps a coordinate onto one of the served cities by bounding box so the
customer map can be centered before a home address is known.
Unknown points fall back to the default city (Marrakech).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from location.models import Coordinate
from tracking.policy import default_tracking_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.south <= latitude <= self.north and self.west <= longitude <= self.east


@dataclass(frozen=True)
class City:
    key: str
    name: str
    center: Coordinate
    bounds: Optional[Bounds] = None


CITIES: Dict[str, City] = {
    "marrakech": City(
        key="marrakech",
        name="Marrakech",
        center=Coordinate(31.6295, -7.9811),
        bounds=Bounds(north=31.7, south=31.55, east=-7.9, west=-8.1),
    ),
    "casablanca": City(
        key="casablanca",
        name="Casablanca",
        center=Coordinate(33.5731, -7.5898),
        bounds=Bounds(north=33.65, south=33.5, east=-7.5, west=-7.7),
    ),
    "rabat": City(
        key="rabat",
        name="Rabat",
        center=Coordinate(34.0209, -6.8416),
        bounds=Bounds(north=34.1, south=33.95, east=-6.7, west=-6.9),
    ),
}

DEFAULT_CITY_KEY = "marrakech"


def detect_city(latitude: float, longitude: float) -> City:
    """
    First city whose bounding box holds the point, else the default city.
    """
    for city in CITIES.values():
        if city.bounds and city.bounds.contains(latitude, longitude):
            return city

    return CITIES[DEFAULT_CITY_KEY]


class CityResolver:
    """
    Resolves and caches the user's city.

    Uses a cheap one-shot fix (low accuracy, 5 s timeout, up to 10 min old).
    When the device fails the default city is cached too, same as a
    successful lookup, so the device is asked at most once.
    """

    def __init__(self, source, policy=None):
        self.source = source
        self.policy = policy or default_tracking_policy()
        self._city: Optional[City] = None

    @property
    def cached(self) -> Optional[City]:
        return self._city

    async def resolve(self) -> City:
        if self._city is not None:
            return self._city

        sample = await self.source.get_current_location(
            high_accuracy=False,
            timeout=self.policy.city_lookup_timeout_s,
            maximum_age=self.policy.city_lookup_maximum_age_s,
            fallback=None,
        )
        if sample is None:
            self._city = CITIES[DEFAULT_CITY_KEY]
        else:
            self._city = detect_city(sample.latitude, sample.longitude)

        logger.info("Resolved user city: %s", self._city.name)
        return self._city

    def clear(self) -> None:
        self._city = None
