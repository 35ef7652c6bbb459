"""
Purpose: Core data models for tracked people (drivers and customers).
What it does:
Defines the TrackedEntity the tracking store keeps per id (one current
sample, no history) and the AvailableDriver returned by driver discovery.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from location.models import Coordinate, LocationSample


class EntityRole(str, Enum):
    DRIVER = "driver"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class TrackedEntity:
    """
    A driver or customer and its latest known position.
    """

    id: str
    role: EntityRole
    current: Optional[LocationSample] = None

    def with_sample(self, sample: Optional[LocationSample]) -> TrackedEntity:
        # Because TrackedEntity is frozen, a new sample means a new instance
        return replace(self, current=sample)


@dataclass(frozen=True)
class AvailableDriver:
    """
    An online driver as advertised by the backend for discovery.
    """

    id: str
    location: Coordinate
    name: str = ""
    is_online: bool = True
    vehicle: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> AvailableDriver:
        """
        Accepts both REST documents ({_id, name, location|currentLocation})
        and push payloads ({driverId, location}).
        Raises KeyError/ValueError/TypeError on malformed data.
        """
        driver_id = data.get("_id") or data.get("driverId") or data["id"]
        location = data.get("location") or data.get("currentLocation")
        if location is None:
            raise KeyError("location")

        return cls(
            id=str(driver_id),
            location=Coordinate.from_dict(location),
            name=data.get("name") or "",
            is_online=bool(data.get("isOnline", True)),
            vehicle=data.get("vehicleType") or data.get("vehicle"),
        )
