"""
Purpose: Domain models for delivery requests as the tracking flow sees them.
What it does:
- Defines core data structures:
- DeliveryRequest (id, status, pickup/delivery places, driver reference)
- Place (coordinate + display address)

Defines enums/constants:
- DeliveryStatus = pending | accepted | shopping | delivering | completed | cancelled

Requests are owned by the backend. This side only parses and reads them,
status transitions happen server side (see orders/state_machine.py for the
rules we use to sanity check what we receive).

Rule: No network calls. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from location.models import Coordinate


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    SHOPPING = "shopping"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Place:
    """
    A coordinate with the address the customer typed or picked.
    """

    latitude: float
    longitude: float
    address: str = ""

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def is_set(self) -> bool:
        # unset addresses come back as 0,0
        return not (self.latitude == 0 and self.longitude == 0)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional[Place]:
        if not data or data.get("latitude") is None or data.get("longitude") is None:
            return None
        place = cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            address=data.get("address") or "",
        )
        # validates the range
        place.coordinate
        return place


@dataclass(frozen=True)
class DriverRef:
    """
    The assigned driver. The backend sends either the bare id or a populated
    user document (name, phone, rating).
    """

    id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    rating: Optional[float] = None

    @classmethod
    def from_api(cls, value: Any) -> Optional[DriverRef]:
        if not value:
            return None
        if isinstance(value, str):
            return cls(id=value)
        rating = value.get("rating")
        return cls(
            id=str(value.get("_id") or value.get("id")),
            name=value.get("name"),
            phone=value.get("phone"),
            rating=float(rating) if rating is not None else None,
        )


@dataclass(frozen=True)
class DeliveryRequest:
    """
    Read-only snapshot of a delivery request.
    """

    id: str
    status: DeliveryStatus
    pickup_location: Optional[Place]
    delivery_location: Optional[Place]
    driver: Optional[DriverRef] = None

    # display only
    item: str = ""
    store: str = ""

    @property
    def driver_id(self) -> Optional[str]:
        return self.driver.id if self.driver else None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> DeliveryRequest:
        """
        Parses the backend JSON document. Raises KeyError/ValueError on
        missing id or an unknown status.
        """
        return cls(
            id=str(data.get("_id") or data["id"]),
            status=DeliveryStatus(data["status"]),
            pickup_location=Place.from_dict(data.get("pickupLocation")),
            delivery_location=Place.from_dict(data.get("deliveryLocation")),
            driver=DriverRef.from_api(data.get("driverId")),
            item=data.get("item") or "",
            store=data.get("store") or "",
        )
