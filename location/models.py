"""
Purpose: Core data models for the location domain.
What it does:
Defines a validated Coordinate and the LocationSample produced by every
geolocation callback. Samples are ephemeral, only the latest one per entity
is ever kept (see tracking/store.py).

Rule: No device calls, no network. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

LatLon = Tuple[float, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_address(latitude: float, longitude: float) -> str:
    """Display string used when no reverse-geocoded address is known."""
    return f"{latitude:.4f}, {longitude:.4f}"


@dataclass(frozen=True)
class Coordinate:
    """
    A WGS84 point. Construction fails on out of range values so nothing
    downstream (distance math, map layers) ever sees an impossible point.
    """

    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude {self.latitude} out of range [-90, 90]")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude {self.longitude} out of range [-180, 180]")

    def is_zero(self) -> bool:
        # the backend stores unset addresses as 0,0
        return self.latitude == 0 and self.longitude == 0

    def as_tuple(self) -> LatLon:
        return (self.latitude, self.longitude)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Coordinate:
        return cls(latitude=float(data["latitude"]), longitude=float(data["longitude"]))


@dataclass(frozen=True)
class LocationSample:
    """
    One position fix: coordinate + accuracy (meters), a display address and
    the time it was taken.
    """

    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    address: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        # validates the range
        Coordinate(self.latitude, self.longitude)
        if self.address is None:
            object.__setattr__(self, "address", format_address(self.latitude, self.longitude))

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def is_newer_than(self, other: Optional[LocationSample]) -> bool:
        if other is None:
            return True
        return self.timestamp >= other.timestamp

    def to_payload(self) -> Dict[str, Any]:
        """Shape used on the push channel and in REST updates."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "address": self.address,
            "timestamp": int(self.timestamp.timestamp() * 1000),
        }

    @classmethod
    def new(
        cls,
        lat: float,
        lon: float,
        accuracy: Optional[float] = None,
        address: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> LocationSample:
        return cls(
            latitude=float(lat),
            longitude=float(lon),
            accuracy=accuracy,
            address=address,
            timestamp=timestamp or utcnow(),
        )

    @classmethod
    def from_payload(cls, data: Dict[str, Any], default_timestamp: Optional[datetime] = None) -> LocationSample:
        """
        Parses the location objects the backend and the push channel send.
        Accepts `timestamp` as epoch milliseconds or `updatedAt` as ISO 8601.
        Raises KeyError/ValueError/TypeError on malformed data.
        """
        timestamp = default_timestamp
        if data.get("timestamp") is not None:
            timestamp = datetime.fromtimestamp(float(data["timestamp"]) / 1000.0, tz=timezone.utc)
        elif data.get("updatedAt"):
            timestamp = _parse_iso(data["updatedAt"])

        accuracy = data.get("accuracy")
        return cls.new(
            lat=data["latitude"],
            lon=data["longitude"],
            accuracy=float(accuracy) if accuracy is not None else None,
            address=data.get("address") or None,
            timestamp=timestamp,
        )


def _parse_iso(value: str) -> datetime:
    # fromisoformat only learned the trailing Z in 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
