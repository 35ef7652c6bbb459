#Purpose: ETA estimation policy.
#Converts two coordinates into a customer-facing "arrives in X min".
#Heuristic only: straight-line haversine distance stretched by a road factor,
#a constant average speed and a handling buffer.
#It never calls a routing service, the result is a pure
#function of the two points so every tick of the tracking view is cheap.

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0
ROAD_DISTANCE_FACTOR = 1.5  # straight line -> rough road distance
AVERAGE_SPEED_KMH = 20.0  # city scooter speed
HANDLING_BUFFER_MINUTES = 2  # parking, handover
MIN_ETA_MINUTES = 1


@dataclass(frozen=True)
class ETAEstimate:
    """
    Derived, never persisted. Recomputed whenever the driver sample changes.
    """

    minutes: int
    distance_km: float


def distance_km(a, b) -> float:
    """
    Great-circle distance in km between two points (haversine).

    Args:
        a, b: anything with .latitude / .longitude (Coordinate, LocationSample, Place)
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(delta_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
    # clamp against float drift pushing h past 1 for antipodal points
    h = min(1.0, max(0.0, h))

    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def estimate_minutes(distance: float) -> int:
    """
    Heuristic minutes to cover `distance` km of straight-line distance.

    road km = distance * 1.5, at 20 km/h, rounded half up, + 2 min buffer,
    never below 1. A driver already on the spot (distance 0) gets exactly the
    1 minute floor, the buffer only applies to actual travel.
    """
    if distance < 0:
        raise ValueError("distance must be >= 0")

    if distance == 0:
        return MIN_ETA_MINUTES

    road_distance = distance * ROAD_DISTANCE_FACTOR
    travel_minutes = math.floor(road_distance / AVERAGE_SPEED_KMH * 60 + 0.5)

    return max(MIN_ETA_MINUTES, travel_minutes + HANDLING_BUFFER_MINUTES)


def estimate_eta(origin, destination) -> ETAEstimate:
    """Distance + minutes from origin (usually the driver) to destination."""
    distance = distance_km(origin, destination)
    return ETAEstimate(minutes=estimate_minutes(distance), distance_km=distance)
