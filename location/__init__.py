"""
Location domain package.

Public API:
- Domain models: Coordinate, LocationSample
- Devices: GeolocationError, SimulatedDevice, UnavailableDevice

LocationSource, the publisher and the subscribers live in their own modules
(location.source, location.publisher, location.subscriber) because they
depend on tracking.policy and backend.
"""
from .models import Coordinate, LocationSample
from .devices import GeolocationError, SimulatedDevice, UnavailableDevice

__all__ = ["Coordinate",
           "LocationSample",
             "GeolocationError",
               "SimulatedDevice",
               "UnavailableDevice",
               ]
