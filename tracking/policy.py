"""
Purpose: Central configuration for location tracking, polling and publishing.
What it does:

Stores all tunable timeouts/intervals used by the tracking flow:

ONE_SHOT_TIMEOUT_S = 10       (one-shot GPS fix)
WATCH_TIMEOUT_S = 30          (continuous watch, more tolerant)
LOCATION_POLL_INTERVAL_S = 3  (customer polls driver location)
REQUEST_POLL_INTERVAL_S = 5   (customer polls delivery status)
PERSIST_INTERVAL_S = 30       (driver REST location write, rate limited)

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from location.models import LocationSample


def _casablanca_center() -> LocationSample:
    return LocationSample.new(33.5731, -7.5898, accuracy=1000.0, address="Casablanca, Morocco")


@dataclass(frozen=True)
class TrackingPolicy:
    """
    Central configuration for the live tracking flow.
    """

    # --- One-shot location ---
    # Short timeout, a slightly cached fix is fine.
    one_shot_timeout_s: float = 10.0
    one_shot_maximum_age_s: float = 5.0

    # --- Continuous tracking ---
    # Longer timeout and more staleness tolerated to spare battery/GPS churn.
    watch_timeout_s: float = 30.0
    watch_maximum_age_s: float = 10.0

    # --- City lookup (map centering) ---
    city_lookup_timeout_s: float = 5.0
    city_lookup_maximum_age_s: float = 600.0

    # --- Customer side polling ---
    location_poll_interval_s: float = 3.0
    request_poll_interval_s: float = 5.0

    # --- Driver side publishing ---
    # Push channel gets every GPS callback. REST persistence is optional and
    # capped at one write per interval (None disables it).
    persist_interval_s: Optional[float] = 30.0

    # --- Driver discovery ---
    discovery_radius_km: float = 30.0

    # Where every failed geolocation lands (default city center).
    fallback_sample: LocationSample = field(default_factory=_casablanca_center)

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if not 0 < self.one_shot_timeout_s <= 10:
            raise ValueError("one_shot_timeout_s must be in (0, 10]")

        if self.watch_timeout_s < self.one_shot_timeout_s:
            raise ValueError("watch_timeout_s must be >= one_shot_timeout_s")

        if self.one_shot_maximum_age_s < 0 or self.watch_maximum_age_s < 0:
            raise ValueError("maximum ages must be >= 0")

        if self.location_poll_interval_s <= 0 or self.request_poll_interval_s <= 0:
            raise ValueError("poll intervals must be > 0")

        if self.persist_interval_s is not None and self.persist_interval_s <= 0:
            raise ValueError("persist_interval_s must be > 0 or None")

        if self.discovery_radius_km <= 0:
            raise ValueError("discovery_radius_km must be > 0")


def default_tracking_policy() -> TrackingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = TrackingPolicy()
    p.validate()
    return p
