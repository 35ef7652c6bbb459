import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from location.models import LocationSample
from orders.models import DeliveryRequest, DeliveryStatus, DriverRef, Place
from tracking.policy import TrackingPolicy
from tracking.store import TrackingStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

HOME = Place(33.57, -7.59, "Home, Casablanca")
STORE = Place(33.5800, -7.6100, "Marjane, Casablanca")


def sample_at(lat: float, lon: float, seconds: float = 0) -> LocationSample:
    return LocationSample.new(lat, lon, accuracy=5.0, timestamp=T0 + timedelta(seconds=seconds))


def make_request(
    status: DeliveryStatus = DeliveryStatus.ACCEPTED,
    driver_id: str = "driver-1",
    request_id: str = "req-1",
    delivery_location: Place = HOME,
) -> DeliveryRequest:
    return DeliveryRequest(
        id=request_id,
        status=status,
        pickup_location=STORE,
        delivery_location=delivery_location,
        driver=DriverRef(driver_id) if driver_id else None,
    )


@pytest.fixture
def store():
    return TrackingStore()


@pytest.fixture
def fast_policy():
    # same rules, test friendly timings
    policy = TrackingPolicy(
        one_shot_timeout_s=0.2,
        watch_timeout_s=0.5,
        location_poll_interval_s=0.01,
        request_poll_interval_s=0.01,
        persist_interval_s=30.0,
    )
    policy.validate()
    return policy


@pytest.fixture
def eventually():
    """
    Await until `predicate()` is true (or fail after `timeout` seconds).
    """

    async def wait(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail("condition not reached in time")
            await asyncio.sleep(0.005)

    return wait
