import asyncio
from unittest.mock import Mock

import pytest

from backend.channels import DRIVER_LOCATION, InMemoryChannel
from backend.client import BackendError
from orders.models import DeliveryStatus
from tracking.reconciler import DRIVER
from tracking.session import TrackingSession
from tracking.surface import FoliumMapSurface

from conftest import HOME, make_request, sample_at


class FakeBackend:
    """
    The REST side of one delivery. Tests flip `status`/`driver_id` to play
    the backend moving the request forward.
    """

    def __init__(self, status=DeliveryStatus.ACCEPTED, driver_id="driver-1"):
        self.status = status
        self.driver_id = driver_id
        self.location = None
        self.location_calls = 0

    def get_request(self, user_id, request_id):
        return make_request(self.status, driver_id=self.driver_id, request_id=request_id)

    def get_user_location(self, user_id, requested_at=None):
        self.location_calls += 1
        return self.location


@pytest.fixture
def backend():
    return FakeBackend()


async def test_polling_mode_tracks_driver_and_stops_cleanly(backend, fast_policy, eventually):
    backend.location = sample_at(33.58, -7.60)
    surface = FoliumMapSurface()
    updates = []

    async with TrackingSession(
        backend, "customer-1", "req-1",
        home=HOME, surface=surface, policy=fast_policy, on_update=updates.append,
    ) as session:
        await eventually(lambda: session.snapshot.eta is not None)

        assert session.location_poller is not None
        assert session.snapshot.eta_minutes == 9
        assert len(surface.markers(DRIVER)) == 1
        poller = session.location_poller

    assert not session.delivery_poller.is_running
    assert not poller.is_running
    assert session.location_poller is None
    assert surface.layers == {}
    assert updates


async def test_push_mode_uses_channel(backend, fast_policy, eventually):
    backend.status = DeliveryStatus.DELIVERING
    channel = InMemoryChannel()

    async with TrackingSession(backend, "customer-1", "req-1", home=HOME, channel=channel, policy=fast_policy) as session:
        await eventually(lambda: session.subscriber is not None and session.subscriber.is_subscribed)
        assert session.snapshot.connecting

        await channel.emit(DRIVER_LOCATION, {
            "driverId": "driver-1",
            "location": {"latitude": 33.58, "longitude": -7.60},
            "timestamp": 1714564800000,
        })

        assert session.snapshot.driver_location.latitude == 33.58
        assert session.snapshot.eta_minutes == 9
        assert session.location_poller is None
        assert backend.location_calls == 0

    assert channel.subscriber_count(DRIVER_LOCATION) == 0


async def test_location_feed_stops_when_delivery_completes(backend, fast_policy, eventually):
    backend.location = sample_at(33.58, -7.60)

    async with TrackingSession(backend, "customer-1", "req-1", home=HOME, policy=fast_policy) as session:
        await eventually(lambda: session.location_poller is not None)
        poller = session.location_poller

        backend.status = DeliveryStatus.COMPLETED
        await eventually(lambda: session.location_poller is None)

        assert not poller.is_running
        assert session.snapshot.message == "Delivery completed!"
        assert session.snapshot.eta is None

        await eventually(lambda: not session.delivery_poller.is_running)
        calls = backend.location_calls
        await asyncio.sleep(0.05)
        assert backend.location_calls == calls


async def test_driver_change_switches_feed(backend, fast_policy, eventually):
    backend.location = sample_at(33.58, -7.60)

    async with TrackingSession(backend, "customer-1", "req-1", home=HOME, policy=fast_policy) as session:
        await eventually(lambda: session.driver_id == "driver-1")
        first = session.location_poller

        backend.driver_id = "driver-2"
        await eventually(lambda: session.driver_id == "driver-2")

        assert not first.is_running
        assert session.location_poller.driver_id == "driver-2"


async def test_pending_request_starts_no_location_feed(fast_policy):
    backend = FakeBackend(status=DeliveryStatus.PENDING, driver_id=None)

    async with TrackingSession(backend, "customer-1", "req-1", home=HOME, policy=fast_policy) as session:
        await asyncio.sleep(0.05)

        assert session.snapshot.message == "Looking for a driver..."
        assert session.location_poller is None
        assert session.subscriber is None


async def test_backend_errors_do_not_break_the_session(fast_policy, eventually):
    client = Mock()
    client.get_request.side_effect = BackendError("HTTP 503", status_code=503)

    async with TrackingSession(client, "customer-1", "req-1", home=HOME, policy=fast_policy) as session:
        await eventually(lambda: client.get_request.call_count >= 2)
        assert session.snapshot.status is None
