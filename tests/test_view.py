import pytest

from orders.models import DeliveryStatus, Place
from tracking.reconciler import DRIVER, PICKUP, USER
from tracking.surface import FoliumMapSurface, MapUnavailableError
from tracking.view import CONNECTING_MESSAGE, TrackingView, reference_point

from conftest import HOME, make_request, sample_at


class BrokenSurface(FoliumMapSurface):
    """A map whose renderer never loaded."""

    def add_marker(self, coordinate, *, kind, label=""):
        raise MapUnavailableError("leaflet not loaded")


@pytest.fixture
def surface():
    return FoliumMapSurface()


@pytest.fixture
def view(store, surface):
    return TrackingView(store, "req-1", home=HOME, surface=surface)


def test_loading_before_first_snapshot(view):
    snapshot = view.update()

    assert snapshot.status is None
    assert snapshot.headline == "Loading delivery..."
    assert snapshot.eta is None


def test_pending_request_is_not_connecting(store, view):
    store.offer_delivery(make_request(DeliveryStatus.PENDING, driver_id=None))

    snapshot = view.update()

    assert snapshot.message == "Looking for a driver..."
    assert not snapshot.connecting


def test_accepted_without_driver_location_shows_connecting(store, view):
    store.offer_delivery(make_request(DeliveryStatus.ACCEPTED))

    snapshot = view.update()

    assert snapshot.connecting
    assert snapshot.eta is None
    assert snapshot.message == "Driver is on the way to the store"
    assert CONNECTING_MESSAGE in snapshot.as_text()


def test_driver_location_gives_eta_towards_home(store, view):
    store.offer_delivery(make_request(DeliveryStatus.DELIVERING))
    store.offer_location("driver-1", sample_at(33.58, -7.60))

    snapshot = view.update()

    assert not snapshot.connecting
    assert snapshot.eta_minutes == 9
    assert snapshot.headline == "Driver coming to you"
    assert "ETA: 9 min (1.4 km)" in snapshot.as_text()


@pytest.mark.parametrize("status", [DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED])
def test_no_eta_once_the_delivery_is_over(store, view, status):
    store.offer_delivery(make_request(status))
    store.offer_location("driver-1", sample_at(33.58, -7.60))

    snapshot = view.update()

    assert snapshot.eta is None
    assert not snapshot.connecting


def test_status_copy_is_a_function_of_status(store, view):
    messages = {}
    for status in [DeliveryStatus.ACCEPTED, DeliveryStatus.SHOPPING, DeliveryStatus.DELIVERING, DeliveryStatus.COMPLETED]:
        store.offer_delivery(make_request(status))
        messages[status] = view.update().message

    assert messages == {
        DeliveryStatus.ACCEPTED: "Driver is on the way to the store",
        DeliveryStatus.SHOPPING: "Driver is shopping for your items",
        DeliveryStatus.DELIVERING: "Driver is on the way to you",
        DeliveryStatus.COMPLETED: "Delivery completed!",
    }


def test_map_follows_the_delivery(store, view, surface):
    store.offer_delivery(make_request(DeliveryStatus.ACCEPTED))
    store.offer_location("driver-1", sample_at(33.58, -7.60))
    view.update()

    assert len(surface.markers(USER)) == 1
    assert len(surface.markers(DRIVER)) == 1
    assert len(surface.markers(PICKUP)) == 1
    assert len(surface.polylines()) == 1

    # driving to the customer: the store marker goes away
    store.offer_delivery(make_request(DeliveryStatus.DELIVERING))
    view.update()

    assert surface.markers(PICKUP) == []
    assert len(surface.polylines()) == 1


def test_close_clears_the_map(store, view, surface):
    store.offer_delivery(make_request(DeliveryStatus.DELIVERING))
    store.offer_location("driver-1", sample_at(33.58, -7.60))
    view.update()

    view.close()

    assert surface.layers == {}


def test_broken_map_degrades_to_text(store):
    view = TrackingView(store, "req-1", home=HOME, surface=BrokenSurface())
    store.offer_delivery(make_request(DeliveryStatus.DELIVERING))
    store.offer_location("driver-1", sample_at(33.58, -7.60))

    snapshot = view.update()

    assert not snapshot.map_available
    assert snapshot.eta_minutes == 9
    assert snapshot.message == "Driver is on the way to you"
    view.close()


def test_view_without_map(store):
    view = TrackingView(store, "req-1", home=HOME)
    store.offer_delivery(make_request(DeliveryStatus.SHOPPING))

    assert not view.update().map_available


def test_reference_point_prefers_home_then_delivery_address():
    request = make_request(delivery_location=Place(33.60, -7.62))

    assert reference_point(request, HOME) == HOME.coordinate
    assert reference_point(request, Place(0, 0)) == Place(33.60, -7.62).coordinate
    assert reference_point(make_request(delivery_location=None), None) is None
