from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests

from backend.client import BackendClient, BackendError
from location.models import LocationSample
from orders.models import DeliveryStatus


def make_response(status_code=200, json_data=None, content=b"{}"):
    response = Mock()
    response.status_code = status_code
    response.content = content if json_data is None else b"..."
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return BackendClient(base_url="http://api.test/api", token="secret", timeout=3, session=session)


def test_requests_carry_token_and_timeout(client, session):
    session.request.return_value = make_response(json_data={"location": None})

    client.get_user_location("driver-1")

    session.request.assert_called_once_with(
        "GET",
        "http://api.test/api/users/driver-1/location",
        headers={"Authorization": "Bearer secret"},
        timeout=3,
    )


def test_no_token_no_auth_header(session):
    session.request.return_value = make_response(json_data={})
    BackendClient(base_url="http://api.test/api", session=session).get_user_location("u")

    assert session.request.call_args.kwargs["headers"] == {}


def test_get_user_location_parses_sample(client, session):
    session.request.return_value = make_response(json_data={
        "location": {"latitude": 33.58, "longitude": -7.60, "address": "Maarif", "updatedAt": "2024-05-01T12:00:00Z"},
    })

    sample = client.get_user_location("driver-1")

    assert sample.latitude == 33.58
    assert sample.address == "Maarif"
    assert sample.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_get_user_location_uses_request_time_when_backend_has_none(client, session):
    requested_at = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    session.request.return_value = make_response(json_data={"location": {"latitude": 33.58, "longitude": -7.60}})

    assert client.get_user_location("driver-1", requested_at).timestamp == requested_at


def test_get_user_location_without_location(client, session):
    session.request.return_value = make_response(json_data={"location": None})
    assert client.get_user_location("driver-1") is None


def test_invalid_location_becomes_backend_error(client, session):
    session.request.return_value = make_response(json_data={"location": {"latitude": 120, "longitude": 0}})

    with pytest.raises(BackendError):
        client.get_user_location("driver-1")


def test_http_error_becomes_backend_error(client, session):
    session.request.return_value = make_response(status_code=500, json_data={"error": "boom"})

    with pytest.raises(BackendError) as info:
        client.get_my_requests("customer-1")

    assert info.value.status_code == 500


def test_network_error_becomes_backend_error(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(BackendError):
        client.get_my_requests("customer-1")


def test_invalid_json_becomes_backend_error(client, session):
    session.request.return_value = make_response(json_data=ValueError("not json"))

    with pytest.raises(BackendError):
        client.get_my_requests("customer-1")


def test_empty_body_is_none(client, session):
    session.request.return_value = make_response(content=b"")
    assert client.update_request_status("req-1", DeliveryStatus.SHOPPING) is None


def test_update_user_location_sends_coordinate_and_address(client, session):
    session.request.return_value = make_response(content=b"")

    client.update_user_location("driver-1", LocationSample.new(33.58, -7.60, address="Maarif"))

    args, kwargs = session.request.call_args
    assert args == ("PATCH", "http://api.test/api/users/driver-1/location")
    assert kwargs["json"] == {"latitude": 33.58, "longitude": -7.60, "address": "Maarif"}


def test_available_drivers_skips_malformed_documents(client, session):
    session.request.return_value = make_response(json_data=[
        {"_id": "d1", "name": "Sara", "currentLocation": {"latitude": 33.58, "longitude": -7.60}},
        {"_id": "d2"},
    ])

    drivers = client.get_available_drivers(33.57, -7.59, radius_km=30)

    assert [d.id for d in drivers] == ["d1"]
    assert session.request.call_args.kwargs["params"] == {"lat": 33.57, "lng": -7.59, "radius": 30}


def test_get_request_picks_from_my_requests(client, session):
    session.request.return_value = make_response(json_data=[
        {"_id": "req-1", "status": "accepted", "driverId": "d1"},
        {"_id": "req-2", "status": "pending"},
        {"_id": "req-3", "status": "lost"},
    ])

    request = client.get_request("customer-1", "req-2")

    assert request.status == DeliveryStatus.PENDING
    assert client.get_request("customer-1", "req-404") is None


def test_accept_request_posts_driver_id(client, session):
    session.request.return_value = make_response(json_data={"_id": "req-1", "status": "accepted", "driverId": "d1"})

    request = client.accept_request("req-1", "d1")

    args, kwargs = session.request.call_args
    assert args == ("POST", "http://api.test/api/requests/req-1/accept")
    assert kwargs["json"] == {"driverId": "d1"}
    assert request.driver_id == "d1"


def test_update_request_status_sends_status_value(client, session):
    session.request.return_value = make_response(json_data={"message": "ok"})

    assert client.update_request_status("req-1", DeliveryStatus.DELIVERING) is None
    assert session.request.call_args.kwargs["json"] == {"status": "delivering"}


def test_non_object_location_body_becomes_backend_error(client, session):
    session.request.return_value = make_response(json_data=[{"location": {"latitude": 33.5, "longitude": -7.6}}])

    with pytest.raises(BackendError):
        client.get_user_location("driver-1")
