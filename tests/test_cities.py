from unittest.mock import AsyncMock, Mock

import pytest

from location.devices import UnavailableDevice
from location.models import LocationSample
from location.source import LocationSource
from routing.cities import CityResolver, detect_city


@pytest.mark.parametrize(
    "lat, lon, city",
    [
        (33.5731, -7.5898, "casablanca"),
        (31.6295, -7.9811, "marrakech"),
        (34.0209, -6.8416, "rabat"),
        # outside every served city
        (35.7595, -5.8340, "marrakech"),
    ],
)
def test_detect_city(lat, lon, city):
    assert detect_city(lat, lon).key == city


async def test_resolver_asks_the_device_once():
    source = Mock()
    source.get_current_location = AsyncMock(return_value=LocationSample.new(34.02, -6.84))
    resolver = CityResolver(source)

    first = await resolver.resolve()
    second = await resolver.resolve()

    assert first.key == second.key == "rabat"
    source.get_current_location.assert_awaited_once()
    kwargs = source.get_current_location.call_args.kwargs
    assert kwargs["high_accuracy"] is False
    assert kwargs["timeout"] == 5
    assert kwargs["maximum_age"] == 600


async def test_resolver_defaults_to_marrakech_without_gps(fast_policy):
    resolver = CityResolver(LocationSource(UnavailableDevice(), fast_policy), fast_policy)

    city = await resolver.resolve()

    assert city.key == "marrakech"
    assert resolver.cached is city

    resolver.clear()
    assert resolver.cached is None
