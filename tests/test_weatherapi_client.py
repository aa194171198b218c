import httpx
import pytest

from health_guardian.core.weatherapi_client import (
    fetch_current_weather,
    is_public_ip,
    resolve_location,
)
from health_guardian.errors import (
    LOCATION_NOT_FOUND_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    LocationNotFound,
    UpstreamFetchError,
    friendly_message,
)
from health_guardian.models.schemas import CustomLocation, ResolvedLocation, UserProfile

pytestmark = pytest.mark.unit


def custom_profile(city, country, state=None):
    return UserProfile(
        useCustomLocation=True,
        customLocation={"city": city, "state": state, "country": country},
    )


@pytest.mark.parametrize(
    "location, query",
    [
        (CustomLocation(city="London", country="UK"), "London,UK"),
        (CustomLocation(city=" Portland ", state="OR", country="US"), "Portland,OR,US"),
        (CustomLocation(city="Lyon", state="  ", country="FR"), "Lyon,FR"),
    ],
)
def test_custom_location_query(location, query):
    assert location.query == query


@pytest.mark.parametrize(
    "ip, public",
    [("8.8.8.8", True), ("127.0.0.1", False), ("192.168.1.20", False), ("testclient", False), (None, False)],
)
def test_is_public_ip(ip, public):
    assert is_public_ip(ip) is public


@pytest.mark.asyncio
async def test_custom_location_is_geocoded_with_one_call(settings, providers):
    async with providers.client() as client:
        location = await resolve_location(
            custom_profile("Portland", "US", state="OR"), settings=settings, client=client
        )

    assert providers.routes == ["search"]
    params = providers.last("search").url.params
    assert params["q"] == "Portland,OR,US"
    assert params["key"] == "weather-test-key"
    assert location.name == "Portland"
    assert (location.lat, location.lon) == (45.52, -122.68)


@pytest.mark.asyncio
async def test_unknown_custom_location_raises_location_not_found(settings, providers):
    providers.search_results = []

    async with providers.client() as client:
        with pytest.raises(LocationNotFound) as excinfo:
            await resolve_location(
                custom_profile("Nowhereville", "Narnia"), settings=settings, client=client
            )

    assert providers.routes == ["search"]
    assert "Nowhereville,Narnia" in excinfo.value.message
    assert excinfo.value.stage == "resolving_location"
    assert friendly_message(excinfo.value) == LOCATION_NOT_FOUND_MESSAGE


@pytest.mark.asyncio
async def test_private_caller_address_falls_back_to_public_ip_lookup(settings, providers):
    async with providers.client() as client:
        location = await resolve_location(
            UserProfile(), settings=settings, client=client, caller_ip="127.0.0.1"
        )

    assert providers.routes == ["ip", "ip_location"]
    assert providers.last("ip").url.params["format"] == "json"
    assert providers.last("ip_location").url.params["q"] == "203.0.113.7"
    assert location.name == "Springfield"
    assert location.country == "United States of America"


@pytest.mark.asyncio
async def test_public_caller_address_is_looked_up_directly(settings, providers):
    async with providers.client() as client:
        await resolve_location(UserProfile(), settings=settings, client=client, caller_ip="8.8.8.8")

    assert providers.routes == ["ip_location"]
    assert providers.last("ip_location").url.params["q"] == "8.8.8.8"


@pytest.mark.asyncio
async def test_custom_location_ignored_when_toggle_is_off(settings, providers):
    profile = UserProfile(customLocation={"city": "Portland", "country": "US"})

    async with providers.client() as client:
        await resolve_location(profile, settings=settings, client=client)

    assert "search" not in providers.routes


@pytest.mark.asyncio
async def test_ip_lookup_failure_is_an_upstream_error(settings, providers):
    providers.failures["ip"] = 503

    async with providers.client() as client:
        with pytest.raises(UpstreamFetchError) as excinfo:
            await resolve_location(UserProfile(), settings=settings, client=client)

    assert excinfo.value.message.startswith("Error fetching IP address: 503")
    assert excinfo.value.network is False


@pytest.mark.asyncio
async def test_current_weather_is_fetched_by_coordinates(settings, providers):
    location = ResolvedLocation(name="Springfield", lat=39.8, lon=-89.64)

    async with providers.client() as client:
        weather = await fetch_current_weather(location, settings=settings, client=client)

    assert providers.last("weather").url.params["q"] == "39.8,-89.64"
    assert weather.current.temp_c == 22.0
    assert weather.location.region == "Illinois"


@pytest.mark.asyncio
async def test_weather_status_error_is_stage_tagged(settings, providers):
    providers.failures["weather"] = 401

    async with providers.client() as client:
        with pytest.raises(UpstreamFetchError) as excinfo:
            await fetch_current_weather(ResolvedLocation(lat=1, lon=2), settings=settings, client=client)

    assert excinfo.value.message.startswith("Error fetching weather data: 401")
    assert excinfo.value.stage == "fetching_weather"


@pytest.mark.asyncio
async def test_weather_connection_failure_is_a_network_error(settings, providers):
    providers.failures["weather"] = httpx.ConnectError("name resolution failed")

    async with providers.client() as client:
        with pytest.raises(UpstreamFetchError) as excinfo:
            await fetch_current_weather(ResolvedLocation(lat=1, lon=2), settings=settings, client=client)

    assert excinfo.value.network is True
    assert friendly_message(excinfo.value) == NETWORK_ERROR_MESSAGE


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"location": {}}, ["current"], {"current": "sunny"}])
async def test_unexpected_weather_shape_is_rejected(settings, providers, payload):
    providers.weather = payload

    async with providers.client() as client:
        with pytest.raises(UpstreamFetchError, match="unexpected response shape"):
            await fetch_current_weather(ResolvedLocation(lat=1, lon=2), settings=settings, client=client)
