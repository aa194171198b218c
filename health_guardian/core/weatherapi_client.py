import ipaddress
import logging
from typing import Optional

import httpx

from health_guardian.config import Settings
from health_guardian.core.http import request_json
from health_guardian.core.normalizers import normalize_location, normalize_weather
from health_guardian.errors import LocationNotFound, UpstreamFetchError
from health_guardian.models.schemas import (
    CustomLocation,
    PipelineStage,
    ResolvedLocation,
    UserProfile,
    WeatherSnapshot,
)

logger = logging.getLogger(__name__)

LOCATION_STAGE = PipelineStage.RESOLVING_LOCATION.value
WEATHER_STAGE = PipelineStage.FETCHING_WEATHER.value


def is_public_ip(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        return ipaddress.ip_address(value.strip()).is_global
    except ValueError:
        return False


async def get_public_ip(*, settings: Settings, client: httpx.AsyncClient) -> str:
    """Ask ipify which public address our requests come from."""
    data = await request_json(
        client,
        "GET",
        settings.ipify_url,
        params={"format": "json"},
        timeout=settings.http_timeout,
        stage=LOCATION_STAGE,
        error_prefix="Error fetching IP address",
    )
    ip = data.get("ip") if isinstance(data, dict) else None
    if not ip:
        raise UpstreamFetchError(
            "Error fetching IP address: response had no 'ip' field",
            stage=LOCATION_STAGE,
        )
    return str(ip)


async def search_location(
    custom: CustomLocation,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
) -> ResolvedLocation:
    """
    Forward-geocode a typed-in location and take the best (first) match.

    Accepts queries like:
    - "London,UK"
    - "Portland,OR,US"
    """
    query = custom.query
    data = await request_json(
        client,
        "GET",
        f"{settings.weatherapi_base_url}/search.json",
        params={"key": settings.require("weather_api_key"), "q": query},
        timeout=settings.http_timeout,
        stage=LOCATION_STAGE,
        error_prefix="Error fetching location data",
    )

    if data is not None and not isinstance(data, list):
        raise UpstreamFetchError(
            "Error fetching location data: unexpected response shape",
            stage=LOCATION_STAGE,
        )
    if not data:
        raise LocationNotFound(
            f"Location not found for query '{query}'. "
            "Please check the city, state, and country names.",
            stage=LOCATION_STAGE,
        )

    location = normalize_location(data[0])
    if location is None:
        raise UpstreamFetchError(
            "Error fetching location data: best match had no coordinates",
            stage=LOCATION_STAGE,
        )
    logger.info("Resolved '%s' to %s (%s, %s)", query, location.display_name, location.lat, location.lon)
    return location


async def lookup_ip_location(
    ip: str,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
) -> ResolvedLocation:
    data = await request_json(
        client,
        "GET",
        f"{settings.weatherapi_base_url}/ip.json",
        params={"key": settings.require("weather_api_key"), "q": ip},
        timeout=settings.http_timeout,
        stage=LOCATION_STAGE,
        error_prefix="Error fetching location data",
    )
    location = normalize_location(data)
    if location is None:
        raise UpstreamFetchError(
            "Error fetching location data: IP lookup returned no coordinates",
            stage=LOCATION_STAGE,
        )
    return location


async def resolve_location(
    profile: UserProfile,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
    caller_ip: Optional[str] = None,
) -> ResolvedLocation:
    """
    Custom location -> one geocoding call.
    Otherwise -> IP-to-location lookup, preceded by a public-IP lookup when
    the caller's own address is missing or not routable (local dev, proxies).
    """
    custom = profile.requested_location
    if custom is not None:
        return await search_location(custom, settings=settings, client=client)

    ip = caller_ip if is_public_ip(caller_ip) else None
    if ip is None:
        ip = await get_public_ip(settings=settings, client=client)
    return await lookup_ip_location(ip, settings=settings, client=client)


async def fetch_current_weather(
    location: ResolvedLocation,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
) -> WeatherSnapshot:
    """Current conditions at the already-resolved coordinates."""
    data = await request_json(
        client,
        "GET",
        f"{settings.weatherapi_base_url}/current.json",
        params={
            "key": settings.require("weather_api_key"),
            "q": f"{location.lat},{location.lon}",
        },
        timeout=settings.http_timeout,
        stage=WEATHER_STAGE,
        error_prefix="Error fetching weather data",
    )
    if not isinstance(data, dict) or not isinstance(data.get("current"), dict):
        raise UpstreamFetchError(
            "Error fetching weather data: unexpected response shape",
            stage=WEATHER_STAGE,
        )
    logger.debug("Weather API response: %s", data)
    return normalize_weather(data, fallback_location=location)
