import logging
from typing import Optional

import httpx

from health_guardian.config import Settings
from health_guardian.core.http import request_json
from health_guardian.core.normalizers import normalize_air_quality, normalize_pollen
from health_guardian.errors import UpstreamFetchError
from health_guardian.models.schemas import AirQualitySnapshot, PipelineStage, PollenSnapshot

logger = logging.getLogger(__name__)

AIR_QUALITY_STAGE = PipelineStage.FETCHING_AIR_QUALITY.value
POLLEN_STAGE = PipelineStage.FETCHING_POLLEN.value

AIR_QUALITY_EXTRA_COMPUTATIONS = [
    "DOMINANT_POLLUTANT_CONCENTRATION",
    "POLLUTANT_CONCENTRATION",
    "LOCAL_AQI",
    "POLLUTANT_ADDITIONAL_INFO",
]

MIN_POLLEN_DAYS = 1
MAX_POLLEN_DAYS = 5


def clamp_forecast_days(days: int) -> int:
    return max(MIN_POLLEN_DAYS, min(MAX_POLLEN_DAYS, int(days)))


async def fetch_air_quality(
    lat: float,
    lon: float,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
) -> AirQualitySnapshot:
    """
    Current conditions from the Google Air Quality API: the universal
    index plus the local (national) one, and per-pollutant concentrations.
    """
    body = {
        "location": {"latitude": lat, "longitude": lon},
        "universalAqi": True,
        "extraComputations": AIR_QUALITY_EXTRA_COMPUTATIONS,
        "languageCode": settings.language_code,
    }
    data = await request_json(
        client,
        "POST",
        settings.air_quality_url,
        params={"key": settings.require("google_maps_api_key")},
        json=body,
        timeout=settings.http_timeout,
        stage=AIR_QUALITY_STAGE,
        error_prefix="Error fetching air quality data",
    )
    if not isinstance(data, dict):
        raise UpstreamFetchError(
            "Error fetching air quality data: unexpected response shape",
            stage=AIR_QUALITY_STAGE,
        )
    logger.debug("Air quality API response: %s", data)
    return normalize_air_quality(data)


async def fetch_pollen(
    lat: float,
    lon: float,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
    days: Optional[int] = None,
) -> PollenSnapshot:
    """
    Pollen forecast from the Google Pollen API. Regions without coverage
    come back empty, which is valid (the snapshot reports itself unavailable).
    """
    forecast_days = clamp_forecast_days(settings.pollen_forecast_days if days is None else days)
    data = await request_json(
        client,
        "GET",
        settings.pollen_url,
        params={
            "key": settings.require("google_maps_api_key"),
            "location.latitude": lat,
            "location.longitude": lon,
            "days": forecast_days,
            "languageCode": settings.language_code,
            "plantsDescription": 1,
        },
        timeout=settings.http_timeout,
        stage=POLLEN_STAGE,
        error_prefix="Error fetching pollen data",
    )
    if data is not None and not isinstance(data, dict):
        raise UpstreamFetchError(
            "Error fetching pollen data: unexpected response shape",
            stage=POLLEN_STAGE,
        )
    logger.debug("Pollen API response: %s", data)
    snapshot = normalize_pollen(data)
    if not snapshot.available:
        logger.info("No pollen data for (%s, %s); pollen allergies will be undefined risk", lat, lon)
    return snapshot
