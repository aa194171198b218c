"""Shared fixtures: settings with test credentials and a fake set of providers.

``FakeProviders`` answers every outbound call the pipeline makes through an
``httpx.MockTransport``; tests tweak its payloads/failures and inspect
``routes`` to see which providers were contacted, in order.
"""

from __future__ import annotations

import copy
import json
from typing import Any

import httpx
import pytest

from health_guardian.config import Settings


WEATHER_PAYLOAD = {
    "location": {
        "name": "Springfield",
        "region": "Illinois",
        "country": "United States of America",
        "lat": 39.8,
        "lon": -89.64,
        "localtime": "2026-05-02 10:00",
    },
    "current": {
        "temp_c": 22.0,
        "temp_f": 71.6,
        "condition": {"text": "Partly cloudy", "icon": "//cdn.weatherapi.com/116.png"},
        "wind_mph": 8.1,
        "wind_kph": 13.0,
        "wind_dir": "SW",
        "pressure_mb": 1015.0,
        "precip_mm": 0.0,
        "humidity": 40,
        "feelslike_c": 22.0,
        "feelslike_f": 71.6,
        "vis_km": 10.0,
        "uv": 5.0,
        "gust_mph": 11.2,
    },
}

AIR_QUALITY_PAYLOAD = {
    "dateTime": "2026-05-02T15:00:00Z",
    "regionCode": "us",
    "indexes": [
        {
            "code": "uaqi",
            "displayName": "Universal AQI",
            "aqi": 72,
            "aqiDisplay": "72",
            "color": {"red": 0.38, "green": 0.79, "blue": 0.23},
            "category": "Good air quality",
            "dominantPollutant": "o3",
        },
        {
            "code": "usa_epa",
            "displayName": "AQI (US)",
            "aqi": 35,
            "aqiDisplay": "35",
            "category": "Good",
            "dominantPollutant": "pm25",
        },
    ],
    "pollutants": [
        {
            "code": "pm25",
            "displayName": "PM2.5",
            "fullName": "Fine particulate matter (<2.5µm)",
            "concentration": {"value": 8.4, "units": "MICROGRAMS_PER_CUBIC_METER"},
        },
        {
            "code": "o3",
            "displayName": "O3",
            "fullName": "Ozone",
            "concentration": {"value": 31.2, "units": "PARTS_PER_BILLION"},
        },
    ],
    "healthRecommendations": {
        "generalPopulation": "With this level of air quality, you have no limitations.",
    },
}

POLLEN_PAYLOAD = {
    "regionCode": "US",
    "dailyInfo": [
        {
            "date": {"year": 2026, "month": 5, "day": 2},
            "pollenTypeInfo": [
                {
                    "code": "TREE",
                    "displayName": "Tree",
                    "inSeason": True,
                    "indexInfo": {
                        "code": "UPI",
                        "displayName": "Universal Pollen Index",
                        "category": "Medium",
                        "indexDescription": "People with high allergy to pollen are likely to experience symptoms",
                        "color": {"red": 1, "green": 0.8},
                    },
                    "healthRecommendations": [
                        "Keep windows closed during peak pollen hours.",
                    ],
                },
                {
                    "code": "GRASS",
                    "displayName": "Grass",
                    "inSeason": False,
                },
            ],
        }
    ],
}

STRUCTURED_RECOMMENDATIONS = {
    "summary": "Mild spring weather with good air quality and moderate tree pollen.",
    "riskLevel": "moderate",
    "categories": [
        {"name": "UV Protection", "items": ["Wear sunscreen between 10am and 4pm."]},
    ],
    "allergyRecommendations": [
        {
            "allergy": "Pollen",
            "recommendations": ["Shower after spending time outdoors."],
            "riskLevel": "moderate",
        }
    ],
    "conditionRecommendations": [],
}


class FakeProviders:
    """Route-by-host fake for ipify, weatherapi.com, Google and the LLM backend."""

    def __init__(self) -> None:
        self.public_ip = "203.0.113.7"
        self.ip_location: Any = {
            "ip": "203.0.113.7",
            "city": "Springfield",
            "region": "Illinois",
            "country_name": "United States of America",
            "lat": 39.8,
            "lon": -89.64,
        }
        self.search_results: Any = [
            {
                "id": 1,
                "name": "Portland",
                "region": "Oregon",
                "country": "United States of America",
                "lat": 45.52,
                "lon": -122.68,
            }
        ]
        self.weather: Any = copy.deepcopy(WEATHER_PAYLOAD)
        self.air_quality: Any = copy.deepcopy(AIR_QUALITY_PAYLOAD)
        self.pollen: Any = copy.deepcopy(POLLEN_PAYLOAD)
        self.llm_content: Any = json.dumps(STRUCTURED_RECOMMENDATIONS)

        # route name -> HTTP status code, or an exception to raise
        self.failures: dict[str, Any] = {}
        self.requests: list[tuple[str, httpx.Request]] = []

    @property
    def routes(self) -> list[str]:
        return [route for route, _ in self.requests]

    def last(self, route: str) -> httpx.Request:
        return [req for name, req in self.requests if name == route][-1]

    @staticmethod
    def _route(request: httpx.Request) -> str:
        host, path = request.url.host, request.url.path
        if host == "api.ipify.org":
            return "ip"
        if host == "api.weatherapi.com":
            return {
                "/v1/ip.json": "ip_location",
                "/v1/search.json": "search",
                "/v1/current.json": "weather",
            }[path]
        if host == "airquality.googleapis.com":
            return "air_quality"
        if host == "pollen.googleapis.com":
            return "pollen"
        if host in ("api.openai.com", "localhost"):
            return "llm"
        raise AssertionError(f"unexpected request to {request.url}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        route = self._route(request)
        self.requests.append((route, request))

        failure = self.failures.get(route)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return httpx.Response(failure, json={"error": {"message": f"{route} failed"}})

        if route == "ip":
            return httpx.Response(200, json={"ip": self.public_ip})
        if route == "llm":
            if request.url.host == "localhost":
                return httpx.Response(200, json={"message": {"role": "assistant", "content": self.llm_content}})
            return httpx.Response(
                200,
                json={"choices": [{"message": {"role": "assistant", "content": self.llm_content}}]},
            )
        payload = {
            "ip_location": self.ip_location,
            "search": self.search_results,
            "weather": self.weather,
            "air_quality": self.air_quality,
            "pollen": self.pollen,
        }[route]
        return httpx.Response(200, json=payload)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        weather_api_key="weather-test-key",
        google_maps_api_key="google-test-key",
        openai_api_key="openai-test-key",
        llm_backend="openai",
        concurrent_environment_fetch=False,
    )


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def air_quality_payload() -> dict:
    return copy.deepcopy(AIR_QUALITY_PAYLOAD)


@pytest.fixture
def pollen_payload() -> dict:
    return copy.deepcopy(POLLEN_PAYLOAD)


@pytest.fixture
def weather_payload() -> dict:
    return copy.deepcopy(WEATHER_PAYLOAD)
