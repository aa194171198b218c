import pytest

from health_guardian.config import Settings
from health_guardian.errors import ConfigurationError

pytestmark = pytest.mark.unit


def test_nothing_missing_with_all_keys(settings):
    assert settings.missing_credentials() == []


def test_missing_credentials_are_listed(settings):
    settings = settings.model_copy(update={"weather_api_key": "", "openai_api_key": "  "})

    assert settings.missing_credentials() == ["weather_api_key", "openai_api_key"]


def test_ollama_backend_needs_no_openai_key():
    settings = Settings(
        _env_file=None,
        weather_api_key="w",
        google_maps_api_key="g",
        openai_api_key="",
        llm_backend="ollama",
    )

    assert settings.missing_credentials() == []


def test_require_returns_stripped_value(settings):
    assert settings.require("weather_api_key") == "weather-test-key"


def test_require_raises_for_blank_value(settings):
    settings = settings.model_copy(update={"google_maps_api_key": ""})

    with pytest.raises(ConfigurationError, match="GOOGLE_MAPS_API_KEY"):
        settings.require("google_maps_api_key")


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("WEATHER_API_KEY", "from-env")
    monkeypatch.setenv("POLLEN_FORECAST_DAYS", "3")
    monkeypatch.setenv("CONCURRENT_ENVIRONMENT_FETCH", "true")

    settings = Settings(_env_file=None)

    assert settings.weather_api_key == "from-env"
    assert settings.pollen_forecast_days == 3
    assert settings.concurrent_environment_fetch is True
