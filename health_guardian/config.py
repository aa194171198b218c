from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from health_guardian.errors import ConfigurationError


class Settings(BaseSettings):
    # Tell Pydantic Settings to load from .env
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # Provider credentials (env names match field names, case-insensitive)
    weather_api_key: str = ""
    google_maps_api_key: str = ""
    openai_api_key: str = ""

    # Recommendation generator
    llm_backend: Literal["openai", "ollama"] = "openai"
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "phi4-mini"

    # Provider endpoints
    weatherapi_base_url: str = "https://api.weatherapi.com/v1"
    ipify_url: str = "https://api.ipify.org"
    air_quality_url: str = "https://airquality.googleapis.com/v1/currentConditions:lookup"
    pollen_url: str = "https://pollen.googleapis.com/v1/forecast:lookup"

    language_code: str = "en"
    pollen_forecast_days: int = Field(1, ge=1, le=5)
    http_timeout: float = 10.0
    llm_timeout: float = 60.0
    concurrent_environment_fetch: bool = False

    frontend_url: str = "http://localhost:5173"
    log_level: str = "INFO"
    max_sessions: int = 1000

    def missing_credentials(self) -> List[str]:
        """
        Names of the credentials the current configuration needs but does
        not have. The Ollama backend runs locally and needs no key.
        """
        required = ["weather_api_key", "google_maps_api_key"]
        if self.llm_backend == "openai":
            required.append("openai_api_key")
        return [name for name in required if not getattr(self, name).strip()]

    def require(self, name: str) -> str:
        value = getattr(self, name, "") or ""
        if not value.strip():
            raise ConfigurationError(f"Missing required configuration: {name.upper()}")
        return value.strip()


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
