"""
Error taxonomy for the analysis pipeline.

Every stage raises one of these with a stage-tagged, human-readable message.
The API layer turns them into the JSON error envelope and picks one of a
small set of friendly strings for the form to show.
"""

from typing import Optional

import httpx


LOCATION_NOT_FOUND_MESSAGE = (
    "We couldn't find that location. Please check the city, state, and country names."
)
NETWORK_ERROR_MESSAGE = (
    "Network error while contacting a data provider. Please check your connection and try again."
)
MISSING_CREDENTIALS_MESSAGE = (
    "The service is missing API credentials. Please contact the administrator."
)
GENERIC_FETCH_MESSAGE = (
    "We couldn't fetch your environmental health data right now. Please try again later."
)


class HealthGuardianError(Exception):
    code = "HEALTH_GUARDIAN_ERROR"
    status_code = 500

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        return self.message


class ConfigurationError(HealthGuardianError):
    """A required credential or setting is missing. Not retryable."""

    code = "CONFIGURATION_ERROR"
    status_code = 500


class LocationNotFound(HealthGuardianError):
    """The custom-location query matched nothing."""

    code = "LOCATION_NOT_FOUND"
    status_code = 404


class UpstreamFetchError(HealthGuardianError):
    """A weather, air-quality or pollen provider failed or sent an unexpected shape."""

    code = "UPSTREAM_FETCH_ERROR"
    status_code = 502

    def __init__(self, message: str, *, stage: Optional[str] = None, network: bool = False):
        super().__init__(message, stage=stage)
        self.network = network


class GenerationError(HealthGuardianError):
    """The recommendation generator failed and returned no usable text."""

    code = "GENERATION_ERROR"
    status_code = 502

    def __init__(self, message: str, *, stage: Optional[str] = None, network: bool = False):
        super().__init__(message, stage=stage)
        self.network = network


def upstream_error(prefix: str, exc: httpx.HTTPError, *, stage: str) -> UpstreamFetchError:
    """
    Wrap an httpx failure with a stage-tagged message, e.g.
    "Error fetching weather data: 401 {...}".
    """
    if isinstance(exc, httpx.HTTPStatusError):
        detail = f"{exc.response.status_code} {exc.response.text}"
    else:
        detail = str(exc) or exc.__class__.__name__
    return UpstreamFetchError(
        f"{prefix}: {detail}",
        stage=stage,
        network=isinstance(exc, httpx.TransportError),
    )


def friendly_message(exc: Exception) -> str:
    """Translate a raised error into the message the form displays."""
    if isinstance(exc, LocationNotFound):
        return LOCATION_NOT_FOUND_MESSAGE
    if isinstance(exc, ConfigurationError):
        return MISSING_CREDENTIALS_MESSAGE
    if getattr(exc, "network", False) or isinstance(exc, httpx.TransportError):
        return NETWORK_ERROR_MESSAGE
    return GENERIC_FETCH_MESSAGE
