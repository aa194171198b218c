"""
The per-submission analysis pipeline.

    idle -> resolving_location -> fetching_weather -> fetching_air_quality
         -> fetching_pollen -> generating_recommendation -> done

Any stage can end in ``failed``; there are no retries, a new submission
starts a new pipeline.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

import httpx

from health_guardian.config import Settings
from health_guardian.core.google_env_client import fetch_air_quality, fetch_pollen
from health_guardian.core.llm_client import generate_recommendations
from health_guardian.core.prompt_builder import build_analysis_prompt
from health_guardian.core.risk_engine import reconcile_recommendations
from health_guardian.core.weatherapi_client import fetch_current_weather, resolve_location
from health_guardian.errors import ConfigurationError, HealthGuardianError
from health_guardian.models.schemas import (
    AirQualitySnapshot,
    AnalysisResult,
    PipelineStage,
    PollenSnapshot,
    UserProfile,
)

logger = logging.getLogger(__name__)

StageCallback = Callable[[PipelineStage], None]


class EnvironmentPipeline:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        *,
        submission_id: int = 0,
        caller_ip: Optional[str] = None,
        on_stage: Optional[StageCallback] = None,
    ):
        self.settings = settings
        self.client = client
        self.submission_id = submission_id
        self.caller_ip = caller_ip
        self.on_stage = on_stage

        self.stage = PipelineStage.IDLE
        self.history: List[PipelineStage] = [PipelineStage.IDLE]
        self.failure: Optional[Exception] = None

    def _enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.history.append(stage)
        logger.info("Submission %s: %s", self.submission_id, stage.value)
        if self.on_stage is not None:
            self.on_stage(stage)

    def _check_configuration(self) -> None:
        missing = self.settings.missing_credentials()
        if missing:
            raise ConfigurationError(
                "Missing required configuration: " + ", ".join(name.upper() for name in missing),
                stage=self.stage.value,
            )

    async def run(self, profile: UserProfile) -> AnalysisResult:
        if self.stage is not PipelineStage.IDLE:
            raise RuntimeError("A pipeline runs once; start a new submission instead")
        try:
            return await self._run(profile)
        except Exception as exc:
            if isinstance(exc, HealthGuardianError) and exc.stage is None:
                exc.stage = self.stage.value
            self.failure = exc
            logger.warning(
                "Submission %s failed during %s: %s",
                self.submission_id,
                self.stage.value,
                exc,
            )
            self._enter(PipelineStage.FAILED)
            raise

    async def _gather_environment(
        self, lat: float, lon: float
    ) -> Tuple[AirQualitySnapshot, PollenSnapshot]:
        """Air quality and pollen side by side; the first failure cancels the other fetch."""
        tasks = [
            asyncio.ensure_future(
                fetch_air_quality(lat, lon, settings=self.settings, client=self.client)
            ),
            asyncio.ensure_future(
                fetch_pollen(lat, lon, settings=self.settings, client=self.client)
            ),
        ]
        try:
            air, pollen = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # retrieve whatever the cancelled sibling ended with
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return air, pollen

    async def _run(self, profile: UserProfile) -> AnalysisResult:
        settings, client = self.settings, self.client
        self._check_configuration()

        self._enter(PipelineStage.RESOLVING_LOCATION)
        location = await resolve_location(
            profile, settings=settings, client=client, caller_ip=self.caller_ip
        )

        self._enter(PipelineStage.FETCHING_WEATHER)
        weather = await fetch_current_weather(location, settings=settings, client=client)

        # Everything downstream uses the weather provider's coordinates
        coords = weather.location or location
        lat, lon = coords.lat, coords.lon

        if settings.concurrent_environment_fetch:
            self._enter(PipelineStage.FETCHING_AIR_QUALITY)
            self._enter(PipelineStage.FETCHING_POLLEN)
            air, pollen = await self._gather_environment(lat, lon)
        else:
            self._enter(PipelineStage.FETCHING_AIR_QUALITY)
            air = await fetch_air_quality(lat, lon, settings=settings, client=client)
            self._enter(PipelineStage.FETCHING_POLLEN)
            pollen = await fetch_pollen(lat, lon, settings=settings, client=client)

        self._enter(PipelineStage.GENERATING_RECOMMENDATION)
        prompt = build_analysis_prompt(profile, weather, air, pollen)
        logger.debug("Recommendation prompt for submission %s:\n%s", self.submission_id, prompt)
        recommendations = await generate_recommendations(prompt, settings=settings, client=client)
        recommendations = reconcile_recommendations(recommendations, profile, pollen, air)

        self._enter(PipelineStage.DONE)
        return AnalysisResult(
            submission_id=self.submission_id,
            location=coords,
            weather=weather,
            air_quality=air,
            pollen=pollen,
            recommendations=recommendations,
            stages=list(self.history),
        )
