from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from health_guardian.models.display import (
    aqi_category_color,
    pollen_category_color,
    rgb_to_display,
    unit_label,
)


UNIVERSAL_AQI_CODE = "uaqi"


class CamelModel(BaseModel):
    # Google payloads and the frontend both speak camelCase
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"
    UNDEFINED = "undefined"

    @classmethod
    def coerce(cls, value: Any) -> "RiskLevel":
        """Map free text from the generator onto the closed vocabulary."""
        if isinstance(value, RiskLevel):
            return value
        text = str(value or "").lower().replace("_", " ").replace("-", " ")
        text = " ".join(text.split())
        return _RISK_SYNONYMS.get(text, cls.UNDEFINED)


_RISK_SYNONYMS = {
    "none": RiskLevel.LOW,
    "minimal": RiskLevel.LOW,
    "very low": RiskLevel.LOW,
    "low": RiskLevel.LOW,
    "low risk": RiskLevel.LOW,
    "medium": RiskLevel.MODERATE,
    "moderate": RiskLevel.MODERATE,
    "medium risk": RiskLevel.MODERATE,
    "moderate risk": RiskLevel.MODERATE,
    "high": RiskLevel.HIGH,
    "elevated": RiskLevel.HIGH,
    "high risk": RiskLevel.HIGH,
    "very high": RiskLevel.VERY_HIGH,
    "severe": RiskLevel.VERY_HIGH,
    "extreme": RiskLevel.VERY_HIGH,
    "very high risk": RiskLevel.VERY_HIGH,
}


class DataStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"


def _status_for(missing: List[str], total: int) -> DataStatus:
    if not missing:
        return DataStatus.OK
    if len(missing) >= total:
        return DataStatus.UNAVAILABLE
    return DataStatus.PARTIAL


class PipelineStage(str, Enum):
    IDLE = "idle"
    RESOLVING_LOCATION = "resolving_location"
    FETCHING_WEATHER = "fetching_weather"
    FETCHING_AIR_QUALITY = "fetching_air_quality"
    FETCHING_POLLEN = "fetching_pollen"
    GENERATING_RECOMMENDATION = "generating_recommendation"
    DONE = "done"
    FAILED = "failed"


# ---------- User profile ----------


class CustomLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str = ""
    state: Optional[str] = None
    country: str = ""

    @field_validator("city", "country", mode="before")
    @classmethod
    def _strip_required(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("state", mode="before")
    @classmethod
    def _strip_optional(cls, v):
        if v is None:
            return None
        return str(v).strip() or None

    @property
    def query(self) -> str:
        return ",".join(part for part in (self.city, self.state, self.country) if part)


class UserProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    age: int = Field(0, ge=0)
    gender: str = "unknown"
    allergies: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)
    use_custom_location: bool = Field(False, alias="useCustomLocation")
    custom_location: Optional[CustomLocation] = Field(None, alias="customLocation")

    @field_validator("age", mode="before")
    @classmethod
    def _blank_age_is_zero(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v

    @field_validator("gender", mode="before")
    @classmethod
    def _default_gender(cls, v):
        text = "" if v is None else str(v).strip()
        return text or "unknown"

    @field_validator("allergies", "conditions", mode="before")
    @classmethod
    def _drop_empty_entries(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple)):
            return v
        return [str(item).strip() for item in v if item is not None and str(item).strip()]

    @model_validator(mode="after")
    def _check_custom_location(self):
        if self.use_custom_location:
            loc = self.custom_location
            if loc is None or not loc.city:
                raise ValueError("customLocation.city is required when useCustomLocation is true")
            if not loc.country:
                raise ValueError("customLocation.country is required when useCustomLocation is true")
        return self

    @property
    def requested_location(self) -> Optional[CustomLocation]:
        return self.custom_location if self.use_custom_location else None


# ---------- Location + weather (weatherapi.com field names) ----------


class ResolvedLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    lat: float
    lon: float

    @computed_field
    @property
    def display_name(self) -> str:
        parts = [p for p in (self.name, self.region, self.country) if p]
        return ", ".join(parts) if parts else f"{self.lat}, {self.lon}"


class WeatherCondition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None
    icon: Optional[str] = None


class CurrentConditions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    temp_c: Optional[float] = None
    temp_f: Optional[float] = None
    feelslike_c: Optional[float] = None
    feelslike_f: Optional[float] = None
    humidity: Optional[float] = None
    uv: Optional[float] = None
    wind_mph: Optional[float] = None
    wind_kph: Optional[float] = None
    wind_dir: Optional[str] = None
    pressure_mb: Optional[float] = None
    precip_mm: Optional[float] = None
    vis_km: Optional[float] = None
    gust_mph: Optional[float] = None
    condition: Optional[WeatherCondition] = None
    last_updated: Optional[str] = None


WEATHER_CORE_FIELDS = (
    "temp_c",
    "temp_f",
    "feelslike_c",
    "feelslike_f",
    "humidity",
    "uv",
    "wind_mph",
    "wind_dir",
)


class WeatherSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    location: Optional[ResolvedLocation] = None
    current: CurrentConditions = Field(default_factory=CurrentConditions)

    @computed_field
    @property
    def missing(self) -> List[str]:
        gaps = [name for name in WEATHER_CORE_FIELDS if getattr(self.current, name) is None]
        if self.current.condition is None or not self.current.condition.text:
            gaps.append("condition")
        return gaps

    @computed_field
    @property
    def status(self) -> DataStatus:
        return _status_for(self.missing, len(WEATHER_CORE_FIELDS) + 1)


# ---------- Air quality (Google Air Quality API shape) ----------


class RgbColor(CamelModel):
    red: Optional[float] = None
    green: Optional[float] = None
    blue: Optional[float] = None


class AqiIndex(CamelModel):
    code: Optional[str] = None
    display_name: Optional[str] = None
    aqi: Optional[int] = None
    aqi_display: Optional[str] = None
    category: Optional[str] = None
    dominant_pollutant: Optional[str] = None
    color: Optional[RgbColor] = None

    @computed_field(alias="displayColor")
    @property
    def display_color(self) -> str:
        if self.color is not None:
            return rgb_to_display(self.color)
        return aqi_category_color(self.category)

    @property
    def value_label(self) -> str:
        if self.aqi is not None:
            return str(self.aqi)
        return self.aqi_display or "N/A"


class Concentration(CamelModel):
    value: Optional[float] = None
    units: Optional[str] = None


class Pollutant(CamelModel):
    code: Optional[str] = None
    display_name: Optional[str] = None
    full_name: Optional[str] = None
    concentration: Optional[Concentration] = None

    @computed_field
    @property
    def label(self) -> str:
        return self.full_name or self.display_name or self.code or ""

    @computed_field(alias="displayUnits")
    @property
    def display_units(self) -> str:
        return unit_label(self.concentration.units if self.concentration else None)


class AirQualitySnapshot(CamelModel):
    indexes: List[AqiIndex] = Field(default_factory=list)
    pollutants: List[Pollutant] = Field(default_factory=list)
    health_recommendations: Dict[str, str] = Field(default_factory=dict)
    region_code: Optional[str] = None
    date_time: Optional[str] = None

    @computed_field(alias="primaryIndex")
    @property
    def primary_index(self) -> Optional[AqiIndex]:
        """National/local standard first, the universal index as fallback."""
        for index in self.indexes:
            if index.code != UNIVERSAL_AQI_CODE:
                return index
        for index in self.indexes:
            if index.code == UNIVERSAL_AQI_CODE:
                return index
        return None

    @computed_field(alias="aqiAvailable")
    @property
    def aqi_available(self) -> bool:
        primary = self.primary_index
        return primary is not None and (primary.aqi is not None or bool(primary.aqi_display))

    @computed_field
    @property
    def missing(self) -> List[str]:
        gaps = []
        if not self.aqi_available:
            gaps.append("aqi")
        if not self.pollutants:
            gaps.append("pollutants")
        return gaps

    @computed_field
    @property
    def status(self) -> DataStatus:
        return _status_for(self.missing, 2)


# ---------- Pollen (Google Pollen API shape) ----------


class PollenIndexInfo(CamelModel):
    code: Optional[str] = None
    display_name: Optional[str] = None
    value: Optional[int] = None
    category: Optional[str] = None
    index_description: Optional[str] = None
    color: Optional[RgbColor] = None

    @computed_field(alias="displayColor")
    @property
    def display_color(self) -> str:
        if self.color is not None:
            return rgb_to_display(self.color)
        return pollen_category_color(self.category)


class PlantDescription(CamelModel):
    type: Optional[str] = None
    family: Optional[str] = None
    season: Optional[str] = None
    cross_reaction: Optional[str] = None


class PollenTypeInfo(CamelModel):
    code: Optional[str] = None
    display_name: Optional[str] = None
    in_season: bool = False
    index_info: Optional[PollenIndexInfo] = None
    health_recommendations: List[str] = Field(default_factory=list)
    plant_description: Optional[PlantDescription] = None

    @computed_field
    @property
    def label(self) -> str:
        return self.display_name or self.code or "Unknown"


class PollenDate(CamelModel):
    year: Optional[int] = None
    month: Optional[int] = None
    day: Optional[int] = None

    @computed_field
    @property
    def iso(self) -> Optional[str]:
        if self.year is None or self.month is None or self.day is None:
            return None
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


class PollenDay(CamelModel):
    date: Optional[PollenDate] = None
    pollen_type_info: List[PollenTypeInfo] = Field(default_factory=list)
    plant_info: List[PollenTypeInfo] = Field(default_factory=list)


class PollenSnapshot(CamelModel):
    region_code: Optional[str] = None
    daily_info: List[PollenDay] = Field(default_factory=list)

    @property
    def today(self) -> Optional[PollenDay]:
        return self.daily_info[0] if self.daily_info else None

    @computed_field
    @property
    def available(self) -> bool:
        today = self.today
        return today is not None and bool(today.pollen_type_info)

    @computed_field
    @property
    def missing(self) -> List[str]:
        if not self.daily_info:
            return ["dailyInfo"]
        if not self.daily_info[0].pollen_type_info:
            return ["pollenTypeInfo"]
        return []

    @computed_field
    @property
    def status(self) -> DataStatus:
        if not self.daily_info:
            return DataStatus.UNAVAILABLE
        return _status_for(self.missing, 2)


# ---------- Recommendations ----------


class RecommendationCategory(CamelModel):
    name: str = ""
    items: List[str] = Field(default_factory=list)


class AllergyRecommendation(CamelModel):
    allergy: str
    recommendations: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.UNDEFINED

    @field_validator("risk_level", mode="before")
    @classmethod
    def _coerce_risk(cls, v):
        return RiskLevel.coerce(v)


class ConditionRecommendation(CamelModel):
    condition: str
    recommendations: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.UNDEFINED

    @field_validator("risk_level", mode="before")
    @classmethod
    def _coerce_risk(cls, v):
        return RiskLevel.coerce(v)


class RecommendationResult(CamelModel):
    recommendations: str = ""
    structured: bool = False
    risk_level: Optional[RiskLevel] = None
    summary: Optional[str] = None
    categories: List[RecommendationCategory] = Field(default_factory=list)
    allergy_recommendations: List[AllergyRecommendation] = Field(default_factory=list)
    condition_recommendations: List[ConditionRecommendation] = Field(default_factory=list)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _coerce_overall_risk(cls, v):
        if v is None or v == "":
            return None
        return RiskLevel.coerce(v)

    def allergy(self, name: str) -> Optional[AllergyRecommendation]:
        key = name.strip().lower()
        for item in self.allergy_recommendations:
            if item.allergy.strip().lower() == key:
                return item
        return None

    def condition(self, name: str) -> Optional[ConditionRecommendation]:
        key = name.strip().lower()
        for item in self.condition_recommendations:
            if item.condition.strip().lower() == key:
                return item
        return None


# ---------- Errors + API envelopes ----------


class ErrorInfo(CamelModel):
    message: str
    code: str
    stage: Optional[str] = None
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorInfo


HEALTH_DISCLAIMER = (
    "Not Medical Advice: The information provided by Environment Health Guardian is for "
    "informational and educational purposes only and is not intended to be a substitute for "
    "professional medical advice, diagnosis, or treatment. Always seek the advice of your "
    "physician or other qualified healthcare provider with any questions you may have regarding "
    "a medical condition or health objectives, especially before making any changes to your "
    "treatment or lifestyle."
)


class AnalysisResult(CamelModel):
    submission_id: int
    location: ResolvedLocation
    weather: WeatherSnapshot
    air_quality: AirQualitySnapshot
    pollen: PollenSnapshot
    recommendations: RecommendationResult
    stages: List[PipelineStage] = Field(default_factory=list)
    disclaimer: str = HEALTH_DISCLAIMER


class AnalysisResponse(AnalysisResult):
    superseded: bool = False


class SessionState(CamelModel):
    session_id: str
    submission_id: int
    stage: PipelineStage
    stage_label: Optional[str] = None
    loading: bool
    result: Optional[AnalysisResult] = None
    error: Optional[ErrorInfo] = None
