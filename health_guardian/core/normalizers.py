"""
Decode loosely-shaped provider payloads into the display models.

Each ``normalize_*`` accepts whatever the provider sent (or an already
normalized snapshot, or its ``model_dump(by_alias=True)``) and returns a
snapshot whose ``status``/``missing`` say what is unavailable. None of them
raise on incomplete input, and running one on its own output changes
nothing.
"""

import math
from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel

from health_guardian.models.display import (  # noqa: F401  re-exported for the dashboards
    aqi_category_color,
    pollen_category_color,
    rgb_channels,
    rgb_to_display,
)
from health_guardian.models.schemas import (
    AirQualitySnapshot,
    AqiIndex,
    Concentration,
    CurrentConditions,
    PlantDescription,
    PollenDate,
    PollenDay,
    PollenIndexInfo,
    PollenSnapshot,
    PollenTypeInfo,
    Pollutant,
    ResolvedLocation,
    RgbColor,
    WeatherCondition,
    WeatherSnapshot,
)


LEGACY_AQI_CODE = "aqi"


# -----------------------------
# Coercion helpers
# -----------------------------


def _as_dict(value: Any) -> dict:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _pick(data: dict, *keys: str) -> Any:
    """First non-None value among alternate field names."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    return None if number is None else int(round(number))


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _as_str_list(value: Any) -> List[str]:
    return [s for s in (_as_str(item) for item in _as_list(value)) if s]


def _color_from(value: Any) -> Optional[RgbColor]:
    # Google leaves zero channels out, so an empty dict is still black
    if isinstance(value, BaseModel):
        value = _as_dict(value)
    if not isinstance(value, dict):
        return None
    return RgbColor(
        red=_as_float(value.get("red")),
        green=_as_float(value.get("green")),
        blue=_as_float(value.get("blue")),
    )


# -----------------------------
# Location + weather
# -----------------------------


def normalize_location(payload: Any) -> Optional[ResolvedLocation]:
    """
    Accepts a search match ({name, region, country, lat, lon}) or an
    IP lookup ({city, region, country_name, lat, lon}).
    """
    data = _as_dict(payload)
    lat = _as_float(data.get("lat"))
    lon = _as_float(data.get("lon"))
    if lat is None or lon is None:
        return None
    return ResolvedLocation(
        name=_as_str(_pick(data, "name", "city")),
        region=_as_str(data.get("region")),
        country=_as_str(_pick(data, "country", "country_name")),
        lat=lat,
        lon=lon,
    )


_WEATHER_FLOAT_FIELDS = (
    "temp_c",
    "temp_f",
    "feelslike_c",
    "feelslike_f",
    "humidity",
    "uv",
    "wind_mph",
    "wind_kph",
    "pressure_mb",
    "precip_mm",
    "vis_km",
    "gust_mph",
)


def normalize_weather(
    payload: Any,
    fallback_location: Optional[ResolvedLocation] = None,
) -> WeatherSnapshot:
    data = _as_dict(payload)
    current = _as_dict(data.get("current"))

    condition_data = _as_dict(current.get("condition"))
    condition = None
    if condition_data.get("text") is not None or condition_data.get("icon") is not None:
        condition = WeatherCondition(
            text=_as_str(condition_data.get("text")),
            icon=_as_str(condition_data.get("icon")),
        )

    conditions = CurrentConditions(
        **{name: _as_float(current.get(name)) for name in _WEATHER_FLOAT_FIELDS},
        wind_dir=_as_str(current.get("wind_dir")),
        condition=condition,
        last_updated=_as_str(current.get("last_updated")),
    )

    location = normalize_location(data.get("location")) or fallback_location
    return WeatherSnapshot(location=location, current=conditions)


# -----------------------------
# Air quality
# -----------------------------


def _index_from(value: Any, default_code: Optional[str] = None) -> Optional[AqiIndex]:
    data = _as_dict(value)
    if not data:
        return None

    aqi = _as_int(_pick(data, "aqi", "value"))
    aqi_display = _as_str(_pick(data, "aqiDisplay", "aqi_display"))
    if aqi is None and aqi_display is not None:
        aqi = _as_int(aqi_display)
    category = _as_str(data.get("category"))
    if aqi is None and aqi_display is None and category is None:
        return None

    return AqiIndex(
        code=_as_str(data.get("code")) or default_code,
        display_name=_as_str(_pick(data, "displayName", "display_name")),
        aqi=aqi,
        aqi_display=aqi_display,
        category=category,
        dominant_pollutant=_as_str(_pick(data, "dominantPollutant", "dominant_pollutant")),
        color=_color_from(data.get("color")),
    )


def _legacy_indexes(data: dict) -> List[AqiIndex]:
    """Older payloads: a top-level numeric ``aqi``, or one nested index object."""
    top_level = data.get("aqi")
    if not isinstance(top_level, dict) and _as_int(top_level) is not None:
        index = _index_from(
            {
                "code": data.get("code"),
                "aqi": top_level,
                "category": data.get("category"),
                "dominantPollutant": _pick(data, "dominantPollutant", "dominant_pollutant"),
                "color": data.get("color"),
            },
            default_code=LEGACY_AQI_CODE,
        )
        return [index] if index else []

    nested = _pick(data, "index", "aqiIndex", "aqi")
    if isinstance(nested, dict):
        index = _index_from(nested, default_code=LEGACY_AQI_CODE)
        return [index] if index else []
    return []


def _pollutant_from(value: Any) -> Optional[Pollutant]:
    data = _as_dict(value)
    code = _as_str(data.get("code"))
    display_name = _as_str(_pick(data, "displayName", "display_name"))
    full_name = _as_str(_pick(data, "fullName", "full_name"))
    if code is None and display_name is None and full_name is None:
        return None

    conc = _as_dict(data.get("concentration"))
    value_ = _as_float(_pick(conc, "value")) if conc else _as_float(data.get("value"))
    units = _as_str(_pick(conc, "units")) if conc else _as_str(data.get("units"))
    concentration = None
    if value_ is not None or units is not None:
        concentration = Concentration(value=value_, units=units)

    return Pollutant(
        code=code,
        display_name=display_name,
        full_name=full_name,
        concentration=concentration,
    )


def normalize_air_quality(payload: Any) -> AirQualitySnapshot:
    data = _as_dict(payload)

    indexes = [i for i in (_index_from(item) for item in _as_list(data.get("indexes"))) if i]
    if not indexes:
        indexes = _legacy_indexes(data)

    pollutants = [p for p in (_pollutant_from(item) for item in _as_list(data.get("pollutants"))) if p]

    recommendations = {}
    for group, text in _as_dict(_pick(data, "healthRecommendations", "health_recommendations")).items():
        text = _as_str(text)
        if text:
            recommendations[str(group)] = text

    return AirQualitySnapshot(
        indexes=indexes,
        pollutants=pollutants,
        health_recommendations=recommendations,
        region_code=_as_str(_pick(data, "regionCode", "region_code")),
        date_time=_as_str(_pick(data, "dateTime", "date_time")),
    )


# -----------------------------
# Pollen
# -----------------------------


def _date_from(value: Any) -> Optional[PollenDate]:
    if isinstance(value, str):
        try:
            parsed = date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
        return PollenDate(year=parsed.year, month=parsed.month, day=parsed.day)
    data = _as_dict(value)
    year, month, day = (_as_int(data.get(k)) for k in ("year", "month", "day"))
    if year is None and month is None and day is None:
        return None
    return PollenDate(year=year, month=month, day=day)


def _index_info_from(value: Any) -> Optional[PollenIndexInfo]:
    data = _as_dict(value)
    if not data:
        return None
    return PollenIndexInfo(
        code=_as_str(data.get("code")),
        display_name=_as_str(_pick(data, "displayName", "display_name")),
        value=_as_int(data.get("value")),
        category=_as_str(data.get("category")),
        index_description=_as_str(_pick(data, "indexDescription", "index_description")),
        color=_color_from(data.get("color")),
    )


def _plant_description_from(value: Any) -> Optional[PlantDescription]:
    data = _as_dict(value)
    if not data:
        return None
    return PlantDescription(
        type=_as_str(data.get("type")),
        family=_as_str(data.get("family")),
        season=_as_str(data.get("season")),
        cross_reaction=_as_str(_pick(data, "crossReaction", "cross_reaction")),
    )


def _pollen_type_from(value: Any) -> Optional[PollenTypeInfo]:
    data = _as_dict(value)
    code = _as_str(data.get("code"))
    display_name = _as_str(_pick(data, "displayName", "display_name"))
    if code is None and display_name is None:
        return None
    return PollenTypeInfo(
        code=code,
        display_name=display_name,
        in_season=_as_bool(_pick(data, "inSeason", "in_season")),
        index_info=_index_info_from(_pick(data, "indexInfo", "index_info")),
        health_recommendations=_as_str_list(
            _pick(data, "healthRecommendations", "health_recommendations")
        ),
        plant_description=_plant_description_from(
            _pick(data, "plantDescription", "plant_description")
        ),
    )


def _pollen_day_from(value: Any) -> Optional[PollenDay]:
    if not isinstance(value, (dict, BaseModel)):
        return None
    data = _as_dict(value)
    types = _as_list(_pick(data, "pollenTypeInfo", "pollen_type_info"))
    plants = _as_list(_pick(data, "plantInfo", "plant_info"))
    return PollenDay(
        date=_date_from(data.get("date")),
        pollen_type_info=[t for t in (_pollen_type_from(item) for item in types) if t],
        plant_info=[p for p in (_pollen_type_from(item) for item in plants) if p],
    )


def normalize_pollen(payload: Any) -> PollenSnapshot:
    data = _as_dict(payload)
    days = _as_list(_pick(data, "dailyInfo", "daily_info"))
    return PollenSnapshot(
        region_code=_as_str(_pick(data, "regionCode", "region_code")),
        daily_info=[d for d in (_pollen_day_from(item) for item in days) if d],
    )
