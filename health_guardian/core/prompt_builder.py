"""
Prompt construction for the recommendation generator.

The ``*_context`` helpers flatten each normalized snapshot into the small
view the model sees, with "N/A"/"Unknown" standing in for gaps.
"""

import json
from typing import Any, Dict, List

from health_guardian.models.schemas import (
    AirQualitySnapshot,
    PollenSnapshot,
    UserProfile,
    WeatherSnapshot,
)


def _fmt(value: Any, default: str = "N/A") -> str:
    if value is None or value == "":
        return default
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def profile_context(profile: UserProfile) -> Dict[str, Any]:
    return {
        "age": profile.age,
        "gender": profile.gender,
        "allergies": list(profile.allergies),
        "conditions": list(profile.conditions),
    }


def weather_context(weather: WeatherSnapshot) -> Dict[str, Any]:
    current = weather.current
    return {
        "location": weather.location.display_name if weather.location else "Unknown",
        "temperature": {"celsius": _fmt(current.temp_c), "fahrenheit": _fmt(current.temp_f)},
        "condition": _fmt(current.condition.text if current.condition else None, "Unknown"),
        "humidity": _fmt(current.humidity),
        "uvIndex": _fmt(current.uv),
        "wind": {"speed": _fmt(current.wind_mph), "direction": _fmt(current.wind_dir)},
        "feelsLike": {"celsius": _fmt(current.feelslike_c), "fahrenheit": _fmt(current.feelslike_f)},
    }


def air_quality_context(air: AirQualitySnapshot) -> Dict[str, Any]:
    primary = air.primary_index
    return {
        "aqi": primary.value_label if primary else "N/A",
        "standard": _fmt(primary.display_name or primary.code if primary else None),
        "category": _fmt(primary.category if primary else None),
        "dominantPollutant": _fmt(primary.dominant_pollutant if primary else None),
        "pollutants": [
            {
                "name": p.label,
                "value": _fmt(p.concentration.value if p.concentration else None),
                "units": p.display_units,
            }
            for p in air.pollutants
        ],
    }


def pollen_context(pollen: PollenSnapshot) -> Dict[str, Any]:
    today = pollen.today
    types: List[Dict[str, Any]] = []
    if pollen.available:
        for t in today.pollen_type_info:
            entry: Dict[str, Any] = {
                "name": t.label,
                "inSeason": t.in_season,
                "index": _fmt(t.index_info.value if t.index_info else None),
                "category": _fmt(t.index_info.category if t.index_info else None, "Unknown"),
            }
            if t.health_recommendations:
                entry["recommendations"] = list(t.health_recommendations)
            types.append(entry)
    return {
        "region": pollen.region_code or "Unknown",
        "date": (today.date.iso if today and today.date else None) or "Unknown",
        "pollenTypes": types,
        "dataAvailable": pollen.available,
    }


def _pollen_section(ctx: Dict[str, Any]) -> str:
    if not ctx["dataAvailable"]:
        return "- Pollen data is unavailable for this location"
    lines = [
        f"- Region: {ctx['region']}",
        f"- Date: {ctx['date']}",
        "- Pollen Types:",
    ]
    for p in ctx["pollenTypes"]:
        line = f"  * {p['name']}: {p['category']} ({p['index']})"
        if p["inSeason"]:
            line += " - In Season"
        if p.get("recommendations"):
            line += f"\n    Recommendations: {', '.join(p['recommendations'])}"
        lines.append(line)
    return "\n".join(lines)


def build_analysis_prompt(
    profile: UserProfile,
    weather: WeatherSnapshot,
    air: AirQualitySnapshot,
    pollen: PollenSnapshot,
) -> str:
    who = profile_context(profile)
    w = weather_context(weather)
    aq = air_quality_context(air)
    pl = pollen_context(pollen)

    pollutant_lines = "\n".join(
        f"  * {p['name']}: {p['value']} {p['units']}".rstrip() for p in aq["pollutants"]
    ) or "  * No pollutant data available"

    return f"""Based on the environmental data and user profile, create a concise health recommendation report.

USER PROFILE:
- Age: {who['age']}
- Gender: {who['gender']}
- Allergies: {json.dumps(who['allergies'])}
- Medical Conditions: {json.dumps(who['conditions'])}

CURRENT WEATHER:
- Location: {w['location']}
- Temperature: {w['temperature']['celsius']}°C / {w['temperature']['fahrenheit']}°F
- Condition: {w['condition']}
- Humidity: {w['humidity']}%
- UV Index: {w['uvIndex']}
- Wind: {w['wind']['speed']} mph ({w['wind']['direction']})
- Feels Like: {w['feelsLike']['celsius']}°C / {w['feelsLike']['fahrenheit']}°F

AIR QUALITY:
- Air Quality Index (AQI): {aq['aqi']} ({aq['standard']})
- Category: {aq['category']}
- Dominant Pollutant: {aq['dominantPollutant']}
- Pollutant Levels:
{pollutant_lines}

POLLEN:
{_pollen_section(pl)}

FOCUS AREAS:
1. Start with a brief, one-sentence acknowledgment of the user's allergies and conditions.
2. Provide a very brief environmental summary (1-2 sentences only).
3. For each of the user's allergies and conditions, create a separate section classified with
   exactly one risk level from: low, moderate, high, very_high, undefined.
   Use "undefined" only when the data needed to judge that risk is unavailable.
4. For pollen allergies specifically:
   - If pollen data is unavailable, mark them as "undefined" risk.
   - Explain that pollen data is unavailable for the location, but provide general advice.
5. For each risk assessment, provide brief, concrete mitigation actions.
6. Avoid repeating information.

Remember that the primary value is in specific, personalized recommendations for managing
the user's allergies and conditions in the current environmental context, based on the
available weather, air quality, and pollen data provided."""
