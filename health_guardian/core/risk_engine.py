import re
from typing import List, Optional

from health_guardian.core.report import format_recommendations_markdown
from health_guardian.models.schemas import (
    UNIVERSAL_AQI_CODE,
    AirQualitySnapshot,
    AllergyRecommendation,
    ConditionRecommendation,
    PollenSnapshot,
    PollenTypeInfo,
    RecommendationResult,
    RiskLevel,
    UserProfile,
)


# Phrases that always mean an airborne pollen allergy
POLLEN_PHRASES = ["pollen", "hay fever", "hayfever", "seasonal allerg", "ragweed"]
# Pollen-producing plants; matched as whole words and only when no food word is present
POLLEN_PLANTS = {
    "tree",
    "trees",
    "grass",
    "grasses",
    "weed",
    "weeds",
    "birch",
    "oak",
    "alder",
    "olive",
    "mugwort",
    "cedar",
}
FOOD_WORDS = {"nut", "nuts", "oil", "oils", "fruit", "fruits", "food", "foods", "seed", "seeds"}

RESP_KEYWORDS = ["asthma", "copd", "bronchitis", "respiratory", "emphysema", "lung"]

# Universal Pollen Index category names -> 0–5 scale
POLLEN_CATEGORY_SCORES = [
    ("very high", 5),
    ("very low", 1),
    ("none", 0),
    ("low", 2),
    ("medium", 3),
    ("moderate", 3),
    ("high", 4),
]

POLLEN_UNAVAILABLE_NOTE = (
    "Pollen data is unavailable for this location; follow your usual allergy plan "
    "and check a local pollen forecast before spending long periods outdoors."
)
NOT_ASSESSED_NOTE = "No specific assessment was generated; follow your usual care plan."


def is_pollen_allergy(text: str) -> bool:
    lower = text.lower()
    if any(p in lower for p in POLLEN_PHRASES):
        return True
    words = set(re.findall(r"[a-z]+", lower))
    return bool(words & POLLEN_PLANTS) and not words & FOOD_WORDS


def is_respiratory_condition(text: str) -> bool:
    lower = text.lower()
    return any(k in lower for k in RESP_KEYWORDS)


def level_from_score(score: int) -> RiskLevel:
    # Universal Pollen Index 0–5 -> risk vocabulary
    if score <= 2:
        return RiskLevel.LOW
    if score == 3:
        return RiskLevel.MODERATE
    if score == 4:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


def _category_score(category: Optional[str]) -> Optional[int]:
    if not category:
        return None
    lower = " ".join(category.lower().split())
    for needle, score in POLLEN_CATEGORY_SCORES:
        if needle in lower:
            return score
    return None


def _pollen_type_score(pollen_type: PollenTypeInfo) -> Optional[int]:
    info = pollen_type.index_info
    if info is None:
        return None
    if info.value is not None:
        return info.value
    return _category_score(info.category)


def _level_for_types(types: List[PollenTypeInfo]) -> RiskLevel:
    in_season = [t for t in types if t.in_season] or types
    scores = [s for s in (_pollen_type_score(t) for t in in_season) if s is not None]
    if not scores:
        return RiskLevel.UNDEFINED
    return level_from_score(max(scores))


def pollen_risk_level(pollen: PollenSnapshot) -> RiskLevel:
    """
    Overall pollen risk from today's types, looking at in-season types
    first. Undefined when there is no pollen data to judge by.
    """
    if not pollen.available:
        return RiskLevel.UNDEFINED
    return _level_for_types(pollen.today.pollen_type_info)


def pollen_risk_for_allergy(allergy: str, pollen: PollenSnapshot) -> RiskLevel:
    """
    Narrow to the pollen types or plants an allergy names ("Grass pollen",
    "Birch"), else fall back to the overall pollen level.
    """
    if not pollen.available:
        return RiskLevel.UNDEFINED
    lower = allergy.lower()
    today = pollen.today
    named = [
        t
        for t in today.pollen_type_info + today.plant_info
        if t.label.lower() in lower or (t.code and t.code.lower() in lower)
    ]
    if named:
        level = _level_for_types(named)
        if level is not RiskLevel.UNDEFINED:
            return level
    return pollen_risk_level(pollen)


def air_quality_risk_level(air: AirQualitySnapshot) -> RiskLevel:
    """
    Map the primary index onto the risk vocabulary. Category text covers
    both US EPA ("Unhealthy for Sensitive Groups") and universal
    ("Poor air quality") names; the number is only used for local indexes,
    since the universal scale runs backwards (100 is best).
    """
    primary = air.primary_index
    if primary is None or not air.aqi_available:
        return RiskLevel.UNDEFINED

    category = " ".join((primary.category or "").lower().split())
    if category:
        if any(k in category for k in ("very unhealthy", "hazardous", "poor", "very low air quality")):
            return RiskLevel.VERY_HIGH
        if any(k in category for k in ("unhealthy", "low air quality")):
            return RiskLevel.HIGH
        if "moderate" in category:
            return RiskLevel.MODERATE
        if any(k in category for k in ("good", "excellent")):
            return RiskLevel.LOW

    if primary.aqi is None or primary.code == UNIVERSAL_AQI_CODE:
        return RiskLevel.UNDEFINED
    if primary.aqi <= 50:
        return RiskLevel.LOW
    if primary.aqi <= 100:
        return RiskLevel.MODERATE
    if primary.aqi <= 200:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


def _overall_from_sections(levels: List[RiskLevel]) -> RiskLevel:
    order = [RiskLevel.LOW, RiskLevel.MODERATE, RiskLevel.HIGH, RiskLevel.VERY_HIGH]
    known = [lvl for lvl in levels if lvl in order]
    if not known:
        return RiskLevel.UNDEFINED
    return max(known, key=order.index)


def reconcile_recommendations(
    result: RecommendationResult,
    profile: UserProfile,
    pollen: PollenSnapshot,
    air: AirQualitySnapshot,
) -> RecommendationResult:
    """
    Make the structured result agree with the data we actually have:
    - every listed allergy and condition gets a section (never omitted)
    - pollen allergies are "undefined" when there is no pollen data, and
      take the pollen-derived level when the generator left them undefined
    - missing respiratory sections take the air-quality level
    Degraded (raw text) results are returned untouched.
    """
    if not result.structured:
        return result

    allergies: List[AllergyRecommendation] = []
    seen = set()
    for name in profile.allergies:
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        row = result.allergy(name)

        if is_pollen_allergy(name):
            if not pollen.available:
                recs = row.recommendations if row and row.recommendations else [POLLEN_UNAVAILABLE_NOTE]
                row = AllergyRecommendation(
                    allergy=row.allergy if row else name,
                    recommendations=recs,
                    risk_level=RiskLevel.UNDEFINED,
                )
            elif row is None:
                row = AllergyRecommendation(
                    allergy=name,
                    recommendations=[NOT_ASSESSED_NOTE],
                    risk_level=pollen_risk_for_allergy(name, pollen),
                )
            elif row.risk_level is RiskLevel.UNDEFINED:
                row = row.model_copy(update={"risk_level": pollen_risk_for_allergy(name, pollen)})
        elif row is None:
            row = AllergyRecommendation(allergy=name, recommendations=[NOT_ASSESSED_NOTE])
        allergies.append(row)
    allergies += [a for a in result.allergy_recommendations if a.allergy.lower() not in seen]

    conditions: List[ConditionRecommendation] = []
    seen = set()
    for name in profile.conditions:
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        row = result.condition(name)

        if is_respiratory_condition(name) and (row is None or row.risk_level is RiskLevel.UNDEFINED):
            level = air_quality_risk_level(air)
            if row is None:
                row = ConditionRecommendation(
                    condition=name,
                    recommendations=[NOT_ASSESSED_NOTE],
                    risk_level=level,
                )
            else:
                row = row.model_copy(update={"risk_level": level})
        elif row is None:
            row = ConditionRecommendation(condition=name, recommendations=[NOT_ASSESSED_NOTE])
        conditions.append(row)
    conditions += [c for c in result.condition_recommendations if c.condition.lower() not in seen]

    risk_level = result.risk_level
    if risk_level is None:
        risk_level = _overall_from_sections(
            [a.risk_level for a in allergies] + [c.risk_level for c in conditions]
        )

    updated = result.model_copy(
        update={
            "allergy_recommendations": allergies,
            "condition_recommendations": conditions,
            "risk_level": risk_level,
        }
    )
    return updated.model_copy(update={"recommendations": format_recommendations_markdown(updated)})
