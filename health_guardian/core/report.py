from typing import List

from health_guardian.models.schemas import RecommendationResult, RiskLevel


RISK_MARKERS = {
    RiskLevel.LOW: "🟢",
    RiskLevel.MODERATE: "🟡",
    RiskLevel.HIGH: "🔴",
    RiskLevel.VERY_HIGH: "🔴",
    RiskLevel.UNDEFINED: "⚪",
}


def risk_label(level: RiskLevel) -> str:
    return level.value.upper()


def _bullets(items: List[str]) -> str:
    return "".join(f"- {item}\n" for item in items)


def format_recommendations_markdown(result: RecommendationResult) -> str:
    """Render the structured fields as the markdown narrative shown by the UI."""
    md = "# Environmental Health Assessment\n\n"

    if result.summary:
        md += f"## Summary\n\n{result.summary}\n\n"

    if result.risk_level is not None:
        md += f"## Risk Level: {risk_label(result.risk_level)}\n\n"

    if result.categories:
        md += "## Environmental Recommendations\n\n"
        for category in result.categories:
            md += f"### {category.name}\n\n{_bullets(category.items)}\n"

    if result.allergy_recommendations:
        md += "## Allergy-Specific Recommendations\n\n"
        for item in result.allergy_recommendations:
            marker = RISK_MARKERS[item.risk_level]
            md += f"### {marker} {item.allergy} (Risk: {risk_label(item.risk_level)})\n\n"
            md += f"{_bullets(item.recommendations)}\n"

    if result.condition_recommendations:
        md += "## Medical Condition Management\n\n"
        for item in result.condition_recommendations:
            marker = RISK_MARKERS[item.risk_level]
            md += f"### {marker} {item.condition} (Risk: {risk_label(item.risk_level)})\n\n"
            md += f"{_bullets(item.recommendations)}\n"

    return md
