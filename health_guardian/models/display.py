import math
from typing import Any, Optional


# Fixed AQI category -> tag color table used by the air-quality dashboard.
AQI_CATEGORY_COLORS = {
    "good": "green",
    "moderate": "gold",
    "unhealthy for sensitive groups": "orange",
    "unhealthy": "red",
    "very unhealthy": "purple",
    "hazardous": "darkred",
}

# Checked in order: "very high" must win over "high", "very low" over "low".
POLLEN_CATEGORY_COLORS = (
    ("none", "green"),
    ("very low", "cyan"),
    ("very high", "red"),
    ("low", "blue"),
    ("medium", "gold"),
    ("moderate", "gold"),
    ("high", "orange"),
)

DEFAULT_COLOR = "default"

UNIT_LABELS = {
    "PARTS_PER_BILLION": "ppb",
    "PARTS_PER_MILLION": "ppm",
    "MICROGRAMS_PER_CUBIC_METER": "μg/m³",
}


def _channel(value: Any) -> int:
    """0–1 float channel -> 0–255 int, half rounded up. Missing/garbage -> 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if math.isnan(value):
        return 0
    scaled = math.floor(value * 255 + 0.5)
    return max(0, min(255, int(scaled)))


def rgb_channels(color: Any) -> tuple[int, int, int]:
    if color is None:
        return (0, 0, 0)
    if not isinstance(color, dict):
        color = {
            "red": getattr(color, "red", None),
            "green": getattr(color, "green", None),
            "blue": getattr(color, "blue", None),
        }
    return (
        _channel(color.get("red")),
        _channel(color.get("green")),
        _channel(color.get("blue")),
    )


def rgb_to_display(color: Any) -> str:
    r, g, b = rgb_channels(color)
    return f"rgb({r}, {g}, {b})"


def aqi_category_color(category: Optional[str]) -> str:
    if not category:
        return DEFAULT_COLOR
    return AQI_CATEGORY_COLORS.get(" ".join(category.lower().split()), DEFAULT_COLOR)


def pollen_category_color(category: Optional[str]) -> str:
    if not category:
        return DEFAULT_COLOR
    lower = category.lower()
    for needle, color in POLLEN_CATEGORY_COLORS:
        if needle in lower:
            return color
    return DEFAULT_COLOR


def unit_label(units: Optional[str]) -> str:
    if not units:
        return ""
    return UNIT_LABELS.get(units, units)
