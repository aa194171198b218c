import json
import logging
from typing import Any, List

import httpx

from health_guardian.config import Settings
from health_guardian.core.report import format_recommendations_markdown
from health_guardian.errors import GenerationError
from health_guardian.models.schemas import PipelineStage, RecommendationResult

logger = logging.getLogger(__name__)

GENERATION_STAGE = PipelineStage.GENERATING_RECOMMENDATION.value

SYSTEM_PROMPT = (
    "You are an environmental health assistant that provides structured recommendations. "
    "You explain in simple, non-alarming language, and you do NOT give diagnoses "
    "or prescribe specific treatments or medications. "
    "Never invent allergies or conditions that are not in the profile."
)

STRUCTURED_OUTPUT_INSTRUCTIONS = """
Please structure your response in JSON format with the following fields:
- summary: A brief summary of the environmental health assessment specific to this user's needs
- riskLevel: An overall risk assessment (low, moderate, high, or very_high)
- categories: An array of recommendation categories for general environmental factors, each with:
  - name: Category name (e.g., "Weather Precautions", "Air Quality", "UV Protection")
  - items: Array of specific recommendations as strings

Most importantly, provide highly personalized recommendations for each specific allergy and condition:

- allergyRecommendations: An array with one entry for EACH allergy listed by the user, with:
  - allergy: The specific allergy exactly as listed by the user (e.g., "Pollen", "Dust", "Pet Dander")
  - recommendations: Array of concrete, tailored mitigation actions for current conditions
  - riskLevel: One of low, moderate, high, very_high, or undefined (only when the data is unavailable)

- conditionRecommendations: An array with one entry for EACH medical condition listed by the user, with:
  - condition: The specific condition exactly as listed by the user (e.g., "Asthma", "Eczema", "COPD")
  - recommendations: Array of concrete, tailored mitigation actions for current conditions
  - riskLevel: One of low, moderate, high, very_high, or undefined (only when the data is unavailable)

The JSON should be valid and parseable. If the user has not listed any allergies or conditions,
include empty arrays for those fields. Use the exact terminology the user provided for their
allergies and conditions.
"""


STRUCTURED_KEYS = (
    "summary",
    "riskLevel",
    "risk_level",
    "categories",
    "allergyRecommendations",
    "allergy_recommendations",
    "conditionRecommendations",
    "condition_recommendations",
)


def _strip_code_fences(text: str) -> str:
    """
    Remove ```json ... ``` style fences if the model includes them
    despite the instructions.
    """
    if not text:
        return ""
    stripped = text.strip()
    if stripped.startswith("```"):
        lines = stripped.splitlines()
        # drop first line (``` or ```json)
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        # drop last line if it is ```
        if lines and lines[-1].startswith("```"):
            lines = lines[:-1]
        stripped = "\n".join(lines).strip()
    return stripped


def build_structured_prompt(prompt: str) -> str:
    return f"{prompt}\n{STRUCTURED_OUTPUT_INSTRUCTIONS}"


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _text_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [t for t in (_text(v) for v in value) if t]


def _sections(value: Any, name_key: str) -> List[dict]:
    rows = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, dict):
            continue
        name = _text(item.get(name_key) or item.get("name"))
        if not name:
            continue
        rows.append(
            {
                name_key: name,
                "recommendations": _text_list(item.get("recommendations")),
                "risk_level": item.get("riskLevel", item.get("risk_level")),
            }
        )
    return rows


def parse_recommendations(content: str) -> RecommendationResult:
    """
    Structured result when the model returned a JSON object carrying at
    least one of the structured fields; otherwise the raw text as a
    degraded-but-valid result with no structured fields.
    """
    cleaned = _strip_code_fences(content)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None

    if not isinstance(parsed, dict) or not any(key in parsed for key in STRUCTURED_KEYS):
        logger.warning("Recommendation output had no structured fields; using raw text")
        return RecommendationResult(recommendations=content.strip(), structured=False)

    categories = []
    for item in parsed.get("categories") if isinstance(parsed.get("categories"), list) else []:
        if isinstance(item, dict) and _text(item.get("name")):
            categories.append({"name": _text(item.get("name")), "items": _text_list(item.get("items"))})

    result = RecommendationResult(
        structured=True,
        summary=_text(parsed.get("summary")) or None,
        risk_level=parsed.get("riskLevel", parsed.get("risk_level")),
        categories=categories,
        allergy_recommendations=_sections(
            parsed.get("allergyRecommendations", parsed.get("allergy_recommendations")), "allergy"
        ),
        condition_recommendations=_sections(
            parsed.get("conditionRecommendations", parsed.get("condition_recommendations")),
            "condition",
        ),
    )
    return result.model_copy(update={"recommendations": format_recommendations_markdown(result)})


async def _call_openai(prompt: str, *, settings: Settings, client: httpx.AsyncClient) -> str:
    payload = {
        "model": settings.openai_model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_structured_prompt(prompt)},
        ],
        "response_format": {"type": "json_object"},
    }
    headers = {"Authorization": f"Bearer {settings.require('openai_api_key')}"}
    resp = await client.post(
        f"{settings.openai_base_url}/chat/completions",
        json=payload,
        headers=headers,
        timeout=settings.llm_timeout,
    )
    resp.raise_for_status()
    data = resp.json()
    return data["choices"][0]["message"]["content"] or ""


async def _call_ollama(prompt: str, *, settings: Settings, client: httpx.AsyncClient) -> str:
    payload = {
        "model": settings.ollama_model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_structured_prompt(prompt)},
        ],
        "format": "json",
        "stream": False,
    }
    resp = await client.post(
        f"{settings.ollama_base_url}/api/chat",
        json=payload,
        timeout=settings.llm_timeout,
    )
    resp.raise_for_status()
    data = resp.json()
    return data["message"]["content"] or ""


async def generate_recommendations(
    prompt: str,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
) -> RecommendationResult:
    """
    Send the prompt to the configured backend (OpenAI chat completions or a
    local Ollama) in JSON mode and parse what comes back.
    """
    call = _call_ollama if settings.llm_backend == "ollama" else _call_openai
    try:
        content = await call(prompt, settings=settings, client=client)
    except httpx.HTTPError as e:
        if isinstance(e, httpx.HTTPStatusError):
            detail = f"{e.response.status_code} {e.response.text}"
        else:
            detail = str(e) or e.__class__.__name__
        logger.error("Recommendation request failed: %s", detail)
        raise GenerationError(
            f"Error calling recommendation model: {detail}",
            stage=GENERATION_STAGE,
            network=isinstance(e, httpx.TransportError),
        ) from e
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise GenerationError(
            f"Unexpected response from recommendation model: {e!r}",
            stage=GENERATION_STAGE,
        ) from e

    if not isinstance(content, str) or not content.strip():
        raise GenerationError("Recommendation model returned no text", stage=GENERATION_STAGE)

    return parse_recommendations(content)
