import json

import httpx
import pytest

from health_guardian.core.llm_client import (
    SYSTEM_PROMPT,
    _strip_code_fences,
    generate_recommendations,
    parse_recommendations,
)
from health_guardian.errors import ConfigurationError, GenerationError
from health_guardian.models.schemas import RiskLevel

pytestmark = pytest.mark.unit


STRUCTURED = {
    "summary": "Warm and dry.",
    "riskLevel": "Medium",
    "categories": [{"name": "Hydration", "items": ["Drink water regularly."]}, {"items": ["orphan"]}],
    "allergyRecommendations": [
        {"allergy": "Dust", "recommendations": "Vacuum with a HEPA filter.", "riskLevel": "bogus"},
        {"recommendations": ["no name"]},
    ],
    "conditionRecommendations": [
        {"condition": "Asthma", "recommendations": ["Carry your inhaler."], "riskLevel": "high"},
    ],
}


def test_strip_code_fences():
    assert _strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert _strip_code_fences('  {"a": 1}  ') == '{"a": 1}'
    assert _strip_code_fences("") == ""


def test_parse_structured_output():
    result = parse_recommendations(json.dumps(STRUCTURED))

    assert result.structured is True
    assert result.summary == "Warm and dry."
    assert result.risk_level is RiskLevel.MODERATE
    assert [c.name for c in result.categories] == ["Hydration"]
    assert result.allergy("dust").recommendations == ["Vacuum with a HEPA filter."]
    assert result.allergy("dust").risk_level is RiskLevel.UNDEFINED
    assert len(result.allergy_recommendations) == 1
    assert result.condition("Asthma").risk_level is RiskLevel.HIGH
    assert result.recommendations.startswith("# Environmental Health Assessment")
    assert "## Risk Level: MODERATE" in result.recommendations
    assert "### 🔴 Asthma (Risk: HIGH)" in result.recommendations


def test_parse_fenced_output():
    result = parse_recommendations("```json\n" + json.dumps(STRUCTURED) + "\n```")

    assert result.structured is True
    assert result.summary == "Warm and dry."


@pytest.mark.parametrize(
    "content",
    [
        "Stay hydrated and avoid the midday sun.",
        "[1, 2, 3]",
        '"just a string"',
        '{"response": "Stay indoors this afternoon."}',
    ],
)
def test_unstructured_output_degrades_to_raw_text(content):
    result = parse_recommendations(content)

    assert result.structured is False
    assert result.recommendations == content
    assert result.risk_level is None
    assert result.summary is None
    assert result.categories == []
    assert result.allergy_recommendations == []
    assert result.condition_recommendations == []


def test_object_with_only_a_summary_is_structured():
    result = parse_recommendations('{"summary": "Clear skies."}')

    assert result.structured is True
    assert result.summary == "Clear skies."
    assert result.allergy_recommendations == []


@pytest.mark.asyncio
async def test_openai_backend_request(settings, providers):
    async with providers.client() as client:
        result = await generate_recommendations("PROMPT", settings=settings, client=client)

    request = providers.last("llm")
    body = json.loads(request.content)
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer openai-test-key"
    assert body["model"] == settings.openai_model
    assert body["response_format"] == {"type": "json_object"}
    assert body["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert body["messages"][1]["content"].startswith("PROMPT\n")
    assert result.structured is True
    assert result.allergy("Pollen").risk_level is RiskLevel.MODERATE


@pytest.mark.asyncio
async def test_ollama_backend_needs_no_key(settings, providers):
    settings = settings.model_copy(update={"llm_backend": "ollama", "openai_api_key": ""})

    async with providers.client() as client:
        result = await generate_recommendations("PROMPT", settings=settings, client=client)

    request = providers.last("llm")
    body = json.loads(request.content)
    assert request.url.path == "/api/chat"
    assert "Authorization" not in request.headers
    assert body["format"] == "json"
    assert body["stream"] is False
    assert body["model"] == settings.ollama_model
    assert result.structured is True


@pytest.mark.asyncio
async def test_openai_without_key_is_a_configuration_error(settings, providers):
    settings = settings.model_copy(update={"openai_api_key": " "})

    async with providers.client() as client:
        with pytest.raises(ConfigurationError):
            await generate_recommendations("PROMPT", settings=settings, client=client)

    assert providers.routes == []


@pytest.mark.asyncio
async def test_http_error_becomes_generation_error(settings, providers):
    providers.failures["llm"] = 500

    async with providers.client() as client:
        with pytest.raises(GenerationError) as excinfo:
            await generate_recommendations("PROMPT", settings=settings, client=client)

    assert excinfo.value.network is False
    assert excinfo.value.stage == "generating_recommendation"
    assert "500" in excinfo.value.message


@pytest.mark.asyncio
async def test_connection_failure_is_flagged_as_network(settings, providers):
    providers.failures["llm"] = httpx.ConnectError("connection refused")

    async with providers.client() as client:
        with pytest.raises(GenerationError) as excinfo:
            await generate_recommendations("PROMPT", settings=settings, client=client)

    assert excinfo.value.network is True


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", None])
async def test_empty_output_is_a_generation_error(settings, providers, content):
    providers.llm_content = content

    async with providers.client() as client:
        with pytest.raises(GenerationError):
            await generate_recommendations("PROMPT", settings=settings, client=client)


@pytest.mark.asyncio
async def test_unexpected_envelope_is_a_generation_error(settings):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"unexpected": True}))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(GenerationError) as excinfo:
            await generate_recommendations("PROMPT", settings=settings, client=client)

    assert "Unexpected response" in excinfo.value.message
