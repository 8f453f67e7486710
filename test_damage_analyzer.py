"""Tests for the analysis boundary HTTP client, using httpx.MockTransport."""

import json

import httpx
import pytest

from damage_detect.models.assessment import Severity
from damage_detect.plugins.damage_analyzer import DamageAnalysisClient
from damage_detect.utils.errors import AnalysisClientError, ErrorType


ENDPOINT = "http://boundary.test/functions/analyze-damage"
IMAGE = "data:image/jpeg;base64,/9j/4AAQ"

CLEAN_VEHICLE = {
    "hasVehicle": True,
    "hasDamage": False,
    "overallSeverity": "None",
    "confidenceScore": 90,
    "damages": [],
    "affectedAreas": [],
    "estimatedRepairCost": {"min": 0, "max": 0, "currency": "INR"},
    "recommendations": ["Vehicle appears to be in good condition.", "Regular maintenance recommended."],
    "summary": "Vehicle analyzed. No visible damage detected. The vehicle appears to be in good condition.",
    "annotatedImage": None,
}


def client_for(handler, **kwargs):
    return DamageAnalysisClient(ENDPOINT, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_posts_image_and_normalizes_clean_vehicle():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=CLEAN_VEHICLE)

    result = await client_for(handler).analyze(IMAGE)

    assert len(requests) == 1
    assert requests[0].method == "POST"
    assert json.loads(requests[0].content) == {"imageBase64": IMAGE}
    assert result.has_subject is True
    assert result.has_damage is False
    assert result.overall_severity is Severity.NONE
    assert result.confidence_score == 90
    assert result.annotated_media is None
    assert not result.is_fallback


@pytest.mark.asyncio
async def test_api_key_sets_auth_headers():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json=CLEAN_VEHICLE)

    await client_for(handler, api_key="secret").analyze(IMAGE)
    assert seen["authorization"] == "Bearer secret"
    assert seen["apikey"] == "secret"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error_type",
    [
        (429, ErrorType.BOUNDARY_RATE_LIMIT),
        (402, ErrorType.BOUNDARY_QUOTA_EXHAUSTED),
        (500, ErrorType.BOUNDARY_HTTP_ERROR),
    ],
)
async def test_non_success_status_raises(status, error_type):
    def handler(request):
        return httpx.Response(status, json={"error": "upstream said no"})

    with pytest.raises(AnalysisClientError) as excinfo:
        await client_for(handler).analyze(IMAGE)

    assert excinfo.value.error_type == error_type
    assert excinfo.value.status_code == status
    assert excinfo.value.context.message == "upstream said no"


@pytest.mark.asyncio
async def test_success_body_with_error_key_raises():
    def handler(request):
        return httpx.Response(200, json={"error": "No image provided"})

    with pytest.raises(AnalysisClientError) as excinfo:
        await client_for(handler).analyze(IMAGE)
    assert excinfo.value.error_type == ErrorType.BOUNDARY_REJECTED


@pytest.mark.asyncio
async def test_unparseable_success_body_returns_fallback():
    def handler(request):
        return httpx.Response(200, text="not JSON")

    result = await client_for(handler).analyze(IMAGE)
    assert result.is_fallback
    assert result.confidence_score == 0
    assert result.recommendations == ("Unable to analyze image. Please try with a clearer image.",)


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AnalysisClientError) as excinfo:
        await client_for(handler).analyze(IMAGE)
    assert excinfo.value.error_type == ErrorType.BOUNDARY_TRANSPORT_ERROR


@pytest.mark.asyncio
async def test_one_request_per_call_and_no_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="busy")

    client = client_for(handler)
    with pytest.raises(AnalysisClientError):
        await client.analyze(IMAGE)
    assert len(calls) == 1
