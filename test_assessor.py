"""Tests for the vision-model damage assessor and its call-out annotator."""

import io
import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from damage_detect.assessor import SYSTEM_PROMPT, USER_PROMPT, DamageAssessor, boundary_error_response
from damage_detect.plugins.damage_annotator import DamageAnnotator
from damage_detect.utils.bedrock_client import BedrockClient
from damage_detect.utils.data_uri import decode_data_uri, encode_data_uri
from damage_detect.utils.errors import InvalidRequestError


def jpeg_bytes(size=(320, 240)):
    buffer = io.BytesIO()
    Image.new("RGB", size, (90, 90, 90)).save(buffer, format="JPEG")
    return buffer.getvalue()


IMAGE_URI = encode_data_uri(jpeg_bytes(), "image/jpeg")

DAMAGED_TEXT = "```json\n" + json.dumps({
    "hasVehicle": True,
    "hasDamage": True,
    "overallSeverity": "Severe",
    "confidenceScore": 92,
    "damages": [
        {
            "type": "dent",
            "location": "hood",
            "severity": "Severe",
            "description": "Large dent",
            "bbox": {"x": 0.2, "y": 0.3, "w": 0.4, "h": 0.3},
        }
    ],
    "affectedAreas": ["hood"],
    "estimatedRepairCost": {"min": 100000, "max": 250000, "currency": "INR"},
    "recommendations": ["Replace the hood"],
    "summary": "Severe hood damage.",
}) + "\n```"


def converse_response(text):
    return {
        "output": {"message": {"role": "assistant", "content": [{"text": text}]}},
        "stopReason": "end_turn",
        "usage": {"inputTokens": 10, "outputTokens": 20},
    }


def make_assessor(text=None, error=None, annotator=None):
    runtime = MagicMock()
    if error is not None:
        runtime.converse.side_effect = error
    else:
        runtime.converse.return_value = converse_response(text)
    bedrock = BedrockClient(max_retries=1, runtime=runtime)
    return DamageAssessor(bedrock, annotator=annotator), runtime


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": "nope"}}, "Converse")


@pytest.mark.asyncio
async def test_damaged_vehicle_is_annotated():
    assessor, runtime = make_assessor(DAMAGED_TEXT)

    payload = await assessor.assess(IMAGE_URI)

    kwargs = runtime.converse.call_args.kwargs
    assert kwargs["system"] == [{"text": SYSTEM_PROMPT}]
    content = kwargs["messages"][0]["content"]
    assert content[0] == {"text": USER_PROMPT}
    assert content[1]["image"]["format"] == "jpeg"
    assert content[1]["image"]["source"]["bytes"] == decode_data_uri(IMAGE_URI)[1]

    assert payload["hasDamage"] is True
    assert payload["overallSeverity"] == "Severe"
    content_type, png = decode_data_uri(payload["annotatedImage"])
    assert content_type == "image/png"
    with Image.open(io.BytesIO(png)) as annotated:
        assert annotated.size == (320, 240)


@pytest.mark.asyncio
async def test_clean_vehicle_has_no_annotation():
    text = json.dumps({"hasVehicle": True, "hasDamage": False, "damages": []})
    assessor, _ = make_assessor(text)
    payload = await assessor.assess(IMAGE_URI)
    assert payload["annotatedImage"] is None


@pytest.mark.asyncio
async def test_malformed_model_text_uses_fallback_payload():
    assessor, _ = make_assessor("I think it is a car.")
    payload = await assessor.assess(IMAGE_URI)
    assert payload["hasVehicle"] is False
    assert payload["confidenceScore"] == 0
    assert payload["recommendations"] == ["Unable to analyze image. Please try with a clearer image."]
    assert payload["annotatedImage"] is None


@pytest.mark.asyncio
async def test_annotation_failure_returns_null_image():
    broken = MagicMock()
    broken.annotate.side_effect = OSError("cannot draw")
    assessor, _ = make_assessor(DAMAGED_TEXT, annotator=broken)

    payload = await assessor.assess(IMAGE_URI)
    assert payload["hasDamage"] is True
    assert payload["annotatedImage"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("image", [None, ""])
async def test_missing_image_is_invalid(image):
    assessor, runtime = make_assessor(DAMAGED_TEXT)
    with pytest.raises(InvalidRequestError) as excinfo:
        await assessor.assess(image)
    assert boundary_error_response(excinfo.value) == (400, {"error": "No image provided"})
    runtime.converse.assert_not_called()


@pytest.mark.asyncio
async def test_non_data_uri_is_invalid():
    assessor, _ = make_assessor(DAMAGED_TEXT)
    with pytest.raises(InvalidRequestError):
        await assessor.assess("https://example.com/car.jpg")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code,status,message",
    [
        ("ThrottlingException", 429, "Rate limit exceeded. Please try again later."),
        ("ServiceQuotaExceededException", 402, "AI credits exhausted. Please add more credits."),
    ],
)
async def test_vendor_limits_map_to_boundary_statuses(code, status, message):
    assessor, _ = make_assessor(error=client_error(code))
    with pytest.raises(Exception) as excinfo:
        await assessor.assess(IMAGE_URI)
    assert boundary_error_response(excinfo.value) == (status, {"error": message})


@pytest.mark.asyncio
async def test_other_vendor_errors_map_to_500():
    assessor, _ = make_assessor(error=client_error("ValidationException"))
    with pytest.raises(Exception) as excinfo:
        await assessor.assess(IMAGE_URI)
    status, body = boundary_error_response(excinfo.value)
    assert status == 500
    assert "nope" in body["error"]


def test_annotator_skips_damages_without_boxes():
    annotator = DamageAnnotator()
    assert annotator.annotate(jpeg_bytes(), [{"type": "dent", "location": "hood", "severity": "Minor"}]) is None


def test_annotator_colours_by_severity():
    annotator = DamageAnnotator(line_width=6, padding=0.0)
    uri = annotator.annotate(
        jpeg_bytes((400, 400)),
        [{"type": "crack", "location": "windshield", "severity": "Severe",
          "bbox": {"x": 0.25, "y": 0.5, "w": 0.5, "h": 0.25}}],
    )
    _, png = decode_data_uri(uri)
    with Image.open(io.BytesIO(png)) as img:
        # rightmost point of the ellipse outline, vertically centred on the box
        r, g, b = img.convert("RGB").getpixel((297, 250))
    assert r > 200 and g < 120 and b < 120
