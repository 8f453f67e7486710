"""Tests for parsing and normalizing analysis payloads."""

import json

from damage_detect.models.assessment import Severity
from damage_detect.utils.errors import ErrorType
from damage_detect.utils.payload_parser import (
    FALLBACK_RECOMMENDATION,
    FALLBACK_SUMMARY,
    GOOD_CONDITION_RECOMMENDATIONS,
    fallback_result,
    normalize_payload,
    parse_analysis_payload,
    parse_and_normalize,
    round_half_up,
    strip_code_fence,
)


DAMAGED_PAYLOAD = {
    "hasVehicle": True,
    "hasDamage": True,
    "overallSeverity": "Moderate",
    "confidenceScore": 87,
    "damages": [
        {
            "type": "dent",
            "location": "front bumper",
            "severity": "Moderate",
            "description": "Deep dent on the left side of the bumper",
            "bbox": {"x": 0.1, "y": 0.5, "w": 0.3, "h": 0.2},
        },
        {
            "type": "scratch",
            "location": "left door",
            "severity": "minor",
            "description": "Surface scratch",
        },
    ],
    "affectedAreas": ["front bumper", "left door", "front bumper"],
    "estimatedRepairCost": {"min": 25000, "max": 100000, "currency": "INR"},
    "recommendations": ["Repair the bumper", "Touch up paint"],
    "summary": "Moderate front-end damage.",
    "annotatedImage": "data:image/png;base64,AAAA",
}


def test_plain_json_object_parses():
    result = parse_analysis_payload(json.dumps(DAMAGED_PAYLOAD))
    assert result.ok
    assert result.error is None
    assert result.payload["confidenceScore"] == 87


def test_fenced_json_parses():
    text = "Here you go:\n```json\n" + json.dumps({"hasVehicle": False}) + "\n```\nDone."
    result = parse_analysis_payload(text)
    assert result.ok
    assert result.payload == {"hasVehicle": False}


def test_bare_fence_without_language_parses():
    assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'


def test_invalid_json_is_tagged_not_raised():
    result = parse_analysis_payload("not JSON")
    assert not result.ok
    assert result.payload is None
    assert result.error.error_type == ErrorType.PAYLOAD_PARSE_FAILED


def test_non_object_json_is_rejected():
    assert not parse_analysis_payload("[1, 2, 3]").ok
    assert not parse_analysis_payload(None).ok


def test_normalize_damaged_payload():
    result = normalize_payload(DAMAGED_PAYLOAD)

    assert result.has_subject is True
    assert result.has_damage is True
    assert result.overall_severity is Severity.MODERATE
    assert result.confidence_score == 87
    assert [obs.kind for obs in result.observations] == ["dent", "scratch"]
    assert result.observations[1].severity is Severity.MINOR
    assert result.observations[0].bbox == {"x": 0.1, "y": 0.5, "w": 0.3, "h": 0.2}
    assert result.affected_areas == ("front bumper", "left door")
    assert result.estimated_cost.min == 25000
    assert result.estimated_cost.max == 100000
    assert result.estimated_cost.currency == "INR"
    assert result.annotated_media == "data:image/png;base64,AAAA"
    assert result.is_fallback is False


def test_unknown_severities_are_defaulted():
    payload = {
        "hasVehicle": True,
        "hasDamage": True,
        "overallSeverity": "Catastrophic",
        "damages": [{"type": "crack", "location": "windshield", "severity": "weird"}],
    }
    result = normalize_payload(payload)
    assert result.overall_severity is Severity.NONE
    assert result.observations[0].severity is Severity.MODERATE


def test_confidence_is_clamped_and_rounded_half_up():
    assert normalize_payload({"confidenceScore": 140}).confidence_score == 100
    assert normalize_payload({"confidenceScore": -3}).confidence_score == 0
    assert normalize_payload({"confidenceScore": 72.5}).confidence_score == 73
    assert normalize_payload({"confidenceScore": "n/a"}).confidence_score == 0
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4999) == 2


def test_missing_cost_defaults_to_zero_inr():
    result = normalize_payload({"hasVehicle": True})
    assert result.estimated_cost.min == 0
    assert result.estimated_cost.max == 0
    assert result.estimated_cost.currency == "INR"


def test_clean_vehicle_gets_good_condition_advice():
    result = normalize_payload({"hasVehicle": True, "hasDamage": False, "recommendations": []})
    assert result.recommendations == GOOD_CONDITION_RECOMMENDATIONS


def test_annotation_dropped_without_damage():
    payload = dict(DAMAGED_PAYLOAD, hasDamage=False)
    assert normalize_payload(payload).annotated_media is None


def test_fallback_result_shape():
    result = fallback_result()
    assert result.is_fallback
    assert result.has_subject is False
    assert result.has_damage is False
    assert result.overall_severity is Severity.NONE
    assert result.confidence_score == 0
    assert result.observations == ()
    assert result.recommendations == (FALLBACK_RECOMMENDATION,)
    assert result.summary == FALLBACK_SUMMARY


def test_parse_and_normalize_uses_fallback_on_garbage():
    assert parse_and_normalize("{broken").is_fallback
    assert not parse_and_normalize(json.dumps(DAMAGED_PAYLOAD)).is_fallback


def test_wire_round_trip_keys():
    wire = normalize_payload(DAMAGED_PAYLOAD).to_dict()
    assert wire["overallSeverity"] == "Moderate"
    assert wire["damages"][0]["type"] == "dent"
    assert wire["estimatedRepairCost"] == {"min": 25000.0, "max": 100000.0, "currency": "INR"}
