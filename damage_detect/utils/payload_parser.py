"""Parse and normalize analysis payloads returned by the AI boundary.

The parse step is tagged: ``parse_analysis_payload`` never raises, it returns a
``ParseResult`` whose ``error`` is set when the text is not a JSON object.
``normalize_payload`` turns a decoded object into a ``UnitAnalysisResult`` and
tolerates missing or mistyped fields.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.assessment import (
    DamageObservation,
    RepairCost,
    Severity,
    UnitAnalysisResult,
)
from .errors import PayloadParseError

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "INR"

FALLBACK_RECOMMENDATION = "Unable to analyze image. Please try with a clearer image."
FALLBACK_SUMMARY = "Could not process the image. Please upload a clear image."

GOOD_CONDITION_RECOMMENDATIONS = (
    "Vehicle appears to be in good condition.",
    "Regular maintenance recommended.",
)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


@dataclass(frozen=True)
class ParseResult:
    """
    Outcome of parsing payload text.

    Attributes:
        ok: True when ``payload`` holds a decoded JSON object
        payload: Decoded object, or None
        error: PayloadParseError describing the failure, or None
    """
    ok: bool
    payload: Optional[Dict[str, Any]] = None
    error: Optional[PayloadParseError] = None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity."""
    return int(math.floor(value + 0.5))


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced block, or the stripped text."""
    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_analysis_payload(text: Any) -> ParseResult:
    """
    Parse analysis text into a JSON object.

    Markdown code fences (```json ... ```) around the object are removed
    before decoding.

    Args:
        text: Raw response body or model output

    Returns:
        ParseResult; ``ok`` is False for non-text input, invalid JSON, or JSON
        that is not an object
    """
    if not isinstance(text, str):
        return ParseResult(ok=False, error=PayloadParseError.invalid_json(text))

    candidate = strip_code_fence(text)

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug(f"Payload is not JSON: {candidate[:200]}")
        return ParseResult(ok=False, error=PayloadParseError.invalid_json(text, e))

    if not isinstance(payload, dict):
        return ParseResult(ok=False, error=PayloadParseError.invalid_json(text))

    return ParseResult(ok=True, payload=payload)


def fallback_payload() -> Dict[str, Any]:
    """
    Wire-format payload substituted when analysis text cannot be parsed.

    Returns:
        Dict shaped like a boundary success body
    """
    return {
        "hasVehicle": False,
        "hasDamage": False,
        "overallSeverity": Severity.NONE.label,
        "confidenceScore": 0,
        "damages": [],
        "affectedAreas": [],
        "estimatedRepairCost": {"min": 0, "max": 0, "currency": DEFAULT_CURRENCY},
        "recommendations": [FALLBACK_RECOMMENDATION],
        "summary": FALLBACK_SUMMARY,
    }


def fallback_result() -> UnitAnalysisResult:
    """The degraded result used in place of an unreadable payload."""
    return UnitAnalysisResult(
        has_subject=False,
        has_damage=False,
        overall_severity=Severity.NONE,
        confidence_score=0,
        observations=(),
        affected_areas=(),
        estimated_cost=RepairCost(0, 0, DEFAULT_CURRENCY),
        recommendations=(FALLBACK_RECOMMENDATION,),
        summary=FALLBACK_SUMMARY,
        annotated_media=None,
        is_fallback=True,
    )


def normalize_payload(payload: Dict[str, Any]) -> UnitAnalysisResult:
    """
    Build a UnitAnalysisResult from a decoded boundary payload.

    Unknown observation severities become Moderate, an unknown overall
    severity becomes None, confidence is clamped to 0-100, and a recognized
    vehicle without damage or recommendations gets the standard
    good-condition advice.

    Args:
        payload: Decoded JSON object

    Returns:
        Normalized, immutable UnitAnalysisResult
    """
    has_subject = _coerce_bool(payload.get("hasVehicle"))
    has_damage = _coerce_bool(payload.get("hasDamage"))

    observations = tuple(_normalize_observations(payload.get("damages")))
    recommendations = _unique_strings(payload.get("recommendations"))

    if has_subject and not has_damage and not recommendations:
        recommendations = GOOD_CONDITION_RECOMMENDATIONS

    annotated = payload.get("annotatedImage")
    if not (has_damage and isinstance(annotated, str) and annotated.strip()):
        annotated = None

    result = UnitAnalysisResult(
        has_subject=has_subject,
        has_damage=has_damage,
        overall_severity=Severity.parse(payload.get("overallSeverity"), Severity.NONE),
        confidence_score=_normalize_confidence(payload.get("confidenceScore")),
        observations=observations,
        affected_areas=_unique_strings(payload.get("affectedAreas")),
        estimated_cost=_normalize_cost(payload.get("estimatedRepairCost")),
        recommendations=recommendations,
        summary=str(payload.get("summary") or ""),
        annotated_media=annotated,
        is_fallback=False,
    )

    logger.debug(
        f"Normalized payload: vehicle={result.has_subject}, damage={result.has_damage}, "
        f"severity={result.overall_severity.label}, observations={len(observations)}"
    )
    return result


def parse_and_normalize(text: Any) -> UnitAnalysisResult:
    """Parse payload text, substituting the fallback result on failure."""
    parsed = parse_analysis_payload(text)
    if not parsed.ok:
        logger.warning(f"Using fallback analysis result: {parsed.error}")
        return fallback_result()
    return normalize_payload(parsed.payload)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _coerce_number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            number = float(value.replace(",", "").strip())
        except ValueError:
            return default
        return number if math.isfinite(number) else default
    return default


def _normalize_confidence(value: Any) -> int:
    score = round_half_up(_coerce_number(value))
    return max(0, min(100, score))


def _normalize_cost(value: Any) -> RepairCost:
    if not isinstance(value, dict):
        return RepairCost(0, 0, DEFAULT_CURRENCY)

    currency = value.get("currency")
    if not isinstance(currency, str) or not currency.strip():
        currency = DEFAULT_CURRENCY

    return RepairCost(
        min=_coerce_number(value.get("min")),
        max=_coerce_number(value.get("max")),
        currency=currency.strip(),
    )


def _normalize_bbox(value: Any) -> Optional[Dict[str, float]]:
    if not isinstance(value, dict):
        return None
    try:
        return {key: float(value[key]) for key in ("x", "y", "w", "h")}
    except (KeyError, TypeError, ValueError):
        return None


def _normalize_observations(items: Any) -> List[DamageObservation]:
    observations: List[DamageObservation] = []
    if not isinstance(items, list):
        return observations

    for item in items:
        if not isinstance(item, dict):
            logger.warning(f"Skipping malformed damage entry: {item!r}")
            continue

        severity = Severity.parse(item.get("severity"), Severity.MODERATE)
        if severity is Severity.NONE:
            severity = Severity.MODERATE

        observations.append(
            DamageObservation(
                kind=str(item.get("type") or "unknown"),
                location=str(item.get("location") or ""),
                severity=severity,
                description=str(item.get("description") or ""),
                bbox=_normalize_bbox(item.get("bbox")),
            )
        )

    return observations


def _unique_strings(values: Any) -> Tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        return ()
    return tuple(dedupe(str(value) for value in values if value is not None and str(value).strip()))


def dedupe(values: Iterable[str]) -> List[str]:
    """Drop repeats, keeping first-occurrence order."""
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered
