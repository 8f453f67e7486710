"""Merge per-unit analysis results into one combined report."""

import logging
from typing import List, Sequence

from ..models.assessment import (
    CombinedReport,
    RepairCost,
    Severity,
    TaggedObservation,
    UnitContext,
)
from ..utils.payload_parser import DEFAULT_CURRENCY, dedupe, round_half_up

logger = logging.getLogger(__name__)

_UNIT_PHRASES = {
    "image": ("images", "image(s)"),
    "frame": ("video frames", "frame(s)"),
}


def aggregate_units(contexts: Sequence[UnitContext], unit_label: str = "image") -> CombinedReport:
    """
    Combine successful unit results into a CombinedReport.

    Severity is the maximum across units. The cost range takes the largest
    unit minimum and the largest unit maximum, so ``min > max`` can occur with
    inconsistent inputs and is left as-is. Kinds, areas and recommendations
    are deduplicated in first-occurrence order.

    Args:
        contexts: Successful units in submission order
        unit_label: "image" or "frame", used for summary wording

    Returns:
        CombinedReport

    Raises:
        ValueError: If ``contexts`` is empty
    """
    if not contexts:
        raise ValueError("Cannot aggregate an empty sequence of units")

    results = [ctx.result for ctx in contexts]

    units_with_damage = sum(1 for result in results if result.has_damage)
    average_confidence = round_half_up(
        sum(result.confidence_score for result in results) / len(results)
    )

    all_observations = tuple(
        TaggedObservation(observation=observation, unit_index=ctx.index)
        for ctx in contexts
        for observation in ctx.result.observations
    )

    unique_kinds = tuple(dedupe(tagged.observation.kind for tagged in all_observations))
    affected_areas = tuple(dedupe(area for result in results for area in result.affected_areas))

    overall_severity = Severity.NONE
    for result in results:
        if result.overall_severity > overall_severity:
            overall_severity = result.overall_severity

    currency = next(
        (result.estimated_cost.currency for result in results if result.estimated_cost.currency),
        DEFAULT_CURRENCY,
    )
    estimated_cost = RepairCost(
        min=max(result.estimated_cost.min or 0 for result in results),
        max=max(result.estimated_cost.max or 0 for result in results),
        currency=currency,
    )

    recommendations = tuple(dedupe(rec for result in results for rec in result.recommendations))

    summary = build_summary(
        total_units=len(contexts),
        units_with_damage=units_with_damage,
        observation_count=len(all_observations),
        damage_kinds=unique_kinds,
        affected_areas=affected_areas,
        overall_severity=overall_severity,
        unit_label=unit_label,
    )

    logger.info(
        f"Aggregated {len(contexts)} {unit_label}(s): {units_with_damage} damaged, "
        f"{len(all_observations)} observation(s), severity={overall_severity.label}"
    )

    return CombinedReport(
        total_units=len(contexts),
        units_with_damage=units_with_damage,
        overall_severity=overall_severity,
        average_confidence=average_confidence,
        all_observations=all_observations,
        unique_damage_kinds=unique_kinds,
        affected_areas=affected_areas,
        estimated_cost=estimated_cost,
        recommendations=recommendations,
        summary=summary,
        unit_contexts=tuple(contexts),
        unit_label=unit_label,
    )


def build_summary(
    total_units: int,
    units_with_damage: int,
    observation_count: int,
    damage_kinds: Sequence[str],
    affected_areas: Sequence[str],
    overall_severity: Severity,
    unit_label: str = "image",
) -> str:
    """Render the deterministic combined-report summary sentence."""
    plural, counted = _UNIT_PHRASES.get(unit_label, (f"{unit_label}s", f"{unit_label}(s)"))
    kinds: List[str] = list(damage_kinds)
    return (
        f"Comprehensive analysis of {total_units} {plural} reveals {units_with_damage} "
        f"{counted} showing vehicle damage. "
        f"A total of {observation_count} damage instances were detected across "
        f"{len(kinds)} damage type(s): {', '.join(kinds)}. "
        f"Affected areas include: {', '.join(affected_areas)}. "
        f"Overall severity is assessed as {overall_severity.label}."
    )
