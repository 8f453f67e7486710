"""Tests for combining unit results into a combined report."""

import itertools

import pytest

from damage_detect.models.assessment import (
    DamageObservation,
    RepairCost,
    Severity,
    UnitAnalysisResult,
    UnitContext,
)
from damage_detect.orchestration.aggregator import aggregate_units, build_summary


def make_result(
    severity=Severity.NONE,
    confidence=90,
    observations=(),
    areas=(),
    cost=RepairCost(0, 0, "INR"),
    recommendations=(),
    annotated=None,
):
    return UnitAnalysisResult(
        has_subject=True,
        has_damage=bool(observations),
        overall_severity=severity,
        confidence_score=confidence,
        observations=tuple(observations),
        affected_areas=tuple(areas),
        estimated_cost=cost,
        recommendations=tuple(recommendations),
        summary="",
        annotated_media=annotated,
    )


def obs(kind, location, severity=Severity.MINOR):
    return DamageObservation(kind=kind, location=location, severity=severity, description=f"{kind} on {location}")


def ctx(result, index):
    return UnitContext(result=result, index=index, source_image=f"data:image/jpeg;base64,frame{index}")


def test_empty_input_raises():
    with pytest.raises(ValueError):
        aggregate_units([])


def test_three_frame_rollup():
    contexts = [
        ctx(make_result(confidence=90), 0),
        ctx(
            make_result(
                severity=Severity.MINOR,
                confidence=80,
                observations=[obs("scratch", "hood")],
                areas=["hood"],
                cost=RepairCost(5000, 25000, "INR"),
                recommendations=["Polish the hood"],
            ),
            1,
        ),
        ctx(
            make_result(
                severity=Severity.SEVERE,
                confidence=85,
                observations=[obs("dent", "door", Severity.SEVERE), obs("scratch", "door")],
                areas=["door", "hood"],
                cost=RepairCost(100000, 300000, "INR"),
                recommendations=["Replace the door", "Polish the hood"],
            ),
            2,
        ),
    ]

    report = aggregate_units(contexts, unit_label="frame")

    assert report.total_units == 3
    assert report.units_with_damage == 2
    assert report.overall_severity is Severity.SEVERE
    assert report.average_confidence == 85
    assert [t.unit_index for t in report.all_observations] == [1, 2, 2]
    assert report.unique_damage_kinds == ("scratch", "dent")
    assert report.affected_areas == ("hood", "door")
    assert report.recommendations == ("Polish the hood", "Replace the door")
    assert report.estimated_cost == RepairCost(100000, 300000, "INR")
    assert report.unit_label == "frame"


def test_cost_takes_max_of_mins_and_max_of_maxes():
    contexts = [
        ctx(make_result(cost=RepairCost(5000, 25000, "INR")), 0),
        ctx(make_result(cost=RepairCost(25000, 100000, "INR")), 1),
    ]
    report = aggregate_units(contexts)
    assert report.estimated_cost.min == 25000
    assert report.estimated_cost.max == 100000


def test_cost_range_may_invert():
    contexts = [
        ctx(make_result(cost=RepairCost(90000, 95000, "INR")), 0),
        ctx(make_result(cost=RepairCost(1000, 2000, "INR")), 1),
    ]
    report = aggregate_units(contexts)
    assert report.estimated_cost.min == 90000
    assert report.estimated_cost.max == 95000

    odd = aggregate_units([ctx(make_result(cost=RepairCost(50000, 10000, "INR")), 0)])
    assert odd.estimated_cost.min > odd.estimated_cost.max


def test_average_confidence_rounds_half_up():
    contexts = [ctx(make_result(confidence=70), 0), ctx(make_result(confidence=71), 1)]
    assert aggregate_units(contexts).average_confidence == 71


def test_original_indices_survive_skipped_units():
    contexts = [
        ctx(make_result(severity=Severity.MINOR, observations=[obs("dent", "roof")]), 0),
        ctx(make_result(severity=Severity.MINOR, observations=[obs("rust", "sill")]), 2),
    ]
    report = aggregate_units(contexts)
    assert report.total_units == 2
    assert [t.unit_index for t in report.all_observations] == [0, 2]
    assert [c.index for c in report.unit_contexts] == [0, 2]


def test_summary_wording_for_frames():
    summary = build_summary(
        total_units=3,
        units_with_damage=2,
        observation_count=3,
        damage_kinds=["scratch", "dent"],
        affected_areas=["hood", "door"],
        overall_severity=Severity.SEVERE,
        unit_label="frame",
    )
    assert summary == (
        "Comprehensive analysis of 3 video frames reveals 2 frame(s) showing vehicle damage. "
        "A total of 3 damage instances were detected across 2 damage type(s): scratch, dent. "
        "Affected areas include: hood, door. Overall severity is assessed as Severe."
    )


def test_summary_wording_for_images():
    report = aggregate_units([ctx(make_result(), 0)])
    assert report.summary.startswith("Comprehensive analysis of 1 images reveals 0 image(s)")
    assert report.summary.endswith("Overall severity is assessed as None.")


def test_display_image_prefers_annotation():
    annotated = "data:image/png;base64,annotated"
    report = aggregate_units([ctx(make_result(annotated=annotated), 0), ctx(make_result(), 1)])
    assert report.unit_contexts[0].display_image == annotated
    assert report.unit_contexts[1].display_image == "data:image/jpeg;base64,frame1"


def first_seen(values):
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def test_rollup_is_order_insensitive_and_idempotent():
    results = [
        make_result(
            severity=Severity.MINOR,
            observations=[obs("scratch", "hood")],
            areas=["hood"],
            recommendations=["Polish the hood", "Inspect paint"],
        ),
        make_result(
            severity=Severity.SEVERE,
            observations=[obs("dent", "door", Severity.SEVERE), obs("scratch", "door")],
            areas=["door", "hood"],
            recommendations=["Replace the door", "Polish the hood"],
        ),
        make_result(recommendations=["Vehicle appears to be in good condition."]),
        make_result(
            severity=Severity.MODERATE,
            observations=[obs("crack", "windshield", Severity.MODERATE)],
            areas=["windshield"],
            recommendations=["Inspect paint", "Replace the windshield"],
        ),
    ]
    baseline = aggregate_units([ctx(r, i) for i, r in enumerate(results)])

    for order in itertools.permutations(range(len(results))):
        contexts = [ctx(results[i], i) for i in order]
        report = aggregate_units(contexts)

        assert report.overall_severity is Severity.SEVERE
        assert set(report.unique_damage_kinds) == set(baseline.unique_damage_kinds)
        assert set(report.affected_areas) == set(baseline.affected_areas)
        assert report.units_with_damage == baseline.units_with_damage
        assert report.average_confidence == baseline.average_confidence
        assert list(report.recommendations) == first_seen(
            rec for c in contexts for rec in c.result.recommendations
        )
        assert aggregate_units(contexts) == report


def test_first_non_empty_currency_wins():
    contexts = [
        ctx(make_result(cost=RepairCost(0, 0, "")), 0),
        ctx(make_result(cost=RepairCost(100, 400, "USD")), 1),
        ctx(make_result(cost=RepairCost(5000, 25000, "INR")), 2),
    ]
    cost = aggregate_units(contexts).estimated_cost
    assert cost.currency == "USD"
    assert (cost.min, cost.max) == (5000, 25000)


def test_currency_defaults_to_inr_when_all_empty():
    contexts = [
        ctx(make_result(cost=RepairCost(0, 0, "")), 0),
        ctx(make_result(cost=RepairCost(1000, 2000, "")), 1),
    ]
    assert aggregate_units(contexts).estimated_cost.currency == "INR"
