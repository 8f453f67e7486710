"""View models for rendering results in the web shell and the Streamlit panel.

Everything here returns plain dicts and lists so any front end can draw them,
plus small HTML snippets for the Streamlit panel. Model-supplied text is
escaped before it reaches any markup.
"""

import html
from typing import Any, Dict, List

from ..models.assessment import CombinedReport, Severity, UnitAnalysisResult
from .styles import SEVERITY_BADGES, format_cost_range


def severity_badge(severity: Severity) -> Dict[str, str]:
    return {"label": severity.label, **SEVERITY_BADGES[severity]}


def badge_html(badge: Dict[str, str]) -> str:
    return (
        f"<span style='background:{badge['background']};color:{badge['color']};"
        "padding:2px 10px;border-radius:999px;font-size:0.8rem;font-weight:600'>"
        f"{html.escape(badge['label'])}</span>"
    )


def observation_html(obs: Dict[str, Any]) -> str:
    """Markup for one observation card from ``single_result_view`` or ``combined_report_view``."""
    unit = f" · {html.escape(obs['unit'])}" if obs.get("unit") else ""
    return (
        f"**{obs['number']}. {html.escape(str(obs['kind']))}**{unit} &nbsp; {badge_html(obs['severity'])}<br>"
        f"<span class='small'>Location: {html.escape(str(obs['location']))}</span><br>"
        f"{html.escape(str(obs['description']))}"
    )


def _cost_view(cost) -> Dict[str, Any]:
    return {
        "min": cost.min,
        "max": cost.max,
        "currency": cost.currency,
        "display": format_cost_range(cost),
        "visible": cost.max > 0,
    }


def single_result_view(result: UnitAnalysisResult) -> Dict[str, Any]:
    """
    Build the view model for one analyzed image.

    Args:
        result: Analyzed unit

    Returns:
        Dict with headline, stat tiles, observation cards, areas, cost and
        recommendations
    """
    if not result.has_subject:
        headline = "No vehicle detected"
    elif result.has_damage:
        headline = (
            f"Detected {len(result.observations)} damage(s) with "
            f"{result.overall_severity.label} severity."
        )
    else:
        headline = "No damage detected on this vehicle."

    return {
        "headline": headline,
        "has_vehicle": result.has_subject,
        "has_damage": result.has_damage,
        "is_fallback": result.is_fallback,
        "summary": result.summary,
        "annotated_image": result.annotated_media,
        "severity": severity_badge(result.overall_severity),
        "tiles": [
            {"label": "Damages Found", "value": str(len(result.observations))},
            {"label": "Confidence", "value": f"{result.confidence_score}%"},
            {"label": "Overall Severity", "value": result.overall_severity.label},
        ],
        "observations": [
            {
                "number": number,
                "kind": obs.kind,
                "location": obs.location,
                "description": obs.description,
                "severity": severity_badge(obs.severity),
            }
            for number, obs in enumerate(result.observations, 1)
        ],
        "affected_areas": list(result.affected_areas),
        "cost": _cost_view(result.estimated_cost),
        "recommendations": list(result.recommendations),
    }


def combined_report_view(report: CombinedReport) -> Dict[str, Any]:
    """
    Build the view model for a combined report.

    Args:
        report: CombinedReport to present

    Returns:
        Dict with tiles, observation cards tagged by unit, and a per-unit
        gallery with damage counts
    """
    unit_title = "Frame" if report.unit_label == "frame" else "Image"

    gallery: List[Dict[str, Any]] = []
    for ctx in report.unit_contexts:
        result = ctx.result
        gallery.append(
            {
                "index": ctx.index,
                "caption": f"{unit_title} {ctx.index + 1}",
                "image": ctx.display_image,
                "has_damage": result.has_damage,
                "damage_count": len(result.observations),
                "severity": severity_badge(result.overall_severity),
                "info": (
                    f"{len(result.observations)} damage(s) - {result.overall_severity.label}"
                    if result.has_damage
                    else "No damage"
                ),
            }
        )

    return {
        "headline": (
            f"Analyzed {report.total_units} {report.unit_label}s. "
            f"Found {len(report.all_observations)} total damage instances."
        ),
        "summary": report.summary,
        "severity": severity_badge(report.overall_severity),
        "tiles": [
            {"label": f"{unit_title}s Analyzed", "value": str(report.total_units)},
            {"label": f"{unit_title}s w/ Damage", "value": str(report.units_with_damage)},
            {"label": "Total Damages", "value": str(len(report.all_observations))},
            {"label": "Avg Confidence", "value": f"{report.average_confidence}%"},
        ],
        "damage_kinds": list(report.unique_damage_kinds),
        "affected_areas": list(report.affected_areas),
        "observations": [
            {
                "number": number,
                "kind": tagged.observation.kind,
                "location": tagged.observation.location,
                "description": tagged.observation.description,
                "unit": f"{unit_title} {tagged.unit_index + 1}",
                "unit_index": tagged.unit_index,
                "severity": severity_badge(tagged.observation.severity),
            }
            for number, tagged in enumerate(report.all_observations, 1)
        ],
        "cost": _cost_view(report.estimated_cost),
        "recommendations": list(report.recommendations),
        "gallery": gallery,
    }
