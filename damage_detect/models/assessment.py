"""Damage assessment data models."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple


class Severity(IntEnum):
    """
    Ordinal damage severity.

    Integer values give the roll-up ordering None < Minor < Moderate < Severe;
    ``label`` is the wire spelling used by the analysis boundary.
    """

    NONE = 0
    MINOR = 1
    MODERATE = 2
    SEVERE = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: Any, default: "Severity" = None) -> "Severity":
        """
        Parse a severity label case-insensitively.

        Args:
            value: Label such as "Severe", "moderate" or a Severity
            default: Value returned for unknown labels

        Returns:
            Matching Severity, or ``default`` (``Severity.NONE`` when omitted)
        """
        if isinstance(value, Severity):
            return value
        if isinstance(value, str):
            member = cls.__members__.get(value.strip().upper())
            if member is not None:
                return member
        return default if default is not None else cls.NONE


@dataclass(frozen=True)
class DamageObservation:
    """
    A single defect detected on a vehicle.

    Attributes:
        kind: Damage category (e.g., "dent", "scratch", "paint_damage")
        location: Vehicle part where the damage sits (e.g., "front bumper")
        severity: Minor, Moderate or Severe
        description: Free-text description from the model
        bbox: Optional relative box {x, y, w, h}; only the annotator reads it
    """
    kind: str
    location: str
    severity: Severity
    description: str
    bbox: Optional[Dict[str, float]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.kind,
            "location": self.location,
            "severity": self.severity.label,
            "description": self.description,
        }
        if self.bbox:
            payload["bbox"] = dict(self.bbox)
        return payload


@dataclass(frozen=True)
class RepairCost:
    """
    Estimated repair cost range.

    ``min <= max`` is not enforced; combined reports can invert it.
    """
    min: float
    max: float
    currency: str = "INR"

    def to_dict(self) -> Dict[str, Any]:
        return {"min": self.min, "max": self.max, "currency": self.currency}


@dataclass(frozen=True)
class UnitAnalysisResult:
    """
    Normalized analysis outcome for one image.

    Attributes:
        has_subject: Whether a vehicle was recognized
        has_damage: Whether any damage was reported
        overall_severity: Worst severity for the image
        confidence_score: Model confidence, 0-100
        observations: Detected defects in model order
        affected_areas: Unique affected part names
        estimated_cost: Repair cost range
        recommendations: Ordered recommendation strings
        summary: Short narrative from the model
        annotated_media: Data URI with damage call-outs, when one was drawn
        is_fallback: True for the degraded result substituted for an
            unreadable payload
    """
    has_subject: bool
    has_damage: bool
    overall_severity: Severity
    confidence_score: int
    observations: Tuple[DamageObservation, ...] = ()
    affected_areas: Tuple[str, ...] = ()
    estimated_cost: RepairCost = RepairCost(0, 0)
    recommendations: Tuple[str, ...] = ()
    summary: str = ""
    annotated_media: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the boundary's field names."""
        return {
            "hasVehicle": self.has_subject,
            "hasDamage": self.has_damage,
            "overallSeverity": self.overall_severity.label,
            "confidenceScore": self.confidence_score,
            "damages": [obs.to_dict() for obs in self.observations],
            "affectedAreas": list(self.affected_areas),
            "estimatedRepairCost": self.estimated_cost.to_dict(),
            "recommendations": list(self.recommendations),
            "summary": self.summary,
            "annotatedImage": self.annotated_media,
            "isFallback": self.is_fallback,
        }


@dataclass(frozen=True)
class UnitContext:
    """
    A unit result paired with where it came from.

    Attributes:
        result: The unit's analysis result
        index: Position of the unit in the original frame/image sequence
        source_image: The data URI that was submitted
    """
    result: UnitAnalysisResult
    index: int
    source_image: str

    @property
    def display_image(self) -> str:
        """Annotated image when one exists, else the submitted image."""
        return self.result.annotated_media or self.source_image


@dataclass(frozen=True)
class TaggedObservation:
    """A DamageObservation stamped with the index of the unit it came from."""
    observation: DamageObservation
    unit_index: int

    def to_dict(self) -> Dict[str, Any]:
        payload = self.observation.to_dict()
        payload["frameIndex"] = self.unit_index
        return payload


@dataclass(frozen=True)
class CombinedReport:
    """
    Report merged from every successful unit of a batch.

    Attributes:
        total_units: Number of successful units
        units_with_damage: Units reporting damage
        overall_severity: Maximum unit severity
        average_confidence: Mean confidence, rounded half-up
        all_observations: Every observation, tagged with its unit index
        unique_damage_kinds: Damage kinds in first-seen order
        affected_areas: Union of affected areas in first-seen order
        estimated_cost: Max of unit minimums and max of unit maximums
        recommendations: Union of recommendations in first-occurrence order
        summary: Templated narrative
        unit_contexts: The ordered input contexts
        unit_label: "image" or "frame"
    """
    total_units: int
    units_with_damage: int
    overall_severity: Severity
    average_confidence: int
    all_observations: Tuple[TaggedObservation, ...]
    unique_damage_kinds: Tuple[str, ...]
    affected_areas: Tuple[str, ...]
    estimated_cost: RepairCost
    recommendations: Tuple[str, ...]
    summary: str
    unit_contexts: Tuple[UnitContext, ...]
    unit_label: str = "image"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFramesAnalyzed": self.total_units,
            "framesWithDamage": self.units_with_damage,
            "overallSeverity": self.overall_severity.label,
            "averageConfidence": self.average_confidence,
            "allDamages": [obs.to_dict() for obs in self.all_observations],
            "uniqueDamageTypes": list(self.unique_damage_kinds),
            "affectedAreas": list(self.affected_areas),
            "estimatedRepairCost": self.estimated_cost.to_dict(),
            "recommendations": list(self.recommendations),
            "summary": self.summary,
            "unitLabel": self.unit_label,
            "frameResults": [
                {"frameIndex": ctx.index, **ctx.result.to_dict()}
                for ctx in self.unit_contexts
            ],
        }
