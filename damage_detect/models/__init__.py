"""Data models for damage assessment."""

from .assessment import (
    CombinedReport,
    DamageObservation,
    RepairCost,
    Severity,
    TaggedObservation,
    UnitAnalysisResult,
    UnitContext,
)
from .media import IngestedMedia, MediaFile, MediaKind

__all__ = [
    'CombinedReport',
    'DamageObservation',
    'RepairCost',
    'Severity',
    'TaggedObservation',
    'UnitAnalysisResult',
    'UnitContext',
    'IngestedMedia',
    'MediaFile',
    'MediaKind',
]
