"""Orchestration layer for batch analysis, aggregation and session state."""

from .aggregator import aggregate_units, build_summary
from .batch import BatchOrchestrator, BatchOutcome, BatchProgress, BatchStatus, UnitFailure
from .session import AnalysisSession, Notice, SessionState

__all__ = [
    "aggregate_units",
    "build_summary",
    "BatchOrchestrator",
    "BatchOutcome",
    "BatchProgress",
    "BatchStatus",
    "UnitFailure",
    "AnalysisSession",
    "Notice",
    "SessionState"
]
