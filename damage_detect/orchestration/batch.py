"""Sequential batch orchestration over the damage analysis client."""

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional, Sequence, Tuple

from ..models.assessment import CombinedReport, UnitContext
from ..utils.errors import BatchAnalysisError, DamageDetectError
from .aggregator import aggregate_units

logger = logging.getLogger(__name__)


class BatchStatus(Enum):
    """Lifecycle of one batch run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class UnitFailure:
    """
    A unit the batch had to skip.

    Attributes:
        index: Position of the unit in the input sequence
        error_type: ErrorType value, or the exception class name
        message: Human-readable failure reason
    """
    index: int
    error_type: str
    message: str


@dataclass(frozen=True)
class BatchProgress:
    """
    Immutable progress snapshot yielded by ``BatchOrchestrator.iter_batch``.

    Attributes:
        status: Running, completed or failed
        unit_label: "image" or "frame"
        total_units: Number of units in the batch
        current_unit: 1-based number of the unit being analyzed
        attempted: Units finished so far, successful or not
        succeeded: Units that produced a result
        failures: Units skipped so far
        report: CombinedReport on the final snapshot of a completed batch
    """
    status: BatchStatus
    unit_label: str
    total_units: int
    current_unit: int = 0
    attempted: int = 0
    succeeded: int = 0
    failures: Tuple[UnitFailure, ...] = ()
    report: Optional[CombinedReport] = None

    @property
    def percent(self) -> float:
        if not self.total_units:
            return 0.0
        return self.attempted / self.total_units * 100

    @property
    def is_finished(self) -> bool:
        return self.status is not BatchStatus.RUNNING

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "unit_label": self.unit_label,
            "total_units": self.total_units,
            "current_unit": self.current_unit,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "percent": round(self.percent, 1),
            "failures": [
                {"index": f.index, "error_type": f.error_type, "message": f.message}
                for f in self.failures
            ],
        }


@dataclass(frozen=True)
class BatchOutcome:
    """Result of a completed batch: the report plus the units that were skipped."""
    report: CombinedReport
    failures: Tuple[UnitFailure, ...] = ()


ProgressCallback = Callable[[BatchProgress], None]


class BatchOrchestrator:
    """
    Drives the analysis client over an ordered sequence of images.

    Units run strictly one after another. A failed unit is logged and
    skipped; the batch only fails when no unit succeeds. There is no
    cancellation and no retry.
    """

    def __init__(self, client):
        """
        Initialize orchestrator.

        Args:
            client: Object with ``async analyze(data_uri) -> UnitAnalysisResult``
        """
        self.client = client

    async def iter_batch(
        self,
        images: Sequence[str],
        unit_label: str = "image"
    ) -> AsyncIterator[BatchProgress]:
        """
        Analyze ``images`` in order, yielding a snapshot before and after each unit.

        The final snapshot is COMPLETED with the combined report, or FAILED
        with no report when every unit failed.

        Args:
            images: Data URIs in submission order
            unit_label: "image" or "frame"

        Yields:
            BatchProgress snapshots

        Raises:
            ValueError: If ``images`` is empty
        """
        if not images:
            raise ValueError("Batch requires at least one unit")

        total = len(images)
        start_time = time.time()
        contexts: List[UnitContext] = []
        failures: List[UnitFailure] = []

        progress = BatchProgress(status=BatchStatus.RUNNING, unit_label=unit_label, total_units=total)
        logger.info(f"Starting batch analysis of {total} {unit_label}(s)")

        for index, image in enumerate(images):
            progress = replace(progress, current_unit=index + 1)
            yield progress

            logger.info(f"Analyzing {unit_label} {index + 1} of {total}")
            try:
                result = await self.client.analyze(image)
            except Exception as e:  # pylint: disable=broad-except
                error_type = e.error_type.value if isinstance(e, DamageDetectError) else type(e).__name__
                logger.error(f"Error analyzing {unit_label} {index + 1}: {str(e)}")
                logger.warning(f"Skipping {unit_label} {index + 1}; batch continues")
                failures.append(UnitFailure(index=index, error_type=error_type, message=str(e)))
            else:
                contexts.append(UnitContext(result=result, index=index, source_image=image))

            progress = replace(
                progress,
                attempted=index + 1,
                succeeded=len(contexts),
                failures=tuple(failures),
            )
            yield progress

        if not contexts:
            logger.error(f"Batch failed: none of {total} {unit_label}(s) could be analyzed")
            yield replace(progress, status=BatchStatus.FAILED)
            return

        report = aggregate_units(contexts, unit_label=unit_label)
        logger.info(
            f"Batch complete: {len(contexts)}/{total} {unit_label}(s) analyzed "
            f"in {time.time() - start_time:.3f}s"
        )
        yield replace(progress, status=BatchStatus.COMPLETED, report=report)

    async def run_batch(
        self,
        images: Sequence[str],
        unit_label: str = "image",
        on_progress: Optional[ProgressCallback] = None
    ) -> BatchOutcome:
        """
        Run a batch to completion.

        Args:
            images: Data URIs in submission order
            unit_label: "image" or "frame"
            on_progress: Optional callback invoked with every snapshot

        Returns:
            BatchOutcome with the combined report and skipped units

        Raises:
            BatchAnalysisError: If no unit could be analyzed
        """
        final: Optional[BatchProgress] = None
        async for progress in self.iter_batch(images, unit_label):
            final = progress
            if on_progress is not None:
                on_progress(progress)

        if final is None or final.report is None:
            raise BatchAnalysisError.all_units_failed(len(images), unit_label)

        return BatchOutcome(report=final.report, failures=final.failures)
