"""Per-user analysis session: media, frames, selection, results and notices."""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..models.assessment import CombinedReport, UnitAnalysisResult
from ..models.media import IngestedMedia, MediaFile, MediaKind
from ..plugins.frame_extractor import ExtractedFrame, FrameExtractor
from ..plugins.media_ingestor import ingest_files
from ..reporting.report_builder import (
    COMBINED_PREFIX,
    DEFAULT_BRAND,
    SINGLE_PREFIX,
    ExportArtifact,
    export_combined_report,
    export_single_report,
)
from ..utils.data_uri import decode_data_uri
from ..utils.errors import (
    AnalysisInProgressError,
    BatchAnalysisError,
    DamageDetectError,
    ExportError,
)
from ..utils.logging import log_context
from .batch import BatchOrchestrator, BatchProgress, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """
    User-facing notification, shown as a toast.

    Attributes:
        title: Short headline
        description: One-sentence detail
        variant: "default" or "destructive"
    """
    title: str
    description: str
    variant: str = "default"

    def to_dict(self) -> dict:
        return {"title": self.title, "description": self.description, "variant": self.variant}


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of an AnalysisSession."""
    session_id: str
    media_kind: Optional[MediaKind]
    media_items: Tuple[str, ...]
    filenames: Tuple[str, ...]
    frames: Tuple[ExtractedFrame, ...]
    selected_index: int
    current_image: Optional[str]
    single_result: Optional[UnitAnalysisResult]
    combined_report: Optional[CombinedReport]
    is_analyzing: bool
    progress: Optional[BatchProgress]
    notices: Tuple[Notice, ...]

    @property
    def unit_count(self) -> int:
        if self.media_kind is MediaKind.VIDEO:
            return len(self.frames)
        return len(self.media_items)


def _failure_text(error: Exception, default: str) -> str:
    if isinstance(error, DamageDetectError):
        return error.context.message
    return str(error) or default


class AnalysisSession:
    """
    Owns the state of one interactive analysis session.

    Loading media replaces everything derived from earlier media. One
    analysis (single or batch) or frame extraction may run at a time,
    guarded by a lock-protected in-flight flag; a second trigger raises
    AnalysisInProgressError. Every other failure becomes a Notice.
    """

    def __init__(
        self,
        client,
        frame_extractor: Optional[FrameExtractor] = None,
        session_id: Optional[str] = None,
        brand: str = DEFAULT_BRAND,
        single_prefix: str = SINGLE_PREFIX,
        combined_prefix: str = COMBINED_PREFIX
    ):
        """
        Initialize session.

        Args:
            client: DamageAnalysisClient (or any object with ``async analyze``)
            frame_extractor: Extractor for video uploads
            session_id: Identifier stamped on log records
            brand: Product name printed in exported reports
            single_prefix: Download name prefix for single-image reports
            combined_prefix: Download name prefix for combined reports
        """
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.client = client
        self.frame_extractor = frame_extractor or FrameExtractor()
        self.orchestrator = BatchOrchestrator(client)
        self.brand = brand
        self.single_prefix = single_prefix
        self.combined_prefix = combined_prefix

        self._lock = threading.Lock()
        self._in_flight = False
        self._media: Optional[IngestedMedia] = None
        self._frames: List[ExtractedFrame] = []
        self._selected_index = 0
        self._single_result: Optional[UnitAnalysisResult] = None
        self._single_source: Optional[str] = None
        self._combined_report: Optional[CombinedReport] = None
        self._progress: Optional[BatchProgress] = None
        self._notices: List[Notice] = []

    # ------------------------------------------------------------------ state

    @property
    def is_analyzing(self) -> bool:
        with self._lock:
            return self._in_flight

    @property
    def media_kind(self) -> Optional[MediaKind]:
        return self._media.kind if self._media else None

    @property
    def current_image(self) -> Optional[str]:
        """Data URI of the image a single analysis would submit."""
        if self._media is None:
            return None
        if self._media.kind is MediaKind.VIDEO:
            if not self._frames:
                return None
            return self._frames[self._selected_index].data_uri
        return self._media.items[self._selected_index]

    def batch_units(self) -> Tuple[List[str], str]:
        """Images an "analyze all" run would submit, with their unit label."""
        if self._media is None:
            return [], "image"
        if self._media.kind is MediaKind.VIDEO:
            return [frame.data_uri for frame in self._frames], "frame"
        return list(self._media.items), "image"

    def snapshot(self) -> SessionState:
        with self._lock:
            in_flight = self._in_flight
        media = self._media
        return SessionState(
            session_id=self.session_id,
            media_kind=media.kind if media else None,
            media_items=media.items if media else (),
            filenames=media.filenames if media else (),
            frames=tuple(self._frames),
            selected_index=self._selected_index,
            current_image=self.current_image,
            single_result=self._single_result,
            combined_report=self._combined_report,
            is_analyzing=in_flight,
            progress=self._progress,
            notices=tuple(self._notices),
        )

    def drain_notices(self) -> List[Notice]:
        """Return pending notices and clear them."""
        notices, self._notices = self._notices, []
        return notices

    def _notify(self, title: str, description: str, variant: str = "default") -> None:
        self._notices.append(Notice(title=title, description=description, variant=variant))

    def _begin(self) -> None:
        with self._lock:
            if self._in_flight:
                raise AnalysisInProgressError.already_running(self.session_id)
            self._in_flight = True

    def reserve(self) -> None:
        """
        Claim the in-flight flag ahead of a scheduled ``analyze_all(reserved=True)``.

        Raises:
            AnalysisInProgressError: If an analysis is running or already reserved
        """
        self._begin()

    def _end(self) -> None:
        with self._lock:
            self._in_flight = False

    def _reset_results(self) -> None:
        self._single_result = None
        self._single_source = None
        self._combined_report = None
        self._progress = None

    # ------------------------------------------------------------------ media

    def load_media(self, files: Sequence[MediaFile]) -> Optional[IngestedMedia]:
        """
        Replace the session's media with ``files``.

        Returns:
            The ingested media, or None when no file qualified (state is left
            untouched)

        Raises:
            AnalysisInProgressError: If an analysis is running
        """
        with log_context(session_id=self.session_id):
            ingested = ingest_files(files)
            if ingested is None:
                return None

            self._begin()
            try:
                self._media = ingested
                self._frames = []
                self._selected_index = 0
                self._reset_results()
            finally:
                self._end()

            if ingested.kind is MediaKind.MULTI_IMAGE:
                self._notify(
                    "Images Uploaded",
                    f"{len(ingested.items)} images ready for analysis. "
                    "Select an image or analyze all at once.",
                )
            logger.info(f"Loaded {ingested.kind.value} media ({len(ingested.items)} item(s))")
            return ingested

    def clear_media(self) -> None:
        """Drop media, frames and results."""
        self._begin()
        try:
            self._media = None
            self._frames = []
            self._selected_index = 0
            self._reset_results()
        finally:
            self._end()

    async def extract_frames(self) -> List[ExtractedFrame]:
        """
        Sample frames from the loaded video.

        Extraction runs in a worker thread. On failure no frames are kept and
        a notice is queued.

        Returns:
            Extracted frames; empty when there is no video or extraction failed

        Raises:
            AnalysisInProgressError: If an analysis is running
        """
        with log_context(session_id=self.session_id):
            if self._media is None or self._media.kind is not MediaKind.VIDEO:
                return []

            self._begin()
            try:
                self._frames = []
                self._selected_index = 0
                self._reset_results()
                content_type, video_bytes = decode_data_uri(self._media.items[0])
                frames = await asyncio.to_thread(
                    self.frame_extractor.extract_from_bytes, video_bytes, content_type
                )
            except Exception as e:  # pylint: disable=broad-except
                logger.error(f"Frame extraction failed: {e}")
                self._notify(
                    "Extraction Failed",
                    "Could not extract frames from video. Please try a different video.",
                    "destructive",
                )
                return []
            finally:
                self._end()

            self._frames = list(frames)
            self._notify(
                "Frames Extracted",
                f"Extracted {len(frames)} frames from video. Select a frame to analyze.",
            )
            return list(frames)

    def select(self, index: int) -> None:
        """
        Select the image or frame used by single analysis.

        Raises:
            IndexError: If ``index`` is out of range
            AnalysisInProgressError: If an analysis is running
        """
        units, _ = self.batch_units()
        if not 0 <= index < len(units):
            raise IndexError(f"No image at index {index}")

        self._begin()
        try:
            self._selected_index = index
            self._single_result = None
            self._single_source = None
        finally:
            self._end()

    # --------------------------------------------------------------- analysis

    async def analyze_selected(self) -> Optional[UnitAnalysisResult]:
        """
        Analyze the currently selected image.

        Returns:
            The result, or None when nothing is selected or the call failed

        Raises:
            AnalysisInProgressError: If another analysis is running
        """
        with log_context(session_id=self.session_id):
            image = self.current_image
            if image is None:
                return None

            self._begin()
            try:
                result = await self.client.analyze(image)
            except Exception as e:  # pylint: disable=broad-except
                logger.error(f"Single analysis failed: {e}")
                self._notify(
                    "Analysis Failed",
                    _failure_text(e, "Failed to analyze image. Please try again."),
                    "destructive",
                )
                return None
            finally:
                self._end()

            self._single_result = result
            self._single_source = image
            self._combined_report = None
            self._notify(
                "Analysis Complete",
                f"Detected {len(result.observations)} damage(s) with "
                f"{result.overall_severity.label} severity."
                if result.has_damage
                else "No damage detected on this vehicle.",
            )
            return result

    async def analyze_all(
        self,
        on_progress: Optional[ProgressCallback] = None,
        reserved: bool = False
    ) -> Optional[CombinedReport]:
        """
        Analyze every image or frame in order and build the combined report.

        The previous combined report is discarded when the run starts.

        Args:
            on_progress: Optional callback receiving each BatchProgress snapshot
            reserved: The caller already holds the flag via ``reserve()``; it
                is released when the run ends

        Returns:
            CombinedReport, or None when there was nothing to analyze or every
            unit failed

        Raises:
            AnalysisInProgressError: If another analysis is running
        """
        with log_context(session_id=self.session_id):
            units, unit_label = self.batch_units()
            if not units:
                if reserved:
                    self._end()
                return None

            if not reserved:
                self._begin()
            self._reset_results()

            def record(progress: BatchProgress) -> None:
                self._progress = progress
                if on_progress is not None:
                    on_progress(progress)

            try:
                outcome = await self.orchestrator.run_batch(units, unit_label, on_progress=record)
            except BatchAnalysisError as e:
                logger.error(f"Batch analysis failed: {e}")
                self._notify("Analysis Failed", e.context.message, "destructive")
                return None
            except Exception as e:  # pylint: disable=broad-except
                logger.error(f"Unexpected batch failure: {e}")
                self._notify(
                    "Analysis Failed",
                    _failure_text(e, f"Failed to analyze {unit_label}s. Please try again."),
                    "destructive",
                )
                return None
            finally:
                self._end()

            report = outcome.report
            self._combined_report = report
            self._notify(
                "Comprehensive Analysis Complete",
                f"Analyzed {report.total_units} {unit_label}s. "
                f"Found {len(report.all_observations)} total damage instances.",
            )
            return report

    # ----------------------------------------------------------------- export

    def export_report(self, generated_at: Optional[datetime] = None) -> Optional[ExportArtifact]:
        """
        Export the combined report when present, else the single result.

        Failures leave every result untouched and queue a notice.

        Returns:
            ExportArtifact, or None when there is nothing to export or the
            export failed
        """
        with log_context(session_id=self.session_id):
            try:
                if self._combined_report is not None:
                    artifact = export_combined_report(
                        self._combined_report,
                        generated_at=generated_at,
                        brand=self.brand,
                        filename_prefix=self.combined_prefix,
                    )
                elif self._single_result is not None:
                    artifact = export_single_report(
                        self._single_result,
                        self._single_source,
                        generated_at=generated_at,
                        brand=self.brand,
                        filename_prefix=self.single_prefix,
                    )
                else:
                    raise ExportError.nothing_to_export()
            except ExportError as e:
                logger.error(f"Export failed: {e}")
                self._notify(
                    "PDF Generation Failed",
                    "Could not generate PDF. Please try again.",
                    "destructive",
                )
                return None

            self._notify("PDF Downloaded", "Your damage report has been saved successfully.")
            return artifact
