"""Tests for the analysis session state owner."""

import asyncio
from datetime import datetime

import pytest

from damage_detect.models.assessment import DamageObservation, RepairCost, Severity, UnitAnalysisResult
from damage_detect.models.media import MediaFile, MediaKind
from damage_detect.orchestration.batch import BatchStatus
from damage_detect.orchestration.session import AnalysisSession
from damage_detect.plugins.frame_extractor import ExtractedFrame
from damage_detect.utils.errors import AnalysisClientError, AnalysisInProgressError, FrameExtractionError


def result(damaged=True):
    observations = (DamageObservation("dent", "hood", Severity.MINOR, "Small dent"),) if damaged else ()
    return UnitAnalysisResult(
        has_subject=True,
        has_damage=damaged,
        overall_severity=Severity.MINOR if damaged else Severity.NONE,
        confidence_score=80,
        observations=observations,
        estimated_cost=RepairCost(5000, 25000, "INR") if damaged else RepairCost(0, 0, "INR"),
        summary="ok",
    )


class FakeClient:
    def __init__(self, failing=(), damaged=True):
        self.failing = set(failing)
        self.damaged = damaged
        self.calls = []

    async def analyze(self, image):
        self.calls.append(image)
        if image in self.failing or "all" in self.failing:
            raise AnalysisClientError.from_status(500, "boom")
        return result(self.damaged)


class FakeExtractor:
    def __init__(self, frames=None, error=None):
        self.frames = frames or []
        self.error = error
        self.calls = 0

    def extract_from_bytes(self, video_bytes, content_type="video/mp4"):
        self.calls += 1
        if self.error:
            raise self.error
        return self.frames


def images(*names):
    return [MediaFile(filename=f"{n}.jpg", content_type="image/jpeg", data=n.encode()) for n in names]


VIDEO = [MediaFile(filename="clip.mp4", content_type="video/mp4", data=b"video-bytes")]
FRAMES = [ExtractedFrame(i, i + 0.5, f"data:image/jpeg;base64,frame{i}") for i in range(3)]


def notice_titles(session):
    return [n.title for n in session.drain_notices()]


def test_loading_multiple_images_notifies_and_selects_first():
    session = AnalysisSession(FakeClient())
    session.load_media(images("a", "b", "c"))

    state = session.snapshot()
    assert state.media_kind is MediaKind.MULTI_IMAGE
    assert state.unit_count == 3
    assert state.selected_index == 0
    assert state.current_image == state.media_items[0]
    assert notice_titles(session) == ["Images Uploaded"]


def test_unsupported_upload_leaves_state_untouched():
    session = AnalysisSession(FakeClient())
    session.load_media(images("a"))
    before = session.snapshot()

    assert session.load_media([MediaFile("doc.pdf", "application/pdf", b"%PDF")]) is None
    assert session.snapshot().media_items == before.media_items


@pytest.mark.asyncio
async def test_new_media_replaces_prior_results():
    session = AnalysisSession(FakeClient())
    session.load_media(images("a", "b"))
    await session.analyze_selected()
    assert session.snapshot().single_result is not None

    session.load_media(images("c"))
    state = session.snapshot()
    assert state.single_result is None
    assert state.combined_report is None
    assert state.filenames == ("c.jpg",)


@pytest.mark.asyncio
async def test_extract_frames_success():
    extractor = FakeExtractor(frames=FRAMES)
    session = AnalysisSession(FakeClient(), frame_extractor=extractor)
    session.load_media(VIDEO)

    frames = await session.extract_frames()

    assert frames == FRAMES
    assert session.current_image == FRAMES[0].data_uri
    assert session.batch_units() == ([f.data_uri for f in FRAMES], "frame")
    notices = session.drain_notices()
    assert notices[-1].title == "Frames Extracted"
    assert notices[-1].description == "Extracted 3 frames from video. Select a frame to analyze."


@pytest.mark.asyncio
async def test_extract_frames_failure_keeps_no_frames():
    extractor = FakeExtractor(error=FrameExtractionError.invalid_duration(0))
    session = AnalysisSession(FakeClient(), frame_extractor=extractor)
    session.load_media(VIDEO)

    assert await session.extract_frames() == []
    assert session.snapshot().frames == ()
    assert not session.is_analyzing
    notices = session.drain_notices()
    assert notices[-1].title == "Extraction Failed"
    assert notices[-1].variant == "destructive"


@pytest.mark.asyncio
async def test_analyze_selected_uses_selection():
    client = FakeClient()
    session = AnalysisSession(client)
    session.load_media(images("a", "b", "c"))
    session.drain_notices()

    session.select(2)
    analyzed = await session.analyze_selected()

    assert client.calls == [session.snapshot().media_items[2]]
    assert analyzed.has_damage
    notices = session.drain_notices()
    assert notices[0].title == "Analysis Complete"
    assert notices[0].description == "Detected 1 damage(s) with Minor severity."


@pytest.mark.asyncio
async def test_analyze_selected_clean_vehicle_notice():
    session = AnalysisSession(FakeClient(damaged=False))
    session.load_media(images("a"))
    await session.analyze_selected()
    assert session.drain_notices()[-1].description == "No damage detected on this vehicle."


@pytest.mark.asyncio
async def test_analyze_selected_failure_becomes_notice():
    session = AnalysisSession(FakeClient(failing={"all"}))
    session.load_media(images("a"))

    assert await session.analyze_selected() is None
    assert session.snapshot().single_result is None
    assert notice_titles(session) == ["Analysis Failed"]


def test_select_out_of_range():
    session = AnalysisSession(FakeClient())
    session.load_media(images("a", "b"))
    with pytest.raises(IndexError):
        session.select(5)


@pytest.mark.asyncio
async def test_analyze_all_builds_combined_report_and_progress():
    seen = []
    client = FakeClient(failing=set())
    session = AnalysisSession(client)
    session.load_media(images("a", "b", "c", "d"))
    session.drain_notices()
    failing_uri = session.snapshot().media_items[1]
    client.failing = {failing_uri}

    report = await session.analyze_all(on_progress=seen.append)

    assert report.total_units == 3
    assert [c.index for c in report.unit_contexts] == [0, 2, 3]
    assert seen[-1].status is BatchStatus.COMPLETED
    state = session.snapshot()
    assert state.combined_report is report
    assert state.single_result is None
    assert state.progress.percent == 100.0
    notices = session.drain_notices()
    assert notices[-1].title == "Comprehensive Analysis Complete"
    assert notices[-1].description == "Analyzed 3 images. Found 3 total damage instances."


@pytest.mark.asyncio
async def test_analyze_all_total_failure():
    session = AnalysisSession(FakeClient(failing={"all"}))
    session.load_media(images("a", "b"))
    session.drain_notices()

    assert await session.analyze_all() is None
    assert session.snapshot().combined_report is None
    notices = session.drain_notices()
    assert notices[-1].title == "Analysis Failed"
    assert notices[-1].description == "Could not analyze any images. Please try again."


@pytest.mark.asyncio
async def test_second_trigger_while_in_flight_is_rejected():
    release = asyncio.Event()

    class SlowClient(FakeClient):
        async def analyze(self, image):
            await release.wait()
            return result()

    session = AnalysisSession(SlowClient())
    session.load_media(images("a", "b"))

    batch = asyncio.ensure_future(session.analyze_all())
    await asyncio.sleep(0)
    assert session.is_analyzing

    with pytest.raises(AnalysisInProgressError):
        await session.analyze_selected()
    with pytest.raises(AnalysisInProgressError):
        session.select(1)

    release.set()
    report = await batch
    assert report.total_units == 2
    assert not session.is_analyzing


@pytest.mark.asyncio
async def test_export_prefers_combined_report():
    session = AnalysisSession(FakeClient(), brand="TestBrand")
    session.load_media(images("a", "b"))
    await session.analyze_all()
    session.drain_notices()

    artifact = session.export_report(generated_at=datetime(2024, 1, 2))
    assert artifact.filename == "comprehensive-damage-report-2024-01-02.pdf"
    assert notice_titles(session) == ["PDF Downloaded"]


@pytest.mark.asyncio
async def test_export_single_result_with_custom_prefix():
    session = AnalysisSession(FakeClient(), single_prefix="claim-photo")
    session.load_media(images("a"))
    await session.analyze_selected()

    artifact = session.export_report(generated_at=datetime(2024, 1, 2))
    assert artifact.filename == "claim-photo-2024-01-02.pdf"


def test_export_without_results_reports_failure():
    session = AnalysisSession(FakeClient())
    assert session.export_report() is None
    assert notice_titles(session) == ["PDF Generation Failed"]


def test_clear_media_resets_everything():
    session = AnalysisSession(FakeClient())
    session.load_media(images("a", "b"))
    session.clear_media()
    state = session.snapshot()
    assert state.media_kind is None
    assert state.current_image is None
    assert state.unit_count == 0


@pytest.mark.asyncio
async def test_reserved_batch_holds_flag_until_done():
    session = AnalysisSession(FakeClient())
    session.load_media(images("a", "b"))

    session.reserve()
    with pytest.raises(AnalysisInProgressError):
        session.reserve()
    with pytest.raises(AnalysisInProgressError):
        await session.analyze_all()

    report = await session.analyze_all(reserved=True)
    assert report.total_units == 2
    assert not session.is_analyzing


@pytest.mark.asyncio
async def test_reserved_batch_without_units_releases_flag():
    session = AnalysisSession(FakeClient())
    session.reserve()
    assert await session.analyze_all(reserved=True) is None
    assert not session.is_analyzing


@pytest.mark.asyncio
async def test_extract_frames_os_error_becomes_notice():
    extractor = FakeExtractor(error=OSError("No space left on device"))
    session = AnalysisSession(FakeClient(), frame_extractor=extractor)
    session.load_media(VIDEO)
    session.drain_notices()

    assert await session.extract_frames() == []
    assert not session.is_analyzing
    notices = session.drain_notices()
    assert [n.title for n in notices] == ["Extraction Failed"]
