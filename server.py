"""FastAPI web shell for the DamageDetect vehicle damage assessment demo."""

from __future__ import annotations

import io
import os
import threading
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from damage_detect.assessor import DamageAssessor, boundary_error_response
from damage_detect.models.media import MediaFile, MediaKind
from damage_detect.orchestration.session import AnalysisSession
from damage_detect.plugins.damage_analyzer import DamageAnalysisClient
from damage_detect.plugins.frame_extractor import FrameExtractor
from damage_detect.reporting.views import combined_report_view, single_result_view
from damage_detect.utils.bedrock_client import BedrockClient
from damage_detect.utils.config import Config
from damage_detect.utils.errors import AnalysisInProgressError
from damage_detect.utils.logging import get_logger, log_context, setup_logging


APP_TITLE = "DamageDetect AI - Vehicle Damage Assessment"
CONFIG_PATH = os.getenv("DAMAGE_DETECT_CONFIG", "config.yaml")

MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "10"))
MAX_TOTAL_MB = int(os.getenv("MAX_TOTAL_MB", "50"))
MAX_FILES_PER_TYPE = int(os.getenv("MAX_FILES_PER_TYPE", "10"))
UPLOAD_LIMIT_BYTES = MAX_TOTAL_MB * 1024 * 1024

logger = get_logger(__name__)


@dataclass
class SessionRecord:
    """A live analysis session and its bookkeeping."""

    session: AnalysisSession
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@lru_cache(maxsize=1)
def _load_config() -> Config:
    return Config.load(CONFIG_PATH)


@lru_cache(maxsize=1)
def _build_assessor() -> DamageAssessor:
    config = _load_config()
    return DamageAssessor(
        BedrockClient.from_config(config),
        temperature=config.bedrock.temperature,
        max_tokens=config.bedrock.max_tokens,
    )


def get_assessor() -> DamageAssessor:
    return _build_assessor()


def get_analysis_client() -> DamageAnalysisClient:
    return DamageAnalysisClient.from_config(_load_config())


def get_frame_extractor() -> FrameExtractor:
    return FrameExtractor.from_config(_load_config())


def get_report_settings() -> Dict[str, str]:
    report = _load_config().report
    return {
        "brand": report.brand,
        "single_prefix": report.single_filename_prefix,
        "combined_prefix": report.combined_filename_prefix,
    }


@asynccontextmanager
async def lifespan(_: FastAPI):
    config = _load_config()
    setup_logging(
        level=config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file or None,
    )
    logger.info(f"{APP_TITLE} ready; boundary at {config.boundary.url}")
    yield


app = FastAPI(title=APP_TITLE, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

sessions: Dict[str, SessionRecord] = {}
sessions_lock = threading.Lock()


def _now() -> datetime:
    return datetime.utcnow()


def _read_upload(file: UploadFile) -> MediaFile:
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"{file.filename} is empty.")
    return MediaFile(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )


def _validate_uploads(items: List[MediaFile]) -> None:
    if len(items) > MAX_FILES_PER_TYPE:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files. Max {MAX_FILES_PER_TYPE} allowed.",
        )
    total_size = 0
    for item in items:
        if item.size > MAX_FILE_SIZE_MB * 1024 * 1024:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"{item.filename} exceeds the per-file limit "
                    f"of {MAX_FILE_SIZE_MB} MB."
                ),
            )
        total_size += item.size
    if total_size > UPLOAD_LIMIT_BYTES:
        raise HTTPException(
            status_code=400,
            detail=(
                "Combined upload size exceeds limit "
                f"of {MAX_TOTAL_MB} MB."
            ),
        )


def _register_session(record: SessionRecord) -> SessionRecord:
    with sessions_lock:
        sessions[record.session.session_id] = record
    return record


def _get_session(session_id: str) -> SessionRecord:
    with sessions_lock:
        record = sessions.get(session_id)
    if not record:
        raise HTTPException(status_code=404, detail="Session not found.")
    return record


def _touch(record: SessionRecord) -> None:
    record.updated_at = _now()


def _session_payload(record: SessionRecord) -> Dict[str, Any]:
    session = record.session
    state = session.snapshot()
    return {
        "session_id": state.session_id,
        "media_kind": state.media_kind.value if state.media_kind else None,
        "filenames": list(state.filenames),
        "unit_count": state.unit_count,
        "frames": [
            {"index": frame.index, "timestamp": round(frame.timestamp, 3), "image": frame.data_uri}
            for frame in state.frames
        ],
        "selected_index": state.selected_index,
        "current_image": state.current_image,
        "is_analyzing": state.is_analyzing,
        "progress": state.progress.to_dict() if state.progress else None,
        "result": single_result_view(state.single_result) if state.single_result else None,
        "combined": combined_report_view(state.combined_report) if state.combined_report else None,
        "notices": [notice.to_dict() for notice in session.drain_notices()],
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
    }


async def _run_batch(record: SessionRecord) -> None:
    try:
        await record.session.analyze_all(reserved=True)
    finally:
        _touch(record)


@app.exception_handler(AnalysisInProgressError)
async def analysis_in_progress_handler(_: Request, exc: AnalysisInProgressError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": exc.context.message})


@app.get("/healthz")
async def healthz() -> JSONResponse:
    with sessions_lock:
        active = len(sessions)
    return JSONResponse({"status": "ok", "sessions": active})


@app.post("/functions/analyze-damage")
async def analyze_damage(
    request: Request,
    assessor: DamageAssessor = Depends(get_assessor),
) -> JSONResponse:
    """Analysis boundary: one image in, one damage assessment out."""

    try:
        body = await request.json()
    except ValueError:
        body = None
    image = body.get("imageBase64") if isinstance(body, dict) else None

    request_id = uuid.uuid4().hex[:8]
    with log_context(session_id=f"req-{request_id}"):
        try:
            payload = await assessor.assess(image)
        except Exception as exc:  # pylint: disable=broad-except
            status_code, error_body = boundary_error_response(exc)
            logger.error(f"Error in analyze-damage ({status_code}): {exc}")
            return JSONResponse(status_code=status_code, content=error_body)
    return JSONResponse(payload)


@app.post("/api/sessions")
async def create_session(
    client: DamageAnalysisClient = Depends(get_analysis_client),
    extractor: FrameExtractor = Depends(get_frame_extractor),
    report_settings: Dict[str, str] = Depends(get_report_settings),
) -> JSONResponse:
    session = AnalysisSession(client, frame_extractor=extractor, **report_settings)
    record = _register_session(SessionRecord(session=session))
    logger.info(f"Created session {session.session_id}")
    return JSONResponse(_session_payload(record), status_code=201)


@app.get("/api/sessions/{session_id}")
async def session_status(session_id: str) -> JSONResponse:
    record = _get_session(session_id)
    return JSONResponse(_session_payload(record))


@app.post("/api/sessions/{session_id}/media")
async def upload_media(session_id: str, files: List[UploadFile] = File(...)) -> JSONResponse:
    record = _get_session(session_id)
    items = [_read_upload(file) for file in files]
    _validate_uploads(items)

    ingested = record.session.load_media(items)
    _touch(record)
    payload = _session_payload(record)
    payload["accepted"] = ingested is not None
    return JSONResponse(payload)


@app.delete("/api/sessions/{session_id}/media")
async def clear_media(session_id: str) -> JSONResponse:
    record = _get_session(session_id)
    record.session.clear_media()
    _touch(record)
    return JSONResponse(_session_payload(record))


@app.post("/api/sessions/{session_id}/frames")
async def extract_frames(session_id: str) -> JSONResponse:
    record = _get_session(session_id)
    if record.session.media_kind is not MediaKind.VIDEO:
        raise HTTPException(status_code=400, detail="No video loaded.")
    await record.session.extract_frames()
    _touch(record)
    return JSONResponse(_session_payload(record))


@app.post("/api/sessions/{session_id}/select/{index}")
async def select_unit(session_id: str, index: int) -> JSONResponse:
    record = _get_session(session_id)
    try:
        record.session.select(index)
    except IndexError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    _touch(record)
    return JSONResponse(_session_payload(record))


@app.post("/api/sessions/{session_id}/analyze")
async def analyze_selected(session_id: str) -> JSONResponse:
    record = _get_session(session_id)
    if record.session.current_image is None:
        raise HTTPException(status_code=400, detail="Nothing selected for analysis.")
    await record.session.analyze_selected()
    _touch(record)
    return JSONResponse(_session_payload(record))


@app.post("/api/sessions/{session_id}/analyze-all")
async def analyze_all(session_id: str, background_tasks: BackgroundTasks) -> JSONResponse:
    record = _get_session(session_id)
    units, unit_label = record.session.batch_units()
    if not units:
        raise HTTPException(status_code=400, detail="Nothing to analyze.")
    # Flag is held from here until the background batch finishes
    record.session.reserve()
    background_tasks.add_task(_run_batch, record)
    _touch(record)
    return JSONResponse(
        {"session_id": session_id, "status": "queued", "total_units": len(units), "unit_label": unit_label},
        status_code=202,
    )


@app.get("/api/sessions/{session_id}/report")
async def download_report(session_id: str) -> StreamingResponse:
    record = _get_session(session_id)
    artifact = record.session.export_report()
    _touch(record)
    if artifact is None:
        raise HTTPException(status_code=400, detail="Report unavailable.")
    return StreamingResponse(
        io.BytesIO(artifact.content),
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str) -> JSONResponse:
    _get_session(session_id)
    with sessions_lock:
        sessions.pop(session_id, None)
    return JSONResponse({"session_id": session_id, "deleted": True})
