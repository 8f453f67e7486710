"""Streamlit front end for the DamageDetect vehicle damage assessment demo."""

from __future__ import annotations

import asyncio
import hashlib
import os
from typing import Any, Dict, List

import streamlit as st

from damage_detect.models.media import MediaFile, MediaKind
from damage_detect.orchestration.batch import BatchProgress
from damage_detect.orchestration.session import AnalysisSession
from damage_detect.plugins.damage_analyzer import DamageAnalysisClient
from damage_detect.plugins.frame_extractor import FrameExtractor
from damage_detect.reporting.views import (
    badge_html,
    combined_report_view,
    observation_html,
    single_result_view,
)
from damage_detect.utils.config import Config
from damage_detect.utils.data_uri import decode_data_uri
from damage_detect.utils.errors import AnalysisInProgressError
from damage_detect.utils.logging import setup_logging


APP_TITLE = "DamageDetect AI - Vehicle Damage Assessment"
CONFIG_PATH = os.getenv("DAMAGE_DETECT_CONFIG", "config.yaml")
ALLOWED_TYPES = ["png", "jpg", "jpeg", "webp", "mp4", "mov", "webm", "avi", "mkv"]
THUMBNAILS_PER_ROW = 6


@st.cache_resource
def load_config() -> Config:
    config = Config.load(CONFIG_PATH)
    setup_logging(
        level=config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file or None,
    )
    return config


def init_state() -> None:
    config = load_config()
    if "session" not in st.session_state:
        st.session_state.session = AnalysisSession(
            DamageAnalysisClient.from_config(config),
            frame_extractor=FrameExtractor.from_config(config),
            brand=config.report.brand,
            single_prefix=config.report.single_filename_prefix,
            combined_prefix=config.report.combined_filename_prefix,
        )
    st.session_state.setdefault("upload_signature", None)
    st.session_state.setdefault("report_artifact", None)


def get_session() -> AnalysisSession:
    return st.session_state.session


def data_uri_bytes(uri: str) -> bytes:
    return decode_data_uri(uri)[1]


def upload_signature(files: List[Any]) -> str:
    digest = hashlib.sha1()
    for file in files:
        digest.update(file.name.encode("utf-8"))
        digest.update(str(file.size).encode("utf-8"))
    return digest.hexdigest()


def show_notices() -> None:
    for notice in get_session().drain_notices():
        icon = "⚠️" if notice.variant == "destructive" else "✅"
        st.toast(f"**{notice.title}** - {notice.description}", icon=icon)


def run_async(coro):
    """Run a session coroutine from the Streamlit script thread."""
    try:
        return asyncio.run(coro)
    except AnalysisInProgressError as exc:
        st.warning(exc.context.message)
        return None


def handle_uploads(files: List[Any]) -> None:
    signature = upload_signature(files) if files else None
    if signature == st.session_state.upload_signature:
        return
    st.session_state.upload_signature = signature
    st.session_state.report_artifact = None

    if not files:
        return
    media = [
        MediaFile(filename=file.name, content_type=file.type or "", data=file.getvalue())
        for file in files
    ]
    ingested = get_session().load_media(media)
    if ingested is None:
        st.info("No supported image or video in this upload.")


def render_thumbnails() -> None:
    session = get_session()
    state = session.snapshot()
    if state.media_kind is MediaKind.VIDEO:
        images = [frame.data_uri for frame in state.frames]
        label = "Frame"
    else:
        images = list(state.media_items)
        label = "Image"

    if len(images) < 2:
        return

    st.caption(f"Select a {label.lower()} to analyze")
    for row_start in range(0, len(images), THUMBNAILS_PER_ROW):
        cols = st.columns(THUMBNAILS_PER_ROW)
        for offset, uri in enumerate(images[row_start:row_start + THUMBNAILS_PER_ROW]):
            index = row_start + offset
            with cols[offset]:
                st.image(data_uri_bytes(uri), use_container_width=True)
                button_type = "primary" if index == state.selected_index else "secondary"
                if st.button(
                    f"{label} {index + 1}",
                    key=f"select_{index}",
                    type=button_type,
                    disabled=state.is_analyzing,
                ):
                    session.select(index)
                    st.session_state.report_artifact = None
                    st.rerun()


def render_stat_tiles(tiles: List[Dict[str, str]]) -> None:
    cols = st.columns(len(tiles))
    for col, tile in zip(cols, tiles):
        col.metric(tile["label"], tile["value"])


def render_observations(observations: List[Dict[str, Any]]) -> None:
    for obs in observations:
        st.markdown(observation_html(obs), unsafe_allow_html=True)


def render_single_result(view: Dict[str, Any]) -> None:
    st.subheader(view["headline"])
    if view["annotated_image"]:
        st.image(data_uri_bytes(view["annotated_image"]), caption="Detected damage", use_container_width=True)
    st.info(view["summary"])
    render_stat_tiles(view["tiles"])

    if view["cost"]["visible"]:
        st.success(f"Estimated repair cost: {view['cost']['display']}")
    if view["observations"]:
        st.markdown("#### Damage Details")
        render_observations(view["observations"])
    if view["affected_areas"]:
        st.markdown("#### Affected Areas")
        st.write(", ".join(view["affected_areas"]))
    if view["recommendations"]:
        st.markdown("#### Recommendations")
        for rec in view["recommendations"]:
            st.markdown(f"- {rec}")


def render_combined_report(view: Dict[str, Any]) -> None:
    st.subheader(view["headline"])
    st.info(view["summary"])
    render_stat_tiles(view["tiles"])

    severity = view["severity"]
    st.markdown(
        f"Overall severity: {badge_html(severity)}",
        unsafe_allow_html=True,
    )
    if view["cost"]["visible"]:
        st.success(f"Estimated repair cost: {view['cost']['display']}")

    if view["damage_kinds"]:
        st.markdown("#### Damage Types Detected")
        st.write(", ".join(view["damage_kinds"]))
    if view["affected_areas"]:
        st.markdown("#### Affected Areas")
        st.write(", ".join(view["affected_areas"]))
    if view["observations"]:
        with st.expander(f"All Damage Instances ({len(view['observations'])})", expanded=True):
            render_observations(view["observations"])
    if view["recommendations"]:
        st.markdown("#### Recommendations")
        for rec in view["recommendations"]:
            st.markdown(f"- {rec}")

    st.markdown("#### Per-unit results")
    cols = st.columns(2)
    for position, item in enumerate(view["gallery"]):
        with cols[position % 2]:
            st.image(data_uri_bytes(item["image"]), caption=f"{item['caption']} - {item['info']}", use_container_width=True)


def render_report_download() -> None:
    session = get_session()
    if st.button("Prepare PDF report", key="prepare_report"):
        st.session_state.report_artifact = session.export_report()
        show_notices()

    artifact = st.session_state.report_artifact
    if artifact is not None:
        st.download_button(
            "Download PDF",
            data=artifact.content,
            file_name=artifact.filename,
            mime=artifact.media_type,
            key="download_report",
        )


# --------------------------- STREAMLIT UI ---------------------------

st.set_page_config(page_title=APP_TITLE, layout="wide")
init_state()
session = get_session()

st.markdown(
    """
    <style>
    .small { font-size: 0.85rem; color:#58606b; }
    </style>
    """,
    unsafe_allow_html=True,
)

st.title(APP_TITLE)
st.caption("Upload a vehicle photo, several photos, or a short video to assess visible damage.")

uploads = st.file_uploader(
    "Vehicle media",
    type=ALLOWED_TYPES,
    accept_multiple_files=True,
    key="media_upload",
)
handle_uploads(uploads or [])

state = session.snapshot()

if state.media_kind is None:
    st.info("Waiting for an image or video upload.")
else:
    left, right = st.columns([1, 1])

    with left:
        if state.media_kind is MediaKind.VIDEO:
            st.video(data_uri_bytes(state.media_items[0]))
            if st.button("Extract frames", key="extract_frames", disabled=state.is_analyzing):
                with st.spinner("Extracting frames..."):
                    run_async(session.extract_frames())
                st.rerun()
        if state.current_image:
            st.image(data_uri_bytes(state.current_image), caption="Selected for analysis", use_container_width=True)
        render_thumbnails()

    with right:
        units, unit_label = session.batch_units()
        action_cols = st.columns(2)
        analyze_one = action_cols[0].button(
            f"Analyze selected {unit_label}",
            key="analyze_selected",
            type="primary",
            disabled=state.current_image is None or state.is_analyzing,
        )
        analyze_all = action_cols[1].button(
            f"Analyze all {len(units)} {unit_label}s",
            key="analyze_all",
            disabled=len(units) < 2 or state.is_analyzing,
        )

        if analyze_one:
            st.session_state.report_artifact = None
            with st.spinner("Analyzing damage..."):
                run_async(session.analyze_selected())
            st.rerun()

        if analyze_all:
            st.session_state.report_artifact = None
            progress_bar = st.progress(0.0, text=f"Starting analysis of {len(units)} {unit_label}s...")

            def on_progress(progress: BatchProgress) -> None:
                progress_bar.progress(
                    min(1.0, progress.percent / 100),
                    text=f"Analyzing {unit_label} {progress.current_unit} of {progress.total_units}...",
                )

            run_async(session.analyze_all(on_progress=on_progress))
            st.rerun()

        state = session.snapshot()
        if state.combined_report is not None:
            render_combined_report(combined_report_view(state.combined_report))
            render_report_download()
        elif state.single_result is not None:
            render_single_result(single_result_view(state.single_result))
            render_report_download()

show_notices()

st.markdown(
    '<div class="small">Tip: uploads and results live in session state for this browser session.</div>',
    unsafe_allow_html=True,
)
