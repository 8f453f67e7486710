"""Build report layouts and export them as PDF artifacts."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..models.assessment import CombinedReport, UnitAnalysisResult
from ..utils.errors import ExportError
from . import styles
from .layout import (
    BulletList,
    CostLine,
    GalleryItem,
    ImageBlock,
    ImageGallery,
    ItemizedList,
    ListEntry,
    ReportLayout,
    StatTile,
    StatTiles,
    TextBlock,
    TitleBand,
)
from .pdf_renderer import PdfRenderer

logger = logging.getLogger(__name__)

DEFAULT_BRAND = "DamageDetect AI"
SINGLE_PREFIX = "damage-report"
COMBINED_PREFIX = "comprehensive-damage-report"


@dataclass(frozen=True)
class ExportArtifact:
    """A rendered report ready for download."""
    filename: str
    content: bytes
    media_type: str = "application/pdf"


def report_filename(prefix: str, generated_at: datetime) -> str:
    return f"{prefix}-{generated_at.strftime('%Y-%m-%d')}.pdf"


def _first_line(text: str) -> str:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return ""


def _generated_label(generated_at: datetime) -> str:
    return f"Generated: {generated_at.strftime('%d/%m/%Y, %H:%M:%S')}"


def build_single_layout(
    result: UnitAnalysisResult,
    source_image: Optional[str],
    generated_at: datetime,
    brand: str = DEFAULT_BRAND,
    filename_prefix: str = SINGLE_PREFIX,
) -> ReportLayout:
    """
    Describe the single-image report.

    Sections: title band, annotated (or source) image, summary, three stat
    tiles, repair cost when the maximum is above zero, damage details and
    recommendations.

    Args:
        result: The analyzed unit
        source_image: Data URI that was submitted, if available
        generated_at: Timestamp printed in the header and used for the filename
        brand: Product name for the footer
        filename_prefix: Prefix of the download name

    Returns:
        ReportLayout
    """
    blocks: List = [
        TitleBand(
            title="Vehicle Damage Analysis Report",
            subtitle=_generated_label(generated_at),
            fill=styles.BRAND_BLUE,
        )
    ]

    image = result.annotated_media or source_image
    if image:
        blocks.append(ImageBlock(data_uri=image, max_width=120.0, max_height=80.0))

    blocks.append(TextBlock(heading="Summary", text=result.summary, fill=styles.SUMMARY_FILL))

    blocks.append(
        StatTiles(
            tiles=(
                StatTile("Damages Found", str(len(result.observations)), styles.TILE_FILL),
                StatTile("Confidence", f"{result.confidence_score}%", styles.TILE_FILL),
                StatTile(
                    "Overall Severity",
                    result.overall_severity.label,
                    styles.severity_tile_fill(result.overall_severity),
                ),
            )
        )
    )

    if result.estimated_cost.max > 0:
        blocks.append(
            CostLine(
                text=f"Estimated Repair Cost: {styles.format_cost_range(result.estimated_cost, symbol=False)}",
                fill=styles.COST_FILL,
                text_color=styles.COST_TEXT,
            )
        )

    if result.observations:
        entries = tuple(
            ListEntry(
                title=f"{number}. {obs.kind}",
                tag=f"[{obs.severity.label}]",
                lines=(f"Location: {obs.location}", _first_line(obs.description)),
                fill=styles.damage_box_fill(obs.severity),
            )
            for number, obs in enumerate(result.observations, 1)
        )
        blocks.append(ItemizedList(heading="Damage Details", entries=entries))

    if result.recommendations:
        blocks.append(BulletList(heading="Recommendations", items=tuple(result.recommendations)))

    return ReportLayout(
        title="Vehicle Damage Analysis Report",
        filename=report_filename(filename_prefix, generated_at),
        footer=f"Generated by {brand} - Vehicle Damage Analysis System",
        blocks=tuple(blocks),
    )


def build_combined_layout(
    report: CombinedReport,
    generated_at: datetime,
    brand: str = DEFAULT_BRAND,
    filename_prefix: str = COMBINED_PREFIX,
) -> ReportLayout:
    """
    Describe the multi-unit report.

    Sections: title band with unit count, summary, four stat tiles, severity
    and cost boxes, damage kinds, affected areas, every damage instance,
    recommendations, then a two-column gallery on a new page.

    Args:
        report: CombinedReport to export
        generated_at: Timestamp printed in the header and used for the filename
        brand: Product name for the footer
        filename_prefix: Prefix of the download name

    Returns:
        ReportLayout
    """
    is_video = report.unit_label == "frame"
    unit_title = "Frame" if is_video else "Image"
    title = f"Comprehensive {'Video' if is_video else 'Image'} Damage Analysis"

    blocks: List = [
        TitleBand(
            title=title,
            subtitle=f"{report.total_units} {unit_title}s Analyzed",
            caption=_generated_label(generated_at),
            fill=styles.BRAND_BLUE,
        ),
        TextBlock(heading="Summary", text=report.summary, fill=styles.SUMMARY_FILL),
        StatTiles(
            tiles=(
                StatTile(f"{unit_title}s Analyzed", str(report.total_units), styles.TILE_FILL),
                StatTile(f"{unit_title}s w/ Damage", str(report.units_with_damage), styles.TILE_FILL),
                StatTile("Total Damages", str(len(report.all_observations)), styles.TILE_FILL),
                StatTile("Avg Confidence", f"{report.average_confidence}%", styles.TILE_FILL),
            )
        ),
        CostLine(
            label="Overall Severity:",
            text=report.overall_severity.label,
            fill=styles.severity_tile_fill(report.overall_severity),
            text_color=(0, 0, 0),
        ),
    ]

    if report.estimated_cost.max > 0:
        blocks.append(
            CostLine(
                label="Estimated Repair Cost:",
                text=styles.format_cost_range(report.estimated_cost, symbol=False),
                fill=styles.COST_FILL,
                text_color=styles.COST_TEXT,
            )
        )

    if report.unique_damage_kinds:
        blocks.append(TextBlock(heading="Damage Types Detected", text=", ".join(report.unique_damage_kinds)))

    if report.affected_areas:
        blocks.append(TextBlock(heading="Affected Areas", text=", ".join(report.affected_areas)))

    if report.all_observations:
        entries = tuple(
            ListEntry(
                title=f"{number}. {tagged.observation.kind} ({unit_title} {tagged.unit_index + 1})",
                tag=f"[{tagged.observation.severity.label}]",
                lines=(
                    f"Location: {tagged.observation.location}",
                    _first_line(tagged.observation.description),
                ),
                fill=styles.damage_box_fill(tagged.observation.severity),
            )
            for number, tagged in enumerate(report.all_observations, 1)
        )
        blocks.append(ItemizedList(heading="All Damage Instances", entries=entries))

    if report.recommendations:
        blocks.append(BulletList(heading="Recommendations", items=tuple(report.recommendations)))

    gallery = tuple(
        GalleryItem(
            data_uri=ctx.display_image,
            caption=f"{unit_title} {ctx.index + 1}",
            info=(
                f"{len(ctx.result.observations)} damage(s) - {ctx.result.overall_severity.label}"
                if ctx.result.has_damage
                else "No damage"
            ),
        )
        for ctx in report.unit_contexts
    )
    blocks.append(
        ImageGallery(heading=f"{unit_title}-by-{unit_title} Analysis", items=gallery, columns=2, new_page=True)
    )

    footer_kind = "Comprehensive Video Analysis" if is_video else "Comprehensive Image Analysis"
    return ReportLayout(
        title=title,
        filename=report_filename(filename_prefix, generated_at),
        footer=f"Generated by {brand} - {footer_kind}",
        blocks=tuple(blocks),
    )


def export_single_report(
    result: UnitAnalysisResult,
    source_image: Optional[str],
    generated_at: Optional[datetime] = None,
    brand: str = DEFAULT_BRAND,
    filename_prefix: str = SINGLE_PREFIX,
    renderer: Optional[PdfRenderer] = None,
) -> ExportArtifact:
    """
    Render the single-image report to PDF.

    Raises:
        ExportError: If the layout cannot be built or rendered
    """
    generated_at = generated_at or datetime.now()
    try:
        layout = build_single_layout(
            result, source_image, generated_at, brand=brand, filename_prefix=filename_prefix
        )
        content = (renderer or PdfRenderer()).render(layout)
    except Exception as e:
        logger.error(f"Single report export failed: {str(e)}")
        raise ExportError.render_failed("single", e)

    logger.info(f"Exported {layout.filename} ({len(content)} bytes)")
    return ExportArtifact(filename=layout.filename, content=content)


def export_combined_report(
    report: CombinedReport,
    generated_at: Optional[datetime] = None,
    brand: str = DEFAULT_BRAND,
    filename_prefix: str = COMBINED_PREFIX,
    renderer: Optional[PdfRenderer] = None,
) -> ExportArtifact:
    """
    Render the combined report to PDF.

    Raises:
        ExportError: If the layout cannot be built or rendered
    """
    generated_at = generated_at or datetime.now()
    try:
        layout = build_combined_layout(report, generated_at, brand=brand, filename_prefix=filename_prefix)
        content = (renderer or PdfRenderer()).render(layout)
    except Exception as e:
        logger.error(f"Combined report export failed: {str(e)}")
        raise ExportError.render_failed("combined", e)

    logger.info(f"Exported {layout.filename} ({len(content)} bytes, {report.total_units} units)")
    return ExportArtifact(filename=layout.filename, content=content)
