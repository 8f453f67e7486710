"""Report view models, declarative layouts and PDF export."""

from .pdf_renderer import PdfRenderer
from .report_builder import (
    ExportArtifact,
    build_combined_layout,
    build_single_layout,
    export_combined_report,
    export_single_report,
)
from .views import combined_report_view, single_result_view

__all__ = [
    'PdfRenderer',
    'ExportArtifact',
    'build_combined_layout',
    'build_single_layout',
    'export_combined_report',
    'export_single_report',
    'combined_report_view',
    'single_result_view',
]
