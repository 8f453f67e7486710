"""Media ingestion, frame extraction, analysis and annotation plugins."""

from .damage_analyzer import DamageAnalysisClient
from .damage_annotator import DamageAnnotator
from .frame_extractor import ExtractedFrame, FrameExtractor, OpenCVVideoSource
from .media_ingestor import classify_files, ingest_files

__all__ = [
    'DamageAnalysisClient',
    'DamageAnnotator',
    'ExtractedFrame',
    'FrameExtractor',
    'OpenCVVideoSource',
    'classify_files',
    'ingest_files',
]
