"""Utility modules for configuration, logging, payload parsing and AWS integration."""

from .payload_parser import (
    ParseResult,
    fallback_result,
    normalize_payload,
    parse_analysis_payload,
)

__all__ = [
    'ParseResult',
    'fallback_result',
    'normalize_payload',
    'parse_analysis_payload',
]
