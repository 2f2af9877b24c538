"""
Extraction Module for the Bill Review Pipeline.

Turns merged OCR text into extracted header fields.
"""

from .extractor import FALLBACK_CONFIDENCE_FACTOR, FIELD_PATTERNS, FieldExtractor

__all__ = ['FieldExtractor', 'FIELD_PATTERNS', 'FALLBACK_CONFIDENCE_FACTOR']
