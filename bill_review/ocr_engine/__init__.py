"""
OCR Engine Module for the Bill Review Pipeline.

This module provides:
    - An abstract OCR engine interface and a Tesseract adapter
    - Pass configuration and result data classes
    - Multi-pass recognition with line-level vote merging

Author: ML Engineering Team
"""

from .ocr_result import (
    MergeMetadata,
    MultiPassOCRResult,
    OCRMode,
    OCRPassConfig,
    OCRResult,
    PassRegion,
    default_pass_configs,
)
from .engine import OCREngine, TesseractEngine
from .multi_pass import MultiPassOCRService, merge_results

__all__ = [
    'MergeMetadata',
    'MultiPassOCRResult',
    'OCRMode',
    'OCRPassConfig',
    'OCRResult',
    'PassRegion',
    'default_pass_configs',
    'OCREngine',
    'TesseractEngine',
    'MultiPassOCRService',
    'merge_results',
]
