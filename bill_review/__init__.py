"""
Vendor Bill Review - Source Package.

This package contains the modules of the bill extraction and review
pipeline. Each module has a single responsibility.

Modules:
    - preprocessing: Deterministic image cleanup
    - cleanup: Cleanup shields, precedence and critical zones
    - budget: Processing budgets and early stop
    - ocr_engine: OCR engines and multi-pass merging
    - extraction: Header field extraction
    - calibration: Confidence calibration
    - review: Review cases, queue, sessions and persistence

Architecture:
    Preprocess → Shields → Multi-pass OCR → Extract → Calibrate → Review
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

__all__ = [
    'preprocessing',
    'cleanup',
    'budget',
    'ocr_engine',
    'extraction',
    'calibration',
    'review',
    'pipeline',
    'utils',
]
