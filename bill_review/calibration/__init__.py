"""
Calibration Module for the Bill Review Pipeline.

Maps raw OCR/extraction confidence onto historically observed accuracy.
"""

from .calibrator import (
    CalibrationDataPoint,
    CalibrationStats,
    ConfidenceCalibrator,
    calculate_stats,
    confidence_bucket,
)

__all__ = [
    'CalibrationDataPoint',
    'CalibrationStats',
    'ConfidenceCalibrator',
    'calculate_stats',
    'confidence_bucket',
]
