"""
Preprocessing Module for the Bill Review Pipeline.

This module provides functionality for:
    - Declaring ordered, immutable preprocessing pipelines
    - Applying them to bill images before OCR

Author: ML Engineering Team
"""

from .steps import (
    Binarize,
    BrightnessContrast,
    Crop,
    Deskew,
    Grayscale,
    NoiseRemoval,
    PixelRegion,
    PreprocessingPipeline,
    RemoveBorders,
    Resize,
    Sharpen,
    default_pipeline,
)
from .image_preprocessor import ImagePreprocessor, PreprocessingImprovements, PreprocessingResult

__all__ = [
    'Binarize',
    'BrightnessContrast',
    'Crop',
    'Deskew',
    'Grayscale',
    'NoiseRemoval',
    'PixelRegion',
    'PreprocessingPipeline',
    'RemoveBorders',
    'Resize',
    'Sharpen',
    'default_pipeline',
    'ImagePreprocessor',
    'PreprocessingImprovements',
    'PreprocessingResult',
]
