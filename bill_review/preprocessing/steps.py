"""
Preprocessing Step Definitions.

Each step is an immutable description of one image transform. Steps
carry no state; the preprocessor applies them strictly in the order
they appear in a pipeline.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from config import get_config


@dataclass(frozen=True)
class PixelRegion:
    """
    Rectangular region in pixel coordinates.

    Attributes:
        x: Left edge
        y: Top edge
        width: Region width
        height: Region height
    """
    x: int
    y: int
    width: int
    height: int

    def as_box(self) -> Tuple[int, int, int, int]:
        """Return the region as a PIL (left, upper, right, lower) box."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(frozen=True)
class Grayscale:
    name = "grayscale"


@dataclass(frozen=True)
class BrightnessContrast:
    """Contrast is applied around mid-gray first, then brightness is added."""
    brightness: float = 0.0
    contrast: float = 1.0
    name = "brightness_contrast"


@dataclass(frozen=True)
class NoiseRemoval:
    """
    Median-based speckle removal.

    A pixel is replaced by its 3x3 median when it differs from that
    median by more than `threshold`; threshold 0 is a plain median filter.
    """
    threshold: int = 128
    name = "noise_removal"


@dataclass(frozen=True)
class Deskew:
    max_angle: float = 10.0
    step: float = 0.5
    name = "deskew"


@dataclass(frozen=True)
class Crop:
    region: PixelRegion
    name = "crop"


@dataclass(frozen=True)
class RemoveBorders:
    border_size: int
    name = "remove_borders"


@dataclass(frozen=True)
class Sharpen:
    amount: float = 0.5
    name = "sharpen"


@dataclass(frozen=True)
class Binarize:
    threshold: int = 128
    name = "binarize"


@dataclass(frozen=True)
class Resize:
    width: int
    height: int
    name = "resize"


@dataclass(frozen=True)
class PreprocessingPipeline:
    """
    Ordered, immutable list of steps.

    Example:
        >>> pipeline = PreprocessingPipeline(steps=(Grayscale(), Binarize(140)))
        >>> len(pipeline)
        2
    """
    steps: Tuple = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]


def default_pipeline(max_angle: Optional[float] = None) -> PreprocessingPipeline:
    """
    Default pipeline optimized for invoice OCR.

    grayscale -> noise removal -> deskew -> contrast boost -> sharpen

    Args:
        max_angle: Override for the maximum deskew angle in degrees.

    Returns:
        PreprocessingPipeline with five steps.
    """
    return PreprocessingPipeline(steps=(
        Grayscale(),
        NoiseRemoval(threshold=get_config("preprocessing.noise_threshold", 128)),
        Deskew(
            max_angle=max_angle if max_angle is not None
            else get_config("preprocessing.deskew_max_angle", 10.0),
            step=get_config("preprocessing.deskew_step", 0.5),
        ),
        BrightnessContrast(
            brightness=get_config("preprocessing.brightness", 0.0),
            contrast=get_config("preprocessing.contrast", 1.2),
        ),
        Sharpen(amount=get_config("preprocessing.sharpen_amount", 0.5)),
    ))


__all__ = [
    'PixelRegion',
    'Grayscale',
    'BrightnessContrast',
    'NoiseRemoval',
    'Deskew',
    'Crop',
    'RemoveBorders',
    'Sharpen',
    'Binarize',
    'Resize',
    'PreprocessingPipeline',
    'default_pipeline',
]
