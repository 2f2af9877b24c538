"""
Image Preprocessor Module.

This module cleans scanned vendor bills before OCR:
    - Grayscale conversion
    - Brightness / contrast adjustment
    - Speckle noise removal
    - Skew detection and correction
    - Cropping and border removal
    - Sharpening, binarization and resizing

Every step is a pure function of its input image, so running the same
pipeline on the same file always produces the same output.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageFilter

from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.exceptions import (
    ImageLoadError,
    ImageSaveError,
    InvalidParameterError,
    PreprocessingError,
)
from bill_review.utils.helpers import ensure_directory
from bill_review.utils.logger import get_logger
from .steps import (
    Binarize,
    BrightnessContrast,
    Crop,
    Deskew,
    Grayscale,
    NoiseRemoval,
    PreprocessingPipeline,
    RemoveBorders,
    Resize,
    Sharpen,
    default_pipeline,
)

# Initialize module logger
logger = get_logger(__name__)

# Skew below this many degrees is left alone
MIN_SKEW_CORRECTION = 0.5

# Longest side used when searching for the skew angle
SKEW_SEARCH_SIZE = 800


@dataclass
class PreprocessingImprovements:
    """
    What the pipeline changed, for logging and review display.

    Attributes:
        skew_angle_corrected: Rotation applied in degrees (0.0 if none)
        brightness_adjusted: Brightness offset applied
        contrast_adjusted: Contrast factor applied
        noise_removed: Whether noise removal ran
    """
    skew_angle_corrected: Optional[float] = None
    brightness_adjusted: Optional[float] = None
    contrast_adjusted: Optional[float] = None
    noise_removed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'skew_angle_corrected': self.skew_angle_corrected,
            'brightness_adjusted': self.brightness_adjusted,
            'contrast_adjusted': self.contrast_adjusted,
            'noise_removed': self.noise_removed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreprocessingImprovements':
        return cls(**data)


@dataclass
class PreprocessingResult:
    """
    Result of running a pipeline over one image file.

    Attributes:
        output_path: Where the cleaned image was written
        steps_applied: Step names in the order they ran
        processing_time_ms: Wall time spent, in milliseconds
        improvements: Summary of adjustments made
    """
    output_path: str
    steps_applied: List[str] = field(default_factory=list)
    processing_time_ms: int = 0
    improvements: PreprocessingImprovements = field(default_factory=PreprocessingImprovements)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'output_path': self.output_path,
            'steps_applied': list(self.steps_applied),
            'processing_time_ms': self.processing_time_ms,
            'improvements': self.improvements.to_dict(),
        }


class ImagePreprocessor:
    """
    Applies a preprocessing pipeline to bill images.

    Attributes:
        pipeline: Ordered steps to apply
        clock: Clock used to time processing

    Example:
        >>> preprocessor = ImagePreprocessor()
        >>> result = preprocessor.preprocess("bill.jpg", "outputs/bill_clean.png")
        >>> print(result.steps_applied)
        ['grayscale', 'noise_removal', 'deskew', 'brightness_contrast', 'sharpen']
    """

    def __init__(
        self,
        pipeline: Optional[PreprocessingPipeline] = None,
        clock: Optional[Clock] = None
    ) -> None:
        """
        Initialize the preprocessor.

        Args:
            pipeline: Steps to apply. Defaults to the invoice pipeline.
            clock: Clock used for processing_time_ms.
        """
        self.pipeline = pipeline if pipeline is not None else default_pipeline()
        self.clock = clock or SystemClock()

        logger.debug(f"ImagePreprocessor initialized (steps={self.pipeline.step_names})")

    def preprocess(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path]
    ) -> PreprocessingResult:
        """
        Load an image, run the pipeline and save the result.

        Args:
            input_path: Source image file.
            output_path: Destination file; the format follows its extension.

        Returns:
            PreprocessingResult describing what was done.

        Raises:
            ImageLoadError: If the input cannot be read.
            InvalidParameterError: If a step is misconfigured for this image.
            PreprocessingError: If a step fails for any other reason.
            ImageSaveError: If the output cannot be written.
        """
        start = self.clock.monotonic_ms()
        input_path = Path(input_path)
        output_path = Path(output_path)

        image = self._load(input_path)
        image, steps_applied, improvements = self.apply(image)
        self._save(image, output_path)

        processing_time_ms = int(self.clock.monotonic_ms() - start)

        logger.info(
            f"Preprocessed {input_path.name}: {len(steps_applied)} steps "
            f"in {processing_time_ms}ms"
        )

        return PreprocessingResult(
            output_path=str(output_path),
            steps_applied=steps_applied,
            processing_time_ms=processing_time_ms,
            improvements=improvements,
        )

    def apply(
        self,
        image: Image.Image
    ) -> Tuple[Image.Image, List[str], PreprocessingImprovements]:
        """
        Run the pipeline over an in-memory image.

        Args:
            image: Input PIL Image (left untouched).

        Returns:
            Tuple of (processed image, step names applied, improvements).
        """
        current = image
        steps_applied = []
        improvements = PreprocessingImprovements()

        for step in self.pipeline:
            try:
                current = self._apply_step(current, step, improvements)
            except InvalidParameterError:
                raise
            except Exception as e:
                logger.error(f"Step '{step.name}' failed: {e}")
                raise PreprocessingError(step.name, str(e))

            steps_applied.append(step.name)
            logger.debug(f"Applied step: {step.name} (size={current.size}, mode={current.mode})")

        return current, steps_applied, improvements

    def _apply_step(
        self,
        image: Image.Image,
        step: Any,
        improvements: PreprocessingImprovements
    ) -> Image.Image:
        """Dispatch a single step to its transform."""
        if isinstance(step, Grayscale):
            return apply_grayscale(image)

        if isinstance(step, BrightnessContrast):
            improvements.brightness_adjusted = step.brightness
            improvements.contrast_adjusted = step.contrast
            return apply_brightness_contrast(image, step.brightness, step.contrast)

        if isinstance(step, NoiseRemoval):
            improvements.noise_removed = True
            return apply_noise_removal(image, step.threshold)

        if isinstance(step, Deskew):
            image, angle = apply_deskew(image, step.max_angle, step.step)
            improvements.skew_angle_corrected = angle
            return image

        if isinstance(step, Crop):
            return apply_crop(image, step.region)

        if isinstance(step, RemoveBorders):
            return apply_remove_borders(image, step.border_size)

        if isinstance(step, Sharpen):
            return apply_sharpen(image, step.amount)

        if isinstance(step, Binarize):
            return apply_binarize(image, step.threshold)

        if isinstance(step, Resize):
            return apply_resize(image, step.width, step.height)

        raise InvalidParameterError(
            getattr(step, 'name', type(step).__name__),
            f"Unknown preprocessing step: {step!r}"
        )

    def _load(self, path: Path) -> Image.Image:
        """
        Open and fully decode an image file.

        Raises:
            ImageLoadError: If the file is missing or not an image.
        """
        try:
            with Image.open(path) as img:
                img.load()
                return img.copy()
        except Exception as e:
            logger.error(f"Failed to load image {path}: {e}")
            raise ImageLoadError(str(path), str(e))

    def _save(self, image: Image.Image, path: Path) -> None:
        """
        Write an image, creating the parent directory if needed.

        Raises:
            ImageSaveError: If the image cannot be written.
        """
        try:
            ensure_directory(path.parent)
            image.save(path)
        except Exception as e:
            logger.error(f"Failed to save image {path}: {e}")
            raise ImageSaveError(str(path), str(e))


# =============================================================================
# TRANSFORMS
# =============================================================================

def _working_mode(image: Image.Image) -> Image.Image:
    """Collapse palette/alpha/CMYK modes to L or RGB for pixel math."""
    if image.mode in ('L', 'RGB'):
        return image
    if image.mode in ('1', 'I', 'F', 'I;16'):
        return image.convert('L')
    return image.convert('RGB')


def _fill_color(image: Image.Image):
    return 255 if image.mode == 'L' else (255, 255, 255)


def apply_grayscale(image: Image.Image) -> Image.Image:
    """Convert to 8-bit grayscale."""
    return image.convert('L')


def apply_brightness_contrast(
    image: Image.Image,
    brightness: float,
    contrast: float
) -> Image.Image:
    """
    Adjust contrast around mid-gray, then shift brightness.

    out = (in - 128) * contrast + 128 + brightness, clamped to [0, 255]
    """
    image = _working_mode(image)
    pixels = np.asarray(image, dtype=np.float32)
    adjusted = (pixels - 128.0) * contrast + 128.0 + brightness
    adjusted = np.clip(adjusted, 0.0, 255.0).astype(np.uint8)
    return Image.fromarray(adjusted)


def apply_noise_removal(image: Image.Image, threshold: int) -> Image.Image:
    """
    Replace speckles with their 3x3 median.

    Only pixels whose distance from the local median exceeds
    `threshold` are replaced.
    """
    gray = image.convert('L')
    median = gray.filter(ImageFilter.MedianFilter(size=3))

    pixels = np.asarray(gray, dtype=np.int16)
    median_pixels = np.asarray(median, dtype=np.int16)

    noisy = np.abs(pixels - median_pixels) > threshold
    cleaned = np.where(noisy, median_pixels, pixels).astype(np.uint8)
    return Image.fromarray(cleaned)


def detect_skew_angle(image: Image.Image, max_angle: float, step: float = 0.5) -> float:
    """
    Estimate skew with a projection-profile search.

    The image is rotated through candidate angles in [-max_angle, max_angle];
    the angle whose horizontal ink profile has the highest variance (text
    lines sharpest) wins. Ties go to the smallest absolute angle.

    Args:
        image: Input image.
        max_angle: Largest correction to consider, in degrees.
        step: Search resolution in degrees.

    Returns:
        Correction angle in degrees (counter-clockwise positive).
    """
    if max_angle <= 0 or step <= 0:
        return 0.0

    gray = image.convert('L')
    gray.thumbnail((SKEW_SEARCH_SIZE, SKEW_SEARCH_SIZE))

    # Ink is bright on a black background so rotation padding adds no ink
    ink = Image.fromarray(255 - np.asarray(gray, dtype=np.uint8))

    candidates = np.arange(-max_angle, max_angle + step / 2.0, step)
    candidates = sorted(candidates, key=lambda a: (abs(a), a))

    best_angle = 0.0
    best_score = -1.0
    for angle in candidates:
        rotated = ink.rotate(float(angle), resample=Image.BILINEAR, expand=False, fillcolor=0)
        profile = np.asarray(rotated, dtype=np.float64).sum(axis=1)
        score = float(np.var(profile))
        if score > best_score + 1e-9:
            best_score = score
            best_angle = float(angle)

    return round(best_angle, 3)


def apply_deskew(
    image: Image.Image,
    max_angle: float,
    step: float = 0.5
) -> Tuple[Image.Image, float]:
    """
    Detect and correct skew.

    Returns:
        Tuple of (image, angle applied). Angles below 0.5 degrees are
        not corrected and reported as 0.0.
    """
    angle = detect_skew_angle(image, max_angle, step)

    if abs(angle) < MIN_SKEW_CORRECTION:
        return image, 0.0

    image = _working_mode(image)
    rotated = image.rotate(
        angle,
        resample=Image.BICUBIC,
        expand=False,
        fillcolor=_fill_color(image)
    )
    logger.debug(f"Corrected skew of {angle:.2f} degrees")
    return rotated, angle


def apply_crop(image: Image.Image, region) -> Image.Image:
    """
    Crop to a pixel region.

    Raises:
        InvalidParameterError: If the region is empty or exceeds image bounds.
    """
    width, height = image.size

    if region.width <= 0 or region.height <= 0 or region.x < 0 or region.y < 0:
        raise InvalidParameterError("crop", "Crop region must have a positive size and origin")

    if region.x + region.width > width or region.y + region.height > height:
        raise InvalidParameterError(
            "crop",
            f"Crop region exceeds image bounds ({region} vs {width}x{height})"
        )

    return image.crop(region.as_box())


def apply_remove_borders(image: Image.Image, border_size: int) -> Image.Image:
    """Trim `border_size` pixels from each edge; no-op if that would empty the image."""
    width, height = image.size

    if border_size <= 0 or border_size * 2 >= width or border_size * 2 >= height:
        return image

    return image.crop((border_size, border_size, width - border_size, height - border_size))


def apply_sharpen(image: Image.Image, amount: float) -> Image.Image:
    """Sharpen with a 3x3 Laplacian kernel weighted by `amount`."""
    gray = image.convert('L')
    kernel = ImageFilter.Kernel(
        (3, 3),
        [
            0.0, -amount, 0.0,
            -amount, 1.0 + 4.0 * amount, -amount,
            0.0, -amount, 0.0,
        ],
        scale=1,
    )
    return gray.filter(kernel)


def apply_binarize(image: Image.Image, threshold: int) -> Image.Image:
    """Pixels above threshold become white, the rest black."""
    gray = image.convert('L')
    return gray.point(lambda x: 255 if x > threshold else 0, 'L')


def apply_resize(image: Image.Image, width: int, height: int) -> Image.Image:
    """
    Resize to an exact size with Lanczos resampling.

    Raises:
        InvalidParameterError: If either dimension is not positive.
    """
    if width <= 0 or height <= 0:
        raise InvalidParameterError("resize", f"Invalid target size {width}x{height}")
    return image.resize((width, height), Image.LANCZOS)
