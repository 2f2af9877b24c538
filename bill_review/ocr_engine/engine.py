"""
OCR Engine Interface and Tesseract Adapter.

The pipeline never depends on a concrete recognizer; it talks to an
OCREngine. Engines must report failure by raising OCRProcessingError,
which is distinct from a successful result with low confidence.

Usage:
    from bill_review.ocr_engine import TesseractEngine, OCRPassConfig

    engine = TesseractEngine()
    result = engine.process("bill.png", OCRPassConfig(pass_number=1))
    print(result.text, result.confidence)

Requirements:
    - Tesseract OCR installed on the system (for TesseractEngine)

Author: ML Engineering Team
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytesseract
from PIL import Image

from config import get_config
from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.exceptions import OCREngineNotAvailableError, OCRProcessingError
from bill_review.utils.logger import get_logger
from .ocr_result import OCRPassConfig, OCRResult

# Initialize module logger
logger = get_logger(__name__)


class OCREngine(ABC):
    """
    Abstract OCR engine.

    Implementations must be safe to call from several threads at once,
    since passes may run on a worker pool.
    """

    name = "unknown"

    @abstractmethod
    def process(self, image_path: Union[str, Path], pass_config: OCRPassConfig) -> OCRResult:
        """
        Recognize text in an image with one pass configuration.

        Args:
            image_path: Image file to read.
            pass_config: Segmentation/language settings of the pass.

        Returns:
            OCRResult with confidence in [0, 1] (unweighted).

        Raises:
            OCRProcessingError: If recognition fails.
        """


class TesseractEngine(OCREngine):
    """
    OCR engine backed by pytesseract.

    Attributes:
        extra_config: Additional Tesseract command-line options
        clock: Clock used to time engine calls

    Example:
        >>> engine = TesseractEngine()
        >>> result = engine.process("bill.png", OCRPassConfig(1, psm=6))
        >>> print(f"{result.confidence:.2f}")
    """

    name = "tesseract"

    def __init__(self, extra_config: Optional[str] = None, clock: Optional[Clock] = None) -> None:
        """
        Initialize the Tesseract engine.

        Raises:
            OCREngineNotAvailableError: If the tesseract binary cannot be run.
        """
        self.extra_config = extra_config if extra_config is not None else get_config("ocr.tesseract_config", "")
        self.clock = clock or SystemClock()
        self._check_dependencies()

        logger.debug(f"TesseractEngine initialized (extra_config='{self.extra_config}')")

    def _check_dependencies(self) -> None:
        try:
            version = pytesseract.get_tesseract_version()
            logger.info(f"Tesseract version: {version}")
        except Exception as e:
            raise OCREngineNotAvailableError(f"Tesseract OCR (not installed or not in PATH): {e}")

    def _build_config(self, pass_config: OCRPassConfig) -> str:
        config_parts = [f"--psm {pass_config.psm}", f"--oem {pass_config.oem}"]
        if pass_config.dpi:
            config_parts.append(f"--dpi {pass_config.dpi}")
        if self.extra_config:
            config_parts.append(self.extra_config)
        return ' '.join(config_parts)

    def process(self, image_path: Union[str, Path], pass_config: OCRPassConfig) -> OCRResult:
        start = self.clock.monotonic_ms()

        try:
            with Image.open(image_path) as img:
                image = img.convert('RGB')
                if pass_config.region is not None:
                    region = pass_config.region
                    image = image.crop((
                        region.x, region.y,
                        region.x + region.width, region.y + region.height
                    ))

            config = self._build_config(pass_config)
            logger.debug(f"Running Tesseract pass {pass_config.pass_number} (config: {config})")

            data = pytesseract.image_to_data(
                image,
                lang=pass_config.language,
                config=config,
                output_type=pytesseract.Output.DICT
            )
        except Exception as e:
            logger.error(f"OCR pass {pass_config.pass_number} failed: {e}")
            raise OCRProcessingError(str(image_path), str(e))

        text, confidence = self._parse_tesseract_output(data)
        processing_time_ms = int(self.clock.monotonic_ms() - start)

        logger.info(
            f"OCR pass {pass_config.pass_number} ({pass_config.mode.value}) completed: "
            f"{len(text.splitlines())} lines, confidence {confidence:.2f} ({processing_time_ms}ms)"
        )

        return OCRResult(
            text=text,
            confidence=confidence,
            engine=self.name,
            processing_time_ms=processing_time_ms,
        )

    def _parse_tesseract_output(self, data: Dict[str, List]):
        """
        Rebuild line text and mean word confidence from image_to_data output.

        Returns:
            Tuple of (text with one line per Tesseract line, confidence in [0, 1]).
        """
        lines: Dict[tuple, List[str]] = {}
        confidences = []

        for i in range(len(data['text'])):
            word = data['text'][i]
            if not word or not word.strip():
                continue

            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(word.strip())

            conf = float(data['conf'][i])
            # Tesseract reports -1 for non-word elements
            if conf >= 0:
                confidences.append(conf)

        text = '\n'.join(' '.join(words) for _, words in sorted(lines.items()))
        confidence = (sum(confidences) / len(confidences) / 100.0) if confidences else 0.0
        return text, min(1.0, max(0.0, confidence))


__all__ = ['OCREngine', 'TesseractEngine']
