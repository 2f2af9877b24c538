"""Shared test doubles and fixtures."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
from PIL import Image

from bill_review.cleanup.types import CleanupShield, NormalizedBBox, ShieldSource, ShieldType
from bill_review.ocr_engine.engine import OCREngine
from bill_review.ocr_engine.ocr_result import OCRPassConfig, OCRResult
from bill_review.utils.clock import ManualClock
from bill_review.utils.exceptions import OCRProcessingError


BILL_TEXT = "\n".join([
    "Acme Supplies Ltd",
    "Invoice Number: INV-1001",
    "Invoice Date: 01/15/2026",
    "Subtotal: 1,000.00",
    "Tax: 250.00",
    "Total: 1,250.00",
])


class FakeOCREngine(OCREngine):
    """Returns canned text per pass number and records every call."""

    def __init__(
        self,
        texts: Optional[Dict[int, str]] = None,
        confidences: Optional[Dict[int, float]] = None,
        default_text: str = BILL_TEXT,
        default_confidence: float = 0.9,
        fail_on: Optional[int] = None,
        clock: Optional[ManualClock] = None,
        ms_per_pass: float = 0.0,
    ) -> None:
        self.texts = texts or {}
        self.confidences = confidences or {}
        self.default_text = default_text
        self.default_confidence = default_confidence
        self.fail_on = fail_on
        self.clock = clock
        self.ms_per_pass = ms_per_pass
        self.calls: List[int] = []
        self.paths: List[str] = []
        self._lock = threading.Lock()

    def process(self, image_path: Union[str, Path], pass_config: OCRPassConfig) -> OCRResult:
        with self._lock:
            self.calls.append(pass_config.pass_number)
            self.paths.append(str(image_path))
        if self.clock is not None and self.ms_per_pass:
            self.clock.advance(ms=self.ms_per_pass)
        if pass_config.pass_number == self.fail_on:
            raise OCRProcessingError(str(image_path), "engine crashed")
        return OCRResult(
            text=self.texts.get(pass_config.pass_number, self.default_text),
            confidence=self.confidences.get(pass_config.pass_number, self.default_confidence),
            engine="fake",
        )


def write_bill_image(path: Union[str, Path], width: int = 200, height: int = 120) -> Path:
    """White page with a few dark text-like bars."""
    pixels = np.full((height, width), 255, dtype=np.uint8)
    for row in range(20, height - 20, 20):
        pixels[row:row + 4, 20:width - 20] = 0
    path = Path(path)
    Image.fromarray(pixels).save(path)
    return path


def make_shield(
    x: float = 0.1,
    y: float = 0.1,
    width: float = 0.2,
    height: float = 0.1,
    shield_type: ShieldType = ShieldType.LOGO,
    confidence: float = 0.8,
    source: ShieldSource = ShieldSource.AUTO_DETECTED,
) -> CleanupShield:
    shield = CleanupShield.auto_detected(
        shield_type, NormalizedBBox(x, y, width, height), confidence, "test shield"
    )
    shield.provenance.source = source
    return shield
