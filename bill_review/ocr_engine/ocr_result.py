"""
OCR Result Data Classes.

This module defines the data structures passed between the OCR engine
and the multi-pass merger.

Classes:
    OCRMode: Segmentation strategy of a pass
    PassRegion: Optional pixel region a pass is restricted to
    OCRPassConfig: Immutable configuration of one pass
    OCRResult: Output of one engine call
    MergeMetadata: Statistics of a multi-pass merge
    MultiPassOCRResult: Merged output of several passes

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import json


class OCRMode(Enum):
    FULL_PAGE = "FullPage"            # psm 3, automatic page segmentation
    TABLE_ANALYSIS = "TableAnalysis"  # psm 6, uniform block of text
    SMALL_TEXT = "SmallText"          # psm 8, single word
    HANDWRITING = "Handwriting"       # psm 13, raw line
    HIGH_DPI = "HighDPI"              # full page at a higher resolution


@dataclass(frozen=True)
class PassRegion:
    """Pixel region a pass is restricted to."""
    x: int
    y: int
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PassRegion':
        return cls(int(data['x']), int(data['y']), int(data['width']), int(data['height']))


@dataclass(frozen=True)
class OCRPassConfig:
    """
    Configuration of a single OCR pass.

    Attributes:
        pass_number: 1-based order of the pass
        mode: Segmentation strategy
        psm: Tesseract page segmentation mode
        oem: Tesseract engine mode
        dpi: Resolution hint, if any
        language: Tesseract language code
        region: Restrict recognition to this region
        weight: Multiplier applied to the pass confidence before voting

    Example:
        >>> OCRPassConfig(pass_number=2, mode=OCRMode.TABLE_ANALYSIS, psm=6, weight=1.2)
    """
    pass_number: int
    mode: OCRMode = OCRMode.FULL_PAGE
    psm: int = 3
    oem: int = 3
    dpi: Optional[int] = None
    language: str = "eng"
    region: Optional[PassRegion] = None
    weight: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pass_number': self.pass_number,
            'mode': self.mode.name,
            'psm': self.psm,
            'oem': self.oem,
            'dpi': self.dpi,
            'language': self.language,
            'region': self.region.to_dict() if self.region else None,
            'weight': self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OCRPassConfig':
        region = data.get('region')
        return cls(
            pass_number=int(data['pass_number']),
            mode=OCRMode[data['mode']],
            psm=int(data['psm']),
            oem=int(data['oem']),
            dpi=data.get('dpi'),
            language=data.get('language', "eng"),
            region=PassRegion.from_dict(region) if region else None,
            weight=float(data['weight']),
        )


def default_pass_configs(language: str = "eng") -> List[OCRPassConfig]:
    """
    Default three-pass configuration for invoices.

    full page (weight 1.0) -> table analysis (1.2) -> small text at 300 dpi (0.8)
    """
    return [
        OCRPassConfig(1, OCRMode.FULL_PAGE, psm=3, oem=3, language=language, weight=1.0),
        OCRPassConfig(2, OCRMode.TABLE_ANALYSIS, psm=6, oem=3, language=language, weight=1.2),
        OCRPassConfig(3, OCRMode.SMALL_TEXT, psm=8, oem=3, dpi=300, language=language, weight=0.8),
    ]


@dataclass
class OCRResult:
    """
    Output of one OCR engine call.

    Attributes:
        text: Recognized text, lines separated by newlines
        confidence: Mean confidence in [0, 1]
        engine: Engine name
        processing_time_ms: Time spent in the engine
    """
    text: str
    confidence: float
    engine: str = "unknown"
    processing_time_ms: int = 0

    @property
    def lines(self) -> List[str]:
        return self.text.splitlines()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'text': self.text,
            'confidence': self.confidence,
            'engine': self.engine,
            'processing_time_ms': self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OCRResult':
        return cls(
            text=data['text'],
            confidence=float(data['confidence']),
            engine=data.get('engine', "unknown"),
            processing_time_ms=int(data.get('processing_time_ms', 0)),
        )


@dataclass
class MergeMetadata:
    """
    Statistics of a multi-pass merge.

    Attributes:
        total_passes: Number of pass results merged
        conflicts_found: Lines on which passes disagreed
        conflicts_resolved: Conflicts settled by vote
        average_agreement: Fraction of lines all passes agreed on
    """
    total_passes: int
    conflicts_found: int = 0
    conflicts_resolved: int = 0
    average_agreement: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_passes': self.total_passes,
            'conflicts_found': self.conflicts_found,
            'conflicts_resolved': self.conflicts_resolved,
            'average_agreement': self.average_agreement,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MergeMetadata':
        return cls(
            total_passes=int(data['total_passes']),
            conflicts_found=int(data['conflicts_found']),
            conflicts_resolved=int(data['conflicts_resolved']),
            average_agreement=float(data['average_agreement']),
        )


@dataclass
class MultiPassOCRResult:
    """
    Merged output of several OCR passes.

    Example:
        >>> result = service.process_image("bill.png")
        >>> print(result.merge_metadata.conflicts_found)
        >>> print(result.to_json())
    """
    text: str
    confidence: float
    pass_results: List[OCRResult] = field(default_factory=list)
    merge_metadata: MergeMetadata = field(default_factory=lambda: MergeMetadata(total_passes=0))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'text': self.text,
            'confidence': self.confidence,
            'pass_results': [r.to_dict() for r in self.pass_results],
            'merge_metadata': self.merge_metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MultiPassOCRResult':
        return cls(
            text=data['text'],
            confidence=float(data['confidence']),
            pass_results=[OCRResult.from_dict(r) for r in data.get('pass_results', [])],
            merge_metadata=MergeMetadata.from_dict(data['merge_metadata']),
        )

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
