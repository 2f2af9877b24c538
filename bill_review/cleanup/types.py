"""
Cleanup Shield Data Classes.

A shield is a rectangular region, in normalized page coordinates,
that should be masked before OCR (logos, watermarks, stamps, repeated
headers). Shields never touch pixels themselves; they only describe
what to mask and whether masking is actually applied.

Classes:
    ShieldType, ApplyMode, RiskLevel, ShieldSource: Enumerations
    NormalizedBBox: Resolution-independent bounding box
    PageTarget, ZoneTarget: Where a shield applies
    ShieldProvenance: Who or what created a shield
    CleanupShield: A single masking region with metadata
    CriticalZone: A region whose content must never be silently masked

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from bill_review.utils.helpers import from_iso, generate_id, to_iso


# Critical zone names produced by the extraction layer
ZONE_LINE_ITEMS = "LineItems"
ZONE_TOTALS = "Totals"
ZONE_HEADER = "Header"
ZONE_FOOTER = "Footer"
ZONE_BARCODE = "Barcode"
ZONE_LOGO = "Logo"

CRITICAL_ZONE_NAMES = (
    ZONE_LINE_ITEMS, ZONE_TOTALS, ZONE_HEADER, ZONE_FOOTER, ZONE_BARCODE, ZONE_LOGO
)


class ShieldType(Enum):
    LOGO = "Logo"
    WATERMARK = "Watermark"
    REPETITIVE_HEADER = "RepetitiveHeader"
    REPETITIVE_FOOTER = "RepetitiveFooter"
    STAMP = "Stamp"
    USER_DEFINED = "UserDefined"
    VENDOR_SPECIFIC = "VendorSpecific"
    TEMPLATE_SPECIFIC = "TemplateSpecific"


class ApplyMode(Enum):
    APPLIED = "Applied"
    SUGGESTED = "Suggested"
    DISABLED = "Disabled"


class RiskLevel(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ShieldSource(IntEnum):
    """Shield origin; a higher value overrides a lower one on conflict."""
    AUTO_DETECTED = 0
    VENDOR_RULE = 1
    TEMPLATE_RULE = 2
    SESSION_OVERRIDE = 3


@dataclass(frozen=True)
class NormalizedBBox:
    """
    Bounding box with every coordinate in [0.0, 1.0].

    Attributes:
        x: Left edge as a fraction of page width
        y: Top edge as a fraction of page height
        width: Width as a fraction of page width
        height: Height as a fraction of page height
    """
    x: float
    y: float
    width: float
    height: float

    def is_valid(self) -> bool:
        """Check that the box lies entirely inside the page."""
        return (
            0.0 <= self.x <= 1.0
            and 0.0 <= self.y <= 1.0
            and 0.0 <= self.width <= 1.0
            and 0.0 <= self.height <= 1.0
            and self.x + self.width <= 1.0
            and self.y + self.height <= 1.0
        )

    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NormalizedBBox':
        return cls(
            x=float(data['x']),
            y=float(data['y']),
            width=float(data['width']),
            height=float(data['height']),
        )


# =============================================================================
# BBOX MATH
# =============================================================================

def intersection_area(a: NormalizedBBox, b: NormalizedBBox) -> float:
    """Area shared by two boxes (0.0 when disjoint)."""
    x_overlap = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
    y_overlap = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
    if x_overlap <= 0.0 or y_overlap <= 0.0:
        return 0.0
    return x_overlap * y_overlap


def iou(a: NormalizedBBox, b: NormalizedBBox) -> float:
    """
    Intersection over Union of two boxes.

    Example:
        >>> box = NormalizedBBox(0.1, 0.1, 0.2, 0.2)
        >>> iou(box, box)
        1.0
    """
    intersection = intersection_area(a, b)
    union = a.area() + b.area() - intersection
    if union <= 0.0:
        return 0.0
    # Identical boxes can round to just above 1.0
    return min(1.0, intersection / union)


def overlap_ratio(shield: NormalizedBBox, zone: NormalizedBBox) -> float:
    """Fraction of the shield's own area that falls inside the zone."""
    shield_area = shield.area()
    if shield_area <= 0.0:
        return 0.0
    return min(1.0, intersection_area(shield, zone) / shield_area)


def normalize_bbox(
    x: int,
    y: int,
    width: int,
    height: int,
    img_width: int,
    img_height: int
) -> NormalizedBBox:
    """
    Convert a pixel rectangle to normalized coordinates.

    Raises:
        ValueError: If the image dimensions are not positive.
    """
    if img_width <= 0 or img_height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {img_width}x{img_height}")
    return NormalizedBBox(
        x=x / img_width,
        y=y / img_height,
        width=width / img_width,
        height=height / img_height,
    )


def denormalize_bbox(
    bbox: NormalizedBBox,
    img_width: int,
    img_height: int
) -> Tuple[int, int, int, int]:
    """Convert a normalized box to pixel (x, y, width, height), rounding and clamping at 0."""
    def to_pixels(value: float, size: int) -> int:
        return max(0, int(round(value * size)))

    return (
        to_pixels(bbox.x, img_width),
        to_pixels(bbox.y, img_height),
        to_pixels(bbox.width, img_width),
        to_pixels(bbox.height, img_height),
    )


# =============================================================================
# TARGETING
# =============================================================================

class PageTargetKind(Enum):
    ALL = "All"
    FIRST = "First"
    LAST = "Last"
    SPECIFIC = "Specific"


@dataclass(frozen=True)
class PageTarget:
    """
    Pages a shield applies to. Page numbers are 1-based.

    Example:
        >>> PageTarget.specific([1, 3]).matches(3, page_count=4)
        True
    """
    kind: PageTargetKind = PageTargetKind.ALL
    pages: Tuple[int, ...] = ()

    @classmethod
    def all(cls) -> 'PageTarget':
        return cls(PageTargetKind.ALL)

    @classmethod
    def first(cls) -> 'PageTarget':
        return cls(PageTargetKind.FIRST)

    @classmethod
    def last(cls) -> 'PageTarget':
        return cls(PageTargetKind.LAST)

    @classmethod
    def specific(cls, pages) -> 'PageTarget':
        return cls(PageTargetKind.SPECIFIC, tuple(sorted(set(int(p) for p in pages))))

    def matches(self, page_number: int, page_count: int) -> bool:
        if self.kind is PageTargetKind.ALL:
            return True
        if self.kind is PageTargetKind.FIRST:
            return page_number == 1
        if self.kind is PageTargetKind.LAST:
            return page_number == page_count
        return page_number in self.pages

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.name, 'pages': list(self.pages)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageTarget':
        return cls(PageTargetKind[data['kind']], tuple(data.get('pages') or ()))


@dataclass(frozen=True)
class ZoneTarget:
    """Zones a shield applies to; include_zones None means every zone."""
    include_zones: Optional[Tuple[str, ...]] = None
    exclude_zones: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'include_zones': list(self.include_zones) if self.include_zones is not None else None,
            'exclude_zones': list(self.exclude_zones),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ZoneTarget':
        include = data.get('include_zones')
        return cls(
            include_zones=tuple(include) if include is not None else None,
            exclude_zones=tuple(data.get('exclude_zones') or ()),
        )


@dataclass(frozen=True)
class CriticalZone:
    """
    A named page region whose content must not be masked silently.

    Attributes:
        zone_id: Zone name, usually one of CRITICAL_ZONE_NAMES
        bbox: Zone location
    """
    zone_id: str
    bbox: NormalizedBBox


# =============================================================================
# SHIELDS
# =============================================================================

@dataclass
class ShieldProvenance:
    """
    Origin of a shield.

    Attributes:
        source: Precedence rank of the creator
        user_id: Reviewer who drew the shield, if any
        vendor_id: Vendor rule the shield came from, if any
        template_id: Template rule the shield came from, if any
        created_at: Creation time (UTC)
        updated_at: Last apply-mode change (UTC)
    """
    source: ShieldSource = ShieldSource.AUTO_DETECTED
    user_id: Optional[str] = None
    vendor_id: Optional[str] = None
    template_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source.name,
            'user_id': self.user_id,
            'vendor_id': self.vendor_id,
            'template_id': self.template_id,
            'created_at': to_iso(self.created_at),
            'updated_at': to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShieldProvenance':
        return cls(
            source=ShieldSource[data['source']],
            user_id=data.get('user_id'),
            vendor_id=data.get('vendor_id'),
            template_id=data.get('template_id'),
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data.get('updated_at')),
        )


@dataclass
class CleanupShield:
    """
    A masking region with its targeting, policy and provenance.

    Only apply_mode, risk_level and provenance.updated_at change after
    creation.

    Example:
        >>> shield = CleanupShield.auto_detected(
        ...     ShieldType.LOGO,
        ...     NormalizedBBox(0.05, 0.02, 0.2, 0.08),
        ...     confidence=0.82,
        ...     why_detected="High-contrast block in top-left corner"
        ... )
        >>> shield.apply_mode
        <ApplyMode.SUGGESTED: 'Suggested'>
    """
    id: str
    shield_type: ShieldType
    bbox: NormalizedBBox
    page_target: PageTarget = field(default_factory=PageTarget)
    zone_target: ZoneTarget = field(default_factory=ZoneTarget)
    apply_mode: ApplyMode = ApplyMode.SUGGESTED
    risk_level: RiskLevel = RiskLevel.LOW
    confidence: float = 0.0
    min_confidence: float = 0.6
    why_detected: str = ""
    provenance: ShieldProvenance = field(default_factory=ShieldProvenance)

    @classmethod
    def auto_detected(
        cls,
        shield_type: ShieldType,
        bbox: NormalizedBBox,
        confidence: float,
        why_detected: str,
        created_at: Optional[datetime] = None
    ) -> 'CleanupShield':
        """Create a detector-produced shield; it starts as a suggestion."""
        return cls(
            id=generate_id(),
            shield_type=shield_type,
            bbox=bbox,
            apply_mode=ApplyMode.SUGGESTED,
            risk_level=RiskLevel.LOW,
            confidence=confidence,
            min_confidence=0.6,
            why_detected=why_detected,
            provenance=ShieldProvenance(
                source=ShieldSource.AUTO_DETECTED,
                created_at=created_at or datetime.now(timezone.utc),
            ),
        )

    @classmethod
    def user_defined(
        cls,
        bbox: NormalizedBBox,
        user_id: str,
        reason: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> 'CleanupShield':
        """Create a reviewer-drawn shield; it is applied immediately."""
        return cls(
            id=generate_id(),
            shield_type=ShieldType.USER_DEFINED,
            bbox=bbox,
            apply_mode=ApplyMode.APPLIED,
            risk_level=RiskLevel.LOW,
            confidence=1.0,
            min_confidence=0.0,
            why_detected=reason or "User-defined shield",
            provenance=ShieldProvenance(
                source=ShieldSource.SESSION_OVERRIDE,
                user_id=user_id,
                created_at=created_at or datetime.now(timezone.utc),
            ),
        )

    @property
    def source(self) -> ShieldSource:
        return self.provenance.source

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            'id': self.id,
            'shield_type': self.shield_type.name,
            'bbox': self.bbox.to_dict(),
            'page_target': self.page_target.to_dict(),
            'zone_target': self.zone_target.to_dict(),
            'apply_mode': self.apply_mode.name,
            'risk_level': self.risk_level.name,
            'confidence': self.confidence,
            'min_confidence': self.min_confidence,
            'why_detected': self.why_detected,
            'provenance': self.provenance.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CleanupShield':
        return cls(
            id=data['id'],
            shield_type=ShieldType[data['shield_type']],
            bbox=NormalizedBBox.from_dict(data['bbox']),
            page_target=PageTarget.from_dict(data['page_target']),
            zone_target=ZoneTarget.from_dict(data['zone_target']),
            apply_mode=ApplyMode[data['apply_mode']],
            risk_level=RiskLevel[data['risk_level']],
            confidence=float(data['confidence']),
            min_confidence=float(data['min_confidence']),
            why_detected=data.get('why_detected', ""),
            provenance=ShieldProvenance.from_dict(data['provenance']),
        )


@dataclass
class ZoneConflict:
    """A shield overlapping a critical zone, and what was done about it."""
    shield_id: str
    zone_id: str
    overlap_ratio: float
    action_taken: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shield_id': self.shield_id,
            'zone_id': self.zone_id,
            'overlap_ratio': self.overlap_ratio,
            'action_taken': self.action_taken,
        }


@dataclass
class PrecedenceExplanation:
    """Why a shield survived de-duplication over another."""
    shield_id: str
    winning_source: ShieldSource
    overridden_sources: List[ShieldSource]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shield_id': self.shield_id,
            'winning_source': self.winning_source.name,
            'overridden_sources': [s.name for s in self.overridden_sources],
            'reason': self.reason,
        }


@dataclass
class PrecedenceResult:
    """
    Outcome of merging shields from every source.

    Attributes:
        shields: Surviving shields, highest precedence then confidence first
        explanations: One entry per override during de-duplication
        zone_conflicts: Critical-zone overlaps found
        warnings: Human-readable warnings
    """
    shields: List[CleanupShield] = field(default_factory=list)
    explanations: List[PrecedenceExplanation] = field(default_factory=list)
    zone_conflicts: List[ZoneConflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ShieldInsertOutcome:
    """
    Result of inserting one shield into the engine.

    Attributes:
        shield: The shield now held for that region (the new one or the incumbent)
        inserted: False when an existing duplicate won
        replaced_ids: Ids of duplicates the new shield displaced
        zone_conflicts: Critical-zone overlaps of the inserted shield
        warnings: Human-readable warnings
    """
    shield: CleanupShield
    inserted: bool
    replaced_ids: List[str] = field(default_factory=list)
    zone_conflicts: List[ZoneConflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
