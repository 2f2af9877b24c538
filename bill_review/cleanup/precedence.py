"""
Shield Precedence Resolution.

Combines shields from every source into one de-duplicated set:

    Session overrides > Template rules > Vendor rules > Auto-detected

and enforces the critical-zone policy: a shield covering 5% of its
area inside a critical zone raises a warning, 10% forces it back to
Suggested with High risk.

Author: ML Engineering Team
"""

import copy
from typing import List, Optional, Sequence, Tuple

from config import get_config
from bill_review.utils.logger import get_logger
from .types import (
    ApplyMode,
    CleanupShield,
    CriticalZone,
    PrecedenceExplanation,
    PrecedenceResult,
    RiskLevel,
    ShieldSource,
    ZoneConflict,
    iou,
    overlap_ratio,
)

# Initialize module logger
logger = get_logger(__name__)

# Default thresholds, overridable through cleanup.* config
CRITICAL_OVERLAP_WARN = 0.05
CRITICAL_OVERLAP_BLOCK_APPLY = 0.10
SHIELD_DEDUP_IOU_THRESHOLD = 0.85


def outranks(candidate: CleanupShield, incumbent: CleanupShield) -> bool:
    """
    Decide whether a duplicate candidate should displace the incumbent.

    Higher provenance wins; on equal provenance the higher confidence
    wins; a full tie keeps the incumbent.
    """
    if candidate.source != incumbent.source:
        return candidate.source > incumbent.source
    return candidate.confidence > incumbent.confidence


def blocks_apply(
    shield: CleanupShield,
    zones: Sequence[CriticalZone],
    block_threshold: Optional[float] = None
) -> bool:
    """Check whether a shield overlaps any critical zone enough to forbid Applied."""
    if block_threshold is None:
        block_threshold = get_config("cleanup.critical_overlap_block_apply", CRITICAL_OVERLAP_BLOCK_APPLY)
    return any(overlap_ratio(shield.bbox, zone.bbox) >= block_threshold for zone in zones)


def apply_zone_policy(
    shield: CleanupShield,
    zones: Sequence[CriticalZone],
    warn_threshold: Optional[float] = None,
    block_threshold: Optional[float] = None
) -> Tuple[List[ZoneConflict], List[str]]:
    """
    Apply the critical-zone policy to a shield in place.

    Args:
        shield: Shield to check; its apply_mode and risk_level may change.
        zones: Critical zones of the document.
        warn_threshold: Overlap ratio that adds a warning.
        block_threshold: Overlap ratio that forces Suggested and High risk.

    Returns:
        Tuple of (zone conflicts, warnings).
    """
    if warn_threshold is None:
        warn_threshold = get_config("cleanup.critical_overlap_warn", CRITICAL_OVERLAP_WARN)
    if block_threshold is None:
        block_threshold = get_config("cleanup.critical_overlap_block_apply", CRITICAL_OVERLAP_BLOCK_APPLY)

    conflicts = []
    warnings = []

    for zone in zones:
        overlap = overlap_ratio(shield.bbox, zone.bbox)

        if overlap >= block_threshold:
            if shield.apply_mode is ApplyMode.APPLIED:
                shield.apply_mode = ApplyMode.SUGGESTED
                action = "downgraded_to_suggested"
            else:
                action = "elevated_risk"
            shield.risk_level = RiskLevel.HIGH

            conflicts.append(ZoneConflict(shield.id, zone.zone_id, overlap, action))
            warnings.append(
                f"Shield {shield.id} overlaps critical zone {zone.zone_id} "
                f"by {overlap * 100:.1f}% - {action}"
            )
        elif overlap >= warn_threshold:
            conflicts.append(ZoneConflict(shield.id, zone.zone_id, overlap, "warning_added"))
            warnings.append(
                f"Shield {shield.id} overlaps critical zone {zone.zone_id} "
                f"by {overlap * 100:.1f}% - review recommended"
            )

    for warning in warnings:
        logger.warning(warning)

    return conflicts, warnings


def sort_by_precedence(shields: List[CleanupShield]) -> List[CleanupShield]:
    """Order shields by source descending, then confidence descending."""
    return sorted(shields, key=lambda s: (-int(s.source), -s.confidence))


def merge_shields(
    auto_shields: Sequence[CleanupShield],
    vendor_shields: Sequence[CleanupShield],
    template_shields: Sequence[CleanupShield],
    session_shields: Sequence[CleanupShield],
    critical_zones: Sequence[CriticalZone] = (),
    dedup_threshold: Optional[float] = None,
    warn_threshold: Optional[float] = None,
    block_threshold: Optional[float] = None
) -> PrecedenceResult:
    """
    Merge shields from all sources with precedence resolution.

    Shields are visited lowest source first. A shield whose bounding box
    has IoU >= dedup_threshold with an already kept shield of the same
    type is a duplicate; the one that outranks the other survives.

    Args:
        auto_shields: Auto-detected shields (lowest precedence).
        vendor_shields: Vendor rule shields.
        template_shields: Template rule shields.
        session_shields: Session overrides (highest precedence).
        critical_zones: Zones that must not be masked silently.

    Returns:
        PrecedenceResult with shields sorted by precedence then confidence.

    Example:
        >>> result = merge_shields([auto], [], [], [override])
        >>> result.shields[0].source
        <ShieldSource.SESSION_OVERRIDE: 3>
    """
    if dedup_threshold is None:
        dedup_threshold = get_config("cleanup.dedup_iou_threshold", SHIELD_DEDUP_IOU_THRESHOLD)

    explanations = []
    resolved: List[CleanupShield] = []

    for group in (auto_shields, vendor_shields, template_shields, session_shields):
        for shield in group:
            shield = copy.deepcopy(shield)
            merged = False

            for index, existing in enumerate(resolved):
                if shield.shield_type != existing.shield_type:
                    continue

                overlap = iou(shield.bbox, existing.bbox)
                if overlap < dedup_threshold:
                    continue

                if outranks(shield, existing):
                    explanations.append(PrecedenceExplanation(
                        shield_id=shield.id,
                        winning_source=shield.source,
                        overridden_sources=[existing.source],
                        reason=(
                            f"{shield.source.name} overrides {existing.source.name} "
                            f"(IoU={overlap:.2f})"
                        ),
                    ))
                    resolved[index] = shield
                merged = True
                break

            if not merged:
                resolved.append(shield)

    zone_conflicts = []
    warnings = []
    for shield in resolved:
        conflicts, shield_warnings = apply_zone_policy(
            shield, critical_zones, warn_threshold, block_threshold
        )
        zone_conflicts.extend(conflicts)
        warnings.extend(shield_warnings)

    result = PrecedenceResult(
        shields=sort_by_precedence(resolved),
        explanations=explanations,
        zone_conflicts=zone_conflicts,
        warnings=warnings,
    )

    logger.debug(
        f"Merged shields: {len(result.shields)} kept, "
        f"{len(explanations)} overrides, {len(zone_conflicts)} zone conflicts"
    )
    return result


__all__ = [
    'CRITICAL_OVERLAP_WARN',
    'CRITICAL_OVERLAP_BLOCK_APPLY',
    'SHIELD_DEDUP_IOU_THRESHOLD',
    'outranks',
    'blocks_apply',
    'apply_zone_policy',
    'sort_by_precedence',
    'merge_shields',
]
