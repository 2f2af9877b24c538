"""
Cleanup Shield Engine.

Holds the shield set of one document and decides which shields are
actually applied. The engine is safe to share between review threads:
the shield table sits behind a reader/writer lock.

Rules enforced on every insertion:
    - Bounding boxes must lie inside the page
    - Same-type shields with IoU >= 0.85 are one shield; the higher
      provenance (then confidence) survives
    - Critical-zone overlap >= 5% warns, >= 10% forces Suggested

Author: ML Engineering Team
"""

import copy
from typing import Dict, List, Optional, Sequence

from config import get_config
from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.exceptions import InvalidShieldError, ShieldNotFoundError
from bill_review.utils.locks import ReadWriteLock
from bill_review.utils.logger import get_logger
from .precedence import (
    CRITICAL_OVERLAP_BLOCK_APPLY,
    CRITICAL_OVERLAP_WARN,
    SHIELD_DEDUP_IOU_THRESHOLD,
    apply_zone_policy,
    blocks_apply,
    merge_shields,
    outranks,
    sort_by_precedence,
)
from .rules import ShieldRuleSource
from .types import (
    ApplyMode,
    CleanupShield,
    CriticalZone,
    NormalizedBBox,
    PageTarget,
    PrecedenceResult,
    RiskLevel,
    ShieldInsertOutcome,
    ShieldSource,
    ZoneTarget,
    iou,
)

# Initialize module logger
logger = get_logger(__name__)


def validate_bbox(bbox: NormalizedBBox) -> None:
    """
    Check a shield region, naming the offending coordinate.

    Raises:
        InvalidShieldError: On zero size, a coordinate outside [0, 1],
            or a box that extends past the page edge.
    """
    if bbox.width == 0.0 or bbox.height == 0.0:
        raise InvalidShieldError("Shield region must have non-zero dimensions")

    if bbox.is_valid():
        return

    for name in ('x', 'y', 'width', 'height'):
        value = getattr(bbox, name)
        if value < 0.0 or value > 1.0:
            raise InvalidShieldError(
                f"Invalid normalized coordinate: {name} = {value} (must be 0.0-1.0)",
                field=name,
                value=value,
            )

    raise InvalidShieldError("Shield region extends beyond image bounds")


class CleanupShieldEngine:
    """
    Shield set of a single document.

    Attributes:
        critical_zones: Zones that must not be masked silently
        rule_source: Optional source of saved vendor/template shields
        tenant_id: Tenant used for rule lookups
        store_id: Store used for rule lookups

    Example:
        >>> engine = CleanupShieldEngine(critical_zones=[
        ...     CriticalZone("Totals", NormalizedBBox(0.6, 0.8, 0.4, 0.2))
        ... ])
        >>> outcome = engine.add_shield(shield)
        >>> outcome.shield.apply_mode
        <ApplyMode.SUGGESTED: 'Suggested'>
    """

    def __init__(
        self,
        critical_zones: Optional[Sequence[CriticalZone]] = None,
        rule_source: Optional[ShieldRuleSource] = None,
        tenant_id: str = "default",
        store_id: str = "default",
        clock: Optional[Clock] = None,
        min_auto_confidence: Optional[float] = None,
        dedup_iou_threshold: Optional[float] = None,
        critical_overlap_warn: Optional[float] = None,
        critical_overlap_block_apply: Optional[float] = None,
        repetitive_iou_threshold: Optional[float] = None
    ) -> None:
        self.critical_zones = list(critical_zones or [])
        self.rule_source = rule_source
        self.tenant_id = tenant_id
        self.store_id = store_id
        self.clock = clock or SystemClock()

        self.min_auto_confidence = (
            min_auto_confidence if min_auto_confidence is not None
            else get_config("cleanup.min_auto_confidence", 0.6)
        )
        self.dedup_iou_threshold = (
            dedup_iou_threshold if dedup_iou_threshold is not None
            else get_config("cleanup.dedup_iou_threshold", SHIELD_DEDUP_IOU_THRESHOLD)
        )
        self.critical_overlap_warn = (
            critical_overlap_warn if critical_overlap_warn is not None
            else get_config("cleanup.critical_overlap_warn", CRITICAL_OVERLAP_WARN)
        )
        self.critical_overlap_block_apply = (
            critical_overlap_block_apply if critical_overlap_block_apply is not None
            else get_config("cleanup.critical_overlap_block_apply", CRITICAL_OVERLAP_BLOCK_APPLY)
        )
        self.repetitive_iou_threshold = (
            repetitive_iou_threshold if repetitive_iou_threshold is not None
            else get_config("cleanup.repetitive_iou_threshold", 0.7)
        )

        self._lock = ReadWriteLock()
        self._shields: Dict[str, CleanupShield] = {}

        logger.debug(
            f"CleanupShieldEngine initialized ({len(self.critical_zones)} critical zones, "
            f"min_auto_confidence={self.min_auto_confidence})"
        )

    # -------------------------------------------------------------------------
    # Insertion
    # -------------------------------------------------------------------------

    def add_shield(self, shield: CleanupShield) -> ShieldInsertOutcome:
        """
        Insert a shield, de-duplicating against the held set.

        Args:
            shield: Shield to insert. The engine stores its own copy.

        Returns:
            ShieldInsertOutcome describing what survived.

        Raises:
            InvalidShieldError: If the bounding box is invalid.
        """
        validate_bbox(shield.bbox)
        candidate = copy.deepcopy(shield)

        with self._lock.write_locked():
            duplicates = [
                existing for existing in self._shields.values()
                if existing.shield_type == candidate.shield_type
                and iou(existing.bbox, candidate.bbox) >= self.dedup_iou_threshold
            ]

            for existing in duplicates:
                if not outranks(candidate, existing):
                    logger.debug(
                        f"Shield {candidate.id} dropped as duplicate of {existing.id} "
                        f"({existing.source.name} kept)"
                    )
                    return ShieldInsertOutcome(shield=copy.deepcopy(existing), inserted=False)

            replaced_ids = []
            for existing in duplicates:
                del self._shields[existing.id]
                replaced_ids.append(existing.id)

            conflicts, warnings = apply_zone_policy(
                candidate,
                self.critical_zones,
                self.critical_overlap_warn,
                self.critical_overlap_block_apply,
            )
            self._shields[candidate.id] = candidate

            logger.debug(
                f"Inserted shield {candidate.id} ({candidate.shield_type.value}, "
                f"{candidate.source.name}, replaced={len(replaced_ids)})"
            )

            return ShieldInsertOutcome(
                shield=copy.deepcopy(candidate),
                inserted=True,
                replaced_ids=replaced_ids,
                zone_conflicts=conflicts,
                warnings=warnings,
            )

    def add_user_shield(
        self,
        bbox: NormalizedBBox,
        user_id: str,
        reason: Optional[str] = None,
        page_target: Optional[PageTarget] = None,
        zone_target: Optional[ZoneTarget] = None
    ) -> ShieldInsertOutcome:
        """
        Insert a reviewer-drawn shield (SessionOverride, Applied).

        Raises:
            InvalidShieldError: If the box has zero size, a coordinate is out
                of range (the field is named in the error), or it extends
                beyond the page.
        """
        validate_bbox(bbox)

        shield = CleanupShield.user_defined(bbox, user_id, reason, created_at=self.clock.now())
        if page_target is not None:
            shield.page_target = page_target
        if zone_target is not None:
            shield.zone_target = zone_target

        logger.info(f"User {user_id} added shield {shield.id}")
        return self.add_shield(shield)

    def seed_rules(
        self,
        vendor_id: Optional[str] = None,
        template_id: Optional[str] = None
    ) -> List[ShieldInsertOutcome]:
        """
        Load saved vendor and template shields before auto-detection runs.

        Returns:
            One outcome per rule shield; empty when no rule source is set.
        """
        if self.rule_source is None:
            return []

        rules = []
        if vendor_id:
            rules.extend(self.rule_source.get_vendor_rules(self.tenant_id, self.store_id, vendor_id))
        if template_id:
            rules.extend(self.rule_source.get_template_rules(self.tenant_id, self.store_id, template_id))

        outcomes = [self.add_shield(rule) for rule in rules]
        logger.info(f"Seeded {len(outcomes)} rule shields (vendor={vendor_id}, template={template_id})")
        return outcomes

    def merge_shields(
        self,
        auto_shields: Sequence[CleanupShield] = (),
        vendor_shields: Sequence[CleanupShield] = (),
        template_shields: Sequence[CleanupShield] = (),
        session_shields: Sequence[CleanupShield] = (),
        critical_zones: Optional[Sequence[CriticalZone]] = None
    ) -> PrecedenceResult:
        """
        Resolve shields from every source and make the result the held set.

        Args:
            critical_zones: Zones to check; defaults to the engine's zones.

        Returns:
            PrecedenceResult sorted by precedence then confidence.

        Raises:
            InvalidShieldError: If any input shield has an invalid box.
        """
        for group in (auto_shields, vendor_shields, template_shields, session_shields):
            for shield in group:
                validate_bbox(shield.bbox)

        result = merge_shields(
            auto_shields,
            vendor_shields,
            template_shields,
            session_shields,
            self.critical_zones if critical_zones is None else critical_zones,
            dedup_threshold=self.dedup_iou_threshold,
            warn_threshold=self.critical_overlap_warn,
            block_threshold=self.critical_overlap_block_apply,
        )

        with self._lock.write_locked():
            self._shields = {shield.id: copy.deepcopy(shield) for shield in result.shields}

        return result

    # -------------------------------------------------------------------------
    # Apply mode
    # -------------------------------------------------------------------------

    def determine_apply_mode(self, shield: CleanupShield) -> ApplyMode:
        """Applied only for confident, low-risk shields; everything else is a suggestion."""
        if shield.confidence >= self.min_auto_confidence and shield.risk_level is RiskLevel.LOW:
            return ApplyMode.APPLIED
        return ApplyMode.SUGGESTED

    def set_apply_mode(self, shield_id: str, mode: ApplyMode) -> CleanupShield:
        """
        Change a shield's apply mode.

        A request for Applied on a shield that overlaps a critical zone
        at or above the block threshold leaves it Suggested with High risk.

        Raises:
            ShieldNotFoundError: If the id is not held.
        """
        with self._lock.write_locked():
            shield = self._shields.get(shield_id)
            if shield is None:
                raise ShieldNotFoundError(shield_id)

            if mode is ApplyMode.APPLIED and blocks_apply(
                shield, self.critical_zones, self.critical_overlap_block_apply
            ):
                logger.warning(f"Shield {shield_id} overlaps a critical zone; kept as Suggested")
                shield.apply_mode = ApplyMode.SUGGESTED
                shield.risk_level = RiskLevel.HIGH
            else:
                shield.apply_mode = mode

            shield.provenance.updated_at = self.clock.now()
            return copy.deepcopy(shield)

    def apply_auto_modes(self) -> List[CleanupShield]:
        """Promote every auto-detected shield that qualifies to Applied."""
        promoted = []
        with self._lock.write_locked():
            for shield in self._shields.values():
                if shield.source is not ShieldSource.AUTO_DETECTED:
                    continue
                if shield.apply_mode is not ApplyMode.SUGGESTED:
                    continue
                if self.determine_apply_mode(shield) is not ApplyMode.APPLIED:
                    continue
                if blocks_apply(shield, self.critical_zones, self.critical_overlap_block_apply):
                    continue
                shield.apply_mode = ApplyMode.APPLIED
                shield.provenance.updated_at = self.clock.now()
                promoted.append(copy.deepcopy(shield))
        return promoted

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_shield(self, shield_id: str) -> CleanupShield:
        with self._lock.read_locked():
            shield = self._shields.get(shield_id)
            if shield is None:
                raise ShieldNotFoundError(shield_id)
            return copy.deepcopy(shield)

    def shields(self) -> List[CleanupShield]:
        """All held shields, sorted by precedence then confidence."""
        with self._lock.read_locked():
            return sort_by_precedence([copy.deepcopy(s) for s in self._shields.values()])

    def resolved_shields(self, page_number: int = 1, page_count: int = 1) -> List[CleanupShield]:
        """Applied shields that target the given 1-based page."""
        return [
            shield for shield in self.shields()
            if shield.apply_mode is ApplyMode.APPLIED
            and shield.page_target.matches(page_number, page_count)
        ]

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._shields)

    # -------------------------------------------------------------------------
    # Multi-page detection
    # -------------------------------------------------------------------------

    def detect_repetitive(self, page_shields: Sequence[Sequence[CleanupShield]]) -> List[CleanupShield]:
        """
        Boost shields that recur across the pages of a document.

        First-page shields are the candidates. A candidate matches a later
        page when that page has a shield of the same type with IoU >= the
        repetitive threshold. Confidence becomes
        confidence + 0.2 * (matching pages / page count), capped at 1.0.
        Shields below min_auto_confidence are dropped.

        Args:
            page_shields: Detected shields per page, in page order.

        Returns:
            Boosted candidate shields (copies); nothing is inserted.
        """
        if not page_shields:
            logger.warning("No pages provided for multi-page detection")
            return []

        page_count = len(page_shields)
        if page_count == 1:
            candidates = [copy.deepcopy(s) for s in page_shields[0]]
        else:
            candidates = []
            for shield in page_shields[0]:
                match_count = 1
                for other_page in page_shields[1:]:
                    if any(
                        other.shield_type == shield.shield_type
                        and iou(other.bbox, shield.bbox) >= self.repetitive_iou_threshold
                        for other in other_page
                    ):
                        match_count += 1

                boosted = copy.deepcopy(shield)
                if match_count > 1:
                    match_ratio = match_count / page_count
                    boosted.confidence = min(1.0, boosted.confidence + 0.2 * match_ratio)
                    boosted.why_detected = (
                        f"{boosted.why_detected} (found on {match_count}/{page_count} pages)"
                    )
                candidates.append(boosted)

        return [s for s in candidates if s.confidence >= self.min_auto_confidence]


__all__ = ['CleanupShieldEngine', 'validate_bbox']
