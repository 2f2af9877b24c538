"""
Review Case Service.

State machine for review cases with a full audit trail:

    Pending  -> InReview | Archived
    InReview -> Approved | Rejected | Pending | Archived
    Approved -> Archived | InReview
    Rejected -> Archived | InReview
    Archived -> InReview

Every applied transition appends exactly one audit entry, written
together with the new state under the case's lock.

Usage:
    service = ReviewCaseService(ReviewStore())
    case = service.create_case(fields, vendor_id="acme")
    service.start_review(case.case_id, "alice")
    service.approve_case(case.case_id, "alice")

Author: ML Engineering Team
"""

from typing import List, Optional, Sequence

from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.exceptions import (
    CaseApprovalBlockedError,
    CaseNotEditableError,
    CaseNotFoundError,
    DuplicateCaseError,
    InvalidTransitionError,
    NothingToUndoError,
)
from bill_review.utils.helpers import generate_id
from bill_review.utils.logger import get_logger
from .models import (
    REVIEW_OUTCOME_STATES,
    ExtractedField,
    FieldDecision,
    ReviewCase,
    ReviewState,
    StateTransition,
    can_transition,
)
from .persistence import ReviewRepository
from .store import ReviewStore
from .validation import validate_fields

# Initialize module logger
logger = get_logger(__name__)

EDITABLE_STATES = (ReviewState.PENDING, ReviewState.IN_REVIEW)

DECIDED_FIELD_CONFIDENCE = 100


def case_confidence(fields: Sequence[ExtractedField], decided_fields: Sequence[str] = ()) -> int:
    """
    Overall case confidence: the rounded mean of field confidences.

    Decided fields count as 100.

    Example:
        >>> case_confidence([ExtractedField("a", "x", 80), ExtractedField("b", "y", 60)])
        70
    """
    if not fields:
        return 0
    decided = set(decided_fields)
    values = [
        DECIDED_FIELD_CONFIDENCE if f.name in decided else f.confidence
        for f in fields
    ]
    return int(round(sum(values) / len(values)))


class ReviewCaseService:
    """
    Creates cases and moves them through the review lifecycle.

    Attributes:
        store: Shared review store
        clock: Time source for timestamps
        repository: Optional repository that receives every committed case
    """

    def __init__(
        self,
        store: Optional[ReviewStore] = None,
        clock: Optional[Clock] = None,
        repository: Optional[ReviewRepository] = None
    ) -> None:
        self.store = store if store is not None else ReviewStore()
        self.clock = clock if clock is not None else SystemClock()
        self.repository = repository

    def _persist(self, case_id: str) -> None:
        if self.repository is None:
            return
        case = self.store.get_case(case_id)
        if case is not None:
            self.repository.save_case(case, self.store.get_audit(case_id))

    def _require_case(self, case_id: str) -> ReviewCase:
        case = self.store.get_case(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    def create_case(
        self,
        fields: Sequence[ExtractedField],
        vendor_id: Optional[str] = None,
        vendor_name: Optional[str] = None,
        case_id: Optional[str] = None,
        confidence: Optional[int] = None
    ) -> ReviewCase:
        """
        Create a Pending case and validate its fields.

        Args:
            fields: Extracted fields.
            vendor_id: Vendor id, if known.
            vendor_name: Vendor display name; falls back to a vendor_name field.
            case_id: Explicit id; generated when omitted.
            confidence: Overall confidence; defaults to the mean field confidence.

        Returns:
            The stored case.

        Raises:
            DuplicateCaseError: If case_id is already in use.
        """
        now = self.clock.now()
        fields = list(fields)

        if vendor_name is None:
            name_field = next((f for f in fields if f.name == "vendor_name" and f.value), None)
            if name_field is not None:
                vendor_name = name_field.value

        case = ReviewCase(
            case_id=case_id or generate_id(),
            state=ReviewState.PENDING,
            fields=fields,
            created_at=now,
            updated_at=now,
            confidence=confidence if confidence is not None else case_confidence(fields),
            validation_result=validate_fields(fields),
            vendor_id=vendor_id,
            vendor_name=vendor_name,
        )

        with self.store.case_lock(case.case_id):
            if self.store.has_case(case.case_id):
                raise DuplicateCaseError(case.case_id)
            self.store.commit(case)
        self._persist(case.case_id)

        logger.info(
            f"Created case {case.case_id} (confidence={case.confidence}, "
            f"hard_flags={len(case.validation_result.hard_flags)})"
        )
        return self.store.get_case(case.case_id)

    def get_case(self, case_id: str) -> ReviewCase:
        """
        Raises:
            CaseNotFoundError: If the case does not exist.
        """
        return self._require_case(case_id)

    def transition(
        self,
        case_id: str,
        to_state: ReviewState,
        user_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> ReviewCase:
        """
        Move a case to a new state and record the change.

        Raises:
            CaseNotFoundError: If the case does not exist.
            InvalidTransitionError: If the change is not permitted.
        """
        with self.store.case_lock(case_id):
            case = self._require_case(case_id)
            from_state = case.state

            if not can_transition(from_state, to_state):
                logger.warning(
                    f"Rejected transition {from_state.value} -> {to_state.value} on case {case_id}"
                )
                raise InvalidTransitionError(from_state.value, to_state.value)

            now = self.clock.now()
            case.state = to_state
            case.updated_at = now
            if to_state in REVIEW_OUTCOME_STATES:
                case.reviewed_by = user_id
                case.reviewed_at = now

            entry = StateTransition(
                from_state=from_state,
                to_state=to_state,
                timestamp=now,
                user_id=user_id,
                reason=reason,
            )
            self.store.commit(case, transition=entry)

        self._persist(case_id)
        logger.info(f"Case {case_id}: {from_state.value} -> {to_state.value} by {user_id}")
        return case

    def get_audit_log(self, case_id: str) -> List[StateTransition]:
        """Audit entries of a case, oldest first."""
        if not self.store.has_case(case_id):
            raise CaseNotFoundError(case_id)
        return self.store.get_audit(case_id)

    def undo_last_transition(self, case_id: str) -> ReviewCase:
        """
        Revert the latest transition and drop its audit entry.

        reviewed_by / reviewed_at are restored from the latest remaining
        approve or reject, or cleared when none remains.

        Raises:
            CaseNotFoundError: If the case does not exist.
            NothingToUndoError: If the audit log is empty.
        """
        with self.store.case_lock(case_id):
            case = self._require_case(case_id)
            audit = self.store.get_audit(case_id)
            if not audit:
                raise NothingToUndoError(case_id)

            last = audit[-1]
            remaining = audit[:-1]

            case.state = last.from_state
            case.updated_at = self.clock.now()

            previous_outcome = next(
                (entry for entry in reversed(remaining) if entry.to_state in REVIEW_OUTCOME_STATES),
                None
            )
            if previous_outcome is not None:
                case.reviewed_by = previous_outcome.user_id
                case.reviewed_at = previous_outcome.timestamp
            else:
                case.reviewed_by = None
                case.reviewed_at = None

            self.store.commit(case, pop_audit=True)

        self._persist(case_id)
        logger.info(f"Case {case_id}: undid {last.from_state.value} -> {last.to_state.value}")
        return case

    def start_review(self, case_id: str, user_id: str) -> ReviewCase:
        return self.transition(case_id, ReviewState.IN_REVIEW, user_id=user_id)

    def decide_field(
        self,
        case_id: str,
        field_name: str,
        chosen_value: str,
        user_id: Optional[str] = None
    ) -> ReviewCase:
        """
        Record a reviewer's value for a field.

        The field takes the chosen value at confidence 100, its hard
        flags disappear, and case confidence and validation are
        recomputed. Deciding a field that was never extracted adds it.

        Raises:
            CaseNotFoundError: If the case does not exist.
            CaseNotEditableError: If the case is not Pending or InReview.
        """
        with self.store.case_lock(case_id):
            case = self._require_case(case_id)
            if case.state not in EDITABLE_STATES:
                raise CaseNotEditableError(case_id, case.state.value)

            now = self.clock.now()
            extracted = case.get_field(field_name)
            original_value = extracted.value if extracted is not None else None
            original_confidence = extracted.confidence if extracted is not None else None

            if extracted is None:
                extracted = ExtractedField(field_name, chosen_value, DECIDED_FIELD_CONFIDENCE, source="user")
                case.fields.append(extracted)
            else:
                extracted.value = chosen_value
                extracted.confidence = DECIDED_FIELD_CONFIDENCE
                extracted.source = "user"

            case.decisions.append(FieldDecision(
                field_name=field_name,
                chosen_value=chosen_value,
                decided_at=now,
                original_value=original_value,
                original_confidence=original_confidence,
                decided_by=user_id,
            ))

            decided = case.decided_fields
            case.confidence = case_confidence(case.fields, decided)
            case.validation_result = validate_fields(case.fields, decided_fields=decided)
            case.updated_at = now
            self.store.commit(case)

        self._persist(case_id)
        logger.info(f"Case {case_id}: field {field_name} decided by {user_id}")
        return case

    def approve_case(self, case_id: str, user_id: str, reason: Optional[str] = None) -> ReviewCase:
        """
        Approve a case.

        Raises:
            CaseApprovalBlockedError: While hard validation flags remain.
            InvalidTransitionError: If the case is not InReview.
        """
        with self.store.case_lock(case_id):
            case = self._require_case(case_id)
            validation = case.validation_result
            if validation is not None and not validation.can_approve:
                logger.warning(f"Approval of case {case_id} blocked: {validation.hard_flags}")
                raise CaseApprovalBlockedError(case_id, validation.hard_flags)
            return self.transition(case_id, ReviewState.APPROVED, user_id=user_id, reason=reason)

    def reject_case(self, case_id: str, user_id: str, reason: Optional[str] = None) -> ReviewCase:
        return self.transition(case_id, ReviewState.REJECTED, user_id=user_id, reason=reason)

    def archive_case(self, case_id: str, user_id: Optional[str] = None, reason: Optional[str] = None) -> ReviewCase:
        return self.transition(case_id, ReviewState.ARCHIVED, user_id=user_id, reason=reason)


__all__ = ['ReviewCaseService', 'case_confidence']
