"""
Review Queue Service.

Read-side view over the review store: filtering, sorting, zero-based
pagination and queue statistics.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import math

from config import get_config
from bill_review.utils.exceptions import InvalidQueueQueryError
from bill_review.utils.logger import get_logger
from .models import ReviewCase, ReviewState
from .store import ReviewStore

# Initialize module logger
logger = get_logger(__name__)


class SortField(Enum):
    CREATED_AT = "CreatedAt"
    UPDATED_AT = "UpdatedAt"
    CONFIDENCE = "Confidence"
    PRIORITY = "Priority"
    VENDOR_NAME = "VendorName"


class SortOrder(Enum):
    ASC = "Asc"
    DESC = "Desc"


@dataclass
class QueueFilter:
    """
    Case filter; every set predicate must hold.

    Confidence bounds are inclusive; date bounds apply to created_at
    and are inclusive.
    """
    state: Optional[ReviewState] = None
    vendor_id: Optional[str] = None
    min_confidence: Optional[int] = None
    max_confidence: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    has_flags: Optional[bool] = None
    reviewed_by: Optional[str] = None

    def matches(self, case: ReviewCase) -> bool:
        if self.state is not None and case.state != self.state:
            return False
        if self.vendor_id is not None and case.vendor_id != self.vendor_id:
            return False
        if self.min_confidence is not None and case.confidence < self.min_confidence:
            return False
        if self.max_confidence is not None and case.confidence > self.max_confidence:
            return False
        if self.date_from is not None and case.created_at < self.date_from:
            return False
        if self.date_to is not None and case.created_at > self.date_to:
            return False
        if self.has_flags is not None and case.has_flags != self.has_flags:
            return False
        if self.reviewed_by is not None and case.reviewed_by != self.reviewed_by:
            return False
        return True


@dataclass
class QueueQuery:
    filter: QueueFilter = field(default_factory=QueueFilter)
    sort_field: SortField = SortField.PRIORITY
    sort_order: SortOrder = SortOrder.DESC
    page: int = 0
    per_page: Optional[int] = None


@dataclass
class QueueResult:
    cases: List[ReviewCase]
    total: int
    page: int
    per_page: int
    total_pages: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cases': [case.to_dict() for case in self.cases],
            'total': self.total,
            'page': self.page,
            'per_page': self.per_page,
            'total_pages': self.total_pages,
        }


@dataclass
class QueueStats:
    """Counts per state, mean confidence and flagged case count."""
    total: int = 0
    pending: int = 0
    in_review: int = 0
    approved: int = 0
    rejected: int = 0
    archived: int = 0
    avg_confidence: float = 0.0
    cases_with_flags: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'pending': self.pending,
            'in_review': self.in_review,
            'approved': self.approved,
            'rejected': self.rejected,
            'archived': self.archived,
            'avg_confidence': self.avg_confidence,
            'cases_with_flags': self.cases_with_flags,
        }


def _sort_key(sort_field: SortField):
    if sort_field == SortField.CREATED_AT:
        return lambda c: (c.created_at, c.case_id)
    if sort_field == SortField.UPDATED_AT:
        return lambda c: (c.updated_at, c.case_id)
    if sort_field == SortField.CONFIDENCE:
        return lambda c: (c.confidence, c.case_id)
    if sort_field == SortField.VENDOR_NAME:
        # Cases without a vendor name sort last in ascending order
        return lambda c: (c.vendor_name is None, (c.vendor_name or "").lower(), c.case_id)
    # Inverse of Confidence; in the default DESC order the least confident,
    # oldest case comes first
    return lambda c: (-c.confidence, -c.created_at.timestamp())


class ReviewQueueService:
    """
    Queries over the cases in a review store.

    Example:
        >>> queue = ReviewQueueService(store)
        >>> result = queue.query(QueueQuery(filter=QueueFilter(state=ReviewState.PENDING)))
        >>> result.total_pages
        1
    """

    def __init__(self, store: ReviewStore, default_per_page: Optional[int] = None) -> None:
        self.store = store
        self.default_per_page = (
            default_per_page if default_per_page is not None
            else get_config("review.default_per_page", 20)
        )

    def query(self, query: Optional[QueueQuery] = None) -> QueueResult:
        """
        Filter, sort and paginate cases.

        Raises:
            InvalidQueueQueryError: If per_page < 1 or page < 0.
        """
        query = query or QueueQuery()
        per_page = query.per_page if query.per_page is not None else self.default_per_page

        if per_page < 1:
            raise InvalidQueueQueryError(f"per_page must be at least 1, got {per_page}")
        if query.page < 0:
            raise InvalidQueueQueryError(f"page must not be negative, got {query.page}")

        cases = [case for case in self.store.all_cases() if query.filter.matches(case)]
        cases.sort(key=_sort_key(query.sort_field), reverse=query.sort_order == SortOrder.DESC)

        total = len(cases)
        start = query.page * per_page
        page_cases = cases[start:start + per_page]

        logger.debug(f"Queue query matched {total} cases, returning {len(page_cases)}")

        return QueueResult(
            cases=page_cases,
            total=total,
            page=query.page,
            per_page=per_page,
            total_pages=math.ceil(total / per_page),
        )

    def get_stats(self) -> QueueStats:
        cases = self.store.all_cases()
        stats = QueueStats(total=len(cases))

        for case in cases:
            if case.state == ReviewState.PENDING:
                stats.pending += 1
            elif case.state == ReviewState.IN_REVIEW:
                stats.in_review += 1
            elif case.state == ReviewState.APPROVED:
                stats.approved += 1
            elif case.state == ReviewState.REJECTED:
                stats.rejected += 1
            elif case.state == ReviewState.ARCHIVED:
                stats.archived += 1
            if case.has_flags:
                stats.cases_with_flags += 1

        if cases:
            stats.avg_confidence = sum(c.confidence for c in cases) / len(cases)
        return stats

    def get_next_case(self, user_id: Optional[str] = None) -> Optional[ReviewCase]:
        """
        The Pending case with the lowest confidence, or None.

        Equal confidences go to the oldest case.
        """
        result = self.query(QueueQuery(
            filter=QueueFilter(state=ReviewState.PENDING),
            sort_field=SortField.PRIORITY,
            sort_order=SortOrder.DESC,
            per_page=1,
        ))
        case = result.cases[0] if result.cases else None
        if case is not None:
            logger.debug(f"Next case for {user_id}: {case.case_id} (confidence={case.confidence})")
        return case


__all__ = [
    'SortField',
    'SortOrder',
    'QueueFilter',
    'QueueQuery',
    'QueueResult',
    'QueueStats',
    'ReviewQueueService',
]
