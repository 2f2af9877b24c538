"""
Review Workflow Data Classes.

This module defines the entities of the human review workflow: cases,
their audit trail, field decisions and reviewer sessions. Every entity
converts to and from a JSON-compatible dictionary so that it can be
handed to any persistence layer.

Classes:
    ReviewState: Case lifecycle states
    ExtractedField: One extracted value with its confidence
    ValidationResult: Hard/soft validation flags of a case
    FieldDecision: A reviewer's choice for one field
    ReviewCase: One extracted document under review
    StateTransition: One audit log entry
    ReviewDecision: Outcome recorded in a session
    ReviewSession: A reviewer's work session
    SessionStats: Throughput of a session

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
import json

from bill_review.utils.helpers import from_iso, to_iso


class ReviewState(Enum):
    PENDING = "Pending"
    IN_REVIEW = "InReview"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ARCHIVED = "Archived"


# Every permitted state change; anything else is an InvalidTransitionError
ALLOWED_TRANSITIONS: Dict[ReviewState, FrozenSet[ReviewState]] = {
    ReviewState.PENDING: frozenset({ReviewState.IN_REVIEW, ReviewState.ARCHIVED}),
    ReviewState.IN_REVIEW: frozenset({
        ReviewState.APPROVED, ReviewState.REJECTED, ReviewState.PENDING, ReviewState.ARCHIVED,
    }),
    ReviewState.APPROVED: frozenset({ReviewState.ARCHIVED, ReviewState.IN_REVIEW}),
    ReviewState.REJECTED: frozenset({ReviewState.ARCHIVED, ReviewState.IN_REVIEW}),
    ReviewState.ARCHIVED: frozenset({ReviewState.IN_REVIEW}),
}

# Transitions into these states stamp reviewed_by / reviewed_at
REVIEW_OUTCOME_STATES = frozenset({ReviewState.APPROVED, ReviewState.REJECTED})


def can_transition(from_state: ReviewState, to_state: ReviewState) -> bool:
    return to_state in ALLOWED_TRANSITIONS.get(from_state, frozenset())


@dataclass
class ExtractedField:
    """
    One extracted value.

    Attributes:
        name: Field name (e.g., "invoice_number")
        value: Extracted text; empty when nothing was found
        confidence: Confidence 0-100
        source: Where the value came from ("ocr", "user", ...)
    """
    name: str
    value: str
    confidence: int
    source: str = "ocr"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'value': self.value,
            'confidence': self.confidence,
            'source': self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtractedField':
        return cls(
            name=data['name'],
            value=data.get('value') or "",
            confidence=int(data['confidence']),
            source=data.get('source', "ocr"),
        )


@dataclass
class ValidationResult:
    """
    Validation outcome of a case.

    can_approve is False whenever at least one hard flag exists.
    """
    hard_flags: List[str] = field(default_factory=list)
    soft_flags: List[str] = field(default_factory=list)
    can_approve: bool = True

    @property
    def has_flags(self) -> bool:
        return bool(self.hard_flags or self.soft_flags)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hard_flags': list(self.hard_flags),
            'soft_flags': list(self.soft_flags),
            'can_approve': self.can_approve,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationResult':
        return cls(
            hard_flags=list(data.get('hard_flags', [])),
            soft_flags=list(data.get('soft_flags', [])),
            can_approve=bool(data['can_approve']),
        )


@dataclass
class FieldDecision:
    """
    A reviewer's decision on one field.

    original_confidence keeps the OCR confidence the field had before
    the decision, so case confidence can be recomputed later.
    """
    field_name: str
    chosen_value: str
    decided_at: datetime
    original_value: Optional[str] = None
    original_confidence: Optional[int] = None
    source: str = "user"
    decided_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field_name': self.field_name,
            'chosen_value': self.chosen_value,
            'decided_at': to_iso(self.decided_at),
            'original_value': self.original_value,
            'original_confidence': self.original_confidence,
            'source': self.source,
            'decided_by': self.decided_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDecision':
        return cls(
            field_name=data['field_name'],
            chosen_value=data['chosen_value'],
            decided_at=from_iso(data['decided_at']),
            original_value=data.get('original_value'),
            original_confidence=data.get('original_confidence'),
            source=data.get('source', "user"),
            decided_by=data.get('decided_by'),
        )


@dataclass
class ReviewCase:
    """
    One extracted document moving through review.

    Cases are never deleted; Archived means inactive, and an archived
    case can be reopened.

    Attributes:
        case_id: Unique case id
        state: Current lifecycle state
        fields: Extracted fields
        validation_result: Latest validation outcome
        confidence: Overall confidence 0-100
        vendor_id: Vendor id, if known
        vendor_name: Vendor display name, if known
        created_at: Creation time (UTC)
        updated_at: Last change (UTC)
        reviewed_by: Reviewer of the latest approve/reject
        reviewed_at: Time of the latest approve/reject
        decisions: Reviewer field decisions, oldest first
    """
    case_id: str
    state: ReviewState
    fields: List[ExtractedField]
    created_at: datetime
    updated_at: datetime
    confidence: int = 0
    validation_result: Optional[ValidationResult] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    decisions: List[FieldDecision] = field(default_factory=list)

    def get_field(self, name: str) -> Optional[ExtractedField]:
        for extracted in self.fields:
            if extracted.name == name:
                return extracted
        return None

    @property
    def decided_fields(self) -> List[str]:
        return [decision.field_name for decision in self.decisions]

    @property
    def has_flags(self) -> bool:
        return self.validation_result is not None and self.validation_result.has_flags

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            'case_id': self.case_id,
            'state': self.state.name,
            'fields': [f.to_dict() for f in self.fields],
            'created_at': to_iso(self.created_at),
            'updated_at': to_iso(self.updated_at),
            'confidence': self.confidence,
            'validation_result': self.validation_result.to_dict() if self.validation_result else None,
            'vendor_id': self.vendor_id,
            'vendor_name': self.vendor_name,
            'reviewed_by': self.reviewed_by,
            'reviewed_at': to_iso(self.reviewed_at),
            'decisions': [d.to_dict() for d in self.decisions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewCase':
        validation = data.get('validation_result')
        return cls(
            case_id=data['case_id'],
            state=ReviewState[data['state']],
            fields=[ExtractedField.from_dict(f) for f in data.get('fields', [])],
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data['updated_at']),
            confidence=int(data.get('confidence', 0)),
            validation_result=ValidationResult.from_dict(validation) if validation else None,
            vendor_id=data.get('vendor_id'),
            vendor_name=data.get('vendor_name'),
            reviewed_by=data.get('reviewed_by'),
            reviewed_at=from_iso(data.get('reviewed_at')),
            decisions=[FieldDecision.from_dict(d) for d in data.get('decisions', [])],
        )

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class StateTransition:
    """One audit log entry; exactly one exists per applied transition."""
    from_state: ReviewState
    to_state: ReviewState
    timestamp: datetime
    user_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from_state': self.from_state.name,
            'to_state': self.to_state.name,
            'timestamp': to_iso(self.timestamp),
            'user_id': self.user_id,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StateTransition':
        return cls(
            from_state=ReviewState[data['from_state']],
            to_state=ReviewState[data['to_state']],
            timestamp=from_iso(data['timestamp']),
            user_id=data.get('user_id'),
            reason=data.get('reason'),
        )


class ReviewDecision(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    OTHER = "other"


@dataclass
class ReviewSession:
    """
    A reviewer's work session.

    expires_at slides forward on every recorded review.
    """
    session_id: str
    user_id: str
    started_at: datetime
    last_activity: datetime
    expires_at: datetime
    cases_reviewed: List[str] = field(default_factory=list)
    cases_approved: int = 0
    cases_rejected: int = 0
    total_review_time_ms: int = 0
    is_active: bool = True
    ended_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'user_id': self.user_id,
            'started_at': to_iso(self.started_at),
            'last_activity': to_iso(self.last_activity),
            'expires_at': to_iso(self.expires_at),
            'cases_reviewed': list(self.cases_reviewed),
            'cases_approved': self.cases_approved,
            'cases_rejected': self.cases_rejected,
            'total_review_time_ms': self.total_review_time_ms,
            'is_active': self.is_active,
            'ended_at': to_iso(self.ended_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewSession':
        return cls(
            session_id=data['session_id'],
            user_id=data['user_id'],
            started_at=from_iso(data['started_at']),
            last_activity=from_iso(data['last_activity']),
            expires_at=from_iso(data['expires_at']),
            cases_reviewed=list(data.get('cases_reviewed', [])),
            cases_approved=int(data.get('cases_approved', 0)),
            cases_rejected=int(data.get('cases_rejected', 0)),
            total_review_time_ms=int(data.get('total_review_time_ms', 0)),
            is_active=bool(data.get('is_active', True)),
            ended_at=from_iso(data.get('ended_at')),
        )


@dataclass
class SessionStats:
    """Throughput of a session."""
    cases_reviewed: int
    cases_approved: int
    cases_rejected: int
    duration_ms: int
    cases_per_hour: float
    avg_review_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cases_reviewed': self.cases_reviewed,
            'cases_approved': self.cases_approved,
            'cases_rejected': self.cases_rejected,
            'duration_ms': self.duration_ms,
            'cases_per_hour': self.cases_per_hour,
            'avg_review_time_ms': self.avg_review_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionStats':
        return cls(**data)


__all__ = [
    'ReviewState',
    'ALLOWED_TRANSITIONS',
    'REVIEW_OUTCOME_STATES',
    'can_transition',
    'ExtractedField',
    'ValidationResult',
    'FieldDecision',
    'ReviewCase',
    'StateTransition',
    'ReviewDecision',
    'ReviewSession',
    'SessionStats',
]
