"""
Review Workflow Module for the Bill Review Pipeline.

This module provides:
    - Review case, audit, session data classes
    - Field validation with hard and soft flags
    - Case lifecycle, queue and session services over a shared store
    - JSON file persistence

Author: ML Engineering Team
"""

from .models import (
    ALLOWED_TRANSITIONS,
    ExtractedField,
    FieldDecision,
    ReviewCase,
    ReviewDecision,
    ReviewSession,
    ReviewState,
    SessionStats,
    StateTransition,
    ValidationResult,
    can_transition,
)
from .validation import validate_fields
from .store import ReviewStore
from .persistence import JsonFileRepository, ReviewRepository
from .case_service import ReviewCaseService, case_confidence
from .queue_service import (
    QueueFilter,
    QueueQuery,
    QueueResult,
    QueueStats,
    ReviewQueueService,
    SortField,
    SortOrder,
)
from .session_service import ReviewSessionService

__all__ = [
    'ALLOWED_TRANSITIONS',
    'ExtractedField',
    'FieldDecision',
    'ReviewCase',
    'ReviewDecision',
    'ReviewSession',
    'ReviewState',
    'SessionStats',
    'StateTransition',
    'ValidationResult',
    'can_transition',
    'validate_fields',
    'ReviewStore',
    'JsonFileRepository',
    'ReviewRepository',
    'ReviewCaseService',
    'case_confidence',
    'QueueFilter',
    'QueueQuery',
    'QueueResult',
    'QueueStats',
    'ReviewQueueService',
    'SortField',
    'SortOrder',
    'ReviewSessionService',
]
