"""
Custom Exceptions Module.

This module defines all custom exceptions used throughout the vendor bill
review pipeline. Using specific exceptions allows callers to tell fatal
configuration problems apart from recoverable workflow conflicts.

Exception Hierarchy:
    BillReviewError (base)
    ├── ImageIOError
    │   ├── ImageLoadError
    │   └── ImageSaveError
    ├── PreprocessingError
    │   └── InvalidParameterError
    ├── OCRError
    │   ├── OCREngineNotAvailableError
    │   ├── OCRProcessingError
    │   └── MergeError
    ├── ShieldError
    │   ├── InvalidShieldError
    │   └── ShieldNotFoundError
    ├── ReviewError
    │   ├── CaseNotFoundError
    │   ├── InvalidTransitionError
    │   ├── NothingToUndoError
    │   ├── CaseApprovalBlockedError
    │   ├── CaseNotEditableError
    │   └── InvalidQueueQueryError
    ├── SessionError
    │   ├── SessionNotFoundError
    │   └── SessionExpiredError
    └── PersistenceError

Calibration has no exception type: it always degrades to pass-through.
"""

from typing import List


class BillReviewError(Exception):
    """
    Base exception for all pipeline errors.

    All custom exceptions in this system inherit from this class,
    allowing for easy catching of all system-specific errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# IMAGE I/O ERRORS
# =============================================================================

class ImageIOError(BillReviewError):
    """Base exception for image load/save failures (fatal per document)."""
    pass


class ImageLoadError(ImageIOError):
    """Raised when an input image cannot be opened or decoded."""

    def __init__(self, filepath: str, reason: str = None):
        message = f"Failed to load image: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


class ImageSaveError(ImageIOError):
    """Raised when a processed image cannot be written."""

    def __init__(self, filepath: str, reason: str = None):
        message = f"Failed to save image: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# PREPROCESSING ERRORS
# =============================================================================

class PreprocessingError(BillReviewError):
    """Raised when a preprocessing step fails."""

    def __init__(self, step: str, reason: str = None):
        message = f"Preprocessing step failed: {step}"
        details = {"step": step, "reason": reason}
        super().__init__(message, details)


class InvalidParameterError(PreprocessingError):
    """
    Raised when a pipeline step is configured with impossible parameters.

    Example:
        >>> raise InvalidParameterError("crop", "Crop region exceeds image bounds")
    """
    pass


# =============================================================================
# OCR ERRORS
# =============================================================================

class OCRError(BillReviewError):
    """Base exception for OCR-related errors."""
    pass


class OCREngineNotAvailableError(OCRError):
    """Raised when the configured OCR engine is not available."""

    def __init__(self, engine_name: str):
        message = f"OCR engine not available: {engine_name}"
        details = {"engine": engine_name}
        super().__init__(message, details)


class OCRProcessingError(OCRError):
    """
    Raised when an OCR engine call fails.

    This is a transient failure: the caller may retry, the pipeline
    itself never does.
    """

    def __init__(self, filepath: str, reason: str = None):
        message = f"OCR processing failed for: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


class MergeError(OCRError):
    """Raised when there are no pass results to merge."""

    def __init__(self, reason: str = "No OCR results to merge"):
        super().__init__(reason, {})


# =============================================================================
# CLEANUP SHIELD ERRORS
# =============================================================================

class ShieldError(BillReviewError):
    """Base exception for cleanup shield errors."""
    pass


class InvalidShieldError(ShieldError):
    """Raised when a shield region is malformed."""

    def __init__(self, reason: str, field: str = None, value: float = None):
        message = f"Invalid shield: {reason}"
        details = {}
        if field is not None:
            details = {"field": field, "value": value}
        super().__init__(message, details)


class ShieldNotFoundError(ShieldError):
    """Raised when a shield id is not held by the engine."""

    def __init__(self, shield_id: str):
        message = f"Shield not found: {shield_id}"
        details = {"shield_id": shield_id}
        super().__init__(message, details)


# =============================================================================
# REVIEW WORKFLOW ERRORS
# =============================================================================

class ReviewError(BillReviewError):
    """
    Base exception for review workflow errors.

    These are recoverable: the caller should re-fetch the current
    case state and decide again.
    """
    pass


class CaseNotFoundError(ReviewError):
    """Raised when a case id is unknown."""

    def __init__(self, case_id: str):
        message = f"Review case not found: {case_id}"
        details = {"case_id": case_id}
        super().__init__(message, details)


class DuplicateCaseError(ReviewError):
    """Raised when a case is created with an id that is already in use."""

    def __init__(self, case_id: str):
        message = f"Review case already exists: {case_id}"
        details = {"case_id": case_id}
        super().__init__(message, details)


class InvalidTransitionError(ReviewError):
    """
    Raised when a state change is not in the transition table.

    Example:
        >>> raise InvalidTransitionError("Pending", "Approved")
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        message = f"Invalid transition: {from_state} -> {to_state}"
        details = {"from": from_state, "to": to_state}
        super().__init__(message, details)


class NothingToUndoError(ReviewError):
    """Raised when undo is requested on a case with an empty audit log."""

    def __init__(self, case_id: str):
        message = f"No transitions to undo for case: {case_id}"
        details = {"case_id": case_id}
        super().__init__(message, details)


class CaseApprovalBlockedError(ReviewError):
    """Raised when approval is requested while hard validation flags remain."""

    def __init__(self, case_id: str, blocking_reasons: List[str]):
        self.blocking_reasons = list(blocking_reasons)
        message = f"Case {case_id} cannot be approved"
        details = {"case_id": case_id, "blocking_reasons": self.blocking_reasons}
        super().__init__(message, details)


class CaseNotEditableError(ReviewError):
    """Raised when a field decision targets a case that is no longer open."""

    def __init__(self, case_id: str, state: str):
        self.state = state
        message = f"Case {case_id} cannot be edited in state {state}"
        details = {"case_id": case_id, "state": state}
        super().__init__(message, details)


class InvalidQueueQueryError(ReviewError):
    """Raised when a queue query carries impossible pagination values."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid queue query: {reason}", {"reason": reason})


# =============================================================================
# SESSION ERRORS
# =============================================================================

class SessionError(BillReviewError):
    """Base exception for reviewer sessions; recover by starting a new session."""
    pass


class SessionNotFoundError(SessionError):
    """Raised when a session id is unknown."""

    def __init__(self, session_id: str):
        message = f"Review session not found: {session_id}"
        details = {"session_id": session_id}
        super().__init__(message, details)


class SessionExpiredError(SessionError):
    """Raised when a session is used after its expiry."""

    def __init__(self, session_id: str, expired_at: str = None):
        message = f"Review session expired: {session_id}"
        details = {"session_id": session_id, "expired_at": expired_at}
        super().__init__(message, details)


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================

class PersistenceError(BillReviewError):
    """Raised when the repository cannot read or write an entity."""

    def __init__(self, operation: str, reason: str = None):
        message = f"Persistence operation failed: {operation}"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, details)


# Export all exceptions
__all__ = [
    'BillReviewError',
    'ImageIOError',
    'ImageLoadError',
    'ImageSaveError',
    'PreprocessingError',
    'InvalidParameterError',
    'OCRError',
    'OCREngineNotAvailableError',
    'OCRProcessingError',
    'MergeError',
    'ShieldError',
    'InvalidShieldError',
    'ShieldNotFoundError',
    'ReviewError',
    'CaseNotFoundError',
    'DuplicateCaseError',
    'InvalidTransitionError',
    'NothingToUndoError',
    'CaseApprovalBlockedError',
    'CaseNotEditableError',
    'InvalidQueueQueryError',
    'SessionError',
    'SessionNotFoundError',
    'SessionExpiredError',
    'PersistenceError',
]
