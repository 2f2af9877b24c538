"""
Early Stop Checker Module.

Tracks processing budgets for one pipeline run and decides when further
OCR passes are no longer worth running, either because every critical
field is already confident enough or because a time/pass budget is
spent. Cancellation is cooperative: callers poll between passes and
stop scheduling new work; running passes always finish.

Classes:
    ProcessingBudget: Immutable budget configuration
    EarlyStopDecision: Result of a confidence check
    BudgetStatus: Result of a time budget check
    EarlyStopChecker: Stateful checker bound to a clock

Author: ML Engineering Team
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from config import get_config
from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

DEFAULT_CRITICAL_FIELDS = ("invoice_number", "invoice_date", "total")


@dataclass(frozen=True)
class ProcessingBudget:
    """
    Budget limits for one pipeline run.

    Attributes:
        max_time_per_page_ms: Time allowed for a single page
        max_time_per_document_ms: Time allowed for the whole document
        max_variants_per_page: Preprocessing variants tried per page
        max_passes_per_zone: OCR passes allowed per zone
        early_stop_confidence_threshold: Confidence (0-100) a critical field needs
        early_stop_critical_fields: Fields that must all reach the threshold
    """
    max_time_per_page_ms: int = 15000
    max_time_per_document_ms: int = 30000
    max_variants_per_page: int = 8
    max_passes_per_zone: int = 5
    early_stop_confidence_threshold: int = 95
    early_stop_critical_fields: Tuple[str, ...] = DEFAULT_CRITICAL_FIELDS

    @classmethod
    def from_config(cls) -> 'ProcessingBudget':
        """Build a budget from the budget.* configuration section."""
        return cls(
            max_time_per_page_ms=int(get_config("budget.max_time_per_page_ms", 15000)),
            max_time_per_document_ms=int(get_config("budget.max_time_per_document_ms", 30000)),
            max_variants_per_page=int(get_config("budget.max_variants_per_page", 8)),
            max_passes_per_zone=int(get_config("budget.max_passes_per_zone", 5)),
            early_stop_confidence_threshold=int(
                get_config("budget.early_stop_confidence_threshold", 95)
            ),
            early_stop_critical_fields=tuple(
                get_config("budget.early_stop_critical_fields", list(DEFAULT_CRITICAL_FIELDS))
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_time_per_page_ms': self.max_time_per_page_ms,
            'max_time_per_document_ms': self.max_time_per_document_ms,
            'max_variants_per_page': self.max_variants_per_page,
            'max_passes_per_zone': self.max_passes_per_zone,
            'early_stop_confidence_threshold': self.early_stop_confidence_threshold,
            'early_stop_critical_fields': list(self.early_stop_critical_fields),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProcessingBudget':
        values = dict(data)
        if 'early_stop_critical_fields' in values:
            values['early_stop_critical_fields'] = tuple(values['early_stop_critical_fields'])
        return cls(**values)


@dataclass
class EarlyStopDecision:
    """
    Whether to stop running passes, and why.

    Attributes:
        should_stop: True when every critical field met the threshold
        reason: Human-readable explanation
        fields_met: Critical fields at or above the threshold
        fields_pending: Critical fields below it (or absent)
        confidence_scores: (field, confidence) per critical field, 0 when absent
    """
    should_stop: bool
    reason: str
    fields_met: List[str] = field(default_factory=list)
    fields_pending: List[str] = field(default_factory=list)
    confidence_scores: List[Tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'should_stop': self.should_stop,
            'reason': self.reason,
            'fields_met': list(self.fields_met),
            'fields_pending': list(self.fields_pending),
            'confidence_scores': [[name, score] for name, score in self.confidence_scores],
        }


@dataclass
class BudgetStatus:
    """
    Snapshot of one time budget.

    budget_used_percent is not clamped and exceeds 100 once the budget
    is blown; it is meant for logging and alerting.
    """
    time_elapsed_ms: int
    time_remaining_ms: int
    budget_exceeded: bool
    budget_used_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'time_elapsed_ms': self.time_elapsed_ms,
            'time_remaining_ms': self.time_remaining_ms,
            'budget_exceeded': self.budget_exceeded,
            'budget_used_percent': self.budget_used_percent,
        }


class EarlyStopChecker:
    """
    Budget and early-stop tracking for one pipeline run.

    The checker reads a monotonic clock, so wall-clock adjustments never
    affect budgets. The document budget runs from start(); the page
    budget runs from the latest start_page() (or start() if no page was
    started). Both read the same clock.

    Example:
        >>> checker = EarlyStopChecker(clock=ManualClock())
        >>> checker.start()
        >>> decision = checker.should_stop({"invoice_number": 97, "total": 99})
        >>> decision.fields_pending
        ['invoice_date']
    """

    def __init__(
        self,
        budget: Optional[ProcessingBudget] = None,
        clock: Optional[Clock] = None
    ) -> None:
        self.budget = budget if budget is not None else ProcessingBudget.from_config()
        self.clock = clock or SystemClock()

        self._lock = threading.Lock()
        self._start_ms: Optional[float] = None
        self._page_start_ms: Optional[float] = None
        self._passes_run = 0

    def start(self) -> None:
        """Start (or restart) the document timer and the pass counter."""
        with self._lock:
            self._start_ms = self.clock.monotonic_ms()
            self._page_start_ms = self._start_ms
            self._passes_run = 0

    def start_page(self) -> None:
        """Restart the page timer and pass counter; the document timer keeps running."""
        with self._lock:
            now = self.clock.monotonic_ms()
            if self._start_ms is None:
                self._start_ms = now
            self._page_start_ms = now
            self._passes_run = 0

    def reset(self) -> None:
        """Forget the start time; elapsed time reads 0 until start() is called again."""
        with self._lock:
            self._start_ms = None
            self._page_start_ms = None
            self._passes_run = 0

    def _elapsed_since(self, origin: Optional[float]) -> int:
        if origin is None:
            return 0
        return max(0, int(self.clock.monotonic_ms() - origin))

    def time_elapsed_ms(self) -> int:
        """Milliseconds since start(), 0 before start."""
        with self._lock:
            origin = self._start_ms
        return self._elapsed_since(origin)

    def should_stop(self, field_confidences: Mapping[str, float]) -> EarlyStopDecision:
        """
        Decide whether every critical field is confident enough.

        A critical field missing from field_confidences counts as
        confidence 0 and is pending, never met.

        Args:
            field_confidences: Field name to confidence (0-100).

        Returns:
            EarlyStopDecision.
        """
        threshold = self.budget.early_stop_confidence_threshold
        fields_met = []
        fields_pending = []
        confidence_scores = []

        for name in self.budget.early_stop_critical_fields:
            confidence = field_confidences.get(name)
            if confidence is None:
                fields_pending.append(name)
                confidence_scores.append((name, 0))
                continue

            confidence_scores.append((name, confidence))
            if confidence >= threshold:
                fields_met.append(name)
            else:
                fields_pending.append(name)

        should_stop = not fields_pending
        if should_stop:
            reason = (
                f"All {len(fields_met)} critical fields exceed "
                f"{threshold}% confidence threshold"
            )
        else:
            reason = (
                f"{len(fields_pending)} critical fields still below threshold: "
                f"{', '.join(fields_pending)}"
            )

        logger.debug(f"Early stop check: {reason}")

        return EarlyStopDecision(
            should_stop=should_stop,
            reason=reason,
            fields_met=fields_met,
            fields_pending=fields_pending,
            confidence_scores=confidence_scores,
        )

    def check_time_budget(self, max_time_ms: int, elapsed_ms: Optional[int] = None) -> BudgetStatus:
        """
        Compare elapsed document time against a limit.

        Args:
            max_time_ms: Budget in milliseconds.
            elapsed_ms: Elapsed time to evaluate; defaults to time since start().

        Returns:
            BudgetStatus; remaining time saturates at 0.
        """
        if elapsed_ms is None:
            elapsed_ms = self.time_elapsed_ms()

        if max_time_ms > 0:
            used_percent = elapsed_ms / max_time_ms * 100.0
        else:
            used_percent = 100.0

        return BudgetStatus(
            time_elapsed_ms=elapsed_ms,
            time_remaining_ms=max(0, max_time_ms - elapsed_ms),
            budget_exceeded=elapsed_ms >= max_time_ms,
            budget_used_percent=used_percent,
        )

    def check_page_budget(self) -> BudgetStatus:
        with self._lock:
            origin = self._page_start_ms
        status = self.check_time_budget(self.budget.max_time_per_page_ms, self._elapsed_since(origin))
        if status.budget_exceeded:
            logger.warning(f"Page budget exceeded ({status.budget_used_percent:.0f}% used)")
        return status

    def check_document_budget(self) -> BudgetStatus:
        status = self.check_time_budget(self.budget.max_time_per_document_ms)
        if status.budget_exceeded:
            logger.warning(f"Document budget exceeded ({status.budget_used_percent:.0f}% used)")
        return status

    def record_pass(self) -> int:
        """Count one OCR pass against max_passes_per_zone; returns the new count."""
        with self._lock:
            self._passes_run += 1
            return self._passes_run

    @property
    def passes_run(self) -> int:
        with self._lock:
            return self._passes_run

    def pass_budget_exhausted(self) -> bool:
        with self._lock:
            return self._passes_run >= self.budget.max_passes_per_zone

    def budget_exhausted(self) -> bool:
        """True when any of the page, document or pass budgets is spent."""
        return (
            self.pass_budget_exhausted()
            or self.check_page_budget().budget_exceeded
            or self.check_document_budget().budget_exceeded
        )


__all__ = ['ProcessingBudget', 'EarlyStopDecision', 'BudgetStatus', 'EarlyStopChecker']
