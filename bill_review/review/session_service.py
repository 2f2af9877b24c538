"""
Review Session Service.

Tracks reviewer work sessions. A session stays alive while the reviewer
keeps recording reviews: each review moves expires_at to
now + timeout. At or after expires_at the session is expired.

Author: ML Engineering Team
"""

from datetime import timedelta
from typing import List, Optional, Union

from config import get_config
from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.exceptions import SessionExpiredError, SessionNotFoundError
from bill_review.utils.helpers import generate_id, to_iso
from bill_review.utils.logger import get_logger
from .models import ReviewDecision, ReviewSession, SessionStats
from .persistence import ReviewRepository
from .store import ReviewStore

# Initialize module logger
logger = get_logger(__name__)

MS_PER_HOUR = 3600 * 1000


class ReviewSessionService:
    """
    Start, extend, resume and end reviewer sessions.

    Attributes:
        store: Shared review store
        clock: Time source
        timeout: Inactivity window after which a session expires

    Example:
        >>> sessions = ReviewSessionService(store, clock=ManualClock())
        >>> session_id = sessions.start_session("alice")
        >>> sessions.record_review(session_id, "case-1", ReviewDecision.APPROVED, 45000)
        >>> sessions.end_session(session_id).cases_approved
        1
    """

    def __init__(
        self,
        store: Optional[ReviewStore] = None,
        clock: Optional[Clock] = None,
        timeout_minutes: Optional[float] = None,
        repository: Optional[ReviewRepository] = None
    ) -> None:
        self.store = store if store is not None else ReviewStore()
        self.clock = clock if clock is not None else SystemClock()
        if timeout_minutes is None:
            timeout_minutes = get_config("review.session_timeout_minutes", 30)
        self.timeout = timedelta(minutes=timeout_minutes)
        self.repository = repository

    def _save(self, session: ReviewSession) -> None:
        self.store.put_session(session)
        if self.repository is not None:
            self.repository.save_session(session)

    def _require_session(self, session_id: str) -> ReviewSession:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _require_live(self, session_id: str) -> ReviewSession:
        session = self._require_session(session_id)
        if session.is_expired(self.clock.now()):
            raise SessionExpiredError(session_id, to_iso(session.expires_at))
        return session

    def start_session(self, user_id: str) -> str:
        """Open a session and return its id."""
        now = self.clock.now()
        session = ReviewSession(
            session_id=generate_id(),
            user_id=user_id,
            started_at=now,
            last_activity=now,
            expires_at=now + self.timeout,
        )
        self._save(session)
        logger.info(f"Started review session {session.session_id} for {user_id}")
        return session.session_id

    def record_review(
        self,
        session_id: str,
        case_id: str,
        decision: Union[ReviewDecision, str],
        review_time_ms: int
    ) -> ReviewSession:
        """
        Count a reviewed case and extend the session.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionExpiredError: If the session already expired.
        """
        decision = ReviewDecision(decision)
        with self.store.session_lock(session_id):
            session = self._require_live(session_id)
            now = self.clock.now()

            session.cases_reviewed.append(case_id)
            if decision == ReviewDecision.APPROVED:
                session.cases_approved += 1
            elif decision == ReviewDecision.REJECTED:
                session.cases_rejected += 1
            session.total_review_time_ms += max(0, int(review_time_ms))
            session.last_activity = now
            session.expires_at = now + self.timeout

            self._save(session)
        logger.debug(f"Session {session_id}: recorded {decision.value} for case {case_id}")
        return session

    def resume_session(self, session_id: str) -> ReviewSession:
        """
        Continue a session that has not expired.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionExpiredError: If now is at or after expires_at.
        """
        with self.store.session_lock(session_id):
            session = self._require_live(session_id)
            session.is_active = True
            session.last_activity = self.clock.now()
            self._save(session)
        logger.info(f"Resumed review session {session_id}")
        return session

    def end_session(self, session_id: str) -> SessionStats:
        """Close a session and return its final statistics."""
        with self.store.session_lock(session_id):
            session = self._require_session(session_id)
            session.is_active = False
            session.ended_at = self.clock.now()
            self._save(session)

        stats = self._compute_stats(session)
        logger.info(
            f"Ended review session {session_id}: {stats.cases_reviewed} cases, "
            f"{stats.cases_per_hour:.1f}/hour"
        )
        return stats

    def get_session(self, session_id: str) -> ReviewSession:
        return self._require_session(session_id)

    def get_stats(self, session_id: str) -> SessionStats:
        return self._compute_stats(self._require_session(session_id))

    def _compute_stats(self, session: ReviewSession) -> SessionStats:
        end = session.ended_at or self.clock.now()
        duration_ms = max(0, int((end - session.started_at).total_seconds() * 1000))
        reviewed = len(session.cases_reviewed)

        cases_per_hour = reviewed * MS_PER_HOUR / duration_ms if duration_ms > 0 else 0.0
        avg_review_time_ms = session.total_review_time_ms / reviewed if reviewed else 0.0

        return SessionStats(
            cases_reviewed=reviewed,
            cases_approved=session.cases_approved,
            cases_rejected=session.cases_rejected,
            duration_ms=duration_ms,
            cases_per_hour=cases_per_hour,
            avg_review_time_ms=avg_review_time_ms,
        )

    def active_sessions(self, user_id: Optional[str] = None) -> List[ReviewSession]:
        """Active, unexpired sessions, optionally for one user."""
        now = self.clock.now()
        return [
            session for session in self.store.all_sessions()
            if session.is_active
            and not session.is_expired(now)
            and (user_id is None or session.user_id == user_id)
        ]

    def cleanup_expired(self) -> int:
        """
        Remove expired sessions and return how many were removed.

        Expiry is checked again under each session's lock, so a session
        extended by a concurrent record_review is kept.
        """
        removed = 0
        for snapshot in self.store.all_sessions():
            if not snapshot.is_expired(self.clock.now()):
                continue
            with self.store.session_lock(snapshot.session_id):
                current = self.store.get_session(snapshot.session_id)
                if current is None or not current.is_expired(self.clock.now()):
                    continue
                if self.store.remove_session(current.session_id):
                    removed += 1
        if removed:
            logger.info(f"Removed {removed} expired review sessions")
        return removed


__all__ = ['ReviewSessionService']
