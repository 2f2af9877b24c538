"""
Shared Review Store.

In-memory home of cases, their audit logs and reviewer sessions, shared
by the case, queue and session services. Maps sit behind one
reader/writer lock; case mutations additionally hold the case's own
lock, and session updates the session's own lock, so that
different cases or sessions never contend.

Author: ML Engineering Team
"""

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional
import copy

from bill_review.utils.locks import KeyedLocks, ReadWriteLock
from .models import ReviewCase, ReviewSession, StateTransition


class ReviewStore:
    """
    Thread-safe storage for review entities.

    Reads return deep copies so callers can never mutate stored state
    outside a commit.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._case_locks = KeyedLocks()
        self._session_locks = KeyedLocks()
        self._cases: Dict[str, ReviewCase] = {}
        self._audit: Dict[str, List[StateTransition]] = {}
        self._sessions: Dict[str, ReviewSession] = {}

    @contextmanager
    def case_lock(self, case_id: str) -> Iterator[None]:
        """Hold the per-case lock for a read-modify-write sequence."""
        with self._case_locks.locked(case_id):
            yield

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[None]:
        """Hold the per-session lock for a read-modify-write sequence."""
        with self._session_locks.locked(session_id):
            yield

    # Cases

    def has_case(self, case_id: str) -> bool:
        with self._lock.read_locked():
            return case_id in self._cases

    def get_case(self, case_id: str) -> Optional[ReviewCase]:
        with self._lock.read_locked():
            case = self._cases.get(case_id)
            return copy.deepcopy(case) if case is not None else None

    def all_cases(self) -> List[ReviewCase]:
        with self._lock.read_locked():
            return [copy.deepcopy(case) for case in self._cases.values()]

    def get_audit(self, case_id: str) -> List[StateTransition]:
        with self._lock.read_locked():
            return copy.deepcopy(self._audit.get(case_id, []))

    def commit(
        self,
        case: ReviewCase,
        transition: Optional[StateTransition] = None,
        pop_audit: bool = False
    ) -> None:
        """
        Write a case and its audit change in one critical section.

        Args:
            case: New case state.
            transition: Audit entry to append, if any.
            pop_audit: Remove the latest audit entry (undo).
        """
        stored = copy.deepcopy(case)
        with self._lock.write_locked():
            self._cases[stored.case_id] = stored
            audit = self._audit.setdefault(stored.case_id, [])
            if pop_audit and audit:
                audit.pop()
            if transition is not None:
                audit.append(copy.deepcopy(transition))

    def load_case(self, case: ReviewCase, audit: List[StateTransition]) -> None:
        """Replace a case and its full audit log, as when restoring from disk."""
        with self._lock.write_locked():
            self._cases[case.case_id] = copy.deepcopy(case)
            self._audit[case.case_id] = copy.deepcopy(list(audit))

    # Sessions

    def get_session(self, session_id: str) -> Optional[ReviewSession]:
        with self._lock.read_locked():
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session is not None else None

    def all_sessions(self) -> List[ReviewSession]:
        with self._lock.read_locked():
            return [copy.deepcopy(s) for s in self._sessions.values()]

    def put_session(self, session: ReviewSession) -> None:
        with self._lock.write_locked():
            self._sessions[session.session_id] = copy.deepcopy(session)

    def remove_session(self, session_id: str) -> bool:
        with self._lock.write_locked():
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._cases)


__all__ = ['ReviewStore']
