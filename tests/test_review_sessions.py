from __future__ import annotations

import threading
import time
import unittest
from datetime import timedelta

from bill_review.review import ReviewDecision, ReviewSessionService, ReviewStore
from bill_review.utils.clock import ManualClock
from bill_review.utils.exceptions import SessionExpiredError, SessionNotFoundError


class TestReviewSessions(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.sessions = ReviewSessionService(ReviewStore(), clock=self.clock, timeout_minutes=30)

    def test_recorded_review_slides_expiry(self) -> None:
        session_id = self.sessions.start_session("alice")

        self.clock.advance(minutes=20)
        self.sessions.record_review(session_id, "case-1", ReviewDecision.APPROVED, 45000)
        self.clock.advance(minutes=20)

        resumed = self.sessions.resume_session(session_id)
        self.assertTrue(resumed.is_active)
        self.assertEqual(resumed.cases_reviewed, ["case-1"])

    def test_idle_session_expires(self) -> None:
        session_id = self.sessions.start_session("alice")
        self.clock.advance(minutes=30)

        with self.assertRaises(SessionExpiredError):
            self.sessions.resume_session(session_id)
        with self.assertRaises(SessionExpiredError):
            self.sessions.record_review(session_id, "case-1", "approved", 1000)

    def test_unknown_session(self) -> None:
        with self.assertRaises(SessionNotFoundError):
            self.sessions.get_session("nope")
        with self.assertRaises(SessionNotFoundError):
            self.sessions.end_session("nope")

    def test_end_session_stats(self) -> None:
        session_id = self.sessions.start_session("alice")
        self.sessions.record_review(session_id, "case-1", ReviewDecision.APPROVED, 30000)
        self.sessions.record_review(session_id, "case-2", "rejected", 60000)
        self.sessions.record_review(session_id, "case-3", ReviewDecision.OTHER, 0)
        self.clock.advance(minutes=30)

        stats = self.sessions.end_session(session_id)

        self.assertEqual(stats.cases_reviewed, 3)
        self.assertEqual(stats.cases_approved, 1)
        self.assertEqual(stats.cases_rejected, 1)
        self.assertEqual(stats.duration_ms, 30 * 60 * 1000)
        self.assertAlmostEqual(stats.cases_per_hour, 6.0)
        self.assertAlmostEqual(stats.avg_review_time_ms, 30000.0)
        self.assertFalse(self.sessions.get_session(session_id).is_active)

    def test_stats_without_elapsed_time_or_reviews(self) -> None:
        session_id = self.sessions.start_session("alice")

        stats = self.sessions.get_stats(session_id)

        self.assertEqual(stats.duration_ms, 0)
        self.assertEqual(stats.cases_per_hour, 0.0)
        self.assertEqual(stats.avg_review_time_ms, 0.0)

    def test_unknown_decision_is_rejected(self) -> None:
        session_id = self.sessions.start_session("alice")
        with self.assertRaises(ValueError):
            self.sessions.record_review(session_id, "case-1", "maybe", 10)

    def test_active_sessions_and_cleanup(self) -> None:
        stale = self.sessions.start_session("alice")
        self.clock.advance(minutes=25)
        fresh = self.sessions.start_session("bob")
        ended = self.sessions.start_session("bob")
        self.sessions.end_session(ended)
        self.clock.advance(minutes=10)

        active = self.sessions.active_sessions()
        self.assertEqual([s.session_id for s in active], [fresh])
        self.assertEqual(self.sessions.active_sessions("alice"), [])

        self.assertEqual(self.sessions.cleanup_expired(), 1)
        with self.assertRaises(SessionNotFoundError):
            self.sessions.get_session(stale)
        self.assertEqual(self.sessions.get_session(fresh).user_id, "bob")


class SlowClock(ManualClock):
    """ManualClock that yields the thread on every read, widening races."""

    def now(self):
        time.sleep(0.002)
        return super().now()


class SnapshotHookStore(ReviewStore):
    """Runs a callback right after the session list is snapshotted."""

    on_snapshot = None

    def all_sessions(self):
        sessions = super().all_sessions()
        callback, self.on_snapshot = self.on_snapshot, None
        if callback is not None:
            callback()
        return sessions


class TestSessionConcurrency(unittest.TestCase):
    def test_parallel_reviews_are_all_counted(self) -> None:
        sessions = ReviewSessionService(ReviewStore(), clock=SlowClock(), timeout_minutes=30)
        session_id = sessions.start_session("alice")

        threads = [
            threading.Thread(
                target=sessions.record_review,
                args=(session_id, f"case-{i}", ReviewDecision.APPROVED, 1000),
            )
            for i in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = sessions.get_stats(session_id)
        self.assertEqual(stats.cases_reviewed, 20)
        self.assertEqual(stats.cases_approved, 20)
        self.assertEqual(sorted(sessions.get_session(session_id).cases_reviewed),
                         sorted(f"case-{i}" for i in range(20)))

    def test_cleanup_keeps_a_session_extended_after_the_snapshot(self) -> None:
        clock = ManualClock()
        store = SnapshotHookStore()
        sessions = ReviewSessionService(store, clock=clock, timeout_minutes=30)
        session_id = sessions.start_session("alice")
        clock.advance(minutes=30)

        def extend() -> None:
            session = store.get_session(session_id)
            session.expires_at = clock.now() + timedelta(minutes=30)
            store.put_session(session)

        store.on_snapshot = extend

        self.assertEqual(sessions.cleanup_expired(), 0)
        self.assertEqual(sessions.get_session(session_id).user_id, "alice")


if __name__ == "__main__":
    unittest.main()
