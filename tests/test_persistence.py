from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from bill_review.cleanup.types import CleanupShield, NormalizedBBox, PageTarget
from bill_review.review import (
    ExtractedField,
    JsonFileRepository,
    ReviewCaseService,
    ReviewDecision,
    ReviewSessionService,
    ReviewState,
    ReviewStore,
)
from bill_review.utils.clock import ManualClock
from bill_review.utils.exceptions import PersistenceError
from tests.fakes import make_shield


class TestJsonFileRepository(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.base = Path(tmp.name)
        self.repo = JsonFileRepository(self.base)
        self.clock = ManualClock()

    def test_case_and_audit_are_saved_on_every_change(self) -> None:
        service = ReviewCaseService(ReviewStore(), clock=self.clock, repository=self.repo)
        case = service.create_case([
            ExtractedField("invoice_number", "INV-7", 91),
            ExtractedField("total", "99.00", 88),
        ], vendor_id="acme")
        service.start_review(case.case_id, "alice")
        service.decide_field(case.case_id, "vendor_name", "Acme", user_id="alice")

        restored, audit = self.repo.load_case(case.case_id)

        self.assertEqual(restored, service.get_case(case.case_id))
        self.assertEqual(restored.state, ReviewState.IN_REVIEW)
        self.assertEqual(audit, service.get_audit_log(case.case_id))
        self.assertTrue((self.base / "cases" / f"{case.case_id}.json").exists())

    def test_restored_case_can_be_loaded_into_a_fresh_store(self) -> None:
        service = ReviewCaseService(ReviewStore(), clock=self.clock, repository=self.repo)
        case = service.create_case([ExtractedField("total", "5.00", 90)], case_id="c-1")
        service.start_review("c-1", "alice")

        store = ReviewStore()
        store.load_case(*self.repo.load_case("c-1"))
        reloaded = ReviewCaseService(store, clock=self.clock)

        self.assertEqual(reloaded.get_case("c-1").state, ReviewState.IN_REVIEW)
        self.assertEqual(reloaded.undo_last_transition("c-1").state, ReviewState.PENDING)
        self.assertEqual(case.case_id, "c-1")

    def test_session_round_trip(self) -> None:
        sessions = ReviewSessionService(ReviewStore(), clock=self.clock, repository=self.repo)
        session_id = sessions.start_session("alice")
        sessions.record_review(session_id, "c-1", ReviewDecision.APPROVED, 1200)

        self.assertEqual(self.repo.load_session(session_id), sessions.get_session(session_id))

    def test_shield_round_trip(self) -> None:
        auto = make_shield()
        user = CleanupShield.user_defined(NormalizedBBox(0.5, 0.5, 0.1, 0.1), "alice", "stamp")
        user.page_target = PageTarget.specific([2, 1])

        self.repo.save_shields("vendor:acme", [auto, user])

        self.assertEqual(self.repo.load_shields("vendor:acme"), [auto, user])
        self.assertTrue((self.base / "shields" / "vendor_acme.json").exists())

    def test_missing_documents(self) -> None:
        self.assertIsNone(self.repo.load_case("nope"))
        self.assertIsNone(self.repo.load_session("nope"))
        self.assertEqual(self.repo.load_shields("nope"), [])

    def test_malformed_documents_raise(self) -> None:
        cases_dir = self.base / "cases"
        cases_dir.mkdir(parents=True)
        (cases_dir / "broken.json").write_text("{not json", encoding="utf-8")
        (cases_dir / "partial.json").write_text(json.dumps({"case": {"case_id": "x"}}), encoding="utf-8")

        with self.assertRaises(PersistenceError):
            self.repo.load_case("broken")
        with self.assertRaises(PersistenceError):
            self.repo.load_case("partial")


if __name__ == "__main__":
    unittest.main()
