from __future__ import annotations

import unittest

from bill_review.cleanup import (
    ApplyMode,
    CleanupShield,
    CleanupShieldEngine,
    CriticalZone,
    InMemoryShieldRuleSource,
    NormalizedBBox,
    PageTarget,
    RiskLevel,
    ShieldSource,
    ShieldType,
)
from bill_review.utils.clock import ManualClock
from bill_review.utils.exceptions import InvalidShieldError, ShieldNotFoundError
from tests.fakes import make_shield


TOTALS_ZONE = CriticalZone("Totals", NormalizedBBox(0.6, 0.8, 0.4, 0.2))


def make_engine(**kwargs) -> CleanupShieldEngine:
    kwargs.setdefault("critical_zones", [TOTALS_ZONE])
    kwargs.setdefault("clock", ManualClock())
    kwargs.setdefault("min_auto_confidence", 0.6)
    return CleanupShieldEngine(**kwargs)


class TestShieldValidation(unittest.TestCase):
    def test_zero_size_region_is_rejected(self) -> None:
        engine = make_engine()
        with self.assertRaises(InvalidShieldError) as ctx:
            engine.add_user_shield(NormalizedBBox(0.1, 0.1, 0.0, 0.2), "alice")
        self.assertIn("non-zero dimensions", str(ctx.exception))

    def test_out_of_range_coordinate_names_the_field(self) -> None:
        engine = make_engine()
        with self.assertRaises(InvalidShieldError) as ctx:
            engine.add_user_shield(NormalizedBBox(1.2, 0.1, 0.1, 0.1), "alice")
        self.assertEqual(ctx.exception.details["field"], "x")
        self.assertEqual(ctx.exception.details["value"], 1.2)

    def test_region_past_page_edge_is_rejected(self) -> None:
        engine = make_engine()
        with self.assertRaises(InvalidShieldError) as ctx:
            engine.add_user_shield(NormalizedBBox(0.8, 0.1, 0.3, 0.1), "alice")
        self.assertIn("beyond image bounds", str(ctx.exception))
        self.assertEqual(len(engine), 0)

    def test_every_held_shield_has_a_valid_box(self) -> None:
        engine = make_engine()
        engine.add_shield(make_shield(0.0, 0.0, 0.3, 0.1))
        engine.add_user_shield(NormalizedBBox(0.5, 0.5, 0.2, 0.2), "alice")
        for shield in engine.shields():
            self.assertTrue(shield.bbox.is_valid())


class TestCriticalZonePolicy(unittest.TestCase):
    def test_applied_shield_overlapping_zone_is_downgraded(self) -> None:
        engine = make_engine()
        outcome = engine.add_user_shield(NormalizedBBox(0.5, 0.75, 0.2, 0.1), "alice")

        self.assertTrue(outcome.inserted)
        self.assertEqual(outcome.shield.apply_mode, ApplyMode.SUGGESTED)
        self.assertEqual(outcome.shield.risk_level, RiskLevel.HIGH)
        self.assertEqual(len(outcome.zone_conflicts), 1)
        self.assertEqual(outcome.zone_conflicts[0].zone_id, "Totals")
        self.assertEqual(outcome.zone_conflicts[0].action_taken, "downgraded_to_suggested")

    def test_small_overlap_only_warns(self) -> None:
        engine = make_engine()
        # 0.005 of a 0.065 area shield is inside the zone (about 7.7%)
        outcome = engine.add_user_shield(NormalizedBBox(0.0, 0.8, 0.65, 0.1), "alice")

        self.assertEqual(outcome.shield.apply_mode, ApplyMode.APPLIED)
        self.assertEqual(outcome.zone_conflicts[0].action_taken, "warning_added")
        self.assertEqual(len(outcome.warnings), 1)

    def test_set_apply_mode_cannot_apply_blocked_shield(self) -> None:
        engine = make_engine()
        outcome = engine.add_shield(make_shield(0.6, 0.8, 0.2, 0.1, confidence=0.95))

        updated = engine.set_apply_mode(outcome.shield.id, ApplyMode.APPLIED)

        self.assertEqual(updated.apply_mode, ApplyMode.SUGGESTED)
        self.assertEqual(updated.risk_level, RiskLevel.HIGH)
        self.assertIsNotNone(updated.provenance.updated_at)

    def test_set_apply_mode_on_unknown_shield(self) -> None:
        engine = make_engine()
        with self.assertRaises(ShieldNotFoundError):
            engine.set_apply_mode("missing", ApplyMode.DISABLED)

    def test_apply_auto_modes_skips_low_confidence_and_blocked(self) -> None:
        engine = make_engine()
        confident = engine.add_shield(make_shield(0.0, 0.0, 0.2, 0.1, confidence=0.9)).shield
        weak = engine.add_shield(make_shield(0.0, 0.3, 0.2, 0.1, confidence=0.4)).shield
        blocked = engine.add_shield(make_shield(0.7, 0.85, 0.2, 0.1, confidence=0.9)).shield

        promoted = engine.apply_auto_modes()

        self.assertEqual([s.id for s in promoted], [confident.id])
        self.assertEqual(engine.get_shield(weak.id).apply_mode, ApplyMode.SUGGESTED)
        self.assertEqual(engine.get_shield(blocked.id).apply_mode, ApplyMode.SUGGESTED)


class TestDeduplication(unittest.TestCase):
    def test_higher_provenance_replaces_duplicate(self) -> None:
        engine = make_engine()
        auto = engine.add_shield(make_shield(confidence=0.9)).shield
        outcome = engine.add_shield(make_shield(confidence=0.5, source=ShieldSource.VENDOR_RULE))

        self.assertTrue(outcome.inserted)
        self.assertEqual(outcome.replaced_ids, [auto.id])
        self.assertEqual(len(engine), 1)
        self.assertEqual(engine.shields()[0].source, ShieldSource.VENDOR_RULE)

    def test_lower_provenance_duplicate_is_dropped(self) -> None:
        engine = make_engine()
        vendor = engine.add_shield(make_shield(confidence=0.5, source=ShieldSource.VENDOR_RULE)).shield
        outcome = engine.add_shield(make_shield(confidence=0.99))

        self.assertFalse(outcome.inserted)
        self.assertEqual(outcome.shield.id, vendor.id)
        self.assertEqual(len(engine), 1)

    def test_equal_provenance_keeps_higher_confidence(self) -> None:
        engine = make_engine()
        engine.add_shield(make_shield(confidence=0.7))
        stronger = engine.add_shield(make_shield(confidence=0.8))
        self.assertTrue(stronger.inserted)

        tie = engine.add_shield(make_shield(confidence=0.8))
        self.assertFalse(tie.inserted)
        self.assertEqual(engine.shields()[0].id, stronger.shield.id)

    def test_different_types_are_not_duplicates(self) -> None:
        engine = make_engine()
        engine.add_shield(make_shield(shield_type=ShieldType.LOGO))
        engine.add_shield(make_shield(shield_type=ShieldType.STAMP))
        self.assertEqual(len(engine), 2)


class TestRulesAndTargets(unittest.TestCase):
    def test_seed_rules_are_scoped_by_tenant_and_store(self) -> None:
        rules = InMemoryShieldRuleSource()
        rules.save_vendor_rules("t1", "s1", "acme", [make_shield(0.0, 0.0, 1.0, 0.1)])

        engine = make_engine(rule_source=rules, tenant_id="t1", store_id="s1")
        outcomes = engine.seed_rules(vendor_id="acme")
        self.assertEqual(len(outcomes), 1)
        self.assertEqual(outcomes[0].shield.source, ShieldSource.VENDOR_RULE)
        self.assertEqual(outcomes[0].shield.provenance.vendor_id, "acme")

        other_tenant = make_engine(rule_source=rules, tenant_id="t2", store_id="s1")
        self.assertEqual(other_tenant.seed_rules(vendor_id="acme"), [])

    def test_resolved_shields_respect_page_target(self) -> None:
        engine = make_engine()
        engine.add_user_shield(NormalizedBBox(0.0, 0.0, 0.2, 0.1), "alice", page_target=PageTarget.first())

        self.assertEqual(len(engine.resolved_shields(page_number=1, page_count=2)), 1)
        self.assertEqual(engine.resolved_shields(page_number=2, page_count=2), [])

    def test_shield_round_trips_through_dict(self) -> None:
        shield = CleanupShield.user_defined(NormalizedBBox(0.1, 0.2, 0.3, 0.4), "alice", "Stamp")
        shield.page_target = PageTarget.specific([3, 1])

        restored = CleanupShield.from_dict(shield.to_dict())

        self.assertEqual(restored, shield)


class TestEngineMerge(unittest.TestCase):
    def test_merge_replaces_held_set(self) -> None:
        engine = make_engine()
        engine.add_shield(make_shield(0.0, 0.5, 0.2, 0.1))
        override = CleanupShield.user_defined(NormalizedBBox(0.1, 0.1, 0.2, 0.1), "alice")
        override.shield_type = ShieldType.LOGO

        result = engine.merge_shields(auto_shields=[make_shield(confidence=0.9)], session_shields=[override])

        self.assertEqual([s.id for s in result.shields], [override.id])
        self.assertEqual([s.id for s in engine.shields()], [override.id])

    def test_merge_validates_every_box(self) -> None:
        engine = make_engine()
        with self.assertRaises(InvalidShieldError):
            engine.merge_shields(auto_shields=[make_shield(0.9, 0.0, 0.2, 0.1)])


class TestRepetitiveDetection(unittest.TestCase):
    def test_shield_found_on_every_page_is_boosted(self) -> None:
        engine = make_engine()
        pages = [
            [make_shield(0.0, 0.0, 1.0, 0.1, ShieldType.REPETITIVE_HEADER, confidence=0.5)]
            for _ in range(3)
        ]

        boosted = engine.detect_repetitive(pages)

        self.assertEqual(len(boosted), 1)
        self.assertAlmostEqual(boosted[0].confidence, 0.7)
        self.assertIn("(found on 3/3 pages)", boosted[0].why_detected)

    def test_unrepeated_weak_shield_is_dropped(self) -> None:
        engine = make_engine()
        pages = [
            [make_shield(0.0, 0.0, 0.2, 0.1, confidence=0.5)],
            [make_shield(0.7, 0.5, 0.2, 0.1, confidence=0.5)],
        ]
        self.assertEqual(engine.detect_repetitive(pages), [])

    def test_no_pages(self) -> None:
        self.assertEqual(make_engine().detect_repetitive([]), [])


if __name__ == "__main__":
    unittest.main()
