from __future__ import annotations

import unittest

from bill_review.cleanup import CriticalZone, NormalizedBBox, ShieldSource, iou, merge_shields, overlap_ratio
from bill_review.cleanup.engine import CleanupShieldEngine
from bill_review.cleanup.precedence import outranks
from bill_review.cleanup.types import ApplyMode, denormalize_bbox, normalize_bbox
from bill_review.utils.exceptions import InvalidShieldError
from tests.fakes import make_shield


class TestBBoxMath(unittest.TestCase):
    def test_iou_of_identical_and_disjoint_boxes(self) -> None:
        box = NormalizedBBox(0.1, 0.1, 0.2, 0.2)
        self.assertEqual(iou(box, box), 1.0)
        self.assertEqual(iou(box, NormalizedBBox(0.5, 0.5, 0.1, 0.1)), 0.0)

    def test_ratios_never_exceed_one(self) -> None:
        for box in (NormalizedBBox(0.1, 0.1, 0.2, 0.2), NormalizedBBox(0.3, 0.7, 0.1, 0.3), NormalizedBBox(0.0, 0.0, 1.0, 1.0)):
            self.assertEqual(iou(box, box), 1.0)
            self.assertEqual(overlap_ratio(box, box), 1.0)

    def test_overlap_ratio_is_relative_to_shield_area(self) -> None:
        shield = NormalizedBBox(0.0, 0.0, 0.2, 0.2)
        zone = NormalizedBBox(0.1, 0.0, 0.9, 1.0)
        self.assertAlmostEqual(overlap_ratio(shield, zone), 0.5)

    def test_pixel_conversion(self) -> None:
        bbox = normalize_bbox(20, 10, 100, 50, 200, 100)
        self.assertEqual(bbox, NormalizedBBox(0.1, 0.1, 0.5, 0.5))
        self.assertEqual(denormalize_bbox(bbox, 200, 100), (20, 10, 100, 50))

    def test_normalize_rejects_empty_image(self) -> None:
        with self.assertRaises(ValueError):
            normalize_bbox(0, 0, 10, 10, 0, 100)


class TestMergeShields(unittest.TestCase):
    def test_session_override_wins_over_auto_detection(self) -> None:
        auto = make_shield(confidence=0.95)
        override = make_shield(confidence=0.5, source=ShieldSource.SESSION_OVERRIDE)

        result = merge_shields([auto], [], [], [override])

        self.assertEqual(len(result.shields), 1)
        self.assertEqual(result.shields[0].id, override.id)
        self.assertEqual(len(result.explanations), 1)
        self.assertEqual(result.explanations[0].winning_source, ShieldSource.SESSION_OVERRIDE)
        self.assertEqual(result.explanations[0].overridden_sources, [ShieldSource.AUTO_DETECTED])

    def test_result_is_sorted_by_source_then_confidence(self) -> None:
        low_auto = make_shield(0.0, 0.0, 0.1, 0.1, confidence=0.6)
        high_auto = make_shield(0.3, 0.0, 0.1, 0.1, confidence=0.9)
        template = make_shield(0.6, 0.0, 0.1, 0.1, confidence=0.4, source=ShieldSource.TEMPLATE_RULE)

        result = merge_shields([low_auto, high_auto], [], [template], [])

        self.assertEqual([s.id for s in result.shields], [template.id, high_auto.id, low_auto.id])
        self.assertEqual(result.shields[0].source, ShieldSource.TEMPLATE_RULE)

    def test_inputs_are_not_mutated(self) -> None:
        shield = make_shield(0.6, 0.8, 0.2, 0.1)
        shield.apply_mode = ApplyMode.APPLIED
        zone = CriticalZone("Totals", NormalizedBBox(0.6, 0.8, 0.4, 0.2))

        result = merge_shields([shield], [], [], [], critical_zones=[zone])

        self.assertEqual(result.shields[0].apply_mode, ApplyMode.SUGGESTED)
        self.assertEqual(shield.apply_mode, ApplyMode.APPLIED)
        self.assertEqual(result.zone_conflicts[0].action_taken, "downgraded_to_suggested")

    def test_outranks_tie_keeps_incumbent(self) -> None:
        first = make_shield(confidence=0.7)
        second = make_shield(confidence=0.7)
        self.assertFalse(outranks(second, first))

    def test_engine_merge_replaces_held_set_and_validates(self) -> None:
        engine = CleanupShieldEngine()
        engine.add_shield(make_shield(0.5, 0.5, 0.1, 0.1))

        engine.merge_shields(auto_shields=[make_shield(0.0, 0.0, 0.1, 0.1)])
        self.assertEqual(len(engine), 1)

        with self.assertRaises(InvalidShieldError):
            engine.merge_shields(auto_shields=[make_shield(0.95, 0.0, 0.1, 0.1)])


if __name__ == "__main__":
    unittest.main()
