from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

from bill_review.calibration import CalibrationDataPoint, ConfidenceCalibrator
from bill_review.ocr_engine import OCRMode, OCRPassConfig
from bill_review.pipeline import BillPipeline, mask_shields
from bill_review.preprocessing import Grayscale, ImagePreprocessor, PreprocessingPipeline
from bill_review.review import ReviewCaseService, ReviewState, ReviewStore
from bill_review.utils.clock import ManualClock
from bill_review.utils.exceptions import ImageLoadError
from tests.fakes import FakeOCREngine, make_shield, write_bill_image


class TestBillPipeline(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)
        self.clock = ManualClock()
        self.engine = FakeOCREngine()
        self.store = ReviewStore()

    def make_pipeline(self, calibrator=None) -> BillPipeline:
        return BillPipeline(
            ocr_engine=self.engine,
            preprocessor=ImagePreprocessor(PreprocessingPipeline(steps=(Grayscale(),)), clock=self.clock),
            calibrator=calibrator or ConfidenceCalibrator(min_samples_for_calibration=1000),
            case_service=ReviewCaseService(self.store, clock=self.clock),
            pass_configs=[OCRPassConfig(1, OCRMode.FULL_PAGE), OCRPassConfig(2, OCRMode.TABLE_ANALYSIS, psm=6)],
            parallel=False,
            work_dir=self.dir / "work",
            clock=self.clock,
        )

    def test_bill_becomes_pending_case(self) -> None:
        source = write_bill_image(self.dir / "bill.png")

        result = self.make_pipeline().process(source, vendor_id="acme")

        case = result.case
        self.assertEqual(case.state, ReviewState.PENDING)
        self.assertEqual(case.vendor_id, "acme")
        self.assertEqual(case.vendor_name, "Acme Supplies Ltd")
        self.assertEqual(case.get_field("total").value, "1,250.00")
        self.assertTrue(case.validation_result.can_approve)
        self.assertEqual(len(self.store), 1)

        # Critical fields stay at 90, below the early-stop threshold
        self.assertEqual(self.engine.calls, [1, 2])
        self.assertEqual(result.passes_run, 2)
        self.assertEqual(result.preprocessing.steps_applied, ["grayscale"])
        self.assertEqual(result.shields_applied, [])
        self.assertTrue(self.engine.paths[0].endswith("bill_clean.png"))
        self.assertFalse(result.document_budget.budget_exceeded)

    def test_confident_first_pass_stops_early(self) -> None:
        self.engine = FakeOCREngine(default_confidence=0.97)
        source = write_bill_image(self.dir / "bill.png")

        result = self.make_pipeline().process(source)

        self.assertEqual(self.engine.calls, [1])
        self.assertEqual(result.ocr.merge_metadata.total_passes, 1)

    def test_applied_shield_is_masked_before_ocr(self) -> None:
        source = write_bill_image(self.dir / "bill.png")
        logo = make_shield(0.0, 0.0, 0.5, 0.2, confidence=0.9)

        result = self.make_pipeline().process(source, shields=[logo])

        self.assertEqual([s.id for s in result.shields_applied], [logo.id])
        masked_path = self.dir / "work" / "bill_masked.png"
        self.assertTrue(self.engine.paths[0].endswith("bill_masked.png"))
        with Image.open(masked_path) as masked:
            pixels = np.asarray(masked)
        # The first text bar spans rows 20-23; its left half sits under the shield
        self.assertEqual(int(pixels[21, 50]), 255)
        self.assertEqual(int(pixels[21, 150]), 0)

    def test_suggested_shield_is_not_masked(self) -> None:
        source = write_bill_image(self.dir / "bill.png")

        result = self.make_pipeline().process(source, shields=[make_shield(confidence=0.3)])

        self.assertEqual(result.shields_applied, [])
        self.assertFalse((self.dir / "work" / "bill_masked.png").exists())

    def test_field_confidences_are_calibrated(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        for correct in [True] * 8 + [False] * 2:
            calibrator.add_data_point(CalibrationDataPoint(90, correct, "total", "acme"))
        source = write_bill_image(self.dir / "bill.png")

        result = self.make_pipeline(calibrator).process(source, vendor_id="acme")

        self.assertEqual(result.case.get_field("total").confidence, 80)
        # The 54% vendor guess falls in an empty bucket
        self.assertEqual(result.case.get_field("vendor_name").confidence, 54)

    def test_missing_image(self) -> None:
        with self.assertRaises(ImageLoadError):
            self.make_pipeline().process(self.dir / "missing.png")
        self.assertEqual(self.engine.calls, [])
        self.assertEqual(len(self.store), 0)


class TestMaskShields(unittest.TestCase):
    def test_unreadable_input(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ImageLoadError):
                mask_shields(Path(tmp) / "missing.png", Path(tmp) / "out.png", [make_shield()])


if __name__ == "__main__":
    unittest.main()
