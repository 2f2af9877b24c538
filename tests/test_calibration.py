from __future__ import annotations

import unittest

from bill_review.calibration import (
    CalibrationDataPoint,
    CalibrationStats,
    ConfidenceCalibrator,
    calculate_stats,
    confidence_bucket,
)


def add_samples(calibrator, confidence, correct, incorrect, vendor_id=None, field_name="total"):
    for _ in range(correct):
        calibrator.add_data_point(CalibrationDataPoint(confidence, True, field_name, vendor_id))
    for _ in range(incorrect):
        calibrator.add_data_point(CalibrationDataPoint(confidence, False, field_name, vendor_id))


class TestCalibration(unittest.TestCase):
    def test_bucket_accuracy_replaces_prediction(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        add_samples(calibrator, 90, correct=8, incorrect=2)

        self.assertEqual(calibrator.calibrate_confidence(90), 80)
        self.assertEqual(calibrator.calibrate_confidence(97), 80)

    def test_pass_through_below_minimum_samples(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=100)
        add_samples(calibrator, 90, correct=8, incorrect=2)

        self.assertEqual(calibrator.calibrate_confidence(90), 90)

    def test_empty_bucket_passes_through(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        add_samples(calibrator, 90, correct=8, incorrect=2)

        self.assertEqual(calibrator.calibrate_confidence(42), 42)

    def test_vendor_samples_take_priority(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        add_samples(calibrator, 90, correct=10, incorrect=0)
        add_samples(calibrator, 90, correct=3, incorrect=2, vendor_id="acme")

        # global: 13/15 correct, acme: 3/5 correct
        self.assertEqual(calibrator.calibrate_confidence(90, vendor_id="acme"), 60)
        self.assertEqual(calibrator.calibrate_confidence(90, vendor_id="unknown"), 86)

    def test_vendor_with_too_few_samples_falls_back_to_global(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        add_samples(calibrator, 90, correct=6, incorrect=0)
        add_samples(calibrator, 90, correct=0, incorrect=2, vendor_id="acme")

        self.assertEqual(calibrator.calibrate_confidence(90, vendor_id="acme"), 75)

    def test_invalid_input_never_raises(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=1)
        self.assertFalse(calibrator.add_data_point(CalibrationDataPoint(150, True, "total")))
        self.assertEqual(calibrator.get_sample_count(), 0)

        self.assertEqual(calibrator.calibrate_confidence(-3), -3)
        self.assertEqual(calibrator.calibrate_confidence("high"), "high")

    def test_stats_and_recalibration(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5, recalibration_threshold=0.05)
        add_samples(calibrator, 90, correct=8, incorrect=2, vendor_id="acme")

        stats = calibrator.get_global_stats()
        self.assertEqual(stats.total_samples, 10)
        self.assertEqual(stats.accuracy_by_confidence, {90: 0.8})
        self.assertAlmostEqual(stats.overall_accuracy, 0.8)
        self.assertAlmostEqual(stats.calibration_error, 0.1)
        self.assertTrue(calibrator.needs_recalibration())
        self.assertTrue(calibrator.needs_recalibration("acme"))
        self.assertFalse(calibrator.needs_recalibration("unknown"))
        self.assertIsNone(calibrator.get_vendor_stats("unknown"))

    def test_export_and_clear(self) -> None:
        calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        add_samples(calibrator, 70, correct=2, incorrect=1, vendor_id="acme")
        add_samples(calibrator, 70, correct=1, incorrect=0)

        exported = calibrator.export_calibration_data()
        self.assertEqual(len(exported["global"]), 4)
        self.assertEqual(len(exported["acme"]), 3)
        self.assertEqual(
            CalibrationDataPoint.from_dict(exported["acme"][0]),
            CalibrationDataPoint(70, True, "total", "acme"),
        )

        calibrator.clear_data("acme")
        self.assertEqual(calibrator.get_sample_count("acme"), 0)
        self.assertEqual(calibrator.get_sample_count(), 4)

        calibrator.clear_data()
        self.assertEqual(calibrator.get_sample_count(), 0)

    def test_stats_helpers(self) -> None:
        self.assertEqual(confidence_bucket(93), 90)
        self.assertEqual(confidence_bucket(100), 100)
        self.assertEqual(calculate_stats([]).total_samples, 0)

        stats = calculate_stats([CalibrationDataPoint(55, True, "total")])
        self.assertEqual(CalibrationStats.from_dict(stats.to_dict()), stats)


if __name__ == "__main__":
    unittest.main()
