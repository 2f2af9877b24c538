"""
Confidence Calibrator Module.

Turns a raw predicted confidence (0-100) into the accuracy actually
observed for similar predictions in the past. Samples are grouped into
buckets of 10 (a prediction of 93 lands in bucket 90).

Lookup order for calibrate_confidence:
    1. The vendor's own samples, if the vendor has enough of them
    2. The global samples, if there are enough of them
    3. The prediction unchanged

Calibration never raises: bad input and missing data both fall back
to returning the prediction as-is, so it can never block the pipeline.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config import get_config
from bill_review.utils.locks import ReadWriteLock
from bill_review.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

GLOBAL_KEY = "global"


def confidence_bucket(confidence: float) -> int:
    """Bucket a 0-100 confidence into its lower multiple of 10."""
    return int(confidence) // 10 * 10


@dataclass(frozen=True)
class CalibrationDataPoint:
    """
    One observed prediction outcome.

    Attributes:
        predicted_confidence: Confidence the pipeline reported (0-100)
        actual_correct: Whether the reviewer confirmed the value
        field_name: Field the prediction was for
        vendor_id: Vendor of the document, if known
    """
    predicted_confidence: int
    actual_correct: bool
    field_name: str
    vendor_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'predicted_confidence': self.predicted_confidence,
            'actual_correct': self.actual_correct,
            'field_name': self.field_name,
            'vendor_id': self.vendor_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalibrationDataPoint':
        return cls(
            predicted_confidence=int(data['predicted_confidence']),
            actual_correct=bool(data['actual_correct']),
            field_name=data['field_name'],
            vendor_id=data.get('vendor_id'),
        )


@dataclass
class CalibrationStats:
    """
    Aggregate calibration quality of a sample set.

    Attributes:
        total_samples: Number of samples
        accuracy_by_confidence: Bucket (0, 10, ..., 100) to observed accuracy
        overall_accuracy: Fraction of samples that were correct
        calibration_error: Mean |bucket/100 - accuracy| over buckets
    """
    total_samples: int = 0
    accuracy_by_confidence: Dict[int, float] = field(default_factory=dict)
    overall_accuracy: float = 0.0
    calibration_error: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_samples': self.total_samples,
            'accuracy_by_confidence': {
                str(bucket): accuracy for bucket, accuracy in sorted(self.accuracy_by_confidence.items())
            },
            'overall_accuracy': self.overall_accuracy,
            'calibration_error': self.calibration_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalibrationStats':
        return cls(
            total_samples=int(data['total_samples']),
            accuracy_by_confidence={
                int(bucket): float(accuracy)
                for bucket, accuracy in data.get('accuracy_by_confidence', {}).items()
            },
            overall_accuracy=float(data['overall_accuracy']),
            calibration_error=float(data['calibration_error']),
        )


def calculate_stats(data: Sequence[CalibrationDataPoint]) -> CalibrationStats:
    """
    Compute calibration statistics for a sample set.

    Example:
        >>> points = [CalibrationDataPoint(90, True, "total")] * 8
        >>> points += [CalibrationDataPoint(90, False, "total")] * 2
        >>> calculate_stats(points).accuracy_by_confidence
        {90: 0.8}
    """
    if not data:
        return CalibrationStats()

    buckets: Dict[int, List[bool]] = {}
    for point in data:
        buckets.setdefault(confidence_bucket(point.predicted_confidence), []).append(point.actual_correct)

    accuracy_by_confidence = {}
    total_error = 0.0
    for bucket, outcomes in buckets.items():
        accuracy = sum(1 for ok in outcomes if ok) / len(outcomes)
        accuracy_by_confidence[bucket] = accuracy
        total_error += abs(bucket / 100.0 - accuracy)

    total_correct = sum(1 for point in data if point.actual_correct)

    return CalibrationStats(
        total_samples=len(data),
        accuracy_by_confidence=accuracy_by_confidence,
        overall_accuracy=total_correct / len(data),
        calibration_error=total_error / len(buckets),
    )


class ConfidenceCalibrator:
    """
    Global and per-vendor confidence calibration.

    Sample sets are append-only and shared between threads behind a
    reader/writer lock.

    Attributes:
        min_samples_for_calibration: Samples needed before a set is used
        recalibration_threshold: Calibration error above which recalibration is advised

    Example:
        >>> calibrator = ConfidenceCalibrator(min_samples_for_calibration=5)
        >>> for _ in range(8):
        ...     calibrator.add_data_point(CalibrationDataPoint(90, True, "total"))
        >>> for _ in range(2):
        ...     calibrator.add_data_point(CalibrationDataPoint(90, False, "total"))
        >>> calibrator.calibrate_confidence(90)
        80
    """

    def __init__(
        self,
        min_samples_for_calibration: Optional[int] = None,
        recalibration_threshold: Optional[float] = None
    ) -> None:
        self.min_samples_for_calibration = (
            min_samples_for_calibration if min_samples_for_calibration is not None
            else get_config("calibration.min_samples_for_calibration", 100)
        )
        self.recalibration_threshold = (
            recalibration_threshold if recalibration_threshold is not None
            else get_config("calibration.recalibration_threshold", 0.05)
        )

        self._lock = ReadWriteLock()
        self._global_data: List[CalibrationDataPoint] = []
        self._vendor_data: Dict[str, List[CalibrationDataPoint]] = {}

        logger.debug(
            f"ConfidenceCalibrator initialized (min_samples={self.min_samples_for_calibration}, "
            f"threshold={self.recalibration_threshold})"
        )

    @staticmethod
    def _valid_confidence(value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return 0 <= value <= 100

    def add_data_point(self, data_point: CalibrationDataPoint) -> bool:
        """
        Record an observed outcome.

        Returns:
            False (with a warning) when the point is invalid and was ignored.
        """
        if not self._valid_confidence(data_point.predicted_confidence):
            logger.warning(
                f"Ignoring calibration sample with invalid confidence "
                f"{data_point.predicted_confidence!r} for {data_point.field_name}"
            )
            return False

        with self._lock.write_locked():
            self._global_data.append(data_point)
            if data_point.vendor_id is not None:
                self._vendor_data.setdefault(data_point.vendor_id, []).append(data_point)
        return True

    def get_global_stats(self) -> CalibrationStats:
        with self._lock.read_locked():
            data = list(self._global_data)
        return calculate_stats(data)

    def get_vendor_stats(self, vendor_id: str) -> Optional[CalibrationStats]:
        """Stats for a vendor, or None when the vendor has no samples."""
        with self._lock.read_locked():
            data = self._vendor_data.get(vendor_id)
            data = list(data) if data is not None else None
        if data is None:
            return None
        return calculate_stats(data)

    def calibrate_confidence(self, predicted_confidence: Any, vendor_id: Optional[str] = None) -> Any:
        """
        Replace a prediction with the observed accuracy of its bucket.

        Args:
            predicted_confidence: Raw confidence (0-100).
            vendor_id: Vendor whose samples to prefer.

        Returns:
            floor(bucket accuracy * 100), or the prediction unchanged when
            the input is invalid, data is insufficient or the bucket is empty.
        """
        if not self._valid_confidence(predicted_confidence):
            logger.warning(f"Cannot calibrate invalid confidence {predicted_confidence!r}; passing through")
            return predicted_confidence

        with self._lock.read_locked():
            data = None
            if vendor_id is not None:
                vendor_data = self._vendor_data.get(vendor_id, [])
                if len(vendor_data) >= self.min_samples_for_calibration:
                    data = list(vendor_data)
            if data is None and len(self._global_data) >= self.min_samples_for_calibration:
                data = list(self._global_data)

        if data is None:
            return predicted_confidence

        return self._apply_calibration(predicted_confidence, data)

    @staticmethod
    def _apply_calibration(predicted_confidence: Any, data: Sequence[CalibrationDataPoint]) -> Any:
        bucket = confidence_bucket(predicted_confidence)
        outcomes = [p.actual_correct for p in data if confidence_bucket(p.predicted_confidence) == bucket]

        if not outcomes:
            return predicted_confidence

        correct = sum(1 for ok in outcomes if ok)
        # Integer arithmetic keeps the floor exact
        return correct * 100 // len(outcomes)

    def needs_recalibration(self, vendor_id: Optional[str] = None) -> bool:
        """True when the calibration error exceeds the recalibration threshold."""
        if vendor_id is not None:
            stats = self.get_vendor_stats(vendor_id)
            if stats is None:
                return False
        else:
            stats = self.get_global_stats()

        needed = stats.calibration_error > self.recalibration_threshold
        if needed:
            logger.info(
                f"Recalibration advised for {vendor_id or GLOBAL_KEY} "
                f"(error={stats.calibration_error:.3f})"
            )
        return needed

    def export_calibration_data(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Export all samples as JSON-compatible dictionaries.

        Returns:
            {"global": [...], "<vendor_id>": [...], ...}
        """
        with self._lock.read_locked():
            export = {GLOBAL_KEY: [p.to_dict() for p in self._global_data]}
            for vendor_id, data in self._vendor_data.items():
                export[vendor_id] = [p.to_dict() for p in data]
        return export

    def get_sample_count(self, vendor_id: Optional[str] = None) -> int:
        with self._lock.read_locked():
            if vendor_id is not None:
                return len(self._vendor_data.get(vendor_id, []))
            return len(self._global_data)

    def clear_data(self, vendor_id: Optional[str] = None) -> None:
        """Drop one vendor's samples, or every sample when vendor_id is None."""
        with self._lock.write_locked():
            if vendor_id is not None:
                self._vendor_data.pop(vendor_id, None)
            else:
                self._global_data.clear()
                self._vendor_data.clear()

        logger.info(f"Cleared calibration data for {vendor_id or 'all vendors'}")


__all__ = [
    'CalibrationDataPoint',
    'CalibrationStats',
    'ConfidenceCalibrator',
    'calculate_stats',
    'confidence_bucket',
]
