"""
Bill Review Pipeline.

End-to-end processing of one bill image:

    1. Preprocess the image (Pillow/numpy cleanup steps)
    2. Resolve cleanup shields and mask the applied ones
    3. Run multi-pass OCR under the processing budget
    4. Extract header fields from the merged text
    5. Calibrate field confidences against past accuracy
    6. Create a Pending review case

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from PIL import Image, ImageDraw

from config import get_config
from bill_review.budget.early_stop import BudgetStatus, EarlyStopChecker
from bill_review.calibration.calibrator import ConfidenceCalibrator
from bill_review.cleanup.engine import CleanupShieldEngine
from bill_review.cleanup.types import CleanupShield, denormalize_bbox
from bill_review.extraction.extractor import FieldExtractor
from bill_review.ocr_engine.engine import OCREngine, TesseractEngine
from bill_review.ocr_engine.multi_pass import MultiPassOCRService
from bill_review.ocr_engine.ocr_result import MultiPassOCRResult, OCRPassConfig
from bill_review.preprocessing.image_preprocessor import ImagePreprocessor, PreprocessingResult
from bill_review.review.case_service import ReviewCaseService
from bill_review.review.models import ExtractedField, ReviewCase
from bill_review.utils.clock import Clock, SystemClock
from bill_review.utils.exceptions import ImageLoadError, ImageSaveError
from bill_review.utils.helpers import ensure_directory
from bill_review.utils.logger import BillLogAdapter, get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """
    Everything produced for one bill.

    Attributes:
        case: The created review case
        preprocessing: Preprocessing summary
        ocr: Merged multi-pass OCR result
        shields_applied: Shields masked before OCR
        document_budget: Document budget status at the end of the run
        passes_run: OCR passes counted against the budget
    """
    case: ReviewCase
    preprocessing: PreprocessingResult
    ocr: MultiPassOCRResult
    shields_applied: List[CleanupShield] = field(default_factory=list)
    document_budget: Optional[BudgetStatus] = None
    passes_run: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'case': self.case.to_dict(),
            'preprocessing': self.preprocessing.to_dict(),
            'ocr': self.ocr.to_dict(),
            'shields_applied': [s.to_dict() for s in self.shields_applied],
            'document_budget': self.document_budget.to_dict() if self.document_budget else None,
            'passes_run': self.passes_run,
        }


class BillPipeline:
    """
    Orchestrates preprocessing, shields, OCR, extraction, calibration
    and case creation.

    Collaborators are injected; anything omitted is built from
    configuration.

    Example:
        >>> pipeline = BillPipeline()
        >>> result = pipeline.process("bill.png", vendor_id="acme")
        >>> print(result.case.to_json())
    """

    def __init__(
        self,
        ocr_engine: Optional[OCREngine] = None,
        preprocessor: Optional[ImagePreprocessor] = None,
        extractor: Optional[FieldExtractor] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
        case_service: Optional[ReviewCaseService] = None,
        shield_engine_factory=None,
        pass_configs: Optional[Sequence[OCRPassConfig]] = None,
        parallel: Optional[bool] = None,
        work_dir: Optional[Union[str, Path]] = None,
        clock: Optional[Clock] = None
    ) -> None:
        self.clock = clock or SystemClock()
        self.ocr_engine = ocr_engine if ocr_engine is not None else TesseractEngine(clock=self.clock)
        self.preprocessor = preprocessor if preprocessor is not None else ImagePreprocessor(clock=self.clock)
        self.extractor = extractor if extractor is not None else FieldExtractor()
        self.calibrator = calibrator if calibrator is not None else ConfidenceCalibrator()
        self.case_service = case_service if case_service is not None else ReviewCaseService(clock=self.clock)
        self.shield_engine_factory = shield_engine_factory or (lambda: CleanupShieldEngine(clock=self.clock))
        self.pass_configs = pass_configs
        self.parallel = parallel
        self.work_dir = Path(work_dir or get_config("paths.preprocessed_dir", "outputs/preprocessed"))

    def process(
        self,
        image_path: Union[str, Path],
        vendor_id: Optional[str] = None,
        template_id: Optional[str] = None,
        shields: Sequence[CleanupShield] = ()
    ) -> PipelineResult:
        """
        Process one bill image into a review case.

        Args:
            image_path: Bill image.
            vendor_id: Vendor id, used for shield rules and calibration.
            template_id: Template id, used for shield rules.
            shields: Detected or user shields for this document.

        Returns:
            PipelineResult.

        Raises:
            ImageLoadError: If the image cannot be read.
            PreprocessingError: If a preprocessing step fails.
            OCRProcessingError: If an OCR pass fails.
        """
        image_path = Path(image_path)
        log = BillLogAdapter(logger, bill=image_path.name, vendor=vendor_id)
        log.info("Processing bill")

        checker = EarlyStopChecker(clock=self.clock)
        checker.start()

        ensure_directory(self.work_dir)
        cleaned_path = self.work_dir / f"{image_path.stem}_clean.png"
        preprocessing = self.preprocessor.preprocess(image_path, cleaned_path)

        engine = self.shield_engine_factory()
        engine.seed_rules(vendor_id=vendor_id, template_id=template_id)
        for shield in shields:
            engine.add_shield(shield)
        engine.apply_auto_modes()
        applied = engine.resolved_shields(page_number=1, page_count=1)

        ocr_input = cleaned_path
        if applied:
            ocr_input = self.work_dir / f"{image_path.stem}_masked.png"
            mask_shields(cleaned_path, ocr_input, applied)
            log.debug(f"{len(applied)} shields masked before OCR")

        checker.start_page()
        ocr_service = MultiPassOCRService(
            self.ocr_engine,
            pass_configs=self.pass_configs,
            parallel=self.parallel,
            early_stop=checker,
        )
        ocr = ocr_service.process_image(ocr_input, field_scorer=self.extractor.field_confidences)

        fields = self._calibrate(self.extractor.extract(ocr), vendor_id)
        case = self.case_service.create_case(fields, vendor_id=vendor_id)

        document_budget = checker.check_document_budget()
        log.info(
            f"Created case {case.case_id} "
            f"({len(fields)} fields, {checker.passes_run} passes, "
            f"{document_budget.time_elapsed_ms}ms)"
        )

        return PipelineResult(
            case=case,
            preprocessing=preprocessing,
            ocr=ocr,
            shields_applied=applied,
            document_budget=document_budget,
            passes_run=checker.passes_run,
        )

    def _calibrate(self, fields: List[ExtractedField], vendor_id: Optional[str]) -> List[ExtractedField]:
        for extracted in fields:
            calibrated = self.calibrator.calibrate_confidence(extracted.confidence, vendor_id)
            if calibrated != extracted.confidence:
                logger.debug(f"Calibrated {extracted.name}: {extracted.confidence} -> {calibrated}")
            extracted.confidence = int(calibrated)
        return fields


def mask_shields(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    shields: Sequence[CleanupShield]
) -> None:
    """
    Paint shield regions white so OCR ignores them.

    Raises:
        ImageLoadError: If the input cannot be read.
        ImageSaveError: If the output cannot be written.
    """
    try:
        with Image.open(input_path) as source:
            image = source.convert("L")
    except OSError as e:
        raise ImageLoadError(str(input_path), str(e))

    draw = ImageDraw.Draw(image)
    width, height = image.size
    for shield in shields:
        x, y, w, h = denormalize_bbox(shield.bbox, width, height)
        if w > 0 and h > 0:
            draw.rectangle([x, y, x + w - 1, y + h - 1], fill=255)

    try:
        image.save(output_path)
    except OSError as e:
        raise ImageSaveError(str(output_path), str(e))

    logger.debug(f"Masked {len(shields)} shield regions into {output_path}")


__all__ = ['BillPipeline', 'PipelineResult', 'mask_shields']
