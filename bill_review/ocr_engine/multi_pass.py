"""
Multi-Pass OCR Module.

Runs several OCR configurations over the same image and merges their
text by line-level plurality voting.

Merge algorithm:
    1. A single pass is returned unchanged (agreement 1.0).
    2. Each pass's text is split into lines; row i holds every pass's
       line i, padded with "" where a pass has fewer lines.
    3. A row whose non-empty trimmed variants are all identical agrees.
       Otherwise the most frequent non-empty trimmed variant wins (ties
       go to the variant seen first) and the row counts as a conflict.
    4. confidence = mean(pass confidence) * (0.8 + 0.2 * agreement_rate),
       capped at 0.99.

Lines are aligned purely by position. This assumes every pass splits
the page into roughly the same lines in the same order; a pass that
inserts or drops a line shifts every row after it. Edit-distance
alignment would avoid that but changes which lines win votes.

Author: ML Engineering Team
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from config import get_config
from bill_review.budget.early_stop import EarlyStopChecker
from bill_review.utils.exceptions import MergeError
from bill_review.utils.logger import get_logger
from .engine import OCREngine
from .ocr_result import (
    MergeMetadata,
    MultiPassOCRResult,
    OCRPassConfig,
    OCRResult,
    default_pass_configs,
)

# Initialize module logger
logger = get_logger(__name__)

MAX_MERGED_CONFIDENCE = 0.99

# Maps merged text to per-field confidences (0-100) for early stopping
FieldScorer = Callable[[MultiPassOCRResult], Mapping[str, float]]


def align_lines(results: Sequence[OCRResult]) -> List[List[str]]:
    """
    Build the position-aligned line matrix.

    Returns:
        One row per line index; each row holds one variant per pass.
    """
    all_lines = [result.text.splitlines() for result in results]
    max_lines = max((len(lines) for lines in all_lines), default=0)

    return [
        [lines[i] if i < len(lines) else "" for lines in all_lines]
        for i in range(max_lines)
    ]


def variants_agree(variants: Sequence[str]) -> bool:
    """True when every non-empty trimmed variant is the same string."""
    non_empty = {v.strip() for v in variants if v.strip()}
    return len(non_empty) <= 1


def resolve_conflict(variants: Sequence[str]) -> str:
    """
    Plurality vote over non-empty trimmed variants.

    Ties go to the variant that appears first.

    Example:
        >>> resolve_conflict(["Total: 10.00", "Tota1: 10.00", "Total: 10.00"])
        'Total: 10.00'
    """
    counts: Dict[str, int] = {}
    for variant in variants:
        trimmed = variant.strip()
        if trimmed:
            counts[trimmed] = counts.get(trimmed, 0) + 1

    if not counts:
        return ""

    # dicts keep insertion order, and max() returns the first maximal item
    return max(counts, key=lambda text: counts[text])


def merged_confidence(results: Sequence[OCRResult], conflicts: int, total_lines: int) -> float:
    """Mean pass confidence scaled by agreement, capped below certainty."""
    average = sum(r.confidence for r in results) / len(results)
    agreement_rate = 1.0 - conflicts / total_lines if total_lines > 0 else 1.0
    return min(MAX_MERGED_CONFIDENCE, average * (0.8 + 0.2 * agreement_rate))


def merge_results(results: Sequence[OCRResult]) -> MultiPassOCRResult:
    """
    Merge pass results into one text.

    Args:
        results: Weighted pass results, in pass order.

    Returns:
        MultiPassOCRResult with merge statistics.

    Raises:
        MergeError: If results is empty.
    """
    if not results:
        raise MergeError()

    if len(results) == 1:
        only = results[0]
        return MultiPassOCRResult(
            text=only.text,
            confidence=only.confidence,
            pass_results=list(results),
            merge_metadata=MergeMetadata(
                total_passes=1,
                conflicts_found=0,
                conflicts_resolved=0,
                average_agreement=1.0,
            ),
        )

    rows = align_lines(results)
    merged_lines = []
    conflicts = 0
    agreed = 0

    for variants in rows:
        if variants_agree(variants):
            shared = next((v.strip() for v in variants if v.strip()), "")
            merged_lines.append(shared)
            agreed += 1
        else:
            merged_lines.append(resolve_conflict(variants))
            conflicts += 1

    average_agreement = agreed / len(rows) if rows else 1.0

    return MultiPassOCRResult(
        text='\n'.join(merged_lines),
        confidence=merged_confidence(results, conflicts, len(rows)),
        pass_results=list(results),
        merge_metadata=MergeMetadata(
            total_passes=len(results),
            conflicts_found=conflicts,
            conflicts_resolved=conflicts,
            average_agreement=average_agreement,
        ),
    )


class MultiPassOCRService:
    """
    Runs configured OCR passes and merges their output.

    Passes either run one after another, polling the early-stop checker
    between passes, or all at once on a thread pool. A running pass is
    never cancelled; budgets only stop further passes from being
    scheduled.

    Attributes:
        engine: OCR engine used for every pass
        pass_configs: Passes to run, in order
        max_workers: Thread pool size in parallel mode
        parallel: Whether to run passes concurrently
        early_stop: Optional budget checker

    Example:
        >>> service = MultiPassOCRService(TesseractEngine())
        >>> result = service.process_image("bill.png")
        >>> print(result.merge_metadata.average_agreement)
    """

    def __init__(
        self,
        engine: OCREngine,
        pass_configs: Optional[Sequence[OCRPassConfig]] = None,
        max_workers: Optional[int] = None,
        parallel: Optional[bool] = None,
        early_stop: Optional[EarlyStopChecker] = None
    ) -> None:
        self.engine = engine
        self.pass_configs = list(
            pass_configs if pass_configs is not None
            else default_pass_configs(get_config("ocr.language", "eng"))
        )
        self.max_workers = max_workers or get_config("ocr.max_workers", 3)
        self.parallel = parallel if parallel is not None else get_config("ocr.parallel", True)
        self.early_stop = early_stop

        logger.debug(
            f"MultiPassOCRService initialized ({len(self.pass_configs)} passes, "
            f"parallel={self.parallel}, max_workers={self.max_workers})"
        )

    def run_single_pass(self, image_path: Union[str, Path], pass_config: OCRPassConfig) -> OCRResult:
        """
        Run one pass and apply its vote weight.

        The weighted confidence is left uncapped; only the merged
        confidence is capped.

        Raises:
            OCRProcessingError: Propagated from the engine, never retried.
        """
        result = self.engine.process(image_path, pass_config)
        return OCRResult(
            text=result.text,
            confidence=result.confidence * pass_config.weight,
            engine=result.engine,
            processing_time_ms=result.processing_time_ms,
        )

    def process_image(
        self,
        image_path: Union[str, Path],
        field_scorer: Optional[FieldScorer] = None
    ) -> MultiPassOCRResult:
        """
        Run the configured passes over an image and merge them.

        Args:
            image_path: Image to recognize.
            field_scorer: Optional callable turning a partial merge into
                field confidences; used for confidence-based early stop
                in sequential mode.

        Returns:
            MultiPassOCRResult.

        Raises:
            OCRProcessingError: If any pass fails.
            MergeError: If no pass was configured.
        """
        if not self.pass_configs:
            raise MergeError("No OCR passes configured")

        if self.parallel and len(self.pass_configs) > 1:
            results = self._run_parallel(image_path)
        else:
            results = self._run_sequential(image_path, field_scorer)

        merged = merge_results(results)

        logger.info(
            f"Multi-pass OCR for {Path(image_path).name}: {merged.merge_metadata.total_passes} passes, "
            f"{merged.merge_metadata.conflicts_found} conflicts, "
            f"confidence {merged.confidence:.2f}"
        )
        return merged

    def _budget_allows_another_pass(self) -> bool:
        if self.early_stop is None:
            return True
        if self.early_stop.budget_exhausted():
            logger.info("Processing budget exhausted; no further OCR passes scheduled")
            return False
        return True

    def _run_sequential(
        self,
        image_path: Union[str, Path],
        field_scorer: Optional[FieldScorer]
    ) -> List[OCRResult]:
        results = []

        for pass_config in self.pass_configs:
            # The first pass always runs so there is something to merge
            if results and not self._budget_allows_another_pass():
                break

            results.append(self.run_single_pass(image_path, pass_config))
            if self.early_stop is not None:
                self.early_stop.record_pass()

            if self.early_stop is not None and field_scorer is not None:
                decision = self.early_stop.should_stop(field_scorer(merge_results(results)))
                if decision.should_stop:
                    logger.info(f"Early stop after pass {pass_config.pass_number}: {decision.reason}")
                    break

        return results

    def _run_parallel(self, image_path: Union[str, Path]) -> List[OCRResult]:
        configs = self.pass_configs
        if self.early_stop is not None:
            remaining = self.early_stop.budget.max_passes_per_zone - self.early_stop.passes_run
            configs = configs[:max(1, remaining)]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(self.run_single_pass, image_path, pass_config)
                for pass_config in configs
            ]
            # Results stay in pass order; the first failure propagates
            # after every submitted pass has finished
            results = [future.result() for future in futures]

        if self.early_stop is not None:
            for _ in results:
                self.early_stop.record_pass()

        return results


__all__ = [
    'MultiPassOCRService',
    'align_lines',
    'variants_agree',
    'resolve_conflict',
    'merged_confidence',
    'merge_results',
]
