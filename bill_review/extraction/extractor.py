"""
Field Extractor Module.

Pulls bill header fields out of merged OCR text with regular
expressions. Each field has an ordered list of patterns; the first is
the primary pattern, the rest are fallbacks.

Confidence:
    primary match   -> merged OCR confidence * 100
    fallback match  -> that value * FALLBACK_CONFIDENCE_FACTOR

Author: ML Engineering Team
"""

import re
from typing import Dict, List, Optional, Pattern, Sequence

from bill_review.ocr_engine.ocr_result import MultiPassOCRResult
from bill_review.review.models import ExtractedField
from bill_review.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

FALLBACK_CONFIDENCE_FACTOR = 0.6

AMOUNT = r'([\d,]+(?:\.\d{1,2})?)'
NUMERIC_DATE = r'(\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}|\d{4}-\d{2}-\d{2})'
WORDY_DATE = r'(\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{2,4})'

FIELD_PATTERNS: Dict[str, List[str]] = {
    'invoice_number': [
        r'Invoice\s*(?:#|No\.?|Number)\s*[:\s]?\s*([A-Z0-9][A-Z0-9-]*)',
        r'INV[:\s-]?\s*([0-9][A-Z0-9-]*)',
        r'Bill\s*(?:#|No\.?|Number)\s*[:\s]?\s*([A-Z0-9][A-Z0-9-]*)',
    ],
    'invoice_date': [
        r'(?:Invoice\s*)?Date\s*[:\s]?\s*' + NUMERIC_DATE,
        r'Dated?\s*[:\s]?\s*' + WORDY_DATE,
        WORDY_DATE,
    ],
    'due_date': [
        r'Due\s*Date\s*[:\s]?\s*' + NUMERIC_DATE,
        r'Pay(?:ment)?\s*(?:Due\s*)?By\s*[:\s]?\s*' + NUMERIC_DATE,
    ],
    'vendor_name': [
        r'(?:Vendor|From|Sold\s*By|Bill\s*From)\s*[:]\s*([^\n]+)',
    ],
    'subtotal': [
        r'Sub\s*-?\s*total\s*[:\s]?\s*\$?\s*' + AMOUNT,
    ],
    'tax': [
        r'(?:Sales\s*)?Tax\s*(?:\([^)]*\))?\s*[:\s]?\s*\$?\s*' + AMOUNT,
        r'(?:VAT|GST)\s*[:\s]?\s*\$?\s*' + AMOUNT,
    ],
    'total': [
        r'(?<!Sub)(?<!Sub )Total\s*(?:Amount|Due)?\s*[:\s]?\s*\$?\s*' + AMOUNT,
        r'Grand\s*Total\s*[:\s]?\s*\$?\s*' + AMOUNT,
        r'Amount\s*Due\s*[:\s]?\s*\$?\s*' + AMOUNT,
    ],
}

# Lines that never name the vendor
VENDOR_LINE_SKIP = re.compile(r'invoice|bill|date|total|page|tax|\d{3,}', re.IGNORECASE)


class FieldExtractor:
    """
    Regex extractor over merged multi-pass OCR text.

    Attributes:
        patterns: Field name to compiled patterns, primary first

    Example:
        >>> extractor = FieldExtractor()
        >>> fields = extractor.extract(merged)
        >>> [(f.name, f.value, f.confidence) for f in fields]
        [('invoice_number', 'INV-1001', 92), ('total', '1,250.00', 92)]
    """

    def __init__(self, patterns: Optional[Dict[str, Sequence[str]]] = None) -> None:
        source = patterns if patterns is not None else FIELD_PATTERNS
        self.patterns: Dict[str, List[Pattern]] = {
            name: [re.compile(p, re.IGNORECASE) for p in field_patterns]
            for name, field_patterns in source.items()
        }

    def extract(self, ocr_result: MultiPassOCRResult) -> List[ExtractedField]:
        """
        Extract every field found in the merged text.

        Fields that match nothing are left out; validation reports them
        as missing.
        """
        text = ocr_result.text or ""
        base_confidence = ocr_result.confidence * 100.0
        fields = []

        for name, patterns in self.patterns.items():
            for index, pattern in enumerate(patterns):
                match = pattern.search(text)
                if not match:
                    continue
                value = match.group(1).strip()
                if not value:
                    continue

                confidence = base_confidence
                if index > 0:
                    confidence *= FALLBACK_CONFIDENCE_FACTOR
                    logger.debug(f"{name} extracted via fallback pattern {index}")

                fields.append(ExtractedField(name, value, self._clamp(confidence)))
                break

        if not any(f.name == 'vendor_name' for f in fields) and 'vendor_name' in self.patterns:
            vendor = self._guess_vendor(text)
            if vendor:
                fields.append(ExtractedField(
                    'vendor_name', vendor, self._clamp(base_confidence * FALLBACK_CONFIDENCE_FACTOR)
                ))

        logger.debug(f"Extracted {len(fields)} fields from {len(text)} characters")
        return fields

    def field_confidences(self, ocr_result: MultiPassOCRResult) -> Dict[str, float]:
        """Field name to confidence, for early-stop decisions."""
        return {f.name: f.confidence for f in self.extract(ocr_result)}

    @staticmethod
    def _guess_vendor(text: str) -> Optional[str]:
        """The first header line that looks like a company name."""
        for line in text.splitlines()[:5]:
            line = line.strip()
            if len(line) >= 3 and any(c.isalpha() for c in line) and not VENDOR_LINE_SKIP.search(line):
                return line
        return None

    @staticmethod
    def _clamp(confidence: float) -> int:
        return max(0, min(100, int(round(confidence))))


__all__ = ['FieldExtractor', 'FIELD_PATTERNS', 'FALLBACK_CONFIDENCE_FACTOR']
