"""
Field Validation Module.

Produces the hard and soft flags shown to reviewers:

    Hard (block approval):
        - A required field is missing or empty
        - Any field has confidence below the hard floor (50)
    Soft (warn only):
        - Any field has confidence in [hard floor, soft floor) = [50, 70)
        - A recommended field is missing or empty
        - An invoice date that cannot be parsed, or a total that is not
          a non-negative amount

Hard flags for fields a reviewer already decided are dropped.

Author: ML Engineering Team
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple

from dateutil import parser as date_parser

from config import get_config
from bill_review.utils.logger import get_logger
from .models import ExtractedField, ValidationResult

# Initialize module logger
logger = get_logger(__name__)

DEFAULT_REQUIRED_FIELDS = ("invoice_number", "total")
DEFAULT_RECOMMENDED_FIELDS = ("invoice_date", "vendor_name")

DATE_FIELDS = ("invoice_date", "due_date")
AMOUNT_FIELDS = ("total", "subtotal", "tax")

# Currency symbols, codes and thousands separators stripped before parsing amounts
AMOUNT_NOISE = re.compile(r'[\s$€£¥,]|USD|EUR|GBP|INR', re.IGNORECASE)


def validate_amount(value: str) -> Tuple[bool, str]:
    """
    Check that a string is a non-negative amount.

    Example:
        >>> validate_amount("$1,234.50")
        (True, 'Valid amount')
        >>> validate_amount("-100")
        (False, 'Amount cannot be negative')
    """
    cleaned = AMOUNT_NOISE.sub('', value or '')
    if not cleaned:
        return False, "Amount is empty"
    try:
        amount = float(cleaned)
    except ValueError:
        return False, f"Could not parse amount: {value}"
    if amount < 0:
        return False, "Amount cannot be negative"
    return True, "Valid amount"


def validate_date(value: str) -> Tuple[bool, str]:
    """Check that a string can be parsed as a calendar date."""
    if not value:
        return False, "Date is empty"
    try:
        date_parser.parse(value, fuzzy=False)
    except (ValueError, OverflowError) as e:
        return False, f"Invalid date format: {e}"
    return True, "Valid date"


def validate_fields(
    fields: Sequence[ExtractedField],
    decided_fields: Iterable[str] = (),
    required_fields: Optional[Sequence[str]] = None,
    recommended_fields: Optional[Sequence[str]] = None,
    hard_floor: Optional[int] = None,
    soft_floor: Optional[int] = None
) -> ValidationResult:
    """
    Validate extracted fields.

    Args:
        fields: Fields of a case.
        decided_fields: Names of fields a reviewer decided; their hard
            flags are removed unless the decided value is empty.
        required_fields: Fields whose absence is a hard flag.
        recommended_fields: Fields whose absence is a soft flag.
        hard_floor: Confidence below which a field is hard-flagged.
        soft_floor: Confidence below which a field is soft-flagged.

    Returns:
        ValidationResult; can_approve is True only without hard flags.

    Example:
        >>> result = validate_fields([ExtractedField("invoice_number", "INV-1", 40)])
        >>> result.hard_flags
        ['Low confidence on required field: invoice_number (40%)', 'Missing required field: total']
    """
    if required_fields is None:
        required_fields = get_config("review.required_fields", list(DEFAULT_REQUIRED_FIELDS))
    if recommended_fields is None:
        recommended_fields = get_config("review.recommended_fields", list(DEFAULT_RECOMMENDED_FIELDS))
    if hard_floor is None:
        hard_floor = get_config("review.hard_confidence_floor", 50)
    if soft_floor is None:
        soft_floor = get_config("review.soft_confidence_floor", 70)

    decided = set(decided_fields)
    by_name = {f.name: f for f in fields}

    hard_flags: List[Tuple[str, str]] = []
    soft_flags: List[str] = []

    for extracted in fields:
        if not extracted.value:
            continue

        if extracted.confidence < hard_floor:
            kind = "required field" if extracted.name in required_fields else "field"
            hard_flags.append((
                extracted.name,
                f"Low confidence on {kind}: {extracted.name} ({extracted.confidence}%)",
            ))
        elif extracted.confidence < soft_floor:
            soft_flags.append(f"Low confidence on field: {extracted.name} ({extracted.confidence}%)")

        if extracted.name in DATE_FIELDS:
            valid, message = validate_date(extracted.value)
            if not valid:
                soft_flags.append(f"Unparseable date in field: {extracted.name} ({message})")
        elif extracted.name in AMOUNT_FIELDS:
            valid, message = validate_amount(extracted.value)
            if not valid:
                soft_flags.append(f"Invalid amount in field: {extracted.name} ({message})")

    for name in required_fields:
        extracted = by_name.get(name)
        if extracted is None or not extracted.value:
            hard_flags.append((name, f"Missing required field: {name}"))

    for name in recommended_fields:
        extracted = by_name.get(name)
        if extracted is None or not extracted.value:
            soft_flags.append(f"Missing recommended field: {name}")

    # A decision only resolves a field when the reviewer supplied a value
    resolved = {name for name in decided if by_name.get(name) is not None and by_name[name].value}
    remaining = [message for name, message in hard_flags if name not in resolved]

    result = ValidationResult(
        hard_flags=remaining,
        soft_flags=soft_flags,
        can_approve=not remaining,
    )

    logger.debug(
        f"Validated {len(fields)} fields: {len(result.hard_flags)} hard, "
        f"{len(result.soft_flags)} soft flags"
    )
    return result


__all__ = ['validate_fields', 'validate_amount', 'validate_date']
