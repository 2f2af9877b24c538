from __future__ import annotations

import unittest

from bill_review.review import ExtractedField, validate_fields
from bill_review.review.validation import validate_amount, validate_date


def complete_fields(**overrides):
    values = {
        "invoice_number": ("INV-1001", 92),
        "total": ("1,250.00", 90),
        "invoice_date": ("01/15/2026", 88),
        "vendor_name": ("Acme Supplies Ltd", 85),
    }
    values.update(overrides)
    return [ExtractedField(name, value, confidence) for name, (value, confidence) in values.items()]


class TestValidateFields(unittest.TestCase):
    def test_clean_fields_can_be_approved(self) -> None:
        result = validate_fields(complete_fields())

        self.assertEqual(result.hard_flags, [])
        self.assertEqual(result.soft_flags, [])
        self.assertTrue(result.can_approve)

    def test_missing_required_field_is_hard_flag(self) -> None:
        fields = [f for f in complete_fields() if f.name != "total"]

        result = validate_fields(fields)

        self.assertEqual(result.hard_flags, ["Missing required field: total"])
        self.assertFalse(result.can_approve)

    def test_empty_required_value_counts_as_missing(self) -> None:
        result = validate_fields(complete_fields(invoice_number=("", 95)))
        self.assertIn("Missing required field: invoice_number", result.hard_flags)

    def test_confidence_below_fifty_is_hard_flag(self) -> None:
        result = validate_fields(complete_fields(total=("1,250.00", 49), vendor_name=("Acme", 30)))

        self.assertEqual(result.hard_flags, [
            "Low confidence on required field: total (49%)",
            "Low confidence on field: vendor_name (30%)",
        ])
        self.assertFalse(result.can_approve)

    def test_confidence_between_fifty_and_seventy_is_soft_flag(self) -> None:
        result = validate_fields(complete_fields(invoice_number=("INV-1001", 50), total=("10.00", 69)))

        self.assertEqual(result.soft_flags, [
            "Low confidence on field: invoice_number (50%)",
            "Low confidence on field: total (69%)",
        ])
        self.assertTrue(result.can_approve)

    def test_missing_recommended_field_is_soft_flag(self) -> None:
        fields = [f for f in complete_fields() if f.name != "vendor_name"]

        result = validate_fields(fields)

        self.assertEqual(result.soft_flags, ["Missing recommended field: vendor_name"])
        self.assertTrue(result.can_approve)

    def test_decided_field_hard_flags_are_removed(self) -> None:
        result = validate_fields(complete_fields(total=("1,250.00", 20)), decided_fields=["total"])

        self.assertEqual(result.hard_flags, [])
        self.assertTrue(result.can_approve)

    def test_format_problems_are_soft(self) -> None:
        result = validate_fields(complete_fields(invoice_date=("not a date", 90), total=("-5.00", 90)))

        self.assertTrue(result.can_approve)
        self.assertEqual(len(result.soft_flags), 2)
        self.assertTrue(result.soft_flags[0].startswith("Invalid amount in field: total"))
        self.assertTrue(result.soft_flags[1].startswith("Unparseable date in field: invoice_date"))


class TestFormatValidators(unittest.TestCase):
    def test_amounts(self) -> None:
        self.assertEqual(validate_amount("$1,234.50"), (True, "Valid amount"))
        self.assertEqual(validate_amount("-100"), (False, "Amount cannot be negative"))
        self.assertFalse(validate_amount("twelve")[0])
        self.assertFalse(validate_amount("")[0])

    def test_dates(self) -> None:
        self.assertTrue(validate_date("2026-01-15")[0])
        self.assertTrue(validate_date("15 Jan 2026")[0])
        self.assertFalse(validate_date("13/45/2026")[0])
        self.assertFalse(validate_date("")[0])


if __name__ == "__main__":
    unittest.main()
