from __future__ import annotations

import unittest

from bill_review.extraction import FieldExtractor
from bill_review.ocr_engine import OCRResult, merge_results
from tests.fakes import BILL_TEXT


def merged(text: str, confidence: float = 0.9):
    return merge_results([OCRResult(text, confidence)])


class TestFieldExtractor(unittest.TestCase):
    def setUp(self) -> None:
        self.extractor = FieldExtractor()

    def test_header_fields(self) -> None:
        fields = {f.name: f for f in self.extractor.extract(merged(BILL_TEXT))}

        self.assertEqual(fields["invoice_number"].value, "INV-1001")
        self.assertEqual(fields["invoice_date"].value, "01/15/2026")
        self.assertEqual(fields["subtotal"].value, "1,000.00")
        self.assertEqual(fields["tax"].value, "250.00")
        self.assertEqual(fields["total"].value, "1,250.00")
        self.assertEqual(fields["total"].confidence, 90)
        self.assertNotIn("due_date", fields)

    def test_vendor_guessed_from_header_at_reduced_confidence(self) -> None:
        fields = {f.name: f for f in self.extractor.extract(merged(BILL_TEXT))}

        self.assertEqual(fields["vendor_name"].value, "Acme Supplies Ltd")
        self.assertEqual(fields["vendor_name"].confidence, 54)

    def test_labelled_vendor_uses_primary_pattern(self) -> None:
        text = "Vendor: Bolt Electric\nInvoice No: 77-A\nTotal: 12.50"
        fields = {f.name: f for f in self.extractor.extract(merged(text, 0.8))}

        self.assertEqual(fields["vendor_name"].value, "Bolt Electric")
        self.assertEqual(fields["vendor_name"].confidence, 80)

    def test_fallback_patterns_reduce_confidence(self) -> None:
        text = "INV-2002\nAmount Due: 80.00"
        fields = {f.name: f for f in self.extractor.extract(merged(text))}

        self.assertEqual(fields["invoice_number"].value, "2002")
        self.assertEqual(fields["invoice_number"].confidence, 54)
        self.assertEqual(fields["total"].value, "80.00")
        self.assertEqual(fields["total"].confidence, 54)

    def test_empty_text(self) -> None:
        self.assertEqual(self.extractor.extract(merged("")), [])

    def test_field_confidences_feed_early_stop(self) -> None:
        scores = self.extractor.field_confidences(merged(BILL_TEXT, 0.97))

        self.assertEqual(scores["invoice_number"], 97)
        self.assertEqual(scores["invoice_date"], 97)
        self.assertEqual(scores["total"], 97)

    def test_custom_patterns(self) -> None:
        extractor = FieldExtractor(patterns={"po_number": [r"PO\s*#\s*(\d+)"]})

        fields = extractor.extract(merged("PO # 4411\nTotal: 5.00"))

        self.assertEqual([(f.name, f.value) for f in fields], [("po_number", "4411")])


if __name__ == "__main__":
    unittest.main()
