from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from config import ConfigurationManager
from main import collect_inputs, main, parse_arguments


class TestCommandLine(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)
        self.addCleanup(ConfigurationManager.reset)

    def test_arguments(self) -> None:
        args = parse_arguments(["--input", "bills", "--vendor", "acme", "--sequential"])
        self.assertEqual(args.input, "bills")
        self.assertEqual(args.vendor, "acme")
        self.assertTrue(args.sequential)
        self.assertFalse(args.save)

    def test_repeatable_overrides(self) -> None:
        args = parse_arguments(["-i", "bill.png", "--set", "ocr.parallel=false", "--set", "review.default_per_page=5"])
        self.assertEqual(args.overrides, ["ocr.parallel=false", "review.default_per_page=5"])
        self.assertEqual(parse_arguments(["-i", "bill.png"]).overrides, [])

    def test_malformed_override_exits_with_error(self) -> None:
        image = self.dir / "bill.png"
        image.write_bytes(b"")
        self.assertEqual(main(["--input", str(image), "--set", "review.default_per_page"]), 1)

    def test_directory_inputs_are_filtered_and_sorted(self) -> None:
        for name in ("b.png", "a.JPG", "notes.txt"):
            (self.dir / name).write_bytes(b"")

        self.assertEqual([p.name for p in collect_inputs(str(self.dir))], ["a.JPG", "b.png"])

    def test_unsupported_single_file(self) -> None:
        document = self.dir / "bill.pdf"
        document.write_bytes(b"")
        with self.assertRaises(ValueError):
            collect_inputs(str(document))

    def test_missing_input_exits_with_error(self) -> None:
        self.assertEqual(main(["--input", str(self.dir / "missing.png")]), 1)


if __name__ == "__main__":
    unittest.main()
