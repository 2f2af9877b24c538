from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

from bill_review.preprocessing import (
    Binarize,
    BrightnessContrast,
    Crop,
    Grayscale,
    ImagePreprocessor,
    NoiseRemoval,
    PixelRegion,
    PreprocessingPipeline,
    RemoveBorders,
    Resize,
    default_pipeline,
)
from bill_review.preprocessing.image_preprocessor import apply_deskew
from bill_review.utils.clock import ManualClock
from bill_review.utils.exceptions import ImageLoadError, InvalidParameterError
from tests.fakes import write_bill_image


def gray_image(width: int = 40, height: int = 30, value: int = 200) -> Image.Image:
    return Image.fromarray(np.full((height, width), value, dtype=np.uint8))


def load_bill_image(directory: str) -> Image.Image:
    with Image.open(write_bill_image(Path(directory) / "bill.png")) as img:
        return img.copy()


def run(steps, image):
    processed, names, improvements = ImagePreprocessor(PreprocessingPipeline(steps=tuple(steps))).apply(image)
    return processed, names, improvements


class TestSteps(unittest.TestCase):
    def test_steps_run_in_declared_order(self) -> None:
        image = Image.new("RGB", (40, 30), (10, 200, 30))

        processed, names, _ = run([Grayscale(), Binarize(100), Resize(20, 15)], image)

        self.assertEqual(names, ["grayscale", "binarize", "resize"])
        self.assertEqual(processed.mode, "L")
        self.assertEqual(processed.size, (20, 15))

    def test_binarize_produces_two_levels(self) -> None:
        pixels = np.array([[10, 128, 129, 250]], dtype=np.uint8)

        processed, _, _ = run([Binarize(128)], Image.fromarray(pixels))

        self.assertEqual(np.asarray(processed).tolist(), [[0, 0, 255, 255]])

    def test_brightness_contrast_formula(self) -> None:
        processed, _, improvements = run([BrightnessContrast(brightness=10, contrast=2.0)], gray_image(value=100))

        # (100 - 128) * 2 + 128 + 10
        self.assertEqual(int(np.asarray(processed)[0, 0]), 82)
        self.assertEqual(improvements.contrast_adjusted, 2.0)

    def test_noise_removal_clears_single_speckle(self) -> None:
        pixels = np.full((9, 9), 255, dtype=np.uint8)
        pixels[4, 4] = 0

        processed, _, improvements = run([NoiseRemoval(threshold=100)], Image.fromarray(pixels))

        self.assertEqual(int(np.asarray(processed)[4, 4]), 255)
        self.assertTrue(improvements.noise_removed)

    def test_crop_within_bounds(self) -> None:
        processed, _, _ = run([Crop(PixelRegion(5, 5, 10, 8))], gray_image())
        self.assertEqual(processed.size, (10, 8))

    def test_crop_outside_bounds_is_rejected(self) -> None:
        with self.assertRaises(InvalidParameterError):
            run([Crop(PixelRegion(35, 0, 10, 10))], gray_image())
        with self.assertRaises(InvalidParameterError):
            run([Crop(PixelRegion(0, 0, 0, 10))], gray_image())

    def test_remove_borders(self) -> None:
        processed, _, _ = run([RemoveBorders(5)], gray_image())
        self.assertEqual(processed.size, (30, 20))

        untouched, _, _ = run([RemoveBorders(20)], gray_image())
        self.assertEqual(untouched.size, (40, 30))

    def test_invalid_resize(self) -> None:
        with self.assertRaises(InvalidParameterError):
            run([Resize(0, 10)], gray_image())

    def test_straight_page_is_not_rotated(self) -> None:
        image = load_bill_image(self.tmp_dir())
        _, angle = apply_deskew(image, max_angle=5.0, step=1.0)
        self.assertEqual(angle, 0.0)

    def test_processing_is_deterministic(self) -> None:
        image = load_bill_image(self.tmp_dir())
        first, _, _ = ImagePreprocessor(default_pipeline(max_angle=2.0)).apply(image)
        second, _, _ = ImagePreprocessor(default_pipeline(max_angle=2.0)).apply(image)
        self.assertTrue(np.array_equal(np.asarray(first), np.asarray(second)))

    def tmp_dir(self) -> str:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        return tmp.name


class TestPreprocessFiles(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)

    def test_preprocess_writes_output(self) -> None:
        source = write_bill_image(self.dir / "bill.png")
        preprocessor = ImagePreprocessor(
            PreprocessingPipeline(steps=(Grayscale(), Binarize(128))),
            clock=ManualClock(),
        )

        result = preprocessor.preprocess(source, self.dir / "out" / "bill_clean.png")

        self.assertTrue(Path(result.output_path).exists())
        self.assertEqual(result.steps_applied, ["grayscale", "binarize"])
        self.assertEqual(result.processing_time_ms, 0)
        with Image.open(result.output_path) as saved:
            self.assertEqual(saved.size, (200, 120))

    def test_missing_input(self) -> None:
        with self.assertRaises(ImageLoadError):
            ImagePreprocessor().preprocess(self.dir / "missing.png", self.dir / "out.png")

    def test_non_image_input(self) -> None:
        bogus = self.dir / "notes.png"
        bogus.write_text("not an image", encoding="utf-8")
        with self.assertRaises(ImageLoadError):
            ImagePreprocessor().preprocess(bogus, self.dir / "out.png")


if __name__ == "__main__":
    unittest.main()
