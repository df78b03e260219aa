"""
Tests for mask binarization and inpainting on RGBA8 buffers.

Tests cover:
- Binarization threshold
- Empty and uniform inputs
- Reconstruction confined to the masked region
- Argument validation
"""

import unittest

import cv2
import numpy as np

from OE_Libs.ProcessingLib.inpaint_executor import binarize_mask, run_inpaint


def _solid(width, height, rgba):
    array = np.zeros((height, width, 4), dtype=np.uint8)
    array[:, :] = rgba
    return array


class TestBinarizeMask(unittest.TestCase):
    """Test mask binarization."""

    def test_painted_pixels_become_255(self):
        mask = _solid(4, 4, (0, 0, 0, 0))
        mask[1, 1] = (255, 0, 0, 128)
        binary = binarize_mask(mask, 10, cv2)

        self.assertEqual(binary.shape, (4, 4))
        self.assertEqual(binary[1, 1], 255)
        self.assertEqual(int(np.count_nonzero(binary)), 1)

    def test_faint_pixels_are_dropped(self):
        """Gray intensity at or below the threshold keeps the pixel."""
        mask = _solid(4, 4, (0, 0, 0, 0))
        mask[0, 0] = (20, 0, 0, 255)
        mask[0, 1] = (200, 200, 200, 255)
        binary = binarize_mask(mask, 10, cv2)

        self.assertEqual(binary[0, 0], 0)
        self.assertEqual(binary[0, 1], 255)


class TestRunInpaint(unittest.TestCase):
    """Test reconstruction."""

    def test_white_image_without_strokes_is_unchanged(self):
        image = _solid(100, 100, (255, 255, 255, 255))
        mask = _solid(100, 100, (0, 0, 0, 0))

        result = run_inpaint(image.tobytes(), mask.tobytes(), 100, 100, backend=cv2)

        self.assertEqual(result, image.tobytes())

    def test_white_image_stays_white_under_mask(self):
        """Filling from uniformly white surroundings gives white."""
        image = _solid(100, 100, (255, 255, 255, 255))
        mask = _solid(100, 100, (0, 0, 0, 0))
        mask[40:60, 40:60] = (255, 0, 0, 128)

        result = run_inpaint(image.tobytes(), mask.tobytes(), 100, 100, backend=cv2)

        pixels = np.frombuffer(result, dtype=np.uint8).reshape(100, 100, 4)
        self.assertTrue(np.all(pixels >= 250))

    def test_empty_mask_returns_input(self):
        image = np.random.RandomState(0).randint(0, 256, (20, 30, 4), dtype=np.uint8)
        mask = _solid(30, 20, (0, 0, 0, 0))

        result = run_inpaint(image.tobytes(), mask.tobytes(), 30, 20, backend=cv2)

        self.assertEqual(result, image.tobytes())

    def test_only_masked_region_changes(self):
        """A dark square inside a gray image is filled from its surroundings."""
        image = _solid(60, 60, (128, 128, 128, 255))
        image[25:35, 25:35] = (0, 0, 0, 255)
        mask = _solid(60, 60, (0, 0, 0, 0))
        mask[20:40, 20:40] = (255, 0, 0, 128)

        result = run_inpaint(image.tobytes(), mask.tobytes(), 60, 60, backend=cv2)
        pixels = np.frombuffer(result, dtype=np.uint8).reshape(60, 60, 4)

        outside = np.ones((60, 60), dtype=bool)
        outside[20:40, 20:40] = False
        self.assertTrue(np.array_equal(pixels[outside], image[outside]))

        center = pixels[30, 30]
        self.assertGreater(int(center[0]), 64)
        self.assertEqual(int(center[3]), 255)

    def test_unmasked_alpha_is_preserved(self):
        image = _solid(20, 20, (50, 100, 150, 77))
        mask = _solid(20, 20, (0, 0, 0, 0))
        mask[5:10, 5:10] = (255, 0, 0, 128)

        result = run_inpaint(image.tobytes(), mask.tobytes(), 20, 20, backend=cv2)
        pixels = np.frombuffer(result, dtype=np.uint8).reshape(20, 20, 4)

        self.assertEqual(tuple(pixels[0, 0]), (50, 100, 150, 77))
        self.assertEqual(int(pixels[7, 7][3]), 255)

    def test_navier_stokes_method(self):
        image = _solid(30, 30, (200, 10, 10, 255))
        mask = _solid(30, 30, (0, 0, 0, 0))
        mask[10:20, 10:20] = (255, 0, 0, 128)

        result = run_inpaint(
            image.tobytes(), mask.tobytes(), 30, 30, method="ns", backend=cv2
        )
        self.assertEqual(len(result), 30 * 30 * 4)

    def test_imports_backend_when_omitted(self):
        image = _solid(8, 8, (1, 2, 3, 255))
        mask = _solid(8, 8, (255, 0, 0, 128))
        result = run_inpaint(image.tobytes(), mask.tobytes(), 8, 8)
        self.assertEqual(len(result), 8 * 8 * 4)


class TestRunInpaintValidation(unittest.TestCase):
    """Test argument validation."""

    def setUp(self):
        self.pixels = bytes(4 * 4 * 4)

    def test_wrong_length(self):
        with self.assertRaises(ValueError):
            run_inpaint(self.pixels, bytes(10), 4, 4, backend=cv2)

    def test_invalid_dimensions(self):
        with self.assertRaises(ValueError):
            run_inpaint(b"", b"", 0, 4, backend=cv2)

    def test_invalid_radius(self):
        with self.assertRaises(ValueError):
            run_inpaint(self.pixels, self.pixels, 4, 4, radius=0, backend=cv2)

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            run_inpaint(self.pixels, self.pixels, 4, 4, method="magic", backend=cv2)


if __name__ == "__main__":
    unittest.main()
