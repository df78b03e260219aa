"""
Tests for application configuration.

Tests cover:
- Defaults and validation ranges
- Loading with fallbacks
- Saving
"""

import json
import unittest

import pytest

from OE_Libs.config import EraserConfig, load_config, save_config


class TestEraserConfig(unittest.TestCase):
    """Test EraserConfig dataclass."""

    def test_defaults(self):
        config = EraserConfig()
        self.assertEqual(config.inpaint_radius, 3)
        self.assertEqual(config.inpaint_method, "telea")
        self.assertEqual(config.mask_threshold, 10)
        self.assertEqual((config.brush_min, config.brush_max, config.brush_default), (5, 50, 20))
        self.assertEqual(config.backend_module, "cv2")
        self.assertTrue(config.use_process)
        config.validate()

    def test_from_dict_ignores_unknown_keys(self):
        config = EraserConfig.from_dict({"inpaint_radius": 7, "theme": "dark"})
        self.assertEqual(config.inpaint_radius, 7)

    def test_to_dict_round_trip(self):
        config = EraserConfig(inpaint_method="ns", job_timeout=30.0)
        self.assertEqual(EraserConfig.from_dict(config.to_dict()), config)

    def test_invalid_values(self):
        cases = [
            {"inpaint_radius": 0},
            {"inpaint_radius": 101},
            {"inpaint_method": "magic"},
            {"mask_threshold": 255},
            {"mask_threshold": -1},
            {"brush_min": 0},
            {"brush_min": 30, "brush_max": 10},
            {"brush_default": 60},
            {"backend_module": " "},
            {"backend_poll_attempts": -1},
            {"load_timeout": -5},
            {"export_template": ""},
        ]
        for values in cases:
            with self.subTest(values=values):
                with self.assertRaises(ValueError):
                    EraserConfig(**values).validate()


def test_load_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "missing.json") == EraserConfig()


def test_save_then_load(tmp_path):
    path = tmp_path / "settings" / "open_eraser.json"
    config = EraserConfig(inpaint_radius=5, brush_default=30, use_process=False)

    save_config(path, config)

    assert json.loads(path.read_text(encoding="utf-8"))["inpaint_radius"] == 5
    assert load_config(path) == config


@pytest.mark.parametrize("content", [
    "{not json",
    "[1, 2, 3]",
    '{"inpaint_radius": 500}',
    '{"inpaint_radius": "wide"}',
])
def test_bad_files_fall_back_to_defaults(tmp_path, content):
    path = tmp_path / "open_eraser.json"
    path.write_text(content, encoding="utf-8")

    assert load_config(path) == EraserConfig()


if __name__ == "__main__":
    unittest.main()
