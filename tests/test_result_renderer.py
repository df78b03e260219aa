"""
Tests for result rendering and export.

Tests cover:
- Buffer -> image conversion
- Filename templating (timestamp, date, time)
- Saving, overwrite protection and path traversal
"""

import unittest
from datetime import datetime
from pathlib import Path
from tempfile import TemporaryDirectory

from PIL import Image

from OE_Libs.errors import BufferDetachedError
from OE_Libs.MaskingLib.pixel_buffers import PixelBuffer
from OE_Libs.RenderingLib.result_renderer import ExportConfig, ResultRenderer

FIXED_TIME = 1700000000.123


class TestExportConfig(unittest.TestCase):
    """Test ExportConfig dataclass."""

    def test_defaults(self):
        config = ExportConfig()
        self.assertEqual(config.filename_template, "watermark_removed_{TIMESTAMP}.png")
        self.assertEqual(config.save_format, "PNG")
        self.assertFalse(config.overwrite)
        self.assertTrue(config.create_directories)

    def test_from_dict_ignores_unknown_keys(self):
        config = ExportConfig.from_dict({"filename_template": "out.png", "quality": 90})
        self.assertEqual(config.filename_template, "out.png")

    def test_to_dict(self):
        self.assertEqual(ExportConfig(overwrite=True).to_dict()["overwrite"], True)


class TestRender(unittest.TestCase):
    """Test converting result buffers to images."""

    def test_render(self):
        buffer = PixelBuffer.from_image(Image.new("RGBA", (6, 4), (9, 8, 7, 255)))
        rendered = ResultRenderer().render(buffer, (6, 4))

        self.assertEqual(rendered.dims, (6, 4))
        self.assertEqual(rendered.image.mode, "RGBA")
        self.assertEqual(rendered.image.getpixel((5, 3)), (9, 8, 7, 255))

    def test_render_detaches_buffer(self):
        buffer = PixelBuffer.blank(2, 2)
        ResultRenderer().render(buffer)

        with self.assertRaises(BufferDetachedError):
            buffer.detach()

    def test_size_mismatch(self):
        buffer = PixelBuffer.blank(2, 2)
        with self.assertRaises(ValueError):
            ResultRenderer().render(buffer, (3, 2))
        self.assertFalse(buffer.is_detached)

    def test_png_bytes(self):
        rendered = ResultRenderer().render(PixelBuffer.blank(3, 3))
        data = rendered.to_png_bytes()
        self.assertTrue(data.startswith(b"\x89PNG"))


class TestFilenameTemplate(unittest.TestCase):
    """Test filename tag replacement."""

    def _renderer(self, template):
        return ResultRenderer(ExportConfig(filename_template=template), clock=lambda: FIXED_TIME)

    def test_timestamp_in_milliseconds(self):
        self.assertEqual(
            self._renderer("watermark_removed_{TIMESTAMP}.png").resolve_filename(),
            "watermark_removed_1700000000123.png",
        )

    def test_tags_are_case_insensitive(self):
        self.assertEqual(self._renderer("r_{timestamp}.png").resolve_filename(), "r_1700000000123.png")

    def test_date_and_time(self):
        now = datetime.fromtimestamp(FIXED_TIME)
        filename = self._renderer("{DATE}_{TIME}.png").resolve_filename()
        self.assertEqual(filename, f"{now:%Y-%m-%d}_{now:%H-%M-%S}.png")

    def test_custom_date_format(self):
        now = datetime.fromtimestamp(FIXED_TIME)
        filename = self._renderer("{DATE:%Y%m%d}.png").resolve_filename()
        self.assertEqual(filename, f"{now:%Y%m%d}.png")

    def test_plain_name_unchanged(self):
        self.assertEqual(self._renderer("result.png").resolve_filename(), "result.png")

    def test_path_traversal_rejected(self):
        with self.assertRaises(ValueError):
            self._renderer("../escape_{TIMESTAMP}.png").resolve_filename()


class TestExport(unittest.TestCase):
    """Test writing results to disk."""

    def setUp(self):
        self.temp_dir = TemporaryDirectory()
        self.directory = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def _rendered(self, renderer):
        image = Image.new("RGBA", (5, 5), (1, 2, 3, 255))
        return renderer.render(PixelBuffer.from_image(image))

    def test_export_writes_png(self):
        renderer = ResultRenderer(clock=lambda: FIXED_TIME)
        saved = renderer.export(self._rendered(renderer), self.directory)

        self.assertEqual(saved.name, "watermark_removed_1700000000123.png")
        self.assertTrue(saved.exists())
        with Image.open(saved) as image:
            self.assertEqual(image.format, "PNG")
            self.assertEqual(image.convert("RGBA").getpixel((0, 0)), (1, 2, 3, 255))

    def test_export_creates_directory(self):
        renderer = ResultRenderer(clock=lambda: FIXED_TIME)
        target = self.directory / "nested" / "out"
        saved = renderer.export(self._rendered(renderer), target)
        self.assertTrue(saved.exists())

    def test_existing_file_not_overwritten(self):
        renderer = ResultRenderer(ExportConfig(filename_template="same.png"))
        rendered = self._rendered(renderer)
        renderer.export(rendered, self.directory)

        with self.assertRaises(ValueError):
            renderer.export(rendered, self.directory)

    def test_overwrite_allowed(self):
        renderer = ResultRenderer(ExportConfig(filename_template="same.png", overwrite=True))
        rendered = self._rendered(renderer)
        renderer.export(rendered, self.directory)
        saved = renderer.export(rendered, self.directory)
        self.assertTrue(saved.exists())


if __name__ == "__main__":
    unittest.main()
