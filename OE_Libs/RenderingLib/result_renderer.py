"""
Result renderer for Open Eraser.

Turns a result buffer returned by the worker into a displayable Pillow image
and exports it as a PNG whose name comes from a template with tags.

Supported tags (case-insensitive):
- {TIMESTAMP} - Milliseconds since the epoch
- {DATE} or {DATE:format} - Current date (default: YYYY-MM-DD)
- {TIME} or {TIME:format} - Current time (default: HH-MM-SS)

Classes:
    ExportConfig: Filename template and save options
    RenderedResult: A rendered image ready for display or export
    ResultRenderer: Buffer -> image conversion and export
"""

import io
import logging
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from PIL import Image

from OE_Libs.constants import DEFAULT_EXPORT_FORMAT, DEFAULT_EXPORT_TEMPLATE
from OE_Libs.MaskingLib.pixel_buffers import Dims, PixelBuffer

logger = logging.getLogger(__name__)


@dataclass
class ExportConfig:
    """Configuration for exporting results.

    Attributes:
        filename_template: Filename with optional tags
        save_format: Pillow format name (default: PNG)
        overwrite: Overwrite existing files (default: False)
        create_directories: Create the target directory if missing (default: True)
    """
    filename_template: str = DEFAULT_EXPORT_TEMPLATE
    save_format: str = DEFAULT_EXPORT_FORMAT
    overwrite: bool = False
    create_directories: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        """Create from dictionary."""
        filtered = {k: v for k, v in data.items()
                    if k in cls.__dataclass_fields__}
        return cls(**filtered)


@dataclass
class RenderedResult:
    """A result image ready to display or save."""
    image: Any
    dims: Dims

    def to_png_bytes(self) -> bytes:
        """Encode the image as PNG."""
        stream = io.BytesIO()
        self.image.save(stream, format="PNG")
        return stream.getvalue()


class ResultRenderer:
    """Converts result buffers to images and writes exports."""

    TIMESTAMP_PATTERN = r'\{TIMESTAMP\}'
    DATE_PATTERN = r'\{DATE(?::([^\}]*))?\}'
    TIME_PATTERN = r'\{TIME(?::([^\}]*))?\}'

    DEFAULT_DATE_FORMAT = "%Y-%m-%d"
    DEFAULT_TIME_FORMAT = "%H-%M-%S"

    def __init__(
        self,
        config: Optional[ExportConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ExportConfig()
        self._clock = clock

    def render(self, buffer: PixelBuffer, expected_dims: Optional[Dims] = None) -> RenderedResult:
        """
        Convert a result buffer into an RGBA image.

        The buffer is detached: after rendering only the image remains.

        Args:
            buffer: Result buffer from a successful job
            expected_dims: Size the result must have, if known

        Returns:
            RenderedResult holding the image

        Raises:
            ValueError: If the buffer size differs from expected_dims
        """
        if expected_dims is not None and tuple(expected_dims) != buffer.dims:
            raise ValueError(
                f"Result buffer is {buffer.width}x{buffer.height}, "
                f"expected {expected_dims[0]}x{expected_dims[1]}"
            )

        dims = buffer.dims
        image = Image.frombytes("RGBA", dims, buffer.detach())
        return RenderedResult(image=image, dims=dims)

    def resolve_filename(self) -> str:
        """
        Expand the filename template.

        Raises:
            ValueError: If the result contains a path traversal or a bad format
        """
        filename = self.config.filename_template
        now_seconds = self._clock()
        now = datetime.fromtimestamp(now_seconds)

        filename = re.sub(
            self.TIMESTAMP_PATTERN,
            lambda match: str(int(now_seconds * 1000)),
            filename,
            flags=re.IGNORECASE,
        )
        filename = self._replace_formatted(filename, self.DATE_PATTERN, self.DEFAULT_DATE_FORMAT, now, "DATE")
        filename = self._replace_formatted(filename, self.TIME_PATTERN, self.DEFAULT_TIME_FORMAT, now, "TIME")

        for part in Path(filename).parts:
            if part == "..":
                raise ValueError(
                    f"Path traversal detected: filename template contains '..': {filename}"
                )

        return filename

    @staticmethod
    def _replace_formatted(text: str, pattern: str, default: str, now: datetime, tag: str) -> str:
        def replacer(match):
            fmt = match.group(1) or default
            try:
                return now.strftime(fmt)
            except (ValueError, TypeError) as e:
                raise ValueError(
                    f"Invalid format string '{fmt}' in {{{tag}}} tag: {str(e)}"
                )

        return re.sub(pattern, replacer, text, flags=re.IGNORECASE)

    def export(self, rendered: RenderedResult, directory: Path) -> Path:
        """
        Save a rendered result into directory.

        Returns:
            Path of the written file

        Raises:
            ValueError: If the file exists and overwrite is off
            OSError: If the file cannot be written
        """
        directory = Path(directory)
        if self.config.create_directories:
            directory.mkdir(parents=True, exist_ok=True)

        output_file = directory / self.resolve_filename()
        if output_file.exists() and not self.config.overwrite:
            raise ValueError(
                f"Output file already exists: {output_file}. "
                f"Set overwrite=True to replace."
            )

        try:
            rendered.image.save(output_file, format=self.config.save_format.upper())
        except Exception as e:
            raise OSError(f"Failed to save image to {output_file}: {str(e)}")

        logger.info(f"Result exported to {output_file}")
        return output_file
