"""
Capture surface: records brush strokes into a native-resolution mask.

The mask lives in an RGBA Pillow image the size of the source image, no
matter how large the image is shown on screen. Strokes are rasterized
immediately with ImageDraw on the calling (UI) thread.

Classes:
    BrushStroke: Points and diameter of one stroke, in native pixels
    CaptureSurface: Live mask owner with begin/extend/end/clear/snapshot
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from OE_Libs.constants import (
    DEFAULT_BRUSH_DIAMETER,
    DEFAULT_BRUSH_MAX,
    DEFAULT_BRUSH_MIN,
    MASK_KEEP_COLOR,
    MASK_STROKE_COLOR,
)
from OE_Libs.MaskingLib.pixel_buffers import Dims, PixelBuffer

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def paint_dot(draw, point: Point, diameter: float, fill=MASK_STROKE_COLOR) -> None:
    """Fill a circle of the given diameter centred on point."""
    radius = diameter / 2.0
    x, y = point
    draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=fill)


def paint_segment(draw, start: Point, end: Point, diameter: float, fill=MASK_STROKE_COLOR) -> None:
    """Fill a round-capped segment of the given diameter from start to end."""
    draw.line([start, end], fill=fill, width=max(1, int(round(diameter))))
    # ImageDraw lines have flat ends
    paint_dot(draw, start, diameter, fill)
    paint_dot(draw, end, diameter, fill)


@dataclass
class BrushStroke:
    """One stroke as painted.

    Attributes:
        diameter: Brush diameter in native pixels
        points: Native-space points in the order they were painted
    """
    diameter: float
    points: List[Point] = field(default_factory=list)


class CaptureSurface:
    """
    Owns the live mask and paints strokes into it.

    Example:
        >>> surface = CaptureSurface(100, 100)
        >>> surface.begin_stroke((10, 10), 20)
        >>> surface.extend_stroke((40, 10))
        >>> surface.end_stroke()
        >>> mask = surface.snapshot()   # surface is blank again
    """

    def __init__(
        self,
        width: int,
        height: int,
        brush_min: int = DEFAULT_BRUSH_MIN,
        brush_max: int = DEFAULT_BRUSH_MAX,
        brush_diameter: int = DEFAULT_BRUSH_DIAMETER,
    ):
        if brush_min < 1 or brush_max < brush_min:
            raise ValueError(f"Invalid brush range: {brush_min}-{brush_max}")

        self.brush_min = brush_min
        self.brush_max = brush_max
        self._brush_diameter = self._clamp(brush_diameter)
        self._mask = self._new_mask(width, height)
        self._strokes: List[BrushStroke] = []
        self._open_stroke: Optional[BrushStroke] = None

    @staticmethod
    def _new_mask(width: int, height: int):
        if int(width) <= 0 or int(height) <= 0:
            raise ValueError(f"Mask dimensions must be positive, got {width}x{height}")
        return Image.new("RGBA", (int(width), int(height)), MASK_KEEP_COLOR)

    def _clamp(self, diameter: float) -> float:
        return max(float(self.brush_min), min(float(self.brush_max), float(diameter)))

    @property
    def dims(self) -> Dims:
        return self._mask.size

    @property
    def brush_diameter(self) -> float:
        return self._brush_diameter

    @brush_diameter.setter
    def brush_diameter(self, value: float) -> None:
        self._brush_diameter = self._clamp(value)

    @property
    def is_stroke_open(self) -> bool:
        return self._open_stroke is not None

    @property
    def has_strokes(self) -> bool:
        return bool(self._strokes)

    @property
    def strokes(self) -> List[BrushStroke]:
        return list(self._strokes)

    def begin_stroke(self, native_point: Point, diameter: Optional[float] = None) -> None:
        """
        Start a stroke with a filled circle at native_point.

        Args:
            native_point: (x, y) in native pixels
            diameter: Brush diameter; defaults to the current brush size.
                      Values outside the brush range are clamped.
        """
        if diameter is not None:
            self.brush_diameter = diameter

        stroke = BrushStroke(diameter=self._brush_diameter, points=[tuple(native_point)])
        paint_dot(ImageDraw.Draw(self._mask), stroke.points[0], stroke.diameter)
        self._strokes.append(stroke)
        self._open_stroke = stroke

    def extend_stroke(self, native_point: Point) -> None:
        """Paint a round-capped segment from the last point to native_point."""
        stroke = self._open_stroke
        if stroke is None:
            return

        start = stroke.points[-1]
        end = tuple(native_point)
        paint_segment(ImageDraw.Draw(self._mask), start, end, stroke.diameter)
        stroke.points.append(end)

    def end_stroke(self) -> None:
        self._open_stroke = None

    def clear(self) -> None:
        """Reset the mask to keep everything."""
        self._mask = self._new_mask(*self._mask.size)
        self._strokes = []
        self._open_stroke = None
        logger.debug("Mask cleared")

    def resize(self, width: int, height: int) -> None:
        """Discard all strokes and allocate a blank mask of a new size."""
        self._mask = self._new_mask(width, height)
        self._strokes = []
        self._open_stroke = None
        logger.debug(f"Mask resized to {width}x{height}")

    def snapshot(self) -> PixelBuffer:
        """
        Hand the current mask over and start again from a blank one.

        Returns:
            The painted mask as a PixelBuffer owned by the caller
        """
        taken = self._mask
        self._mask = self._new_mask(*taken.size)
        stroke_count = len(self._strokes)
        self._strokes = []
        self._open_stroke = None

        buffer = PixelBuffer(taken.width, taken.height, taken.tobytes())
        taken.close()
        logger.debug(f"Mask snapshot taken ({stroke_count} strokes)")
        return buffer

    def restore(self, buffer: PixelBuffer, strokes: List[BrushStroke]) -> None:
        """
        Put back a mask taken by snapshot() that was never handed on.

        Raises:
            ValueError: If the buffer size differs from the surface
            BufferDetachedError: If the buffer was already transferred
        """
        if buffer.dims != self._mask.size:
            raise ValueError(
                f"Cannot restore a {buffer.width}x{buffer.height} mask "
                f"onto a {self._mask.width}x{self._mask.height} surface"
            )
        self._mask = buffer.to_image()
        self._strokes = list(strokes)
        self._open_stroke = None
        logger.debug(f"Mask restored ({len(self._strokes)} strokes)")

    def overlay_image(self):
        """Return a copy of the live mask for drawing over the preview."""
        return self._mask.copy()
