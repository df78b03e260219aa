"""
Display-space <-> native-space coordinate mapping.

Display space is the on-screen grid the pointer reports in, scaled to fit the
preview widget. Native space is the image's own pixel grid, where the mask is
painted. All functions are pure. If the display size has not been measured
yet (zero, negative or non-finite), every function returns None so callers
record nothing instead of painting at a degenerate scale.

Functions:
    is_measured: Whether a size is usable for mapping
    to_native: Map a display point into native space
    to_display: Map a native point into display space
    scale_factor: Display pixels per native pixel (horizontal)
    cursor_diameter: On-screen brush cursor size for a native brush diameter
"""

import math
from typing import Optional, Tuple

Point = Tuple[float, float]
Size = Tuple[float, float]


def is_measured(size: Optional[Size]) -> bool:
    """Return True when both components of size are finite and positive."""
    if size is None or len(size) != 2:
        return False
    width, height = size
    try:
        return (
            math.isfinite(width) and math.isfinite(height)
            and width > 0 and height > 0
        )
    except TypeError:
        return False


def to_native(display_point: Point, display_size: Size, native_size: Size) -> Optional[Point]:
    """
    Map a pointer position in display space into native image space.

    Args:
        display_point: (x, y) relative to the displayed image's top-left
        display_size: (width, height) of the image as rendered on screen
        native_size: (width, height) of the image's pixel grid

    Returns:
        (x, y) in native pixels, or None if either size is unmeasured

    Example:
        >>> to_native((50, 25), (100, 50), (400, 200))
        (200.0, 100.0)
    """
    if not (is_measured(display_size) and is_measured(native_size)):
        return None

    x, y = display_point
    return (
        float(x) * native_size[0] / display_size[0],
        float(y) * native_size[1] / display_size[1],
    )


def to_display(native_point: Point, display_size: Size, native_size: Size) -> Optional[Point]:
    """
    Map a native image position into display space.

    Inverse of to_native() for the same sizes.
    """
    if not (is_measured(display_size) and is_measured(native_size)):
        return None

    x, y = native_point
    return (
        float(x) * display_size[0] / native_size[0],
        float(y) * display_size[1] / native_size[1],
    )


def scale_factor(display_size: Size, native_size: Size) -> Optional[float]:
    """Rendered width divided by natural width, or None if unmeasured."""
    if not (is_measured(display_size) and is_measured(native_size)):
        return None
    return float(display_size[0]) / float(native_size[0])


def cursor_diameter(
    brush_diameter: float,
    display_size: Size,
    native_size: Size,
) -> Optional[float]:
    """Size of the on-screen brush cursor that covers brush_diameter native pixels."""
    factor = scale_factor(display_size, native_size)
    if factor is None:
        return None
    return float(brush_diameter) * factor
