"""
MaskingLib - Mask capture for Open Eraser

This module provides the pixel buffer type, display/native coordinate
mapping and the capture surface that paints brush strokes into a mask.
"""

from OE_Libs.MaskingLib.pixel_buffers import Dims, PixelBuffer
from OE_Libs.MaskingLib.coordinate_mapper import (
    cursor_diameter,
    is_measured,
    scale_factor,
    to_display,
    to_native,
)
from OE_Libs.MaskingLib.capture_surface import BrushStroke, CaptureSurface

__all__ = [
    "Dims",
    "PixelBuffer",
    "cursor_diameter",
    "is_measured",
    "scale_factor",
    "to_display",
    "to_native",
    "BrushStroke",
    "CaptureSurface",
]
