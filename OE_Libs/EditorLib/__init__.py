"""
EditorLib - PyQt5 user interface for Open Eraser
"""

from OE_Libs.EditorLib.eraser_window import EraserWindow, MaskCanvas

__all__ = [
    "EraserWindow",
    "MaskCanvas",
]
