"""
OE_Libs - Open Eraser Library Modules

This package contains core functionality for the Open Eraser project,
organized into specialized sub-packages:

- MaskingLib: Pixel buffers, coordinate mapping and mask capture
- ProcessingLib: Worker, message protocol, backend lifecycle and job coordination
- RenderingLib: Result rendering and export
- EditorLib: PyQt5 eraser window
"""

__version__ = "0.1.0"
