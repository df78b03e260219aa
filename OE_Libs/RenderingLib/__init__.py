"""
RenderingLib - Result display and export for Open Eraser
"""

from OE_Libs.RenderingLib.result_renderer import (
    ExportConfig,
    RenderedResult,
    ResultRenderer,
)

__all__ = [
    "ExportConfig",
    "RenderedResult",
    "ResultRenderer",
]
