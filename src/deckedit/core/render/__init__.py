from __future__ import annotations

from .pptx_renderer import RenderReport, render_pptx, render_template

__all__ = [
    "RenderReport",
    "render_pptx",
    "render_template",
]
