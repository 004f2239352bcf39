"""Slide element extraction.

    from deckedit.core.extract import extract_pptx
"""

from __future__ import annotations

from .pptx_extractor import extract_pptx, extract_slide_elements, extract_slides

__all__ = [
    "extract_pptx",
    "extract_slide_elements",
    "extract_slides",
]
