"""In-place patchers for slide markup.

Each patcher works on the serialized slide XML (and, for images, the package)
and leaves everything it does not target byte-for-byte intact.
"""

from __future__ import annotations

from .image_patcher import ImagePlacement, place_image
from .matcher import match_element
from .normalizer import normalize_package, normalize_transforms
from .table_injector import default_grid, insert_table, replace_table
from .text_patcher import TextPatchResult, replace_text

__all__ = [
    "ImagePlacement",
    "TextPatchResult",
    "default_grid",
    "insert_table",
    "match_element",
    "normalize_package",
    "normalize_transforms",
    "place_image",
    "replace_table",
    "replace_text",
]
