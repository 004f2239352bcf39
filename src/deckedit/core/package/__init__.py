"""OOXML package access.

Public API:

    PptxPackage.from_bytes(data) / PptxPackage.open(path)
    RelationshipTable.for_slide(package, n)
    resolve_media_path(names, source_part, target)
"""

from __future__ import annotations

from .media_paths import is_likely_image, resolve_media_path
from .pptx_package import PptxPackage, slide_path, slide_rels_path
from .relationships import Relationship, RelationshipTable, parse_relationships

__all__ = [
    "PptxPackage",
    "Relationship",
    "RelationshipTable",
    "is_likely_image",
    "parse_relationships",
    "resolve_media_path",
    "slide_path",
    "slide_rels_path",
]
