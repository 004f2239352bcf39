"""Exception hierarchy.

All exceptions raised by the engine inherit from DeckEditError so callers at
the request boundary can tell "could not process at all" apart from
"processed with warnings".

Hierarchy:
    DeckEditError
    ├── PackageError
    │   ├── PackageOpenError
    │   └── PartNotFoundError
    ├── SlideXmlError
    ├── PatchError
    │   └── ImagePatchError
    ├── EditDocumentError
    └── TemplateError
        ├── TemplateValidationError
        └── TemplateNotFoundError
"""

from __future__ import annotations

from typing import Any


class DeckEditError(Exception):
    """Base exception for all deckedit errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Package layer
# ---------------------------------------------------------------------------


class PackageError(DeckEditError):
    """Base for errors raised while reading or writing the OOXML container."""


class PackageOpenError(PackageError):
    """The uploaded file is not a readable zip archive. Request-fatal."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(
            f"Cannot open presentation '{source}': {reason}",
            context={"source": source, "reason": reason},
        )
        self.source = source


class PartNotFoundError(PackageError):
    """A part (slide, rels, media) is absent from the archive."""

    def __init__(self, part: str) -> None:
        super().__init__(f"Part not found in package: {part}", context={"part": part})
        self.part = part


# ---------------------------------------------------------------------------
# Slide / patch layer
# ---------------------------------------------------------------------------


class SlideXmlError(DeckEditError):
    """A slide's markup could not be parsed; the slide is left untouched."""

    def __init__(self, slide: int, reason: str) -> None:
        super().__init__(
            f"Slide {slide} markup is malformed: {reason}",
            context={"slide": slide, "reason": reason},
        )
        self.slide = slide


class PatchError(DeckEditError):
    """Base for failures applying one edited element."""


class ImagePatchError(PatchError):
    """An image could not be read or bound to the slide."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(
            f"Cannot place image '{source}': {reason}",
            context={"source": source, "reason": reason},
        )
        self.source = source


# ---------------------------------------------------------------------------
# User input
# ---------------------------------------------------------------------------


class EditDocumentError(DeckEditError):
    """The edited slide document failed JSON or schema validation."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message, context={"validation_errors": errors or []})
        self.errors = errors or []


class TemplateError(DeckEditError):
    """Base for template store errors."""


class TemplateValidationError(TemplateError):
    """Template payload is invalid (e.g. empty name)."""


class TemplateNotFoundError(TemplateError):
    def __init__(self, template_id: str) -> None:
        super().__init__(
            f"Template not found: {template_id}", context={"template_id": template_id}
        )
        self.template_id = template_id
