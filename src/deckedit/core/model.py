"""Slide element model shared by the extractor, the patchers and the JSON boundary.

Positions and sizes are inches (float). The JSON form uses the camelCase keys
the editing UI exchanges (``originalContent``, ``fullPath``, ``tableData``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from deckedit.core.units import to_inches

SLIDE_WIDTH_IN = 10.0
SLIDE_HEIGHT_IN = 7.5


def _num(v: Any, default: float | None = 0.0) -> float | None:
    if v is None or isinstance(v, bool):
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


@dataclass
class Element:
    type: ClassVar[str] = "shape"

    id: str
    x: float = 0.0
    y: float = 0.0
    width: float | None = None
    height: float | None = None

    def _base_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }

    def to_dict(self) -> dict[str, Any]:
        return self._base_dict()


@dataclass
class TextElement(Element):
    type: ClassVar[str] = "text"

    content: str = ""
    original_content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d["content"] = self.content
        d["originalContent"] = self.original_content
        return d


@dataclass
class ImageElement(Element):
    type: ClassVar[str] = "image"

    src: str = ""
    full_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d["src"] = self.src
        if self.full_path is not None:
            d["fullPath"] = self.full_path
        return d


@dataclass
class TableElement(Element):
    type: ClassVar[str] = "table"

    table_data: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d["tableData"] = [list(row) for row in self.table_data]
        return d


@dataclass
class ShapeElement(Element):
    type: ClassVar[str] = "shape"

    chart_data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        if self.chart_data is not None:
            d["chartData"] = self.chart_data
        return d


_ELEMENT_TYPES: dict[str, type[Element]] = {
    "text": TextElement,
    "image": ImageElement,
    "table": TableElement,
    "shape": ShapeElement,
}


def element_from_dict(d: dict[str, Any]) -> Element:
    """Build an Element from its JSON form. Unknown types fall back to shape."""
    kind = str(d.get("type") or "shape")
    cls = _ELEMENT_TYPES.get(kind, ShapeElement)
    common: dict[str, Any] = {
        "id": str(d.get("id") if d.get("id") is not None else ""),
        "x": _num(d.get("x")),
        "y": _num(d.get("y")),
        "width": _num(d.get("width"), None),
        "height": _num(d.get("height"), None),
    }
    if cls is TextElement:
        content = d.get("content")
        original = d.get("originalContent")
        return TextElement(
            **common,
            content="" if content is None else str(content),
            original_content=None if original is None else str(original),
        )
    if cls is ImageElement:
        return ImageElement(
            **common,
            src=str(d.get("src") or ""),
            full_path=d.get("fullPath"),
        )
    if cls is TableElement:
        rows = d.get("tableData")
        grid: list[list[str]] = []
        if isinstance(rows, list):
            for row in rows:
                if isinstance(row, list):
                    grid.append(["" if c is None else str(c) for c in row])
        return TableElement(**common, table_data=grid)
    chart = d.get("chartData")
    return ShapeElement(**common, chart_data=chart if isinstance(chart, dict) else None)


def geometry_from_emu(off_x: int, off_y: int, cx: int, cy: int) -> dict[str, float]:
    return {
        "x": to_inches(off_x),
        "y": to_inches(off_y),
        "width": to_inches(cx),
        "height": to_inches(cy),
    }


@dataclass
class Slide:
    id: int
    elements: list[Element] = field(default_factory=list)
    width: float = SLIDE_WIDTH_IN
    height: float = SLIDE_HEIGHT_IN

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "elements": [el.to_dict() for el in self.elements],
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Slide":
        elements = [element_from_dict(e) for e in d.get("elements") or [] if isinstance(e, dict)]
        return cls(
            id=int(d.get("id") or 0),
            elements=elements,
            width=_num(d.get("width"), SLIDE_WIDTH_IN) or SLIDE_WIDTH_IN,
            height=_num(d.get("height"), SLIDE_HEIGHT_IN) or SLIDE_HEIGHT_IN,
        )
