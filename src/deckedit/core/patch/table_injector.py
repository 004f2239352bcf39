"""Table graphic frames: build, insert and replace.

Tables are written as string fragments and spliced into the slide so the rest
of the markup is not re-serialized.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence

from deckedit.config import TableConfig
from deckedit.core.patch.slide_markup import escape_run_text, insert_into_sp_tree, next_shape_id
from deckedit.core.units import EMU_PER_INCH, clean_emu, to_emu
from deckedit.logging import get_logger

log = get_logger(__name__)

TABLE_URI = "http://schemas.openxmlformats.org/drawingml/2006/table"

_FRAME_RE = re.compile(r"<p:graphicFrame\b.*?</p:graphicFrame>", re.DOTALL)
_TBL_RE = re.compile(r"<a:tbl>.*?</a:tbl>|<a:tbl\s[^>]*>.*?</a:tbl>", re.DOTALL)
_OFF_RE = re.compile(r'<a:off\b[^>]*?\bx="([^"]*)"[^>]*?\by="([^"]*)"')
_EXT_RE = re.compile(r'<a:ext\b[^>]*?\bcx="([^"]*)"[^>]*?\bcy="([^"]*)"')


def default_grid(rows: int = 5, cols: int = 5) -> List[List[str]]:
    return [[f"Cell {r}-{c}" for c in range(1, cols + 1)] for r in range(1, rows + 1)]


def normalize_grid(grid: Any) -> List[List[str]]:
    """Rectangular grid of strings. Anything unusable becomes the default 5x5."""
    if not isinstance(grid, (list, tuple)):
        return default_grid()
    rows = [list(r) for r in grid if isinstance(r, (list, tuple))]
    width = max((len(r) for r in rows), default=0)
    if not rows or width == 0:
        return default_grid()
    out: List[List[str]] = []
    for r in rows:
        cells = ["" if c is None else str(c) for c in r]
        cells.extend([""] * (width - len(cells)))
        out.append(cells)
    return out


def _cell_xml(text: str, fill: str) -> str:
    return (
        "<a:tc><a:txBody><a:bodyPr/><a:lstStyle/>"
        f"<a:p><a:r><a:rPr lang=\"en-US\" dirty=\"0\"/><a:t>{escape_run_text(text)}</a:t></a:r></a:p>"
        "</a:txBody>"
        f"<a:tcPr><a:solidFill><a:srgbClr val=\"{fill}\"/></a:solidFill></a:tcPr></a:tc>"
    )


def build_table_xml(
    grid: Sequence[Sequence[str]],
    total_w: int,
    total_h: int,
    *,
    config: Optional[TableConfig] = None,
) -> str:
    """``a:tbl`` fragment with columns and rows dividing the given EMU extent evenly."""
    cfg = config or TableConfig()
    grid = normalize_grid(grid)
    n_rows, n_cols = len(grid), len(grid[0])
    col_w = int(round(max(total_w, 0) / n_cols))
    row_h = int(round(max(total_h, 0) / n_rows))

    parts = [
        '<a:tbl><a:tblPr firstRow="1" bandRow="1">',
        f"<a:tableStyleId>{cfg.style_id}</a:tableStyleId></a:tblPr>",
        "<a:tblGrid>",
        f'<a:gridCol w="{col_w}"/>' * n_cols,
        "</a:tblGrid>",
    ]
    for i, row in enumerate(grid):
        fill = cfg.even_row_fill if i % 2 == 0 else cfg.odd_row_fill
        parts.append(f'<a:tr h="{row_h}">')
        parts.extend(_cell_xml(cell, fill) for cell in row)
        parts.append("</a:tr>")
    parts.append("</a:tbl>")
    return "".join(parts)


def build_table_frame(
    grid: Sequence[Sequence[str]],
    shape_id: int,
    x: int,
    y: int,
    cx: int,
    cy: int,
    *,
    config: Optional[TableConfig] = None,
) -> str:
    return (
        "<p:graphicFrame><p:nvGraphicFramePr>"
        f'<p:cNvPr id="{shape_id}" name="Table {shape_id}"/>'
        '<p:cNvGraphicFramePr><a:graphicFrameLocks noGrp="1"/></p:cNvGraphicFramePr>'
        "<p:nvPr/></p:nvGraphicFramePr>"
        f'<p:xfrm><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></p:xfrm>'
        f'<a:graphic><a:graphicData uri="{TABLE_URI}">'
        f"{build_table_xml(grid, cx, cy, config=config)}"
        "</a:graphicData></a:graphic></p:graphicFrame>"
    )


def _inches_or(value: Optional[float], default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return f if f > 0 else default


def insert_table(
    slide_xml: str,
    grid: Any,
    *,
    x: Optional[float] = None,
    y: Optional[float] = None,
    width: Optional[float] = None,
    height: Optional[float] = None,
    config: Optional[TableConfig] = None,
) -> str:
    """Add a new table frame as the last shape on the slide.

    Missing or non-positive geometry falls back to the configured defaults
    (1in, 1in, 6in x 3in). A slide without a shape tree is returned unchanged.
    """
    cfg = config or TableConfig()
    ex = to_emu(x if x is not None else cfg.default_x_in)
    ey = to_emu(y if y is not None else cfg.default_y_in)
    cx = to_emu(_inches_or(width, cfg.default_width_in))
    cy = to_emu(_inches_or(height, cfg.default_height_in))

    frame = build_table_frame(
        normalize_grid(grid), next_shape_id(slide_xml), ex, ey, cx, cy, config=cfg
    )
    out = insert_into_sp_tree(slide_xml, frame)
    if out is None:
        log.warning("table_insert_no_shape_tree")
        return slide_xml
    return out


def _frame_geometry(frame: str) -> tuple[int, int, int, int]:
    off = _OFF_RE.search(frame)
    ext = _EXT_RE.search(frame)
    x = clean_emu(off.group(1)) if off else 0
    y = clean_emu(off.group(2)) if off else 0
    cx = clean_emu(ext.group(1), allow_negative=False) if ext else 0
    cy = clean_emu(ext.group(2), allow_negative=False) if ext else 0
    return x, y, cx, cy


def _table_frames(slide_xml: str) -> List[re.Match[str]]:
    return [m for m in _FRAME_RE.finditer(slide_xml) if _TBL_RE.search(m.group(0))]


def replace_table(
    slide_xml: str,
    grid: Any,
    *,
    x: Optional[float] = None,
    y: Optional[float] = None,
    tolerance: float = 1.0,
    config: Optional[TableConfig] = None,
) -> str:
    """Swap the ``a:tbl`` of an existing table frame for one built from *grid*.

    With a position, the frame whose offset is nearest to it within
    *tolerance* inches on both axes is used; otherwise the first table frame.
    Column widths and row heights divide the frame's own extent evenly.
    """
    frames = _table_frames(slide_xml)
    if not frames:
        log.warning("table_replace_no_table")
        return slide_xml

    target = frames[0]
    if x is not None and y is not None:
        probe_x, probe_y = to_emu(x), to_emu(y)
        limit = tolerance * EMU_PER_INCH
        best: Optional[tuple[int, re.Match[str]]] = None
        for m in frames:
            fx, fy, _, _ = _frame_geometry(m.group(0))
            dx, dy = abs(fx - probe_x), abs(fy - probe_y)
            if dx < limit and dy < limit and (best is None or dx + dy < best[0]):
                best = (dx + dy, m)
        if best is None:
            log.warning("table_replace_no_match", x=x, y=y)
            return slide_xml
        target = best[1]

    frame = target.group(0)
    _, _, cx, cy = _frame_geometry(frame)
    if cx <= 0 or cy <= 0:
        cfg = config or TableConfig()
        cx = cx or to_emu(cfg.default_width_in)
        cy = cy or to_emu(cfg.default_height_in)

    new_tbl = build_table_xml(grid, cx, cy, config=config)
    new_frame = _TBL_RE.sub(lambda _m: new_tbl, frame, count=1)
    return slide_xml[: target.start()] + new_frame + slide_xml[target.end():]
