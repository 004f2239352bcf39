"""Raster rendering for shapes that have no counterpart in the original deck.

A newly added shape is placed as a picture: a segmented ring chart drawn with
Pillow from the element's ``chartData`` (``segments`` of ``{color,
percentage}`` plus an optional ``centerText``).
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from PIL import Image, ImageColor, ImageDraw, ImageFont

from deckedit.logging import get_logger

log = get_logger(__name__)

DEFAULT_SEGMENTS: List[Dict[str, Any]] = [
    {"color": "red", "percentage": 45},
    {"color": "blue", "percentage": 5},
    {"color": "green", "percentage": 30},
    {"color": "orange", "percentage": 20},
]

_INNER_RATIO = 0.4
_MARGIN_PX = 5
_OUTLINE = "black"


def _color(value: Any, fallback: str = "gray") -> tuple[int, int, int]:
    s = str(value or "").strip()
    if s and not s.startswith("#") and len(s) in (3, 6) and all(c in "0123456789abcdefABCDEF" for c in s):
        s = "#" + s
    try:
        rgb = ImageColor.getrgb(s)
    except ValueError:
        rgb = ImageColor.getrgb(fallback)
    return rgb[0], rgb[1], rgb[2]


def _segments(raw: Optional[Sequence[Mapping[str, Any]]]) -> List[tuple[tuple[int, int, int], float]]:
    out: List[tuple[tuple[int, int, int], float]] = []
    for seg in raw or ():
        if not isinstance(seg, Mapping):
            continue
        try:
            pct = float(seg.get("percentage", 0))
        except (TypeError, ValueError):
            continue
        if pct > 0:
            out.append((_color(seg.get("color")), pct))
    if not out:
        out = [(_color(s["color"]), float(s["percentage"])) for s in DEFAULT_SEGMENTS]
    return out


def render_donut_chart(
    path: Optional[str | Path] = None,
    *,
    size: int = 600,
    segments: Optional[Sequence[Mapping[str, Any]]] = None,
    center_text: str = "",
) -> bytes:
    """Draw the ring chart as PNG. Writes to *path* when given; always returns the bytes."""
    size = max(int(size), 16)
    im = Image.new("RGBA", (size, size), (255, 255, 255, 0))
    draw = ImageDraw.Draw(im)

    c = size / 2
    r = c - _MARGIN_PX
    inner = r * _INNER_RATIO
    box = (c - r, c - r, c + r, c + r)

    # Percentages are of a full turn; a short total leaves a gap.
    start = -90.0
    for rgb, pct in _segments(segments):
        sweep = pct / 100.0 * 360.0
        draw.pieslice(box, start, start + sweep, fill=rgb, outline=_OUTLINE)
        start += sweep

    draw.ellipse(box, outline=_OUTLINE)
    draw.ellipse((c - inner, c - inner, c + inner, c + inner), fill="white", outline=_OUTLINE)

    if center_text:
        font = _font(int(inner / 2))
        left, top, right, bottom = draw.textbbox((0, 0), center_text, font=font)
        draw.text(
            (c - (right - left) / 2 - left, c - (bottom - top) / 2 - top),
            center_text,
            fill="black",
            font=font,
        )

    buf = io.BytesIO()
    im.save(buf, format="PNG")
    data = buf.getvalue()
    if path is not None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
    log.debug("donut_rendered", size=size, path=str(path) if path is not None else None)
    return data


def _font(px: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    return ImageFont.load_default(size=max(px, 8))
