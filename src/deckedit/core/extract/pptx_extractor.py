from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence
from xml.sax.saxutils import unescape

from lxml import etree
from pptx.oxml.ns import qn

from deckedit.core.model import (
    Element,
    ImageElement,
    ShapeElement,
    Slide,
    TableElement,
    TextElement,
    geometry_from_emu,
)
from deckedit.core.naming import unique_stamp
from deckedit.core.package.media_paths import is_likely_image, resolve_media_path
from deckedit.core.package.pptx_package import PptxPackage, slide_path
from deckedit.core.package.relationships import RelationshipTable
from deckedit.core.units import EMU_PER_INCH, clean_emu
from deckedit.exceptions import PackageError, SlideXmlError
from deckedit.logging import get_logger

log = get_logger(__name__)

_SHAPE_TAGS = (qn("p:sp"), qn("p:pic"), qn("p:cxnSp"), qn("p:graphicFrame"))

# Tried in order; the first that exists on the node wins.
_XFRM_PATHS = ("p:spPr/a:xfrm", "p:xfrm", "a:xfrm")

_DEFAULT_OFFSET = (0, 0)
_DEFAULT_EXTENT = (EMU_PER_INCH, EMU_PER_INCH)

# <a:t> or <a:t attr...>, never <a:tbl>/<a:tc>/<a:tcPr>
_RAW_TEXT_RE = re.compile(r"<a:t(?:\s[^>]*)?>([^<]*)</a:t>")
_ENTITIES = {"&quot;": '"', "&apos;": "'"}


def _q(path: str) -> str:
    return "/".join(qn(p) for p in path.split("/"))


_XFRM_QPATHS = tuple(_q(p) for p in _XFRM_PATHS)


# ---------------------------------------------------------------------------
# Media sink
# ---------------------------------------------------------------------------


@dataclass
class UploadMediaSink:
    """Writes extracted picture bytes next to the uploaded deck.

    Filenames are ``slide{N}_image{idx}_{stamp}.{ext}``; ``url_prefix`` is what
    the editing UI uses to fetch them.
    """

    directory: Path
    url_prefix: str = "/uploads"

    def save(self, data: bytes, *, slide_number: int, idx: int, ext: str) -> tuple[str, str]:
        self.directory.mkdir(parents=True, exist_ok=True)
        ext = (ext or "png").lower()
        name = f"slide{slide_number}_image{idx}_{unique_stamp()}.{ext}"
        (self.directory / name).write_bytes(data)
        return name, f"{self.url_prefix.rstrip('/')}/{name}"


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------


def _transform(node: Any) -> tuple[int, int, int, int]:
    xfrm = None
    for path in _XFRM_QPATHS:
        xfrm = node.find(path)
        if xfrm is not None:
            break
    if xfrm is None:
        return (*_DEFAULT_OFFSET, *_DEFAULT_EXTENT)

    off = xfrm.find(qn("a:off"))
    ext = xfrm.find(qn("a:ext"))
    x = clean_emu(off.get("x")) if off is not None else _DEFAULT_OFFSET[0]
    y = clean_emu(off.get("y")) if off is not None else _DEFAULT_OFFSET[1]
    cx = clean_emu(ext.get("cx"), allow_negative=False) if ext is not None else _DEFAULT_EXTENT[0]
    cy = clean_emu(ext.get("cy"), allow_negative=False) if ext is not None else _DEFAULT_EXTENT[1]
    return x, y, cx, cy


def _paragraph_text(p: Any) -> Optional[str]:
    """Runs first, then direct ``a:t`` children. None when there is no text node."""
    pieces: List[str] = []
    for r in p.findall(qn("a:r")):
        t = r.find(qn("a:t"))
        if t is not None and t.text:
            pieces.append(t.text)
    for t in p.findall(qn("a:t")):
        if t.text:
            pieces.append(t.text)
    if not pieces:
        return None
    return "".join(pieces)


def _text_body(container: Any) -> str:
    if container is None:
        return ""
    paras = [_paragraph_text(p) for p in container.findall(qn("a:p"))]
    return "\n".join(p for p in paras if p is not None)


def _shape_text(sp: Any) -> str:
    return _text_body(sp.find(qn("p:txBody")))


def _table_node(frame: Any) -> Any:
    return frame.find(_q("a:graphic/a:graphicData/a:tbl"))


def _table_grid(tbl: Any) -> List[List[str]]:
    grid: List[List[str]] = []
    for tr in tbl.findall(qn("a:tr")):
        row = []
        for tc in tr.findall(qn("a:tc")):
            row.append("".join(t.text or "" for t in tc.iter(qn("a:t"))))
        grid.append(row)
    return grid


def _table_text(tbl: Any) -> str:
    """Rows joined with newlines, non-empty cells joined with `` | ``."""
    lines: List[str] = []
    for tr in tbl.findall(qn("a:tr")):
        cells = []
        for tc in tr.findall(qn("a:tc")):
            cell = _text_body(tc.find(qn("a:txBody")))
            if cell:
                cells.append(cell)
        if cells:
            lines.append(" | ".join(cells))
    return "\n".join(lines)


def _blip_rel_id(pic: Any) -> Optional[str]:
    blip = pic.find(_q("p:blipFill/a:blip"))
    if blip is None:
        return None
    return blip.get(qn("r:embed")) or blip.get(qn("r:link"))


# ---------------------------------------------------------------------------
# Per-slide extraction
# ---------------------------------------------------------------------------


def _image_element(
    pic: Any,
    idx: int,
    geom: dict[str, float],
    rels: RelationshipTable,
    package: PptxPackage,
    slide_number: int,
    media_sink: Optional[UploadMediaSink],
) -> Optional[ImageElement]:
    rel_id = _blip_rel_id(pic)
    if not rel_id:
        return None
    hit = rels.lookup(rel_id)
    if hit is None:
        log.warning("image_rel_missing", slide=slide_number, rel_id=rel_id)
        return None
    rel, source_part = hit
    if rel.is_external:
        log.debug("image_external_skipped", slide=slide_number, rel_id=rel_id, target=rel.target)
        return None
    if not is_likely_image(rel.target):
        log.debug("non_image_reference_skipped", slide=slide_number, target=rel.target)
        return None

    media = resolve_media_path(package.names(), source_part, rel.target)
    if media is None:
        log.warning("image_unresolved", slide=slide_number, rel_id=rel_id, target=rel.target)
        return None

    if media_sink is None:
        return ImageElement(id=f"image-{idx}", src=media, **geom)

    ext = posixpath.splitext(media)[1].lstrip(".") or "png"
    filename, full_path = media_sink.save(
        package.read_bytes(media), slide_number=slide_number, idx=idx, ext=ext
    )
    return ImageElement(id=f"image-{idx}", src=filename, full_path=full_path, **geom)


def salvage_text_elements(raw_xml: str) -> List[Element]:
    """Best-effort text recovery from markup whose structure is not usable."""
    out: List[Element] = []
    for i, m in enumerate(_RAW_TEXT_RE.finditer(raw_xml)):
        text = unescape(m.group(1), _ENTITIES)
        if len(text) <= 1 or not text.strip():
            continue
        out.append(
            TextElement(
                id=f"alt-text-{i}",
                content=text,
                original_content=text,
                x=1 + i * 0.5,
                y=1 + i * 0.5,
                width=8.0,
                height=1.0,
            )
        )
    return out


def extract_slide_elements(
    slide_xml: bytes | str,
    rels: RelationshipTable,
    package: PptxPackage,
    slide_number: int,
    *,
    media_sink: Optional[UploadMediaSink] = None,
) -> List[Element]:
    """Element list for one slide, in shape-tree order.

    ``idx`` in element ids is the position among the collected shape-tree
    children (``p:sp``, ``p:pic``, ``p:cxnSp``, ``p:graphicFrame``).
    """
    raw = slide_xml if isinstance(slide_xml, bytes) else slide_xml.encode("utf-8")
    try:
        root = etree.fromstring(raw)
    except etree.XMLSyntaxError as exc:
        log.warning("slide_xml_unparseable", slide=slide_number, error=str(exc))
        return salvage_text_elements(raw.decode("utf-8", errors="replace"))

    sp_tree = None
    if root.tag == qn("p:sld"):
        sp_tree = root.find(_q("p:cSld/p:spTree"))
    if sp_tree is None:
        log.info("slide_structure_unexpected", slide=slide_number, root=str(root.tag))
        return salvage_text_elements(raw.decode("utf-8", errors="replace"))

    nodes = [child for child in sp_tree if child.tag in _SHAPE_TAGS]
    elements: List[Element] = []

    for idx, node in enumerate(nodes):
        geom = geometry_from_emu(*_transform(node))

        if node.tag == qn("p:pic"):
            if _blip_rel_id(node):
                img = _image_element(node, idx, geom, rels, package, slide_number, media_sink)
                if img is not None:
                    elements.append(img)
                continue
            elements.append(ShapeElement(id=f"shape-{idx}", **geom))
            continue

        if node.tag == qn("p:graphicFrame"):
            tbl = _table_node(node)
            if tbl is not None:
                elements.append(TableElement(id=f"table-{idx}", table_data=_table_grid(tbl), **geom))
                text = _table_text(tbl)
                if text.strip():
                    elements.append(
                        TextElement(id=f"text-{idx}", content=text, original_content=text, **geom)
                    )
                continue
            elements.append(ShapeElement(id=f"shape-{idx}", **geom))
            continue

        if node.tag == qn("p:sp"):
            text = _shape_text(node)
            if text.strip():
                elements.append(
                    TextElement(id=f"text-{idx}", content=text, original_content=text, **geom)
                )
                continue

        elements.append(ShapeElement(id=f"shape-{idx}", **geom))

    return elements


# ---------------------------------------------------------------------------
# Whole-package extraction
# ---------------------------------------------------------------------------


def extract_slides(
    package: PptxPackage,
    *,
    media_sink: Optional[UploadMediaSink] = None,
    slide_numbers: Optional[Sequence[int]] = None,
) -> List[Slide]:
    """One Slide per ``ppt/slides/slideN.xml``; a failing slide yields no elements."""
    numbers = list(slide_numbers) if slide_numbers is not None else package.slide_numbers()
    slides: List[Slide] = []
    for n in numbers:
        if not package.has_slide(n):
            log.warning("slide_missing", slide=n)
            continue
        try:
            rels = RelationshipTable.for_slide(package, n)
            elements = extract_slide_elements(
                package.read_bytes(slide_path(n)), rels, package, n, media_sink=media_sink
            )
        except (PackageError, SlideXmlError, OSError, ValueError) as exc:
            log.error("slide_extract_failed", slide=n, error=str(exc))
            elements = []
        slides.append(Slide(id=n, elements=elements))
    log.info(
        "extracted",
        source=package.source,
        slides=len(slides),
        elements=sum(len(s.elements) for s in slides),
    )
    return slides


def extract_pptx(
    source: str | Path | bytes,
    *,
    media_sink: Optional[UploadMediaSink] = None,
) -> List[Slide]:
    if isinstance(source, (bytes, bytearray)):
        package = PptxPackage.from_bytes(bytes(source))
    else:
        package = PptxPackage.open(source)
    return extract_slides(package, media_sink=media_sink)
