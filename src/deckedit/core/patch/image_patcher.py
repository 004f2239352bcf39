"""Bind image bytes to a slide.

Either an existing picture near the requested position is repointed at the new
media (its relationship is retargeted and its transform rewritten), or a new
``p:pic`` is appended to the shape tree with a fresh relationship.

The slide markup goes in and comes out as a string; the media part, the slide
rels part and ``[Content_Types].xml`` are written to the package directly.
"""

from __future__ import annotations

import io
import posixpath
import re
from dataclasses import dataclass
from typing import Literal, Optional

from lxml import etree
from PIL import Image, UnidentifiedImageError

from deckedit.core.model import Element
from deckedit.core.naming import unique_stamp
from deckedit.core.package.pptx_package import PptxPackage, slide_rels_path
from deckedit.core.package.relationships import (
    IMAGE_REL_TYPE,
    add_relationship,
    new_relationships_document,
    next_relationship_id,
    relationship_ids,
    retarget_relationship,
)
from deckedit.core.patch.slide_markup import insert_into_sp_tree, next_shape_id
from deckedit.core.units import EMU_PER_INCH, clean_emu, to_emu
from deckedit.exceptions import ImagePatchError, SlideXmlError
from deckedit.logging import get_logger

log = get_logger(__name__)

_R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_SCREEN_DPI = 96.0

_PIC_RE = re.compile(r"<p:pic\b.*?</p:pic>", re.DOTALL)
_EMBED_RE = re.compile(r'<a:blip\b[^>]*?\br:(?:embed|link)="([^"]*)"')
_OFF_RE = re.compile(r'<a:off\b[^>]*?\bx="([^"]*)"[^>]*?\by="([^"]*)"[^>]*/>')
_XFRM_EXT_RE = re.compile(r'<a:ext\b[^>]*?\bcx="[^"]*"[^>]*/>')


@dataclass(frozen=True)
class ImagePlacement:
    slide_xml: str
    media_path: str
    rel_id: str
    mode: Literal["updated", "inserted"]


def image_size(image_bytes: bytes) -> Optional[tuple[int, int]]:
    """Pixel (width, height), or None when Pillow cannot read the data."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as im:
            w, h = im.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        log.debug("image_size_unreadable", error=str(exc))
        return None
    if w <= 0 or h <= 0:
        return None
    return w, h


def _positive(v: Optional[float]) -> Optional[float]:
    if v is None:
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if f > 0 else None


def resolve_geometry(
    image_bytes: bytes,
    *,
    x: float,
    y: float,
    width: Optional[float],
    height: Optional[float],
    original: Optional[Element] = None,
) -> tuple[int, int, int, int]:
    """EMU (x, y, cx, cy) for the picture.

    The original element's geometry wins when there is one. Otherwise a single
    missing dimension is derived from the image's aspect ratio.
    """
    if original is not None:
        x, y = original.x, original.y
        width = original.width if _positive(original.width) else width
        height = original.height if _positive(original.height) else height

    w, h = _positive(width), _positive(height)
    if w is None or h is None:
        size = image_size(image_bytes)
        if size is not None:
            px_w, px_h = size
            if w is not None:
                h = w * px_h / px_w
            elif h is not None:
                w = h * px_w / px_h
            else:
                w, h = px_w / _SCREEN_DPI, px_h / _SCREEN_DPI
        w = w if w is not None else 1.0
        h = h if h is not None else 1.0
    return to_emu(x), to_emu(y), to_emu(w), to_emu(h)


def _pic_fragment(shape_id: int, rel_id: str, x: int, y: int, cx: int, cy: int) -> str:
    return (
        "<p:pic><p:nvPicPr>"
        f'<p:cNvPr id="{shape_id}" name="Picture {shape_id}"/>'
        '<p:cNvPicPr><a:picLocks noChangeAspect="1"/></p:cNvPicPr><p:nvPr/>'
        "</p:nvPicPr>"
        f'<p:blipFill><a:blip r:embed="{rel_id}"/><a:stretch><a:fillRect/></a:stretch></p:blipFill>'
        f'<p:spPr><a:xfrm><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
        '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></p:spPr>'
        "</p:pic>"
    )


def _ensure_r_namespace(slide_xml: str) -> str:
    m = re.search(r"<p:sld\b[^>]*>", slide_xml)
    if m is None or "xmlns:r=" in m.group(0):
        return slide_xml
    new_tag = m.group(0)[:-1] + f' xmlns:r="{_R_NS}">'
    return slide_xml[: m.start()] + new_tag + slide_xml[m.end():]


def _find_existing_picture(
    slide_xml: str, probe_x: int, probe_y: int, tolerance_emu: float, known_ids: set[str]
) -> Optional[tuple[re.Match[str], str]]:
    for m in _PIC_RE.finditer(slide_xml):
        pic = m.group(0)
        sp_pr = pic.find("<p:spPr")
        embed = _EMBED_RE.search(pic)
        if sp_pr < 0 or embed is None or embed.group(1) not in known_ids:
            continue
        off = _OFF_RE.search(pic, sp_pr)
        if off is None:
            continue
        dx = abs(clean_emu(off.group(1)) - probe_x)
        dy = abs(clean_emu(off.group(2)) - probe_y)
        if dx < tolerance_emu and dy < tolerance_emu:
            return m, embed.group(1)
    return None


def _rewrite_pic_transform(pic: str, x: int, y: int, cx: int, cy: int) -> str:
    sp_pr = pic.find("<p:spPr")
    head, tail = pic[:sp_pr], pic[sp_pr:]
    tail = _OFF_RE.sub(f'<a:off x="{x}" y="{y}"/>', tail, count=1)
    tail = _XFRM_EXT_RE.sub(f'<a:ext cx="{cx}" cy="{cy}"/>', tail, count=1)
    return head + tail


def _check_parses(slide_xml: str) -> bool:
    try:
        etree.fromstring(slide_xml.encode("utf-8"))
    except etree.XMLSyntaxError:
        return False
    return True


def place_image(
    package: PptxPackage,
    slide_number: int,
    slide_xml: str,
    image_bytes: bytes,
    ext: str,
    *,
    x: float,
    y: float,
    width: Optional[float] = None,
    height: Optional[float] = None,
    original: Optional[Element] = None,
    tolerance: float = 0.1,
) -> ImagePlacement:
    """Write the image into the package and bind it to slide *slide_number*.

    Raises SlideXmlError when the slide markup does not parse; nothing is
    written to the package in that case.
    """
    if not image_bytes:
        raise ImagePatchError(f"slide{slide_number}", "image data is empty")
    ext = (ext or "png").lower().lstrip(".")

    if not _check_parses(slide_xml):
        log.warning("image_slide_unparseable", slide=slide_number)
        raise SlideXmlError(slide_number, "markup does not parse")

    media_path = package.unique_media_path("image", ext, unique_stamp())
    package.write(media_path, image_bytes)
    package.ensure_default_content_type(ext)
    target = f"../media/{posixpath.basename(media_path)}"

    ex, ey, cx, cy = resolve_geometry(
        image_bytes, x=x, y=y, width=width, height=height, original=original
    )

    rels_name = slide_rels_path(slide_number)
    if package.exists(rels_name):
        rels_xml = package.read_text(rels_name)
    else:
        log.info("slide_rels_created", slide=slide_number)
        rels_xml = new_relationships_document()

    probe_x = to_emu(original.x if original is not None else x)
    probe_y = to_emu(original.y if original is not None else y)
    hit = _find_existing_picture(
        slide_xml, probe_x, probe_y, tolerance * EMU_PER_INCH, relationship_ids(rels_xml)
    )
    if hit is not None:
        m, rel_id = hit
        package.write(rels_name, retarget_relationship(rels_xml, rel_id, target))
        new_pic = _rewrite_pic_transform(m.group(0), ex, ey, cx, cy)
        log.info("image_updated", slide=slide_number, rel_id=rel_id, media=media_path)
        return ImagePlacement(
            slide_xml=slide_xml[: m.start()] + new_pic + slide_xml[m.end():],
            media_path=media_path,
            rel_id=rel_id,
            mode="updated",
        )

    rel_id = next_relationship_id(rels_xml)
    fragment = _pic_fragment(next_shape_id(slide_xml), rel_id, ex, ey, cx, cy)
    new_xml = insert_into_sp_tree(_ensure_r_namespace(slide_xml), fragment)
    if new_xml is None:
        package.delete(media_path)
        raise SlideXmlError(slide_number, "slide has no shape tree")

    package.write(rels_name, add_relationship(rels_xml, rel_id, IMAGE_REL_TYPE, target))
    log.info("image_inserted", slide=slide_number, rel_id=rel_id, media=media_path)
    return ImagePlacement(slide_xml=new_xml, media_path=media_path, rel_id=rel_id, mode="inserted")
