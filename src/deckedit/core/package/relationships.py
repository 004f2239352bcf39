"""Relationship parts (``*.rels``): parsing, merged lookup and string-level edits.

Edits go through regex splicing rather than re-serialization so that untouched
relationships keep their exact bytes.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from xml.sax.saxutils import quoteattr

from lxml import etree
from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckedit.core.package.pptx_package import (
    PRESENTATION_RELS_PATH,
    PptxPackage,
    rels_path_for,
    slide_path,
    slide_rels_path,
)
from deckedit.logging import get_logger

log = get_logger(__name__)

_PKG_RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"

IMAGE_REL_TYPE = RT.IMAGE
SLIDE_LAYOUT_REL_TYPE = RT.SLIDE_LAYOUT

_RID_NUM_RE = re.compile(r'\bId="rId(\d+)"')


@dataclass(frozen=True)
class Relationship:
    id: str
    type: str
    target: str
    target_mode: str = "Internal"

    @property
    def is_external(self) -> bool:
        return self.target_mode.lower() == "external"


def parse_relationships(xml: bytes | str) -> List[Relationship]:
    """Parse a ``.rels`` document. Malformed input yields an empty list."""
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    try:
        root = etree.fromstring(xml)
    except etree.XMLSyntaxError as exc:
        log.warning("rels_parse_failed", error=str(exc))
        return []
    out: List[Relationship] = []
    for el in root:
        if not isinstance(el.tag, str) or etree.QName(el).localname != "Relationship":
            continue
        rid = el.get("Id")
        target = el.get("Target")
        if not rid or target is None:
            continue
        out.append(
            Relationship(
                id=rid,
                type=el.get("Type") or "",
                target=target,
                target_mode=el.get("TargetMode") or "Internal",
            )
        )
    return out


def resolve_part_path(source_part: str, target: str) -> str:
    """Resolve a relationship target against the directory of *source_part*.

    ``("ppt/slides/slide1.xml", "../media/image1.png")`` -> ``ppt/media/image1.png``.
    Absolute targets (``/ppt/...``) are taken from the package root.
    """
    target = target.replace("\\", "/")
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base = posixpath.dirname(source_part)
    joined = posixpath.normpath(posixpath.join(base, target))
    return joined.lstrip("/")


@dataclass
class RelationshipTable:
    """Merged rId lookup for one slide.

    Scopes are consulted in order: the slide's own rels, the presentation rels,
    then the rels of the layout the slide is based on. ``lookup`` returns the
    relationship together with the part whose directory the target is
    relative to.
    """

    slide_number: int
    scopes: List[tuple[str, Dict[str, Relationship]]] = field(default_factory=list)

    @classmethod
    def for_slide(cls, package: PptxPackage, slide_number: int) -> "RelationshipTable":
        table = cls(slide_number=slide_number)

        slide_part = slide_path(slide_number)
        slide_rels: Dict[str, Relationship] = {}
        rels_name = slide_rels_path(slide_number)
        if package.exists(rels_name):
            slide_rels = {r.id: r for r in parse_relationships(package.read_bytes(rels_name))}
        else:
            log.debug("slide_rels_missing", slide=slide_number)
        table.scopes.append((slide_part, slide_rels))

        if package.exists(PRESENTATION_RELS_PATH):
            pres = {r.id: r for r in parse_relationships(package.read_bytes(PRESENTATION_RELS_PATH))}
            table.scopes.append(("ppt/presentation.xml", pres))

        layout_part = _layout_part_for(slide_part, slide_rels)
        if layout_part:
            layout_rels_name = rels_path_for(layout_part)
            if package.exists(layout_rels_name):
                layout = {
                    r.id: r for r in parse_relationships(package.read_bytes(layout_rels_name))
                }
                table.scopes.append((layout_part, layout))
        return table

    def lookup(self, rel_id: str) -> Optional[tuple[Relationship, str]]:
        for source_part, rels in self.scopes:
            rel = rels.get(rel_id)
            if rel is not None:
                return rel, source_part
        return None

    def slide_relationships(self) -> Dict[str, Relationship]:
        return self.scopes[0][1] if self.scopes else {}


def _layout_part_for(slide_part: str, slide_rels: Dict[str, Relationship]) -> Optional[str]:
    for rel in slide_rels.values():
        if rel.type == SLIDE_LAYOUT_REL_TYPE and not rel.is_external:
            return resolve_part_path(slide_part, rel.target)
    return None


# ---------------------------------------------------------------------------
# String-level edits
# ---------------------------------------------------------------------------


def new_relationships_document(relationships: Optional[List[Relationship]] = None) -> str:
    body = "".join(_relationship_tag(r.id, r.type, r.target, r.target_mode) for r in relationships or [])
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<Relationships xmlns="{_PKG_RELS_NS}">{body}</Relationships>'
    )


def next_relationship_id(rels_xml: str) -> str:
    """``rId{max+1}`` over the numeric rIds present (``rId1`` when none)."""
    nums = [int(m.group(1)) for m in _RID_NUM_RE.finditer(rels_xml)]
    return f"rId{max(nums) + 1 if nums else 1}"


def _relationship_tag(rel_id: str, rel_type: str, target: str, target_mode: str = "Internal") -> str:
    mode = "" if target_mode == "Internal" else f" TargetMode={quoteattr(target_mode)}"
    return (
        f"<Relationship Id={quoteattr(rel_id)} Type={quoteattr(rel_type)} "
        f"Target={quoteattr(target)}{mode}/>"
    )


def add_relationship(rels_xml: str, rel_id: str, rel_type: str, target: str) -> str:
    tag = _relationship_tag(rel_id, rel_type, target)
    if "</Relationships>" in rels_xml:
        return rels_xml.replace("</Relationships>", tag + "</Relationships>", 1)
    # self-closing root: <Relationships .../>
    m = re.search(r"<Relationships\b([^>]*)/>", rels_xml)
    if m:
        return rels_xml[: m.start()] + f"<Relationships{m.group(1)}>{tag}</Relationships>" + rels_xml[m.end():]
    log.warning("rels_document_malformed", rel_id=rel_id)
    return new_relationships_document([Relationship(rel_id, rel_type, target)])


def retarget_relationship(rels_xml: str, rel_id: str, target: str) -> str:
    """Point relationship *rel_id* at *target*. Unknown ids leave the input unchanged."""
    tag_re = re.compile(r'<Relationship\b[^>]*\bId="%s"[^>]*/?>' % re.escape(rel_id))
    m = tag_re.search(rels_xml)
    if not m:
        log.debug("rel_not_found", rel_id=rel_id)
        return rels_xml
    tag = m.group(0)
    new_tag, n = re.subn(r'\bTarget="[^"]*"', lambda _m: "Target=" + quoteattr(target), tag, count=1)
    if n == 0:
        return rels_xml
    # an image retarget always points inside the package
    new_tag = re.sub(r'\s+TargetMode="[^"]*"', "", new_tag)
    return rels_xml[: m.start()] + new_tag + rels_xml[m.end():]


def relationship_ids(rels_xml: str) -> set[str]:
    return set(re.findall(r'\bId="([^"]+)"', rels_xml))


__all__ = [
    "IMAGE_REL_TYPE",
    "Relationship",
    "RelationshipTable",
    "add_relationship",
    "new_relationships_document",
    "next_relationship_id",
    "parse_relationships",
    "relationship_ids",
    "resolve_part_path",
    "retarget_relationship",
]
