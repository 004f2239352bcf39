"""String helpers shared by the patchers that add shapes to a slide."""

from __future__ import annotations

import re
from typing import Optional
from xml.sax.saxutils import escape

_CNVPR_ID_RE = re.compile(r'<p:cNvPr\b[^>]*?\bid="(\d+)"')
_SP_TREE_CLOSE = "</p:spTree>"
# chars XML 1.0 does not allow anywhere in a document
_INVALID_XML_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def strip_invalid_xml_chars(text: str) -> str:
    return _INVALID_XML_CHARS_RE.sub("", text)


def escape_run_text(text: str) -> str:
    """*text* made safe as the body of an ``a:t`` element."""
    return escape(strip_invalid_xml_chars(text))

def next_shape_id(slide_xml: str) -> int:
    """One past the largest ``p:cNvPr/@id`` on the slide."""
    ids = [int(m.group(1)) for m in _CNVPR_ID_RE.finditer(slide_xml)]
    return max(ids) + 1 if ids else 2


def insert_into_sp_tree(slide_xml: str, fragment: str) -> Optional[str]:
    """Append *fragment* as the last shape of the shape tree.

    A trailing ``p:extLst`` stays last. Returns None when the slide has no
    ``</p:spTree>``.
    """
    close = slide_xml.rfind(_SP_TREE_CLOSE)
    if close < 0:
        return None
    at = close
    head = slide_xml[:close].rstrip()
    if head.endswith("</p:extLst>"):
        ext_start = head.rfind("<p:extLst")
        if ext_start >= 0:
            at = ext_start
    return slide_xml[:at] + fragment + slide_xml[at:]
