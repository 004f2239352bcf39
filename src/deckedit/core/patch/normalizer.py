"""Rewrite transform attributes as clean integer EMUs.

PowerPoint rejects fractional or exponent-form values in ``a:off``/``a:ext``
(and their ``ch*`` group counterparts). Only those attribute values are
touched; ``<a:ext uri="...">`` entries inside ``a:extLst`` carry no cx/cy and
pass through unchanged.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from deckedit.core.package.pptx_package import PptxPackage, slide_path
from deckedit.core.units import clean_emu
from deckedit.logging import get_logger

log = get_logger(__name__)

_TAG_RE = re.compile(r"<a:(off|chOff|ext|chExt)\b([^>]*)>")
_OFFSET_ATTR_RE = re.compile(r'(\s)(x|y)="([^"]*)"')
_EXTENT_ATTR_RE = re.compile(r'(\s)(cx|cy)="([^"]*)"')


def _fix_offset(m: re.Match[str]) -> str:
    return f'{m.group(1)}{m.group(2)}="{clean_emu(m.group(3))}"'


def _fix_extent(m: re.Match[str]) -> str:
    return f'{m.group(1)}{m.group(2)}="{clean_emu(m.group(3), allow_negative=False)}"'


def _fix_tag(m: re.Match[str]) -> str:
    name, attrs = m.group(1), m.group(2)
    if name in ("off", "chOff"):
        attrs = _OFFSET_ATTR_RE.sub(_fix_offset, attrs)
    else:
        attrs = _EXTENT_ATTR_RE.sub(_fix_extent, attrs)
    return f"<a:{name}{attrs}>"


def normalize_transforms(slide_xml: str) -> str:
    return _TAG_RE.sub(_fix_tag, slide_xml)


def normalize_package(
    package: PptxPackage, slide_numbers: Optional[Iterable[int]] = None
) -> list[int]:
    """Normalize the given slides (all when None). Returns the slides that changed."""
    numbers = list(slide_numbers) if slide_numbers is not None else package.slide_numbers()
    changed: list[int] = []
    for n in numbers:
        name = slide_path(n)
        if not package.exists(name):
            log.warning("normalize_slide_missing", slide=n)
            continue
        xml = package.read_text(name)
        fixed = normalize_transforms(xml)
        if fixed != xml:
            package.write(name, fixed)
            changed.append(n)
    if changed:
        log.info("transforms_normalized", slides=changed)
    return changed
