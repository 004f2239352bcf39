"""Replace run text inside serialized slide markup.

Four tiers, tried in order until one changes something:

1. ``replace_literal``  - ``<a:t ...>OLD</a:t>`` with OLD as written
2. ``replace_escaped``  - the same with OLD in its XML-entity form
3. ``replace_per_line`` - multi-line OLD/NEW paired line by line through 1-2
4. ``replace_in_tree``  - parse, set every matching ``a:t``, reserialize

Tiers 1-3 splice strings so everything outside the replaced run bodies keeps
its exact bytes. Tier 4 round-trips the whole document through lxml.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List
from xml.sax.saxutils import escape

from lxml import etree
from pptx.oxml.ns import qn

from deckedit.core.patch.slide_markup import escape_run_text, strip_invalid_xml_chars
from deckedit.logging import get_logger

log = get_logger(__name__)

_QUOTE_ENTITIES = {'"': "&quot;", "'": "&apos;"}


@dataclass(frozen=True)
class TextPatchResult:
    xml: str
    count: int = 0

    @property
    def changed(self) -> bool:
        return self.count > 0


def _escaped_forms(text: str) -> List[str]:
    """Entity forms of *text* as they may appear in markup, without duplicates."""
    forms: List[str] = []
    for f in (escape(text), escape(text, _QUOTE_ENTITIES)):
        if f != text and f not in forms:
            forms.append(f)
    return forms


def _run_pattern(body: str) -> re.Pattern[str]:
    # body must be the whole run text; attributes on <a:t> are kept
    return re.compile(r"(<a:t(?:\s[^>]*)?>)" + re.escape(body) + r"(</a:t>)")


def _splice(xml: str, body: str, new: str) -> TextPatchResult:
    replacement = escape_run_text(new)
    out, n = _run_pattern(body).subn(lambda m: m.group(1) + replacement + m.group(2), xml)
    return TextPatchResult(out, n)


def replace_literal(xml: str, old: str, new: str) -> TextPatchResult:
    if not old or old == new:
        return TextPatchResult(xml)
    return _splice(xml, old, new)


def replace_escaped(xml: str, old: str, new: str) -> TextPatchResult:
    if not old or old == new:
        return TextPatchResult(xml)
    for form in _escaped_forms(old):
        res = _splice(xml, form, new)
        if res.changed:
            return res
    return TextPatchResult(xml)


def replace_per_line(xml: str, old: str, new: str) -> TextPatchResult:
    if "\n" not in old:
        return TextPatchResult(xml)
    total = 0
    for old_line, new_line in zip(old.split("\n"), new.split("\n")):
        if not old_line or not new_line or old_line == new_line:
            continue
        res = replace_literal(xml, old_line, new_line)
        if not res.changed:
            res = replace_escaped(xml, old_line, new_line)
        xml = res.xml
        total += res.count
    return TextPatchResult(xml, total)


def replace_in_tree(xml: str, old: str, new: str) -> TextPatchResult:
    if not old or old == new:
        return TextPatchResult(xml)
    try:
        root = etree.fromstring(xml.encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        log.debug("text_tree_parse_failed", error=str(exc))
        return TextPatchResult(xml)

    # lxml hands back decoded text, so the escaped forms only matter for
    # documents that double-escaped their payload
    targets = {old, *_escaped_forms(old)}
    count = 0
    for t in root.iter(qn("a:t")):
        if t.text in targets:
            t.text = strip_invalid_xml_chars(new)
            count += 1
    if not count:
        return TextPatchResult(xml)

    declaration = xml.lstrip().startswith("<?xml")
    out = etree.tostring(
        root, xml_declaration=declaration, encoding="UTF-8", standalone=True if declaration else None
    ).decode("utf-8")
    return TextPatchResult(out, count)


_TIERS: tuple[Callable[[str, str, str], TextPatchResult], ...] = (
    replace_literal,
    replace_escaped,
    replace_per_line,
    replace_in_tree,
)


def replace_text(xml: str, old: str, new: str) -> TextPatchResult:
    """Replace every run whose text is *old* with *new*. Never raises on no match."""
    if not old or not new or old == new:
        return TextPatchResult(xml)
    for tier in _TIERS:
        res = tier(xml, old, new)
        if res.changed:
            log.debug("text_replaced", tier=tier.__name__, count=res.count)
            return res
    log.debug("text_not_found", old=old[:60])
    return TextPatchResult(xml)
