from __future__ import annotations

from typing import Optional, Sequence

from deckedit.core.model import Element

DEFAULT_TIGHT_TOLERANCE_IN = 0.1
DEFAULT_LOOSE_TOLERANCE_IN = 1.0


def _near(a: Element, b: Element, tol: float) -> bool:
    return abs((a.x or 0.0) - (b.x or 0.0)) < tol and abs((a.y or 0.0) - (b.y or 0.0)) < tol


def match_element(
    edited: Element,
    originals: Sequence[Element],
    *,
    tight: float = DEFAULT_TIGHT_TOLERANCE_IN,
    loose: float = DEFAULT_LOOSE_TOLERANCE_IN,
) -> Optional[Element]:
    """Find the original an edited element came from.

    Exact id first, then same type within ``tight`` inches on both axes, then
    same type within ``loose``. Returns None for a newly added element.
    """
    if edited.id:
        for o in originals:
            if o.id == edited.id:
                return o
    for tol in (tight, loose):
        for o in originals:
            if o.type == edited.type and _near(o, edited, tol):
                return o
    return None
