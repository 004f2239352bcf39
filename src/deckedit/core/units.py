from __future__ import annotations

import math
from typing import Any

EMU_PER_INCH = 914400


def _finite_float(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


def to_emu(inches: Any) -> int:
    """Inches -> integer EMU, rounded to nearest. Non-numeric input yields 0."""
    f = _finite_float(inches)
    if f is None:
        return 0
    return int(round(f * EMU_PER_INCH))


def to_inches(emu: Any) -> float:
    f = _finite_float(emu)
    if f is None:
        return 0.0
    return f / EMU_PER_INCH


def clean_emu(value: Any, *, allow_negative: bool = True) -> int:
    """Coerce an EMU attribute value (possibly "12.7", "1e3", "abc") to an int.

    Garbage becomes 0 so it can never reach serialized output.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        iv = value
    else:
        f = _finite_float(value.strip() if isinstance(value, str) else value)
        if f is None:
            return 0
        iv = int(round(f))
    if not allow_negative and iv < 0:
        return 0
    return iv
