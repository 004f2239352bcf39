from __future__ import annotations

import re
import secrets
import time


def unique_stamp() -> str:
    """Nanosecond timestamp plus a short random token."""
    return f"{time.time_ns()}_{secrets.token_hex(3)}"


def safe_filename(name: str, default: str = "file") -> str:
    """Strip directory parts and characters that are unsafe in a filename."""
    base = re.split(r"[\\/]", name.strip())[-1]
    base = re.sub(r"[^\w.\-]", "_", base)
    base = re.sub(r"_+", "_", base).strip("._")
    return base[:128] or default


def unique_filename(name: str) -> str:
    """``report.pptx`` -> ``{stamp}-report.pptx``."""
    return f"{unique_stamp()}-{safe_filename(name)}"
