"""Resolve a picture relationship target to an archive path.

Targets in the wild are not always well formed (absolute, missing ``../``,
pointing at a copy under a layout folder), so resolution probes an ordered
list of candidate forms and takes the first that exists in the archive.
"""

from __future__ import annotations

import posixpath
import re
from typing import Callable, Iterable, Optional, Sequence

from deckedit.core.package.relationships import resolve_part_path
from deckedit.logging import get_logger

log = get_logger(__name__)

IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "gif", "bmp", "tif", "tiff", "svg", "emf", "wmf")

_IMAGE_EXT_RE = re.compile(r"\.(%s)$" % "|".join(IMAGE_EXTENSIONS), re.IGNORECASE)
_NON_IMAGE_MARKERS = ("slideLayout", "notesSlide", "theme")

MEDIA_DIRS = ("ppt/media", "media", "ppt/slides/media", "ppt/slideLayouts")

CandidateFn = Callable[[str, str], Optional[str]]


def is_likely_image(path: Optional[str]) -> bool:
    if not path:
        return False
    if _IMAGE_EXT_RE.search(path):
        return True
    if path.lower().endswith(".xml") or any(m in path for m in _NON_IMAGE_MARKERS):
        return False
    return "media/" in path or "image" in path


def _basename(target: str) -> str:
    return posixpath.basename(target.replace("\\", "/"))


def _relative_to_source(source_part: str, target: str) -> Optional[str]:
    return resolve_part_path(source_part, target)


def _under_ppt(source_part: str, target: str) -> Optional[str]:
    t = target.replace("\\", "/").lstrip("/")
    while t.startswith("../"):
        t = t[3:]
    return t if t.startswith("ppt/") else f"ppt/{t}"


def _ppt_media_basename(source_part: str, target: str) -> Optional[str]:
    name = _basename(target)
    return f"ppt/media/{name}" if name else None


def _bare_target(source_part: str, target: str) -> Optional[str]:
    return target.replace("\\", "/").lstrip("/") or None


def _known_media_dirs(source_part: str, target: str) -> Iterable[str]:
    name = _basename(target)
    if not name:
        return ()
    return tuple(f"{d}/{name}" for d in MEDIA_DIRS)


CANDIDATE_PATH_FUNCTIONS: tuple[CandidateFn, ...] = (
    _relative_to_source,
    _under_ppt,
    _ppt_media_basename,
    _bare_target,
)


def candidate_paths(
    source_part: str,
    target: str,
    candidates: Sequence[CandidateFn] = CANDIDATE_PATH_FUNCTIONS,
) -> list[str]:
    """All candidate archive paths for *target*, in probe order, de-duplicated."""
    seen: list[str] = []
    for fn in candidates:
        p = fn(source_part, target)
        if p and p not in seen:
            seen.append(p)
    for p in _known_media_dirs(source_part, target):
        if p not in seen:
            seen.append(p)
    return seen


def resolve_media_path(
    names: Iterable[str],
    source_part: str,
    target: str,
    candidates: Sequence[CandidateFn] = CANDIDATE_PATH_FUNCTIONS,
) -> Optional[str]:
    """Return the first candidate present in *names*, else a media file with the same extension."""
    available = set(names)
    for p in candidate_paths(source_part, target, candidates):
        if p in available:
            return p

    ext = posixpath.splitext(_basename(target))[1].lower()
    if not ext:
        return None
    by_ext = sorted(n for n in available if "media/" in n and n.lower().endswith(ext))
    if by_ext:
        log.debug("media_resolved_by_extension", target=target, path=by_ext[0])
        return by_ext[0]
    return None
