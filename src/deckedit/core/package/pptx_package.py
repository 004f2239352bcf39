"""Zip-level access to an OOXML presentation package.

The whole archive is held as a ``path -> bytes`` map for the duration of one
request. Patchers read and replace individual parts; ``to_bytes()`` writes the
map back out as a DEFLATE archive.
"""

from __future__ import annotations

import io
import re
import threading
import zipfile
from pathlib import Path

from pptx.opc.constants import CONTENT_TYPE as CT

from deckedit.exceptions import PackageOpenError, PartNotFoundError
from deckedit.logging import get_logger

log = get_logger(__name__)

CONTENT_TYPES_PATH = "[Content_Types].xml"
PRESENTATION_RELS_PATH = "ppt/_rels/presentation.xml.rels"

_SLIDE_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")

_IMAGE_CONTENT_TYPES: dict[str, str] = {
    "png": CT.PNG,
    "jpg": CT.JPEG,
    "jpeg": CT.JPEG,
    "gif": CT.GIF,
    "bmp": CT.BMP,
    "tif": CT.TIFF,
    "tiff": CT.TIFF,
    "emf": CT.X_EMF,
    "wmf": CT.X_WMF,
    "svg": "image/svg+xml",
}


def image_content_type(ext: str) -> str:
    return _IMAGE_CONTENT_TYPES.get(ext.lower().lstrip("."), CT.PNG)


def slide_path(n: int) -> str:
    return f"ppt/slides/slide{n}.xml"


def slide_rels_path(n: int) -> str:
    return f"ppt/slides/_rels/slide{n}.xml.rels"


def rels_path_for(part: str) -> str:
    """``ppt/slides/slide3.xml`` -> ``ppt/slides/_rels/slide3.xml.rels``."""
    head, _, name = part.rpartition("/")
    if head:
        return f"{head}/_rels/{name}.rels"
    return f"_rels/{name}.rels"


def _normalize_name(name: str) -> str:
    return name.replace("\\", "/").lstrip("/")


class PptxPackage:
    """Mutable path -> bytes view of a .pptx archive."""

    def __init__(self, parts: dict[str, bytes], *, source: str = "<memory>") -> None:
        self._parts: dict[str, bytes] = parts
        self._lock = threading.Lock()
        self.source = source

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------

    @classmethod
    def from_bytes(cls, data: bytes, *, source: str = "<memory>") -> "PptxPackage":
        parts: dict[str, bytes] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    parts[_normalize_name(info.filename)] = zf.read(info)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as exc:
            raise PackageOpenError(source, str(exc) or exc.__class__.__name__) from exc
        if not parts:
            raise PackageOpenError(source, "archive is empty")
        log.debug("package_loaded", source=source, parts=len(parts))
        return cls(parts, source=source)

    @classmethod
    def open(cls, path: str | Path) -> "PptxPackage":
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as exc:
            raise PackageOpenError(str(p), str(exc)) from exc
        return cls.from_bytes(data, source=str(p))

    def to_bytes(self, compression_level: int = 6) -> bytes:
        buf = io.BytesIO()
        with self._lock:
            names = list(self._parts)
            # [Content_Types].xml conventionally comes first.
            if CONTENT_TYPES_PATH in self._parts:
                names.remove(CONTENT_TYPES_PATH)
                names.insert(0, CONTENT_TYPES_PATH)
            with zipfile.ZipFile(
                buf, "w", zipfile.ZIP_DEFLATED, compresslevel=compression_level
            ) as zf:
                for name in names:
                    zf.writestr(name, self._parts[name])
        return buf.getvalue()

    def save(self, path: str | Path, compression_level: int = 6) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(self.to_bytes(compression_level))
        return p

    # ------------------------------------------------------------------
    # Part access
    # ------------------------------------------------------------------

    def names(self) -> list[str]:
        return list(self._parts)

    def exists(self, name: str) -> bool:
        return _normalize_name(name) in self._parts

    def read_bytes(self, name: str) -> bytes:
        key = _normalize_name(name)
        try:
            return self._parts[key]
        except KeyError:
            raise PartNotFoundError(key) from None

    def read_text(self, name: str) -> str:
        return self.read_bytes(name).decode("utf-8")

    def write(self, name: str, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._parts[_normalize_name(name)] = data

    def delete(self, name: str) -> None:
        with self._lock:
            self._parts.pop(_normalize_name(name), None)

    def snapshot(self) -> dict[str, bytes]:
        with self._lock:
            return dict(self._parts)

    def restore(self, snapshot: dict[str, bytes]) -> None:
        with self._lock:
            self._parts = dict(snapshot)

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    def slide_numbers(self) -> list[int]:
        """Numbers of every ``ppt/slides/slideN.xml``, sorted numerically."""
        nums: list[int] = []
        for name in self._parts:
            m = _SLIDE_RE.match(name)
            if m:
                nums.append(int(m.group(1)))
        return sorted(nums)

    def has_slide(self, n: int) -> bool:
        return slide_path(n) in self._parts

    def media_names(self) -> list[str]:
        return sorted(n for n in self._parts if "media/" in n)

    def unique_media_path(self, stem: str, ext: str, token: str) -> str:
        ext = ext.lower().lstrip(".") or "png"
        candidate = f"ppt/media/{stem}{token}.{ext}"
        i = 1
        while candidate in self._parts:
            candidate = f"ppt/media/{stem}{token}_{i}.{ext}"
            i += 1
        return candidate

    # ------------------------------------------------------------------
    # Content types
    # ------------------------------------------------------------------

    def ensure_default_content_type(self, ext: str) -> bool:
        """Register ``<Default Extension=ext>`` when missing. Returns True if added."""
        ext = ext.lower().lstrip(".")
        if not ext or not self.exists(CONTENT_TYPES_PATH):
            return False
        text = self.read_text(CONTENT_TYPES_PATH)
        pattern = re.compile(r'<Default\b[^>]*\bExtension="%s"' % re.escape(ext), re.IGNORECASE)
        if pattern.search(text):
            return False
        entry = f'<Default Extension="{ext}" ContentType="{image_content_type(ext)}"/>'
        if "</Types>" not in text:
            log.warning("content_types_malformed", ext=ext)
            return False
        self.write(CONTENT_TYPES_PATH, text.replace("</Types>", entry + "</Types>", 1))
        return True
