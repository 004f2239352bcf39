"""Request boundary.

``DeckService`` is what a front end (the CLI here) talks to. One instance per
session; each call runs inside its own ``RequestContext`` so temp files are
removed and log lines carry the session and request ids.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from deckedit.core.extract.pptx_extractor import UploadMediaSink, extract_slides
from deckedit.core.model import Slide
from deckedit.core.naming import safe_filename, unique_filename, unique_stamp
from deckedit.core.package.pptx_package import PptxPackage, slide_path
from deckedit.core.patch.normalizer import normalize_package
from deckedit.core.patch.table_injector import insert_table, replace_table
from deckedit.core.render.pptx_renderer import RenderReport, render_pptx, render_template
from deckedit.core.templates.store import TemplateStore
from deckedit.core.validate.schema_validate import load_edited_slides
from deckedit.exceptions import PackageOpenError
from deckedit.logging import get_logger
from deckedit.session import SessionContext

log = get_logger(__name__)

_DECK_SUFFIXES = (".pptx", ".ppt")


@dataclass
class GeneratedDeck:
    data: bytes
    filename: str
    path: Optional[Path] = None
    warnings: List[str] = field(default_factory=list)
    modified_slides: List[int] = field(default_factory=list)
    skipped_slides: List[int] = field(default_factory=list)


def format_file_size(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f} KB"
    return f"{n / (1024 * 1024):.1f} MB"


class DeckService:
    def __init__(
        self,
        session: Optional[SessionContext] = None,
        store: Optional[TemplateStore] = None,
    ) -> None:
        self.session = session or SessionContext()
        self.store = store or TemplateStore(self.session.settings.storage.templates_dir)

    @property
    def settings(self):
        return self.session.settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _original(self, filename: str) -> Path:
        p = self.session.original_path(filename)
        if p is None:
            raise PackageOpenError(filename, "original file not found")
        return p

    def _write_output(self, data: bytes, download_name: str) -> Path:
        out_dir = self.session.output_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / download_name
        path.write_bytes(data)
        return path

    def _deck_from_report(self, report: RenderReport, download_name: str) -> GeneratedDeck:
        path = self._write_output(report.data, download_name)
        return GeneratedDeck(
            data=report.data,
            filename=download_name,
            path=path,
            warnings=list(report.warnings),
            modified_slides=list(report.modified_slides),
            skipped_slides=list(report.skipped_slides),
        )

    # ------------------------------------------------------------------
    # Decks
    # ------------------------------------------------------------------

    def upload(self, source: str | Path) -> Dict[str, Any]:
        """Keep a unique copy of *source*, extract it and remember where it came from."""
        src = Path(source)
        with self.session.request():
            uploads = self.session.uploads_dir
            uploads.mkdir(parents=True, exist_ok=True)
            filename = f"original_{unique_stamp()}_{safe_filename(src.name, 'deck.pptx')}"
            copy = uploads / filename
            try:
                shutil.copyfile(src, copy)
            except OSError as exc:
                raise PackageOpenError(str(src), str(exc)) from exc

            try:
                package = PptxPackage.open(copy)
            except PackageOpenError:
                copy.unlink(missing_ok=True)
                raise
            slides = extract_slides(package, media_sink=UploadMediaSink(uploads))
            self.session.register_original(filename, copy.resolve())

            total = sum(len(s.elements) for s in slides)
            if total == 0:
                log.warning("upload_no_elements", filename=filename)
            log.info("uploaded", filename=filename, slides=len(slides), elements=total)
            return {
                "filename": filename,
                "originalPath": str(copy.resolve()),
                "slides": [s.to_dict() for s in slides],
            }

    def store_image(self, source: str | Path | bytes, name: str = "image.png") -> str:
        """Save an image for later reference by ``src``. Returns the stored filename."""
        uploads = self.session.uploads_dir
        uploads.mkdir(parents=True, exist_ok=True)
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        else:
            p = Path(source)
            data = p.read_bytes()
            if name == "image.png":
                name = p.name
        filename = unique_filename(name)
        (uploads / filename).write_bytes(data)
        log.info("image_stored", filename=filename, bytes=len(data))
        return filename

    def generate(
        self,
        slides_payload: str | bytes | list | dict,
        filename: str,
        template_name: Optional[str] = None,
    ) -> GeneratedDeck:
        slides = load_edited_slides(slides_payload)
        with self.session.request() as ctx:
            original = self._original(filename)
            report = render_pptx(original, slides, context=ctx)
        stem = safe_filename(template_name, "updated") if template_name else "updated"
        return self._deck_from_report(report, f"{stem}-{unique_stamp()}.pptx")

    def _patch_one_slide(self, filename: str, slide_id: int, patch) -> GeneratedDeck:
        with self.session.request():
            package = PptxPackage.open(self._original(filename))
            name = slide_path(slide_id)
            warnings: List[str] = []
            modified: List[int] = []
            skipped: List[int] = []
            if not package.exists(name):
                log.warning("slide_missing", slide=slide_id)
                warnings.append(f"slide {slide_id}: not present in the original deck")
                skipped.append(slide_id)
            else:
                xml = package.read_text(name)
                new_xml = patch(xml)
                if new_xml == xml:
                    warnings.append(f"slide {slide_id}: nothing changed")
                else:
                    package.write(name, new_xml)
                    normalize_package(package, [slide_id])
                    modified.append(slide_id)
            data = package.to_bytes(self.settings.package.compression_level)
        download = f"updated-{unique_stamp()}.pptx"
        return GeneratedDeck(
            data=data,
            filename=download,
            path=self._write_output(data, download),
            warnings=warnings,
            modified_slides=modified,
            skipped_slides=skipped,
        )

    def insert_table(
        self,
        filename: str,
        slide_id: int,
        grid: Optional[Sequence[Sequence[str]]] = None,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
    ) -> GeneratedDeck:
        cfg = self.settings.tables
        return self._patch_one_slide(
            filename,
            slide_id,
            lambda xml: insert_table(
                xml, grid, x=x, y=y, width=width, height=height, config=cfg
            ),
        )

    def replace_table(
        self,
        filename: str,
        slide_id: int,
        grid: Optional[Sequence[Sequence[str]]] = None,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
    ) -> GeneratedDeck:
        cfg = self.settings.tables
        tol = self.settings.matching.loose_tolerance_in
        return self._patch_one_slide(
            filename,
            slide_id,
            lambda xml: replace_table(xml, grid, x=x, y=y, tolerance=tol, config=cfg),
        )

    def normalize(self, source: str | Path) -> bytes:
        """Rewrite every slide transform as integer EMUs."""
        with self.session.request():
            package = PptxPackage.open(source)
            normalize_package(package)
            return package.to_bytes(self.settings.package.compression_level)

    def list_presentations(self) -> List[Dict[str, Any]]:
        uploads = self.session.uploads_dir
        if not uploads.is_dir():
            return []
        out: List[Dict[str, Any]] = []
        for p in sorted(uploads.iterdir()):
            if not p.is_file() or p.suffix.lower() not in _DECK_SUFFIXES:
                continue
            st = p.stat()
            out.append(
                {
                    "name": p.name,
                    "type": p.suffix.lstrip(".").upper(),
                    "size": format_file_size(st.st_size),
                    "date": datetime.fromtimestamp(st.st_mtime).isoformat(timespec="seconds"),
                    "path": str(p),
                }
            )
        return out

    def clear_uploads(self) -> int:
        """Delete every file in the uploads dir. Returns the number removed."""
        uploads = self.session.uploads_dir
        if not uploads.is_dir():
            return 0
        removed = 0
        for p in uploads.iterdir():
            if p.is_file():
                p.unlink()
                removed += 1
        self.session.original_files.clear()
        log.info("uploads_cleared", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def save_template(
        self,
        name: str,
        slides_payload: str | bytes | list | dict,
        *,
        filename: Optional[str] = None,
        original_path: Optional[str | Path] = None,
    ) -> Dict[str, Any]:
        slides: List[Slide] = load_edited_slides(slides_payload)
        original = Path(original_path) if original_path else None
        if original is None and filename:
            original = self.session.original_path(filename)
        return self.store.save(name, slides, original)

    def list_templates(self) -> List[Dict[str, Any]]:
        return self.store.list()

    def get_template(self, template_id: str) -> Dict[str, Any]:
        return self.store.get(template_id)

    def delete_template(self, template_id: str) -> None:
        self.store.delete(template_id)

    def original_file(self, template_id: str) -> Path:
        return self.store.original_file(template_id)

    def generate_from_template(self, template_id: str) -> GeneratedDeck:
        template = self.store.get(template_id)
        with self.session.request() as ctx:
            report = render_template(template, context=ctx)
        stem = safe_filename(str(template.get("templateName") or "template"), "template")
        return self._deck_from_report(report, f"{stem}-{unique_stamp()}.pptx")
