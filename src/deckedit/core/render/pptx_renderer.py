from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from lxml import etree

from deckedit.core.extract.pptx_extractor import extract_slides
from deckedit.core.model import Element, ImageElement, ShapeElement, Slide, TableElement, TextElement
from deckedit.core.package.pptx_package import PptxPackage, slide_path
from deckedit.core.patch.image_patcher import place_image
from deckedit.core.patch.matcher import match_element
from deckedit.core.patch.normalizer import normalize_package
from deckedit.core.patch.table_injector import insert_table, normalize_grid, replace_table
from deckedit.core.patch.text_patcher import replace_text
from deckedit.core.render.shape_renderer import render_donut_chart
from deckedit.exceptions import PackageError, PatchError, SlideXmlError, TemplateError
from deckedit.logging import get_logger
from deckedit.session import RequestContext

log = get_logger(__name__)

_GEOMETRY_EPS_IN = 1e-6


@dataclass
class RenderReport:
    """Outcome of one regeneration.

    ``data`` is the new archive. Warnings mean "processed with warnings"; a
    request that could not be processed at all raises instead.
    """

    data: bytes = b""
    modified_slides: List[int] = field(default_factory=list)
    skipped_slides: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def clean(self) -> bool:
        return not self.warnings


def _open(source: str | Path | bytes | PptxPackage) -> PptxPackage:
    if isinstance(source, PptxPackage):
        return source
    if isinstance(source, (bytes, bytearray)):
        return PptxPackage.from_bytes(bytes(source))
    return PptxPackage.open(source)


def _same_geometry(a: Element, b: Element) -> bool:
    return all(
        abs((getattr(a, k) or 0.0) - (getattr(b, k) or 0.0)) < _GEOMETRY_EPS_IN
        for k in ("x", "y", "width", "height")
    )


def _check_parses(xml: str, slide_number: int) -> None:
    try:
        etree.fromstring(xml.encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        raise SlideXmlError(slide_number, f"patched markup does not parse: {exc}") from exc


class _SlidePatcher:
    """Applies the edited elements of one slide to the package."""

    def __init__(
        self,
        package: PptxPackage,
        slide_number: int,
        originals: Sequence[Element],
        context: RequestContext,
        report: RenderReport,
    ) -> None:
        self.package = package
        self.n = slide_number
        self.originals = originals
        self.context = context
        self.report = report
        self.settings = context.settings
        self.touched = False

    def _match(self, el: Element) -> Optional[Element]:
        m = self.settings.matching
        return match_element(
            el, self.originals, tight=m.tight_tolerance_in, loose=m.loose_tolerance_in
        )

    def _warn(self, event: str, message: str, **kw: Any) -> None:
        log.warning(event, slide=self.n, **kw)
        self.report.warn(f"slide {self.n}: {message}")

    # ------------------------------------------------------------------

    def apply(self, elements: Sequence[Element]) -> bool:
        name = slide_path(self.n)
        before = self.package.read_text(name)
        xml = before
        for el in elements:
            try:
                xml = self._apply_element(xml, el)
            except SlideXmlError:
                raise
            except (PatchError, PackageError, OSError, ValueError) as exc:
                self._warn(
                    "element_skipped",
                    f"{el.type} {el.id!r} skipped: {exc}",
                    element=el.id,
                    error=str(exc),
                )
        if xml != before:
            _check_parses(xml, self.n)
            self.package.write(name, xml)
            self.touched = True
        return self.touched

    def _apply_element(self, xml: str, el: Element) -> str:
        if isinstance(el, TextElement):
            return self._text(xml, el)
        if isinstance(el, TableElement):
            return self._table(xml, el)
        if isinstance(el, ImageElement):
            return self._image(xml, el)
        if isinstance(el, ShapeElement):
            return self._shape(xml, el)
        return xml

    def _text(self, xml: str, el: TextElement) -> str:
        orig = self._match(el)
        if not isinstance(orig, TextElement) or orig.content == el.content:
            return xml
        res = replace_text(xml, orig.content, el.content)
        if not res.changed:
            log.debug("text_unchanged", slide=self.n, element=el.id)
        return res.xml

    def _table(self, xml: str, el: TableElement) -> str:
        # existing means same id or within the tight tolerance
        tight = self.settings.matching.tight_tolerance_in
        orig = match_element(el, self.originals, tight=tight, loose=tight)
        cfg = self.settings.tables
        if isinstance(orig, TableElement):
            if normalize_grid(el.table_data) == normalize_grid(orig.table_data):
                return xml
            return replace_table(
                xml,
                el.table_data,
                x=orig.x,
                y=orig.y,
                tolerance=tight,
                config=cfg,
            )
        return insert_table(
            xml, el.table_data, x=el.x, y=el.y, width=el.width, height=el.height, config=cfg
        )

    def _image(self, xml: str, el: ImageElement) -> str:
        if not el.src:
            return xml
        orig = self._match(el)
        orig_img = orig if isinstance(orig, ImageElement) else None

        if orig_img is not None and el.src == orig_img.src:
            return xml

        path = self.context.session.find_upload(el.src)
        if path is None:
            self._warn("image_file_missing", f"image {el.src!r} not found", src=el.src)
            return xml
        data = path.read_bytes()

        if (
            orig_img is not None
            and _same_geometry(el, orig_img)
            and self.package.exists(orig_img.src)
            and self.package.read_bytes(orig_img.src) == data
        ):
            return xml

        ext = posixpath.splitext(path.name)[1].lstrip(".") or "png"
        placement = place_image(
            self.package,
            self.n,
            xml,
            data,
            ext,
            x=el.x,
            y=el.y,
            width=el.width,
            height=el.height,
            original=orig_img,
            tolerance=self.settings.matching.tight_tolerance_in,
        )
        self.touched = True
        return placement.slide_xml

    def _shape(self, xml: str, el: ShapeElement) -> str:
        if self._match(el) is not None:
            return xml
        cfg = self.settings.shapes
        chart = el.chart_data or {}
        png_path = self.context.temp_path(f"shape_{self.n}", ".png")
        segments = chart.get("segments") if isinstance(chart.get("segments"), list) else None
        data = render_donut_chart(
            png_path,
            size=cfg.chart_size_px,
            segments=segments,
            center_text=str(chart.get("centerText") or ""),
        )
        placement = place_image(
            self.package,
            self.n,
            xml,
            data,
            "png",
            x=el.x,
            y=el.y,
            width=max(el.width or cfg.min_width_in, cfg.min_width_in),
            height=max(el.height or cfg.min_height_in, cfg.min_height_in),
        )
        self.touched = True
        return placement.slide_xml


def render_pptx(
    source: str | Path | bytes | PptxPackage,
    slides: Sequence[Slide],
    *,
    context: RequestContext,
) -> RenderReport:
    """Patch *slides* into the original deck and return the regenerated archive.

    Raises PackageOpenError when *source* is not a readable archive. Everything
    below that (a missing slide, an unresolvable image, a slide whose markup
    will not parse) is reported as a warning and the rest is still applied.
    """
    package = _open(source)
    report = RenderReport()

    originals: Dict[int, List[Element]] = {
        s.id: s.elements for s in extract_slides(package)
    }

    for slide in sorted(slides, key=lambda s: s.id):
        n = slide.id
        if not package.has_slide(n):
            log.warning("slide_missing", slide=n)
            report.skipped_slides.append(n)
            report.warn(f"slide {n}: not present in the original deck")
            continue

        snap = package.snapshot()
        patcher = _SlidePatcher(package, n, originals.get(n, []), context, report)
        try:
            if patcher.apply(slide.elements):
                report.modified_slides.append(n)
        except SlideXmlError as exc:
            package.restore(snap)
            report.skipped_slides.append(n)
            report.warn(f"slide {n}: {exc.message}; left unchanged")
            log.error("slide_restored", slide=n, error=exc.message)

    normalize_package(package, report.modified_slides)
    report.data = package.to_bytes(context.settings.package.compression_level)
    log.info(
        "rendered",
        source=package.source,
        modified=report.modified_slides,
        skipped=report.skipped_slides,
        warnings=len(report.warnings),
    )
    return report


def render_template(template: Mapping[str, Any], *, context: RequestContext) -> RenderReport:
    """Regenerate a deck from a stored template.

    Template slides are laid onto the original deck's slides by position: the
    first template slide patches the first slide present in the archive, and
    so on. A template without its original file cannot be generated.
    """
    original = template.get("originalFilePath")
    if not original or not Path(original).is_file():
        raise TemplateError(
            "Template has no original file to regenerate from",
            {"template_id": template.get("_id"), "path": original},
        )

    package = PptxPackage.open(original)
    available = package.slide_numbers()
    raw = [s for s in template.get("slides") or [] if isinstance(s, dict)]

    slides: List[Slide] = []
    for i, d in enumerate(raw):
        if i >= len(available):
            log.warning("template_slide_unmapped", index=i, slides=len(available))
            break
        s = Slide.from_dict(d)
        s.id = available[i]
        slides.append(s)

    report = render_pptx(package, slides, context=context)
    if len(raw) > len(available):
        report.warn(f"{len(raw) - len(available)} template slides have no slide to map onto")
    return report

