"""Shared pytest fixtures for the deckedit test suite."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image
from pptx import Presentation
from pptx.util import Inches

from deckedit.config import Settings, override_settings
from deckedit.core.package.pptx_package import PptxPackage
from deckedit.session import SessionContext

NS = (
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships" '
    'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main"'
)
XML_DECL = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
IMAGE_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
LAYOUT_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/slideLayout"


# ---------------------------------------------------------------------------
# Raw markup builders
# ---------------------------------------------------------------------------


def slide_xml(*shapes: str, ext_lst: str = "") -> str:
    return (
        f"{XML_DECL}<p:sld {NS}><p:cSld><p:spTree>"
        '<p:nvGrpSpPr><p:cNvPr id="1" name=""/><p:cNvGrpSpPr/><p:nvPr/></p:nvGrpSpPr>'
        "<p:grpSpPr/>"
        f"{''.join(shapes)}{ext_lst}</p:spTree></p:cSld></p:sld>"
    )


def text_shape(shape_id: int, text: str, x: int = 914400, y: int = 914400,
               cx: int = 2743200, cy: int = 914400) -> str:
    paras = "".join(f"<a:p><a:r><a:t>{line}</a:t></a:r></a:p>" for line in text.split("\n"))
    return (
        f'<p:sp><p:nvSpPr><p:cNvPr id="{shape_id}" name="TextBox {shape_id}"/>'
        '<p:cNvSpPr txBox="1"/><p:nvPr/></p:nvSpPr>'
        f'<p:spPr><a:xfrm><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm></p:spPr>'
        f"<p:txBody><a:bodyPr/><a:lstStyle/>{paras}</p:txBody></p:sp>"
    )


def pic_shape(shape_id: int, rel_id: str, x: int = 914400, y: int = 914400,
              cx: int = 914400, cy: int = 914400) -> str:
    return (
        f'<p:pic><p:nvPicPr><p:cNvPr id="{shape_id}" name="Picture {shape_id}"/>'
        "<p:cNvPicPr/><p:nvPr/></p:nvPicPr>"
        f'<p:blipFill><a:blip r:embed="{rel_id}"/><a:stretch><a:fillRect/></a:stretch></p:blipFill>'
        f'<p:spPr><a:xfrm><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
        '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></p:spPr></p:pic>'
    )


def rels_xml(*rels: tuple[str, str, str]) -> str:
    body = "".join(
        f'<Relationship Id="{rid}" Type="{rtype}" Target="{target}"/>' for rid, rtype, target in rels
    )
    return f'{XML_DECL}<Relationships xmlns="{RELS_NS}">{body}</Relationships>'


CONTENT_TYPES = (
    f"{XML_DECL}<Types xmlns=\"http://schemas.openxmlformats.org/package/2006/content-types\">"
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    "</Types>"
)


def png_bytes(width: int = 40, height: int = 20, color: str = "red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_package(slides: dict[int, str], extra: dict[str, bytes | str] | None = None) -> PptxPackage:
    parts: dict[str, bytes] = {"[Content_Types].xml": CONTENT_TYPES.encode("utf-8")}
    for n, xml in slides.items():
        parts[f"ppt/slides/slide{n}.xml"] = xml.encode("utf-8")
    for name, data in (extra or {}).items():
        parts[name] = data.encode("utf-8") if isinstance(data, str) else data
    return PptxPackage(parts, source="<test>")


# ---------------------------------------------------------------------------
# Settings / session
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        storage={
            "uploads_dir": str(tmp_path / "uploads"),
            "templates_dir": str(tmp_path / "templates"),
            "output_dir": str(tmp_path / "out"),
        },
        logging={"level": "debug", "format": "console"},
    )
    override_settings(settings)
    return settings


@pytest.fixture
def session(test_settings: Settings) -> SessionContext:
    return SessionContext(settings=test_settings)


# ---------------------------------------------------------------------------
# Real decks built with python-pptx
# ---------------------------------------------------------------------------


@pytest.fixture
def make_deck(tmp_path: Path) -> Callable[..., Path]:
    """Build a deck: slide 1 text "Hello", slide 2 a picture, slide 3 a 2x2 table.

    ``extra_slides`` appends that many blank slides.
    """

    def _make(name: str = "deck.pptx", extra_slides: int = 0) -> Path:
        prs = Presentation()
        blank = prs.slide_layouts[6]

        s1 = prs.slides.add_slide(blank)
        tb = s1.shapes.add_textbox(Inches(1), Inches(1), Inches(3), Inches(1))
        tb.text_frame.text = "Hello"

        s2 = prs.slides.add_slide(blank)
        s2.shapes.add_picture(io.BytesIO(png_bytes()), Inches(4), Inches(3), Inches(2), Inches(1))

        s3 = prs.slides.add_slide(blank)
        table = s3.shapes.add_table(2, 2, Inches(1), Inches(4), Inches(4), Inches(1.5)).table
        for (r, c), text in zip([(0, 0), (0, 1), (1, 0), (1, 1)], "ABCD"):
            table.cell(r, c).text = text

        for _ in range(extra_slides):
            prs.slides.add_slide(blank)

        path = tmp_path / name
        prs.save(str(path))
        return path

    return _make


@pytest.fixture
def deck_path(make_deck: Callable[..., Path]) -> Path:
    return make_deck()
