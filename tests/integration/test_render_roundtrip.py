"""Extract, edit and regenerate real decks."""

from __future__ import annotations

import io
import re
from pathlib import Path

import pytest
from lxml import etree
from pptx import Presentation
from pptx.oxml.ns import qn

from conftest import make_package, png_bytes
from deckedit.core.extract.pptx_extractor import extract_pptx
from deckedit.core.model import ImageElement, ShapeElement, Slide, TableElement, TextElement
from deckedit.core.package.pptx_package import PptxPackage, slide_path
from deckedit.core.render.pptx_renderer import render_pptx, render_template
from deckedit.exceptions import TemplateError
from deckedit.session import SessionContext


def _render(session: SessionContext, source, slides):
    with session.request() as ctx:
        return render_pptx(source, slides, context=ctx)


def _slide(data: bytes, n: int) -> str:
    return PptxPackage.from_bytes(data).read_text(slide_path(n))


def _frames(xml: str) -> list[str]:
    return re.findall(r"<p:graphicFrame>.*?</p:graphicFrame>", xml, re.DOTALL)


@pytest.mark.integration
class TestTextRoundTrip:
    def test_hello_to_world_keeps_geometry(self, session: SessionContext, deck_path: Path) -> None:
        slides = extract_pptx(deck_path)
        slides[0].elements[0].content = "World"

        report = _render(session, deck_path, slides)

        assert report.clean
        assert report.modified_slides == [1]
        xml = _slide(report.data, 1)
        assert "<a:t>World</a:t>" in xml
        assert '<a:off x="914400" y="914400"/>' in xml
        assert '<a:ext cx="2743200" cy="914400"/>' in xml
        (el,) = extract_pptx(report.data)[0].elements
        assert el.content == "World"

    def test_untouched_slides_byte_identical(self, session: SessionContext, deck_path: Path) -> None:
        original = PptxPackage.open(deck_path)
        slides = extract_pptx(deck_path)
        slides[0].elements[0].content = "World"

        out = PptxPackage.from_bytes(_render(session, deck_path, slides).data)

        for n in (2, 3):
            assert out.read_bytes(slide_path(n)) == original.read_bytes(slide_path(n))

    def test_output_opens_in_python_pptx(self, session: SessionContext, deck_path: Path) -> None:
        slides = extract_pptx(deck_path)
        slides[0].elements[0].content = "World"
        prs = Presentation(io.BytesIO(_render(session, deck_path, slides).data))
        assert len(prs.slides) == 3

    def test_control_characters_keep_slide_parseable(
        self, session: SessionContext, deck_path: Path
    ) -> None:
        slides = extract_pptx(deck_path)
        slides[0].elements[0].content = "World\x01"

        report = _render(session, deck_path, slides)

        assert report.modified_slides == [1]
        root = etree.fromstring(_slide(report.data, 1).encode("utf-8"))
        assert [t.text for t in root.iter(qn("a:t"))] == ["World"]


@pytest.mark.integration
class TestTables:
    def test_edited_table_replaced_in_place(self, session: SessionContext, deck_path: Path) -> None:
        slides = extract_pptx(deck_path)
        table = slides[2].elements[0]
        assert isinstance(table, TableElement)
        table.table_data = [["W", "X"], ["Y", "Z"]]

        report = _render(session, deck_path, [slides[2]])

        assert report.modified_slides == [3]
        assert len(_frames(_slide(report.data, 3))) == 1
        (new_table, _) = extract_pptx(report.data)[2].elements
        assert new_table.table_data == [["W", "X"], ["Y", "Z"]]
        assert (new_table.x, new_table.y) == (1.0, 4.0)

    def test_new_table_without_data_is_default_grid(self, session: SessionContext, deck_path: Path) -> None:
        edited = Slide(
            id=1,
            elements=[TableElement(id="table-new", x=5, y=5, width=None, height=None, table_data=[])],
        )
        report = _render(session, deck_path, [edited])

        (frame,) = _frames(_slide(report.data, 1))
        assert frame.count("<a:tr ") == 5
        assert "Cell 5-5" in frame
        tables = [e for e in extract_pptx(report.data)[0].elements if isinstance(e, TableElement)]
        assert len(tables) == 1

    def test_new_table_beside_existing_is_inserted(self, session: SessionContext, deck_path: Path) -> None:
        edited = Slide(
            id=3,
            elements=[
                TableElement(
                    id="table-new", x=1.5, y=4.5, width=2, height=1, table_data=[["X", "Y"], ["Z", "W"]]
                )
            ],
        )
        report = _render(session, deck_path, [edited])

        frames = _frames(_slide(report.data, 3))
        assert len(frames) == 2
        assert "<a:t>A</a:t>" in frames[0]
        assert "<a:t>X</a:t>" in frames[1]


@pytest.mark.integration
class TestImages:
    def test_replaced_image_keeps_position(self, session: SessionContext, deck_path: Path) -> None:
        session.uploads_dir.mkdir(parents=True)
        (session.uploads_dir / "new.png").write_bytes(png_bytes(color="blue"))
        slides = extract_pptx(deck_path)
        pic = slides[1].elements[0]
        pic.src = "new.png"

        report = _render(session, deck_path, [slides[1]])

        assert report.modified_slides == [2]
        assert _slide(report.data, 2).count("<p:pic>") == 1
        (el,) = extract_pptx(report.data)[1].elements
        assert (el.x, el.y, el.width, el.height) == (4.0, 3.0, 2.0, 1.0)
        assert PptxPackage.from_bytes(report.data).read_bytes(el.src) == png_bytes(color="blue")

    def test_unchanged_image_is_skipped(self, session: SessionContext, deck_path: Path) -> None:
        report = _render(session, deck_path, [extract_pptx(deck_path)[1]])
        assert report.modified_slides == []

    def test_missing_upload_is_a_warning(self, session: SessionContext, deck_path: Path) -> None:
        edited = Slide(id=1, elements=[ImageElement(id="image-new", x=5, y=5, src="nowhere.png")])
        report = _render(session, deck_path, [edited])
        assert not report.clean
        assert "nowhere.png" in report.warnings[0]

    def test_new_shape_becomes_chart_picture(self, session: SessionContext, deck_path: Path) -> None:
        edited = Slide(
            id=1,
            elements=[
                ShapeElement(
                    id="chart",
                    x=0.5,
                    y=0.5,
                    width=2,
                    height=2,
                    chart_data={"segments": [{"color": "#123456", "percentage": 60}], "centerText": "60%"},
                )
            ],
        )
        report = _render(session, deck_path, [edited])

        xml = _slide(report.data, 1)
        assert '<a:ext cx="5486400" cy="3657600"/>' in xml
        assert report.modified_slides == [1]
        assert list(session.uploads_dir.glob("shape_1_*.png")) == []
        Presentation(io.BytesIO(report.data))


@pytest.mark.integration
class TestFailureIsolation:
    def test_missing_slide_is_skipped(self, session: SessionContext, make_deck) -> None:
        path = make_deck(extra_slides=2)
        edited = Slide(id=7, elements=[TextElement(id="text-0", content="x")])

        report = _render(session, path, [edited])

        assert report.skipped_slides == [7]
        assert report.modified_slides == []
        assert "slide 7" in report.warnings[0]
        assert PptxPackage.from_bytes(report.data).slide_numbers() == [1, 2, 3, 4, 5]

    def test_malformed_slide_restored(self, session: SessionContext) -> None:
        broken = "<p:sld><a:t>Hi there</a:t>"
        pkg = make_package({1: broken})
        session.uploads_dir.mkdir(parents=True)
        (session.uploads_dir / "new.png").write_bytes(png_bytes())
        edited = Slide(id=1, elements=[ImageElement(id="image-new", x=5, y=5, src="new.png")])

        report = _render(session, pkg, [edited])

        assert report.skipped_slides == [1]
        out = PptxPackage.from_bytes(report.data)
        assert out.read_text(slide_path(1)) == broken
        assert out.media_names() == []

    def test_edit_that_leaves_markup_broken_is_rolled_back(self, session: SessionContext) -> None:
        broken = "<p:sld><a:t>Hi there</a:t>"
        pkg = make_package({1: broken})
        edited = Slide(id=1, elements=[TextElement(id="alt-text-0", content="Bye")])

        report = _render(session, pkg, [edited])

        assert report.skipped_slides == [1]
        assert report.modified_slides == []
        assert "does not parse" in report.warnings[0]
        assert PptxPackage.from_bytes(report.data).read_text(slide_path(1)) == broken

    def test_other_slides_still_applied(self, session: SessionContext, deck_path: Path) -> None:
        slides = extract_pptx(deck_path)
        slides[0].elements[0].content = "World"
        report = _render(session, deck_path, [slides[0], Slide(id=9)])
        assert report.modified_slides == [1]
        assert report.skipped_slides == [9]


@pytest.mark.integration
class TestTemplateRender:
    def test_slides_mapped_by_position(self, session: SessionContext, deck_path: Path) -> None:
        slides = extract_pptx(deck_path)
        slides[0].elements[0].content = "World"
        template = {
            "_id": "abc",
            "originalFilePath": str(deck_path),
            "slides": [dict(slides[0].to_dict(), id=42)],
        }
        with session.request() as ctx:
            report = render_template(template, context=ctx)
        assert report.modified_slides == [1]
        assert "<a:t>World</a:t>" in _slide(report.data, 1)

    def test_missing_original(self, session: SessionContext) -> None:
        with session.request() as ctx:
            with pytest.raises(TemplateError):
                render_template({"_id": "abc", "originalFilePath": None, "slides": []}, context=ctx)
