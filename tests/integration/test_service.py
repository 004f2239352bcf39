"""DeckService against real decks on disk."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import png_bytes
from deckedit.core.package.pptx_package import PptxPackage, slide_path
from deckedit.exceptions import EditDocumentError, PackageOpenError, TemplateNotFoundError
from deckedit.service import DeckService, format_file_size
from deckedit.session import SessionContext


@pytest.fixture
def service(session: SessionContext) -> DeckService:
    return DeckService(session)


@pytest.fixture
def uploaded(service: DeckService, deck_path: Path) -> dict:
    return service.upload(deck_path)


def _edited(uploaded: dict, text: str = "World") -> list[dict]:
    slides = [dict(s) for s in uploaded["slides"]]
    slides[0] = dict(slides[0], elements=[dict(slides[0]["elements"][0], content=text)])
    return slides


@pytest.mark.integration
class TestUpload:
    def test_copy_extract_and_media(self, service: DeckService, uploaded: dict) -> None:
        assert uploaded["filename"].startswith("original_") and uploaded["filename"].endswith("_deck.pptx")
        assert Path(uploaded["originalPath"]).is_file()
        assert [s["id"] for s in uploaded["slides"]] == [1, 2, 3]
        image = uploaded["slides"][1]["elements"][0]
        assert image["type"] == "image"
        assert image["fullPath"] == f"/uploads/{image['src']}"
        assert (service.session.uploads_dir / image["src"]).read_bytes() == png_bytes()

    def test_not_a_deck(self, service: DeckService, tmp_path: Path) -> None:
        bogus = tmp_path / "bogus.pptx"
        bogus.write_bytes(b"hello")
        with pytest.raises(PackageOpenError):
            service.upload(bogus)
        assert not any(service.session.uploads_dir.glob("original_*"))


@pytest.mark.integration
class TestGenerate:
    def test_text_edit(self, service: DeckService, uploaded: dict) -> None:
        deck = service.generate(_edited(uploaded), uploaded["filename"], template_name="Q3 Report")

        assert deck.modified_slides == [1]
        assert deck.warnings == []
        assert deck.filename.startswith("Q3_Report-")
        assert deck.path.read_bytes() == deck.data
        xml = PptxPackage.from_bytes(deck.data).read_text(slide_path(1))
        assert "<a:t>World</a:t>" in xml

    def test_invalid_document(self, service: DeckService, uploaded: dict) -> None:
        with pytest.raises(EditDocumentError):
            service.generate('[{"id": "one"}]', uploaded["filename"])

    def test_unknown_original(self, service: DeckService) -> None:
        with pytest.raises(PackageOpenError):
            service.generate([], "original_missing.pptx")

    def test_stored_image_swapped_in(self, service: DeckService, uploaded: dict) -> None:
        name = service.store_image(png_bytes(color="green"), "logo.png")
        slides = [dict(s) for s in uploaded["slides"]]
        slides[1] = dict(slides[1], elements=[dict(slides[1]["elements"][0], src=name)])

        deck = service.generate(slides, uploaded["filename"])

        assert deck.modified_slides == [2]
        pkg = PptxPackage.from_bytes(deck.data)
        assert any(pkg.read_bytes(m) == png_bytes(color="green") for m in pkg.media_names())


@pytest.mark.integration
class TestTables:
    def test_insert_default_table(self, service: DeckService, uploaded: dict) -> None:
        deck = service.insert_table(uploaded["filename"], 1)
        xml = PptxPackage.from_bytes(deck.data).read_text(slide_path(1))
        assert xml.count("<p:graphicFrame>") == 1
        assert deck.modified_slides == [1]

    def test_replace_table(self, service: DeckService, uploaded: dict) -> None:
        deck = service.replace_table(uploaded["filename"], 3, [["Q"]], x=1, y=4)
        xml = PptxPackage.from_bytes(deck.data).read_text(slide_path(3))
        assert "<a:t>Q</a:t>" in xml
        assert "<a:t>A</a:t>" not in xml

    def test_replace_without_match_warns(self, service: DeckService, uploaded: dict) -> None:
        deck = service.replace_table(uploaded["filename"], 1, [["Q"]])
        assert deck.modified_slides == []
        assert deck.warnings

    def test_missing_slide_is_a_warning(self, service: DeckService, uploaded: dict) -> None:
        deck = service.insert_table(uploaded["filename"], 12, [["A"]])

        assert deck.modified_slides == []
        assert deck.skipped_slides == [12]
        assert deck.warnings == ["slide 12: not present in the original deck"]
        assert PptxPackage.from_bytes(deck.data).slide_numbers() == [1, 2, 3]


@pytest.mark.integration
class TestTemplates:
    def test_save_generate_delete(self, service: DeckService, uploaded: dict) -> None:
        saved = service.save_template("Weekly", _edited(uploaded), filename=uploaded["filename"])
        tid = saved["templateId"]
        assert saved["originalFilePath"] == uploaded["originalPath"]
        assert service.list_templates()[0]["hasOriginalFile"] is True

        deck = service.generate_from_template(tid)
        assert deck.filename.startswith("Weekly-")
        assert "<a:t>World</a:t>" in PptxPackage.from_bytes(deck.data).read_text(slide_path(1))

        service.delete_template(tid)
        with pytest.raises(TemplateNotFoundError):
            service.get_template(tid)


@pytest.mark.integration
class TestHousekeeping:
    def test_normalize(self, service: DeckService, deck_path: Path) -> None:
        data = service.normalize(deck_path)
        assert PptxPackage.from_bytes(data).slide_numbers() == [1, 2, 3]

    def test_list_and_clear(self, service: DeckService, uploaded: dict) -> None:
        (row,) = service.list_presentations()
        assert row["name"] == uploaded["filename"]
        assert row["type"] == "PPTX"
        assert service.clear_uploads() >= 2
        assert service.list_presentations() == []
        assert service.session.original_files == {}

    @pytest.mark.parametrize("n,expected", [(10, "10 B"), (2048, "2.0 KB"), (3 * 1024 * 1024, "3.0 MB")])
    def test_format_file_size(self, n: int, expected: str) -> None:
        assert format_file_size(n) == expected
