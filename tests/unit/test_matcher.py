"""Tests for pairing edited elements with originals."""

from __future__ import annotations

import pytest

from deckedit.core.model import ImageElement, TableElement, TextElement
from deckedit.core.patch.matcher import match_element

ORIGINALS = [
    TextElement(id="text-0", x=1.0, y=1.0, content="Hello"),
    ImageElement(id="image-1", x=4.0, y=3.0, src="ppt/media/image1.png"),
    TableElement(id="table-2", x=1.0, y=4.0),
]


@pytest.mark.unit
class TestMatchElement:
    def test_exact_id_wins_over_position(self) -> None:
        edited = TextElement(id="table-2", x=9.0, y=9.0)
        assert match_element(edited, ORIGINALS) is ORIGINALS[2]

    def test_tight_position_same_type(self) -> None:
        edited = TextElement(id="new", x=1.05, y=0.95)
        assert match_element(edited, ORIGINALS) is ORIGINALS[0]

    def test_loose_position_after_tight_fails(self) -> None:
        edited = ImageElement(id="", x=4.6, y=3.4)
        assert match_element(edited, ORIGINALS) is ORIGINALS[1]

    def test_other_type_never_matches_by_position(self) -> None:
        edited = ImageElement(id="x", x=1.0, y=1.0)
        assert match_element(edited, ORIGINALS) is None

    def test_outside_loose_is_new(self) -> None:
        edited = TextElement(id="x", x=3.0, y=1.0)
        assert match_element(edited, ORIGINALS) is None

    def test_boundary_is_exclusive(self) -> None:
        edited = TextElement(id="x", x=2.0, y=1.0)
        assert match_element(edited, ORIGINALS, loose=1.0) is None

    def test_custom_tolerances(self) -> None:
        edited = TextElement(id="x", x=3.0, y=1.0)
        assert match_element(edited, ORIGINALS, loose=2.5) is ORIGINALS[0]
