"""Tests for ring chart rendering."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from deckedit.core.render.shape_renderer import render_donut_chart


def _open(data: bytes) -> Image.Image:
    im = Image.open(io.BytesIO(data))
    im.load()
    return im.convert("RGBA")


@pytest.mark.unit
class TestDonutChart:
    def test_png_of_requested_size(self) -> None:
        im = _open(render_donut_chart(size=200))
        assert im.size == (200, 200)

    def test_writes_file_when_path_given(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "chart.png"
        data = render_donut_chart(target, size=100)
        assert target.read_bytes() == data

    def test_center_is_white_and_ring_colored(self) -> None:
        im = _open(render_donut_chart(size=200, segments=[{"color": "#00FF00", "percentage": 100}]))
        assert im.getpixel((100, 100))[:3] == (255, 255, 255)
        # halfway through the ring on the horizontal axis
        assert im.getpixel((170, 100))[:3] == (0, 255, 0)

    def test_corners_transparent(self) -> None:
        im = _open(render_donut_chart(size=100))
        assert im.getpixel((0, 0))[3] == 0

    def test_bad_segments_fall_back_to_defaults(self) -> None:
        default = render_donut_chart(size=120)
        assert render_donut_chart(size=120, segments=[{"percentage": "x"}, "junk"]) == default

    def test_center_text_drawn(self) -> None:
        plain = render_donut_chart(size=200)
        labelled = render_donut_chart(size=200, center_text="42%")
        assert plain != labelled
