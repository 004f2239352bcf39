"""Tests for settings, naming and per-request context."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from deckedit.config import Settings, get_settings
from deckedit.core.naming import safe_filename, unique_filename
from deckedit.logging import _inject_context_vars
from deckedit.session import SessionContext


@pytest.mark.unit
class TestSettings:
    def test_defaults(self) -> None:
        with patch.object(Path, "exists", return_value=False):
            s = Settings.load()
        assert s.matching.tight_tolerance_in == 0.1
        assert s.matching.loose_tolerance_in == 1.0
        assert s.shapes.min_width_in == 6.0

    def test_yaml_file(self, tmp_path: Path) -> None:
        cfg = tmp_path / "config.yaml"
        cfg.write_text("matching:\n  loose_tolerance_in: 2.0\ntables:\n  odd_row_fill: CCCCCC\n")
        s = Settings.load(config_file=cfg)
        assert s.matching.loose_tolerance_in == 2.0
        assert s.tables.odd_row_fill == "CCCCCC"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DECKEDIT_PACKAGE__COMPRESSION_LEVEL", "9")
        assert Settings().package.compression_level == 9

    def test_env_outranks_yaml_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        cfg = tmp_path / "config.yaml"
        cfg.write_text("package:\n  compression_level: 3\nmatching:\n  tight_tolerance_in: 0.2\n")
        monkeypatch.setenv("DECKEDIT_PACKAGE__COMPRESSION_LEVEL", "9")
        s = Settings.load(config_file=cfg)
        assert s.package.compression_level == 9
        assert s.matching.tight_tolerance_in == 0.2

    def test_override_fixture_installs_singleton(self, test_settings: Settings) -> None:
        assert get_settings() is test_settings


@pytest.mark.unit
class TestNaming:
    def test_safe_filename(self) -> None:
        assert safe_filename("../../etc/pass wd.pptx") == "pass_wd.pptx"
        assert safe_filename("///", "deck.pptx") == "deck.pptx"

    def test_unique_filenames_differ(self) -> None:
        assert unique_filename("a.png") != unique_filename("a.png")
        assert unique_filename("a.png").endswith("-a.png")


@pytest.mark.unit
class TestSession:
    def test_find_upload_by_name_and_url(self, session: SessionContext) -> None:
        session.uploads_dir.mkdir(parents=True)
        f = session.uploads_dir / "pic.png"
        f.write_bytes(b"x")
        assert session.find_upload("pic.png") == f
        assert session.find_upload("/uploads/pic.png") == f
        assert session.find_upload(str(f)) == f
        assert session.find_upload("missing.png") is None
        assert session.find_upload("") is None

    def test_original_path_prefers_registered(self, session: SessionContext, tmp_path: Path) -> None:
        elsewhere = tmp_path / "elsewhere.pptx"
        elsewhere.write_bytes(b"pk")
        session.register_original("original_1_deck.pptx", elsewhere)
        assert session.original_path("original_1_deck.pptx") == elsewhere

    def test_temp_files_removed_on_exit(self, session: SessionContext) -> None:
        with session.request() as ctx:
            p = ctx.temp_path("shape_1", ".png")
            p.write_bytes(b"x")
            assert p.exists()
        assert not p.exists()

    def test_temp_files_removed_on_error(self, session: SessionContext) -> None:
        with pytest.raises(RuntimeError):
            with session.request() as ctx:
                p = ctx.temp_path("shape_1", ".png")
                p.write_bytes(b"x")
                raise RuntimeError("boom")
        assert not p.exists()

    def test_log_context_bound_then_cleared(self, session: SessionContext) -> None:
        with session.request() as ctx:
            bound = _inject_context_vars(None, "info", {})
            assert bound["request_id"] == ctx.request_id
            assert bound["session_id"] == session.session_id
        assert _inject_context_vars(None, "info", {}) == {}
