"""Per-session and per-request state.

``SessionContext`` outlives requests: it remembers which original deck each
uploaded filename came from. ``RequestContext`` lives for one operation and
removes the temp files it handed out when the operation ends, whether it
succeeded or not.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Dict, List, Optional

from deckedit.config import Settings, get_settings
from deckedit.core.naming import safe_filename, unique_stamp
from deckedit.logging import bind_request_context, clear_request_context, get_logger

log = get_logger(__name__)


@dataclass
class SessionContext:
    settings: Settings = field(default_factory=get_settings)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    original_files: Dict[str, Path] = field(default_factory=dict)

    @property
    def uploads_dir(self) -> Path:
        return Path(self.settings.storage.uploads_dir).expanduser()

    @property
    def output_dir(self) -> Path:
        return Path(self.settings.storage.output_dir).expanduser()

    def register_original(self, filename: str, path: Path) -> None:
        self.original_files[filename] = Path(path)

    def original_path(self, filename: str) -> Optional[Path]:
        """Original deck for *filename*: the session map first, then the uploads dir."""
        p = self.original_files.get(filename)
        if p is not None and p.is_file():
            return p
        return self.find_upload(filename)

    def find_upload(self, name: str) -> Optional[Path]:
        """Locate an uploaded file by name, ``/uploads/...`` URL or path."""
        if not name:
            return None
        cleaned = name.replace("\\", "/")
        base = cleaned.rsplit("/", 1)[-1]
        candidates = [
            Path(cleaned),
            self.uploads_dir / cleaned.lstrip("/"),
            self.uploads_dir / base,
        ]
        if cleaned.startswith("/uploads/"):
            candidates.insert(1, self.uploads_dir / cleaned[len("/uploads/"):])
        for c in candidates:
            if c.is_file():
                return c
        return None

    def request(self) -> "RequestContext":
        return RequestContext(session=self)


@dataclass
class RequestContext:
    session: SessionContext
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    temp_files: List[Path] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.session.settings

    def __enter__(self) -> "RequestContext":
        bind_request_context(session_id=self.session.session_id, request_id=self.request_id)
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        try:
            self.cleanup()
        finally:
            clear_request_context()

    def temp_path(self, stem: str, suffix: str) -> Path:
        """A fresh path under the uploads dir, removed at the end of the request."""
        d = self.session.uploads_dir
        d.mkdir(parents=True, exist_ok=True)
        p = d / f"{safe_filename(stem)}_{unique_stamp()}{suffix}"
        self.temp_files.append(p)
        return p

    def cleanup(self) -> None:
        files, self.temp_files = self.temp_files, []
        if not files:
            return
        delay = self.settings.storage.temp_cleanup_delay_seconds
        if delay > 0:
            timer = threading.Timer(delay, _remove_files, args=(files,))
            timer.daemon = True
            timer.start()
        else:
            _remove_files(files)


def _remove_files(files: List[Path]) -> None:
    for p in files:
        try:
            p.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("temp_cleanup_failed", path=str(p), error=str(exc))
