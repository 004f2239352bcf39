"""Template store: named snapshots of edited slide content.

One JSON document per template under ``templates_dir``::

    {
      "_id": "<hex>",
      "templateName": "...",
      "slides": [{"slideNo": 1, "slideContent": {...}}, ...],
      "originalFilePath": "/abs/path/deck.pptx" | null,
      "createdAt": "...", "updatedAt": "..."
    }

Saving under an existing name replaces that template's slides in place.
"""

from __future__ import annotations

import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import orjson

from deckedit.core.model import Slide
from deckedit.exceptions import TemplateError, TemplateNotFoundError, TemplateValidationError
from deckedit.logging import get_logger

log = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _slide_dict(s: Slide | Dict[str, Any]) -> Dict[str, Any]:
    return s.to_dict() if isinstance(s, Slide) else dict(s)


def _slide_no(d: Dict[str, Any]) -> int:
    try:
        return int(d.get("id") or 0)
    except (TypeError, ValueError):
        return 0


def _has_original(doc: Dict[str, Any]) -> bool:
    p = doc.get("originalFilePath")
    return bool(p) and Path(p).is_file()


class TemplateStore:
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _path(self, template_id: str) -> Path:
        if not template_id or not all(c.isalnum() for c in template_id):
            raise TemplateNotFoundError(template_id)
        return self.directory / f"{template_id}.json"

    def _read(self, path: Path) -> Dict[str, Any]:
        return orjson.loads(path.read_bytes())

    def _write(self, doc: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(doc["_id"])
        tmp = path.with_suffix(".json.tmp")
        tmp.write_bytes(orjson.dumps(doc, option=orjson.OPT_INDENT_2))
        os.replace(tmp, path)

    def _iter_docs(self) -> Iterable[Dict[str, Any]]:
        if not self.directory.is_dir():
            return
        for p in sorted(self.directory.glob("*.json")):
            try:
                yield self._read(p)
            except (OSError, orjson.JSONDecodeError) as exc:
                log.warning("template_unreadable", path=str(p), error=str(exc))

    def _load(self, template_id: str) -> Dict[str, Any]:
        path = self._path(template_id)
        if not path.is_file():
            raise TemplateNotFoundError(template_id)
        try:
            return self._read(path)
        except (OSError, orjson.JSONDecodeError) as exc:
            raise TemplateError(
                f"Template {template_id} is unreadable: {exc}", {"template_id": template_id}
            ) from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def save(
        self,
        name: str,
        slides: Iterable[Slide | Dict[str, Any]],
        original_path: Optional[str | Path] = None,
    ) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise TemplateValidationError("Template name is required")

        ordered = sorted((_slide_dict(s) for s in slides), key=_slide_no)
        formatted = [{"slideNo": _slide_no(s), "slideContent": s} for s in ordered]
        original = str(Path(original_path).resolve()) if original_path else None

        with self._lock:
            existing = next((d for d in self._iter_docs() if d.get("templateName") == name), None)
            if existing is not None:
                existing["slides"] = formatted
                if original:
                    existing["originalFilePath"] = original
                existing["updatedAt"] = _now()
                doc, created = existing, False
            else:
                now = _now()
                doc = {
                    "_id": uuid.uuid4().hex,
                    "templateName": name,
                    "slides": formatted,
                    "originalFilePath": original,
                    "createdAt": now,
                    "updatedAt": now,
                }
                created = True
            self._write(doc)

        log.info("template_saved", template_id=doc["_id"], name=name, created=created, slides=len(formatted))
        return {
            "templateId": doc["_id"],
            "originalFilePath": doc.get("originalFilePath"),
            "created": created,
        }

    def list(self) -> List[Dict[str, Any]]:
        """Summaries, newest first."""
        out = [
            {
                "_id": d.get("_id"),
                "templateName": d.get("templateName"),
                "createdAt": d.get("createdAt"),
                "slideCount": len(d.get("slides") or []),
                "hasOriginalFile": _has_original(d),
            }
            for d in self._iter_docs()
        ]
        out.sort(key=lambda d: d.get("createdAt") or "", reverse=True)
        return out

    def get(self, template_id: str) -> Dict[str, Any]:
        doc = self._load(template_id)
        slides = sorted(doc.get("slides") or [], key=lambda s: s.get("slideNo") or 0)
        return {
            "_id": doc.get("_id"),
            "templateName": doc.get("templateName"),
            "slides": [s.get("slideContent") for s in slides],
            "originalFilePath": doc.get("originalFilePath"),
            "hasOriginalFile": _has_original(doc),
        }

    def delete(self, template_id: str) -> None:
        path = self._path(template_id)
        with self._lock:
            if not path.is_file():
                raise TemplateNotFoundError(template_id)
            path.unlink()
        log.info("template_deleted", template_id=template_id)

    def original_file(self, template_id: str) -> Path:
        """Path of the deck the template was saved from. Raises when it is gone."""
        doc = self._load(template_id)
        p = doc.get("originalFilePath")
        if not p:
            raise TemplateError(
                f"Template {template_id} has no original file", {"template_id": template_id}
            )
        path = Path(p)
        if not path.is_file():
            raise TemplateError(
                f"Original file not found at path: {path}",
                {"template_id": template_id, "path": str(path)},
            )
        return path
