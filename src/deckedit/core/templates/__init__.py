from __future__ import annotations

from .store import TemplateStore

__all__ = ["TemplateStore"]
