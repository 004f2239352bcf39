"""Structured logging configuration.

Uses structlog with a stdlib bridge so that third-party loggers share the same
renderer. Log entries carry:
    - timestamp (ISO-8601)
    - level
    - logger name
    - session_id / request_id (bound via context variables when available)
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

_ctx_session_id: ContextVar[str | None] = ContextVar("session_id", default=None)
_ctx_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def bind_request_context(
    session_id: str | None = None,
    request_id: str | None = None,
) -> None:
    """Bind session/request ids to the current thread or task."""
    if session_id is not None:
        _ctx_session_id.set(session_id)
    if request_id is not None:
        _ctx_request_id.set(request_id)


def clear_request_context() -> None:
    _ctx_session_id.set(None)
    _ctx_request_id.set(None)


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    if (session_id := _ctx_session_id.get()) is not None:
        event_dict["session_id"] = session_id
    if (request_id := _ctx_request_id.get()) is not None:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` for human-readable output, ``"json"`` for
                  machine-readable structured logs.
        log_file: Optional path to write logs to in addition to stderr.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout is reserved for command output ([OK]/[NG] lines).
    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    for noisy in ("PIL",):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.warning("slide_missing", slide=7)
    """
    return structlog.get_logger(name)
