"""structlog setup shared by the rules engine, storage pipelines, API and scripts."""

from __future__ import annotations

import logging
import os
import sys

import structlog

_configured = False


def configure_logging(level: str | None = None, *, json_output: bool | None = None) -> None:
    """Configure structlog on top of stdlib logging (idempotent).

    Level comes from ``LOG_LEVEL`` (default INFO). Output is JSON when ``LOG_FORMAT=json``
    or stderr is not a terminal; otherwise the console renderer is used.
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if json_output is None:
        fmt = os.getenv("LOG_FORMAT", "").strip().lower()
        json_output = fmt == "json" or (fmt != "console" and not sys.stderr.isatty())

    logging.basicConfig(level=log_level, format="%(message)s", stream=sys.stderr)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a module logger; call sites log snake_case events with key-value context."""
    configure_logging()
    return structlog.get_logger(name)
