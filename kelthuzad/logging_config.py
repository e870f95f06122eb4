"""Structured logging for the supervisor, built on structlog.

Status lines (spawned, done, [FAIL], Waiting...) and internal debug events
share one pipeline: a console renderer for an operator's terminal, JSON lines
when ``KELTHUZAD_ENV=production`` so a log shipper can parse them.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog
from structlog.types import Processor

from kelthuzad.config import get_settings

LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_level(name: str) -> int:
    """Map a level name such as ``debug`` to its logging constant.

    Raises ValueError for anything that is not a standard level name.
    """
    level_name = name.strip().upper()
    if level_name not in LEVEL_NAMES:
        raise ValueError(f"unknown log level {name!r}, expected one of {', '.join(LEVEL_NAMES)}")
    return getattr(logging, level_name)


def _renderer(env: str) -> Processor:
    if env == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger.

    ``level`` is the CLI's ``--log-level`` and wins over ``KELTHUZAD_LOG_LEVEL``.
    The stdlib logger only carries asyncio's own warnings.
    """
    settings = get_settings()
    log_level = resolve_level(level or settings.log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(settings.env),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, level=log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)
