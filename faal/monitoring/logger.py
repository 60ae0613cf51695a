"""
Structured logging setup for FAAL.

Adapters log through ``structlog.get_logger()``; this module decides how those
events are rendered. Importing faal does not configure anything, the
embedding application calls configure_logging() once.
"""
import logging
from typing import Optional

import structlog

from faal.config import settings


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structlog rendering.

    Args:
        level: Minimum level name (defaults to settings.LOG_LEVEL)
        fmt: 'json' or 'console' (defaults to settings.LOG_FORMAT)
    """
    level = (level or settings.LOG_LEVEL).upper()
    fmt = (fmt or settings.LOG_FORMAT).lower()

    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level, logging.INFO)
        ),
        cache_logger_on_first_use=False,
    )
