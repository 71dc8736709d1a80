"""Structured logging for the document database.

Every module logs through get_logger(__name__). Nothing is printed until
the embedding application calls setup_logging() or configure_logging();
before that structlog's defaults apply.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from pathlib import PurePath
from typing import IO, TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from docdb.infrastructure.config import ObservabilityConfig


def _resolve_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {level!r}")
    return value


def _normalize_values(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Render enums (transaction states) by name and paths as strings."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.name.lower()
        elif isinstance(value, PurePath):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: IO[str] | None = None,
) -> None:
    """
    Configure structlog for docdb.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'json' for one object per line, 'console' for humans
        stream: Output stream (default: stdout at the time of each call)

    Raises:
        ValueError: If level or log_format is unknown.
    """
    numeric_level = _resolve_level(level)
    if log_format not in ("json", "console"):
        raise ValueError(f"unknown log format: {log_format!r}")

    # sqlglot reports through the stdlib logger.
    logging.basicConfig(format="%(message)s", stream=stream or sys.stdout, level=numeric_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _normalize_values,
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )


def configure_logging(config: ObservabilityConfig) -> None:
    """Apply the log level and format from settings."""
    setup_logging(level=config.log_level, log_format=config.log_format)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Return a logger bound to the module name and any initial context.

    The logger is resolved lazily, so module-level loggers pick up a
    later setup_logging() call.
    """
    if name:
        initial_context.setdefault("logger_name", name)
    return structlog.get_logger(**initial_context)
