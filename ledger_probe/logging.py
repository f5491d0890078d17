"""
Structured logging configuration with structlog.

Call ``configure_logging()`` once at process start. Library modules only
call ``structlog.get_logger(__name__)`` and never configure output
themselves, so importing the package has no side effects.

Usage:
    from ledger_probe.logging import configure_logging

    configure_logging(level="DEBUG", fmt="console")  # human output
    configure_logging(level="INFO", fmt="json")      # log aggregation
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.typing import Processor


def _resolve_level(level: str) -> int:
    """Map a level name to its logging integer, defaulting to INFO."""
    value = getattr(logging, level.upper(), logging.INFO)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...).
        fmt: 'json' for machine-readable lines, 'console' for humans.
            Logs go to stderr so stdout stays free for command output.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == "json":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
