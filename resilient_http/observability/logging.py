"""Structured logging configuration.

Client events go through structlog. httpx and httpcore log through the
standard library and are routed to the same stream at a quieter level.
"""

import logging
import sys
from typing import TextIO

import structlog

from resilient_http.observability.context import RunContext


HTTP_LIBRARY_LOGGERS = ("httpx", "httpcore")
RUN_CONTEXT_KEYS = ("run_id", "run_started_at")


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
    library_level: int = logging.WARNING,
) -> None:
    """Configure structured logging for the client and CLI.

    Args:
        level: Level for client events (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to render JSON lines (default: True).
        library_level: Floor for httpx/httpcore records, which log every
            request at INFO.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    # Not cached: the CLI and tests reconfigure within one process
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(levelname)s %(name)s %(message)s", stream=output, level=level)
    for name in HTTP_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, library_level))


def bind_run_context(context: RunContext) -> None:
    """Bind the run identity to every subsequent log event.

    Args:
        context: Run whose id and start time are attached.
    """
    structlog.contextvars.bind_contextvars(
        run_id=context.run_id,
        run_started_at=context.started_at.isoformat(),
    )


def clear_run_context() -> None:
    """Remove the run identity bound by ``bind_run_context``."""
    structlog.contextvars.unbind_contextvars(*RUN_CONTEXT_KEYS)
