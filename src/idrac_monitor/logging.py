"""Structured logging configuration for iDRAC Monitor."""

from __future__ import annotations

import logging
import sys
from typing import List, Literal, Optional

import structlog

# Libraries that log once per poll at INFO; kept at WARNING unless debugging
CHATTY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


def configure_logging(
    log_format: Literal["json", "text"] = "json",
    log_level: str = "INFO",
    host: Optional[str] = None,
) -> None:
    """Configure structlog for the monitor.

    Args:
        log_format: "json" for containers and log shippers, "text" for a terminal.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        host: iDRAC host bound to every event, so logs from several
            monitors can share one stream.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    processors: List[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if host:
        structlog.contextvars.bind_contextvars(idrac_host=host)

    # stdlib loggers (APScheduler, tenacity retries) share stdout
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger() -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger instance."""
    return structlog.get_logger()
