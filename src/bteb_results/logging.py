"""Structlog-based logging for the result resolver.

Library code logs through structlog only; no print() outside the CLI.
Log lines go to stderr so CLI output on stdout stays machine-readable.
"""
from __future__ import annotations

import sys
from typing import Literal

import logging
import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _stderr_logger(*args) -> structlog.PrintLogger:
    # sys.stderr is looked up per logger, it may be swapped after configuration
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: LogLevel = "INFO") -> None:
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str = "bteb_results"):
    return structlog.get_logger(name)


# Initialize default config
configure_logging()
