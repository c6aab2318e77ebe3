"""Diagnostic logging setup for the CLI.

Only the "s3hsm" package logger is configured; the root logger and other
libraries' loggers are left alone. Diagnostics never go to stdout, which
carries the object location printed by ``store``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from s3hsm.errors import ConfigError

PACKAGE_LOGGER_NAME = "s3hsm"
TRACE_LOGGER_NAME = "s3hsm.trace"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_MARKER = "_s3hsm_handler"


def configure_logging(
    level: str = "INFO", log_file: str | Path | None = None
) -> logging.Logger:
    """Attach a single diagnostic handler to the package logger.

    Calling this again replaces the handler installed by the previous call.

    Args:
        level: Log level name for the package logger.
        log_file: Append diagnostics to this file instead of stderr.

    Returns:
        The configured package logger.

    Raises:
        ConfigError: If the level is unknown or the log file cannot be opened.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ConfigError(f"Unknown log level: {level}")

    handler: logging.Handler
    if log_file is not None:
        try:
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot open log file {log_file}: {e}") from e
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, _HANDLER_MARKER, True)

    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    for existing in list(package_logger.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            package_logger.removeHandler(existing)
            existing.close()
    package_logger.addHandler(handler)
    package_logger.setLevel(numeric_level)
    package_logger.propagate = False
    return package_logger


def enable_trace_logging() -> logging.Logger:
    """Let backend request/response traces through regardless of level."""
    trace_logger = logging.getLogger(TRACE_LOGGER_NAME)
    trace_logger.setLevel(logging.DEBUG)
    return trace_logger
