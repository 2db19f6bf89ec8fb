"""Logging setup for the console CLI and HTTP surface.

Library modules only create module-level loggers; handlers are installed
here, once, by the entry points.
"""

from __future__ import annotations

import logging
import os

from pipeline_console.config import DEFAULT_LOG_LEVEL, ENV_LOG_LEVEL

LOGGER_NAME = "pipeline_console"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_HANDLER_MARKER = "_pipeline_console_handler"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    Args:
        level: Level name; falls back to PIPELINE_CONSOLE_LOG_LEVEL, then INFO.

    Returns:
        The configured package logger.
    """
    resolved = (level or os.environ.get(ENV_LOG_LEVEL, "").strip() or DEFAULT_LOG_LEVEL).upper()

    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(resolved)

    if not any(getattr(h, _HANDLER_MARKER, False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        setattr(handler, _HANDLER_MARKER, True)
        package_logger.addHandler(handler)

    return package_logger
