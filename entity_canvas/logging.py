"""
Logging utilities for the canvas engine.

All engine modules log through child loggers of the ``entity_canvas``
package logger so a host application can configure them in one place.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_root_logger = logging.getLogger("entity_canvas")


def setup_logging(
    level: str | int = "INFO",
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure logging for the canvas engine.

    Args:
        level: Log level name (DEBUG, INFO, ...) or int
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to also write logs to

    Example:
        from entity_canvas.logging import setup_logging

        setup_logging("DEBUG")
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    if format is None:
        format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    formatter = logging.Formatter(format)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    _root_logger.addHandler(stream_handler)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for an engine submodule.

    Args:
        name: Submodule name (e.g. "drag", "engine")
    """
    return _root_logger.getChild(name)
