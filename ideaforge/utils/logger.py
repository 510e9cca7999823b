"""Centralized logging configuration.
Call setup_logging() once at application startup.
"""

from __future__ import annotations

import io
import logging
import sys

# third-party loggers that would drown the stage banners
_QUIET_LIBRARIES = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "langgraph": logging.WARNING,
    "langchain": logging.INFO,
    "langchain_groq": logging.INFO,
    "pymongo": logging.WARNING,
    "tenacity": logging.WARNING,
}

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s\n  %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Send IdeaForge logs to stdout at *level*; libraries stay quieter."""
    root = logging.getLogger()
    if root.handlers:
        return

    level_value = logging.getLevelName(level.upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO

    # box-drawing characters in stage banners need a UTF-8 stream on every console
    stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace", line_buffering=True)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))

    root.setLevel(level_value)
    root.addHandler(handler)

    for name, library_level in _QUIET_LIBRARIES.items():
        logging.getLogger(name).setLevel(max(library_level, level_value))
