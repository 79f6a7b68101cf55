"""Logging helpers for migratorx.

Log records go to stderr (and optionally a file); stdout carries the JSON
report only.
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from migratorx.config import load_settings

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_logging_configured = False
_logging_lock = threading.Lock()

_logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure logging for a CLI invocation.

    ``level`` overrides the configured level (used by ``--log-level``).
    """
    global _logging_configured

    settings = load_settings()
    level_name = (level or settings.logging.level).upper()
    resolved_level = getattr(logging, level_name, logging.INFO)

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handlers.append(stream_handler)

    file_error: OSError | None = None
    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.logging.file)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
            handlers.append(file_handler)
        except OSError as exc:
            file_error = exc

    logging.basicConfig(level=resolved_level, handlers=handlers, force=True)
    if file_error is not None:
        _logger.warning("Failed to open log file %s: %s", settings.logging.file, file_error)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    if not _logging_configured:
        with _logging_lock:
            if not _logging_configured:
                configure_logging()
    return logging.getLogger(name)
