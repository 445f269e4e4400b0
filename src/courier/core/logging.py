"""Logging configuration for the Courier service.

Modules log through ``logging.getLogger(__name__)``; this module only decides
where those records go and how they are rendered.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from courier.core.settings import settings

ROOT_LOGGER_NAME = "courier"

# Attributes present on every LogRecord; anything else was passed via ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def configure_logging(level: str | None = None, fmt: str | None = None) -> logging.Logger:
    """Install a single stream handler on the ``courier`` logger.

    Args:
        level: Log level name; defaults to ``settings.log_level``.
        fmt: ``"json"`` or ``"text"``; defaults to ``settings.log_format``.

    Returns:
        The configured package logger.
    """
    level_name = (level or settings.log_level).upper()
    format_name = (fmt or settings.log_format).lower()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if format_name == "json" else TextFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    return logger
