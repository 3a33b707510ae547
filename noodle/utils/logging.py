"""Logging utilities with structured JSON output.

Every module logs through `get_logger(__name__)` and attaches structured
fields with `extra={"context": {...}}`. With several node runs in flight at
once, the node id in that context is what makes the interleaved log readable.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any


class JsonFormatter(logging.Formatter):
    """Convert standard Python log records into JSON strings."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(debug: bool | None = None) -> None:
    """Configure root logging once for the entire application.

    Parameters
    ----------
    debug:
        Optional explicit override. If `None`, use `settings.debug`.
    """

    if debug is None:
        from noodle.config import settings

        debug = settings.debug
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers so repeated setup calls stay idempotent.
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(stream_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a module-specific logger."""

    return logging.getLogger(name)
