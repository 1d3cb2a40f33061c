"""Logging setup for the bridge and its CLI."""
from __future__ import annotations

import json
import logging
import sys
from typing import IO, Any


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """Configure root logging with a deterministic format.

    The connection worker logs from its own thread, so the thread name is part
    of every line. Logs go to stderr by default; stdout carries CLI output.
    """
    level_value = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_format:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )

    logging.basicConfig(level=level_value, handlers=[handler])


class _JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter (stdlib only)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)
