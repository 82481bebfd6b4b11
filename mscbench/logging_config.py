"""Logging for mscbench.

Every module logs through ``get_logger(__name__-style short name)`` under the
``mscbench`` logger. The handler is installed lazily from the environment
(MSCBENCH_LOG_LEVEL, MSCBENCH_LOG_FORMAT) and can be replaced at any time
with ``configure_logging``, which is what the CLI's --log-level/--log-format
flags call.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any

import orjson

LOG_LEVEL_ENV = "MSCBENCH_LOG_LEVEL"
LOG_FORMAT_ENV = "MSCBENCH_LOG_FORMAT"  # "json" | "text" (default)
ROOT_LOGGER_NAME = "mscbench"
LOG_FORMATS = ("text", "json")
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_handler: logging.Handler | None = None


def get_logger(name: str) -> logging.Logger:
    """Logger ``mscbench.<name>`` (or the root ``mscbench`` logger)."""
    if _handler is None:
        configure_logging()
    if name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str | None = None, fmt: str | None = None, stream: IO[str] | None = None) -> logging.Logger:
    """(Re)install the single mscbench handler. Unset arguments fall back to the environment."""
    global _handler
    root = logging.getLogger(ROOT_LOGGER_NAME)
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    fmt = (fmt or os.environ.get(LOG_FORMAT_ENV) or "text").lower()
    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT))

    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    _handler = handler
    return root


class JsonFormatter(logging.Formatter):
    """One JSON object per line. Fields passed via ``extra=`` are included."""

    def format(self, record: logging.LogRecord) -> str:
        obj: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt or "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                obj[key] = value
        if record.exc_info:
            obj["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(obj, default=str).decode("utf-8")
