"""Logging for rustsplice.

Expanded source and snippet output go to stdout, so every log record is
written to stderr. Records about a particular snippet or file carry that
context in ``extra`` (see CONTEXT_FIELDS); the JSON formatter emits it as
top-level keys and the text formatter appends it in brackets.
"""

import json
import logging
import sys
from typing import Any, TextIO

ROOT_LOGGER = "rustsplice"

# Attributes passed via `extra=` that describe what a record is about
CONTEXT_FIELDS = ("snippet", "path", "edition", "returncode")

TEXT_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class TextFormatter(logging.Formatter):
    """Single-line formatter: `LEVEL logger: message [key=value ...]`."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for build systems that collect logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update({key: str(value) for key, value in _context(record).items()})

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(
    level: int = logging.WARNING,
    json_format: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the rustsplice logger.

    Calling it again replaces the previous handler, so the CLI can be
    invoked repeatedly in one process.

    Args:
        level: Logging level (default: WARNING)
        json_format: If True, output JSON-formatted logs
        stream: Destination (default: the current sys.stderr)

    Returns:
        The configured root rustsplice logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter() if json_format else TextFormatter())
    logger.addHandler(handler)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger for a component, e.g. get_logger("executor") -> rustsplice.executor."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)
