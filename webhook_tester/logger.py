"""Application logging: coloured console or JSON lines on stderr."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Any

_LEVELS = [
    (logging.CRITICAL, "fatal", 31),
    (logging.ERROR, "error", 31),
    (logging.WARNING, "warn", 33),
    (logging.INFO, "info", 34),
    (logging.DEBUG, "debug", 35),
]


def _level(levelno: int) -> tuple[str, int]:
    for threshold, name, color in _LEVELS:
        if levelno >= threshold:
            return name, color
    return "debug", 35


def _caller(record: logging.LogRecord) -> str:
    directory = os.path.basename(os.path.dirname(record.pathname))
    return f"{directory}/{record.filename}:{record.lineno}"


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = getattr(record, "fields", None)
    return dict(fields) if fields else {}


class _ConsoleFormatter(logging.Formatter):
    def __init__(self, with_caller: bool) -> None:
        super().__init__()
        self._with_caller = with_caller

    def format(self, record: logging.LogRecord) -> str:
        name, color = _level(record.levelno)
        parts = [
            time.strftime("%H:%M:%S", time.localtime(record.created)),
            f"\x1b[{color}m{name}\x1b[0m",
        ]
        if self._with_caller:
            parts.append(_caller(record))
        parts.append(record.getMessage())
        fields = _fields(record)
        if fields:
            parts.append(json.dumps(fields, default=str))
        text = "\t".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


class _JSONFormatter(logging.Formatter):
    def __init__(self, with_caller: bool) -> None:
        super().__init__()
        self._with_caller = with_caller

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {"level": _level(record.levelno)[0], "ts": record.created}
        if self._with_caller:
            entry["caller"] = _caller(record)
        entry["msg"] = record.getMessage()
        entry.update(_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class _StderrHandler(logging.Handler):
    """Writes to whatever sys.stderr is at the time of emitting."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = sys.stderr
            stream.write(self.format(record) + "\n")
            stream.flush()
        except Exception:  # noqa: BLE001
            self.handleError(record)


def new_logger(verbose: bool, debug: bool, log_json: bool) -> logging.Logger:
    """Create a stand-alone logger.

    Structured fields are passed as ``extra={"fields": {...}}``.
    """
    log = logging.Logger("webhook-tester")
    log.propagate = False
    log.setLevel(logging.DEBUG if verbose or debug else logging.INFO)

    handler = _StderrHandler()
    handler.setFormatter(_JSONFormatter(debug) if log_json else _ConsoleFormatter(debug))
    log.addHandler(handler)

    return log


class RedisBridge:
    """Routes redis client log messages into the application logger."""

    def __init__(self, log: logging.Logger) -> None:
        self._log = log

    def printf(self, fmt: str, *args: Any) -> None:
        """Log a printf-style message as a warning tagged with the redis source."""
        message = fmt % args if args else fmt
        self._log.warning(message, extra={"fields": {"source": "redis"}})