"""Logging utilities for bookmarchive."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

_DEFAULT_LEVEL = os.environ.get("BMA_LOG_LEVEL", "info")

LOG_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


class JsonFormatter(logging.Formatter):
    """Lightweight JSON log formatter."""

    def __init__(self, include_caller: bool = False) -> None:
        super().__init__()
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if self.include_caller:
            payload["caller"] = f"{record.module}:{record.lineno}"
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        for key, value in record.__dict__.items():
            if key.startswith("ctx_"):
                payload[key] = value
        return orjson.dumps(payload, default=str).decode("utf-8")


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter that appends ``ctx_*`` extras as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{key[4:]}={value}"
            for key, value in record.__dict__.items()
            if key.startswith("ctx_")
        ]
        if context:
            line = f"{line} {' '.join(context)}"
        return line


def parse_log_level(level: str | int) -> int:
    """Translate a level name into a logging level; unknown names map to INFO."""
    if isinstance(level, int):
        return level
    return LOG_LEVELS.get(level.strip().lower(), logging.INFO)


def valid_log_levels() -> list[str]:
    return list(LOG_LEVELS)


def configure_logging(level: str | int = _DEFAULT_LEVEL, fmt: str = "console") -> None:
    """Configure root logger with console or JSON formatting."""
    logging.captureWarnings(True)
    resolved = parse_log_level(level)
    include_caller = resolved <= logging.DEBUG
    root = logging.getLogger()
    root.setLevel(resolved)
    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter(include_caller=include_caller))
    else:
        pattern = "%(asctime)s %(levelname)s %(name)s: %(message)s"
        if include_caller:
            pattern = "%(asctime)s %(levelname)s %(name)s %(module)s:%(lineno)d: %(message)s"
        handler.setFormatter(ConsoleFormatter(pattern))
    root.handlers = [handler]


def get_logger(name: str = "bookmarchive") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = [
    "JsonFormatter",
    "ConsoleFormatter",
    "configure_logging",
    "get_logger",
    "parse_log_level",
    "valid_log_levels",
    "LOG_LEVELS",
]
