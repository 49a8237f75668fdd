# src/logging/logger.py — v1
"""Logger setup with JSON and text formatters.

Every module logs through ``logging.getLogger(__name__)``; setup_logging()
configures the shared ``stratrun`` parent logger once per process.

Run/step context is stamped onto each record by RunContextFilter at the
moment it is logged, inside the task that logged it. Formatters only
read record attributes, so concurrent steps of one run never show each
other's step_order even if a handler formats records later.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

from stratrun.logging.context import get_context

ROOT_LOGGER_NAME = "stratrun"
CONTEXT_FIELDS = ("run_id", "strategy_id", "step_order")


class RunContextFilter(logging.Filter):
    """Copy the current run/step context onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_context()
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, getattr(ctx, name))
        return True


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with the run/step context of the record."""

    def format(self, record: logging.LogRecord) -> str:
        RunContextFilter().filter(record)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _record_context(record)
        if context:
            entry["context"] = context
        # Structured payload: logger.info(..., extra={"data": {...}})
        if getattr(record, "data", None):
            entry["data"] = record.data  # type: ignore[attr-defined]
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable single line: time, level, logger, [run], (step), message."""

    def format(self, record: logging.LogRecord) -> str:
        RunContextFilter().filter(record)
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{stamp} [{record.levelname:8s}] {record.name}"
        run_id = getattr(record, "run_id", None)
        if run_id:
            line += f" [run {run_id[:8]}]"
        step_order = getattr(record, "step_order", None)
        if step_order is not None:
            line += f" (step {step_order})"
        line += f" - {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the stratrun namespace."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | Path | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    stream: TextIO | None = None,
) -> None:
    """(Re)configure the stratrun parent logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: "json" or "text".
        log_file: Optional log file, rotated by size.
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
        stream: Console stream (default stdout; the CLI uses stderr).
    """
    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        from stratrun.logging.handlers import create_rotating_handler

        handlers.append(create_rotating_handler(log_file, rotation=rotation, retention=retention))

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RunContextFilter())
        root_logger.addHandler(handler)


def setup_logging_from_settings(settings: Any, stream: TextIO | None = None) -> None:
    """Apply the LOG_* fields of a Settings instance."""
    setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        stream=stream,
    )
