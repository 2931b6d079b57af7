"""Logging setup and slow-call timing for the task router."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

LOGGER_NAME = "taskrouter"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log files."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            entry.update(extra)
        return json.dumps(entry, default=str)


def setup_logging(level: str | int = logging.INFO, log_file: Path | None = None) -> logging.Logger:
    """Configure the package logger with a console handler and optional JSON file."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    return logger


@contextmanager
def timed_operation(
    operation: str,
    threshold_ms: float,
    logger: logging.Logger | None = None,
    **fields: Any,
) -> Iterator[dict[str, float]]:
    """
    Time a block and warn when it runs past `threshold_ms`.

    Slow calls are only reported, never interrupted. The yielded dict
    receives `elapsed_ms` once the block finishes.
    """
    log = logger or logging.getLogger(LOGGER_NAME)
    timing: dict[str, float] = {}
    start = time.perf_counter()
    try:
        yield timing
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        timing["elapsed_ms"] = elapsed_ms
        extra = {"extra_fields": {"operation": operation, "elapsed_ms": elapsed_ms, **fields}}
        if elapsed_ms > threshold_ms:
            log.warning(
                "%s took %.1fms, exceeding %.0fms target",
                operation,
                elapsed_ms,
                threshold_ms,
                extra=extra,
            )
        else:
            log.debug("%s completed in %.1fms", operation, elapsed_ms, extra=extra)
