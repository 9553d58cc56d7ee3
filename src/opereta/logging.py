"""Logging utilities for opereta.

This module provides:
- Console/file logging setup driven by -v verbosity
- A JSON line formatter for machine-readable runs
- Structured loggers carrying host/task context
- Performance timing
"""

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

DEFAULT_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"

# Custom TRACE level (more detailed than DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

VERBOSITY_LEVELS = {
    0: logging.WARNING,   # Default: warnings and errors only
    1: logging.INFO,      # -v
    2: logging.DEBUG,     # -vv
    3: TRACE,             # -vvv
}


def get_level_from_verbosity(verbosity: int) -> int:
    """Convert a count of -v flags to a logging level."""
    return VERBOSITY_LEVELS.get(min(verbosity, 3), TRACE)


class JsonFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Extra fields attached by StructuredLogger are emitted as top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        data.update(getattr(record, "fields", {}))
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def configure_logging(
    level: int = logging.WARNING,
    json_format: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """Configure root logging for a run.

    Args:
        level: Console logging level
        json_format: Emit JSON lines instead of text
        log_file: Optional path to also write DEBUG logs to

    Example:
        >>> configure_logging(level=logging.INFO)
        >>> configure_logging(json_format=True, log_file="/tmp/opereta.log")
    """
    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    elif level <= logging.DEBUG:
        formatter = logging.Formatter(DEBUG_FORMAT)
    else:
        formatter = logging.Formatter(DEFAULT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(level, logging.DEBUG) if log_file else level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(DEBUG_FORMAT))
        root_logger.addHandler(file_handler)


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    **context: Any,
) -> Generator[None, None, None]:
    """Time an operation and log its duration.

    Example:
        >>> with log_performance(logger, "Run", hosts=100):
        ...     await engine.run(hosts, tasks)
        INFO: Run completed in 1.204s (hosts=100)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        message = f"{operation} completed in {duration:.3f}s"
        if context:
            message += " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"
        logger.log(level, message)


class StructuredLogger:
    """Logger that attaches context fields to every message.

    Fields are appended to the text form of the message and attached to the
    log record, so JsonFormatter renders them as separate keys.

    Example:
        >>> log = get_logger("opereta.runner", host="web01")
        >>> log.bind(task="uptime").warning("Task execution failed", attempt=1)
        WARNING [opereta.runner] Task execution failed (host=web01, task=uptime, attempt=1)
    """

    def __init__(self, name: str, **context: Any) -> None:
        self.logger = logging.getLogger(name)
        self.context: dict[str, Any] = dict(context)

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a new logger with additional context."""
        return StructuredLogger(self.logger.name, **{**self.context, **context})

    def log(self, level: int, message: str, exc_info: bool = False, **extra: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        fields = {**self.context, **extra}
        if fields:
            message = f"{message} (" + ", ".join(f"{k}={v}" for k, v in fields.items()) + ")"
        self.logger.log(level, message, exc_info=exc_info, extra={"fields": fields})

    def debug(self, message: str, **extra: Any) -> None:
        self.log(logging.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log(logging.INFO, message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self.log(logging.WARNING, message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, **extra)

    def exception(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, exc_info=True, **extra)


def get_logger(name: str, **context: Any) -> StructuredLogger:
    """Get a structured logger with initial context."""
    return StructuredLogger(name, **context)
