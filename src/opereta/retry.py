"""Retry policy and failure classification for opereta.

Task retries distinguish two failure classes:

- command-level failures are retried up to the task's max attempts
- connectivity-level failures (host unreachable) are never retried and
  abort every remaining task on that host
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import (
    CommandExecutionError,
    ConfigurationError,
    ExecutionCancelledError,
    HostUnreachableError,
)

if TYPE_CHECKING:
    from .config import EngineConfig
    from .types import TaskConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0

# Phrases that mark an error as host/network unreachability
CONNECTION_ERROR_PHRASES = (
    "connection refused",
    "no route to host",
    "connection failed",
)

# Errors whose type alone settles the classification
_NEVER_CONNECTIVITY = (CommandExecutionError, ConfigurationError, ExecutionCancelledError)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str | int | float) -> float:
    """Parse a duration into seconds.

    Accepts Go-style duration strings ("300ms", "2s", "1m30s", "1.5h") and
    plain numbers, which are taken as seconds.

    Args:
        value: Duration string or number

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value is not a valid non-negative duration

    Example:
        >>> parse_duration("1m30s")
        90.0
        >>> parse_duration(3)
        3.0
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        if not text:
            raise ValueError("invalid duration: empty string")
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_unit_duration(text)

    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    if seconds < 0:
        raise ValueError(f"invalid duration: {value!r} is negative")
    return seconds


def _parse_unit_duration(text: str) -> float:
    sign = 1.0
    body = text
    if body[0] in "+-":
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]

    total = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None:
            raise ValueError(f"invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0:
        raise ValueError(f"invalid duration: {text!r}")
    return sign * total


@dataclass(frozen=True)
class RetryPolicy:
    """Effective retry settings for one task.

    Attributes:
        max_attempts: Total number of attempts (at least 1)
        delay: Seconds to wait between attempts
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: float = DEFAULT_RETRY_DELAY


def resolve_retry_policy(task: "TaskConfig", config: "EngineConfig") -> RetryPolicy:
    """Combine a task's overrides with the engine defaults.

    An unparseable retry delay is logged and replaced by the default; it
    never aborts the run.
    """
    max_attempts = task.max_retries if task.max_retries > 0 else config.default_max_attempts

    delay = config.default_retry_delay
    if task.retry_delay:
        try:
            delay = parse_duration(task.retry_delay)
        except ValueError as e:
            logger.warning(f"Invalid retry_delay for task {task.name}: {e}, using default")

    return RetryPolicy(max_attempts=max(1, max_attempts), delay=delay)


def is_connection_error(text: str) -> bool:
    """Check whether error text describes host/network unreachability.

    Case-insensitive substring match against CONNECTION_ERROR_PHRASES.
    """
    lowered = text.lower()
    return any(phrase in lowered for phrase in CONNECTION_ERROR_PHRASES)


def is_connectivity_failure(error: BaseException) -> bool:
    """Classify an exception raised by a module invocation.

    Transport errors raised by the SSH layer are typed; typed command,
    configuration and cancellation errors are never connectivity-level even
    if their text happens to match. Anything else falls back to the text
    heuristic.
    """
    if isinstance(error, HostUnreachableError):
        return True
    if isinstance(error, _NEVER_CONNECTIVITY):
        return False
    return is_connection_error(str(error))
