"""Engine configuration for opereta.

Holds the run-wide settings: default retry policy, run time budget and
concurrency mode. Values can be loaded from a YAML file and are then
overridden by command line flags.
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .retry import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY, parse_duration

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0  # 10 minutes for the whole run

_DURATION_KEYS = {"default_retry_delay", "timeout"}


@dataclass(frozen=True)
class EngineConfig:
    """Run-wide execution settings.

    Attributes:
        default_max_attempts: Attempts per task when the task sets none
        default_retry_delay: Seconds between attempts when the task sets none
        timeout: Time budget for the whole run in seconds
        parallel: Process hosts concurrently (True) or one at a time
        stream_results: Report each result as it is produced
    """

    default_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    default_retry_delay: float = DEFAULT_RETRY_DELAY
    timeout: float = DEFAULT_TIMEOUT
    parallel: bool = True
    stream_results: bool = True

    def __post_init__(self) -> None:
        if self.default_max_attempts < 1:
            raise ConfigError(
                f"default_max_attempts must be at least 1, got {self.default_max_attempts}"
            )
        if self.default_retry_delay < 0:
            raise ConfigError("default_retry_delay must not be negative")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """Create from a dictionary, parsing duration strings.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for key, value in data.items():
            if key in _DURATION_KEYS:
                try:
                    value = parse_duration(value)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"Invalid {key}: {e}") from e
            values[key] = value
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def load_config(path: str | Path) -> EngineConfig:
    """Load an EngineConfig from a YAML file.

    Example file:

        default_max_attempts: 5
        default_retry_delay: 3s
        timeout: 15m
        parallel: false

    Raises:
        ConfigError: If the file is not a mapping or holds invalid values
    """
    config_path = Path(path)
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")

    config = EngineConfig.from_dict(data)
    logger.debug(f"Loaded configuration from {config_path}: {config.to_dict()}")
    return config
