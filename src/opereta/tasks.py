"""Task file loading for opereta.

A task file is a YAML list, executed in order on every host:

    - name: uptime
      module: shell
      params:
        command: uptime
    - name: restart nginx
      module: shell
      params:
        command: sudo systemctl restart nginx
      max_retries: 5
      retry_delay: 3s
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from .exceptions import TaskFileError
from .types import TaskConfig

logger = logging.getLogger(__name__)


def load_tasks(tasks_file: str | Path) -> list[TaskConfig]:
    """Load the ordered task list from a YAML file.

    Raises:
        TaskFileError: If the file is malformed or a task is invalid
    """
    path = Path(tasks_file)
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise TaskFileError(f"Invalid YAML in {path}: {e}") from e

    return parse_tasks(data, source=str(path))


def parse_tasks(data: Any, source: str = "tasks") -> list[TaskConfig]:
    """Build TaskConfig objects from parsed task data."""
    if not isinstance(data, list):
        raise TaskFileError(f"{source}: expected a list of tasks")

    tasks = [_task_from_dict(entry, f"{source}: task #{i + 1}") for i, entry in enumerate(data)]
    logger.debug(f"Loaded {len(tasks)} task(s) from {source}")
    return tasks


def _task_from_dict(entry: Any, where: str) -> TaskConfig:
    if not isinstance(entry, dict):
        raise TaskFileError(f"{where}: expected a mapping")

    for required in ("name", "module"):
        if not entry.get(required):
            raise TaskFileError(f"{where}: missing required field {required!r}")

    params = entry.get("params") or {}
    if not isinstance(params, dict):
        raise TaskFileError(f"{where} ({entry['name']}): params must be a mapping")

    try:
        max_retries = int(entry.get("max_retries") or 0)
    except (TypeError, ValueError) as e:
        raise TaskFileError(f"{where} ({entry['name']}): invalid max_retries: {e}") from e

    retry_delay = entry.get("retry_delay")
    return TaskConfig(
        name=str(entry["name"]),
        module=str(entry["module"]),
        params={str(k): "" if v is None else str(v) for k, v in params.items()},
        max_retries=max_retries,
        retry_delay=str(retry_delay) if retry_delay is not None else None,
    )
