"""Inventory loading for opereta.

An inventory is a YAML document with a top-level ``hosts`` list:

    hosts:
      - name: web01
        address: 10.0.0.11
        port: 22
        user: deploy
        private_key: ~/.ssh/id_ed25519
        retry_ssh: 5s
        retry_ssh_count: 3
      - name: db01
        address: 10.0.0.21
        user: admin
        password: s3cret
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .exceptions import InventoryError
from .types import DEFAULT_SSH_PORT, HostConfig

logger = logging.getLogger(__name__)

HOST_FIELDS = {
    "name",
    "address",
    "port",
    "user",
    "private_key",
    "password",
    "retry_ssh",
    "retry_ssh_count",
}


def load_inventory(inventory_file: str | Path) -> list[HostConfig]:
    """Load hosts from a YAML inventory file.

    Args:
        inventory_file: Path to the inventory file

    Returns:
        Hosts in file order

    Raises:
        InventoryError: If the file is malformed or a host is invalid

    Example:
        >>> hosts = load_inventory("configs/inventory.yml")
        >>> [h.name for h in hosts]
        ['web01', 'db01']
    """
    path = Path(inventory_file)
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise InventoryError(f"Invalid YAML in {path}: {e}") from e

    return parse_inventory(data, source=str(path))


def parse_inventory(data: Any, source: str = "inventory") -> list[HostConfig]:
    """Build HostConfig objects from parsed inventory data."""
    if not isinstance(data, dict) or not isinstance(data.get("hosts"), list):
        raise InventoryError(f"{source}: expected a mapping with a 'hosts' list")

    hosts: list[HostConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(data["hosts"]):
        host = _host_from_dict(entry, f"{source}: host #{index + 1}")
        if host.name in seen:
            raise InventoryError(f"{source}: duplicate host name {host.name!r}")
        seen.add(host.name)
        hosts.append(host)

    if not hosts:
        raise InventoryError(f"{source}: no hosts defined")

    logger.debug(f"Loaded {len(hosts)} host(s) from {source}")
    return hosts


def _host_from_dict(entry: Any, where: str) -> HostConfig:
    if not isinstance(entry, dict):
        raise InventoryError(f"{where}: expected a mapping")

    for required in ("name", "address"):
        if not entry.get(required):
            raise InventoryError(f"{where}: missing required field {required!r}")

    unknown = sorted(set(entry) - HOST_FIELDS)
    if unknown:
        logger.warning(f"{where}: ignoring unknown field(s): {', '.join(unknown)}")

    private_key = entry.get("private_key") or None
    password = entry.get("password") or None
    if private_key and password:
        raise InventoryError(
            f"{where} ({entry['name']}): set either private_key or password, not both"
        )
    if not private_key and not password:
        raise InventoryError(
            f"{where} ({entry['name']}): no authentication method provided "
            "(private_key or password)"
        )

    try:
        port = int(entry.get("port") or DEFAULT_SSH_PORT)
        retry_ssh_count = int(entry.get("retry_ssh_count") or 0)
    except (TypeError, ValueError) as e:
        raise InventoryError(f"{where} ({entry['name']}): {e}") from e

    retry_ssh = entry.get("retry_ssh")
    host_kwargs: dict[str, Any] = {
        "name": str(entry["name"]),
        "address": str(entry["address"]),
        "port": port,
        "private_key": os.path.expanduser(str(private_key)) if private_key else None,
        "password": str(password) if password else None,
        "retry_ssh": str(retry_ssh) if retry_ssh is not None else None,
        "retry_ssh_count": retry_ssh_count,
    }
    if entry.get("user"):
        host_kwargs["user"] = str(entry["user"])
    return HostConfig(**host_kwargs)
