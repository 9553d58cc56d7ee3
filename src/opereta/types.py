"""Type definitions for opereta.

Hosts and tasks are loaded once and shared read-only by every host worker,
so they are frozen dataclasses. Result records are created exactly once per
(host, task) pair and never modified afterwards.
"""

import json
from dataclasses import dataclass, field
from getpass import getuser
from typing import Any

DEFAULT_SSH_PORT = 22


@dataclass(frozen=True)
class HostConfig:
    """A remote machine subject to task execution.

    Attributes:
        name: Unique identifier for the host (e.g., "web01")
        address: Hostname or IP address for the SSH connection
        port: SSH port number (0 means the default, 22)
        user: Username for SSH authentication (default: current user)
        private_key: Path to a private key file
        password: Password for SSH authentication
        retry_ssh: Delay between connection attempts (e.g., "5s")
        retry_ssh_count: Number of connection attempts (0 means one)

    Example:
        >>> host = HostConfig(name="web01", address="10.0.0.11", password="s3cret")
        >>> host.ssh_port
        22
    """

    name: str
    address: str
    port: int = DEFAULT_SSH_PORT
    user: str = field(default_factory=getuser)
    private_key: str | None = None
    password: str | None = field(default=None, repr=False)
    retry_ssh: str | None = None
    retry_ssh_count: int = 0

    @property
    def ssh_port(self) -> int:
        """Port to dial, falling back to 22 when unset."""
        return self.port or DEFAULT_SSH_PORT

    @property
    def auth_method(self) -> str | None:
        """Return "key", "password" or None when no credentials are set."""
        if self.private_key:
            return "key"
        if self.password:
            return "password"
        return None


@dataclass(frozen=True)
class TaskConfig:
    """A named unit of work bound to a module and its parameters.

    Attributes:
        name: Task name shown in results
        module: Identifier of the execution module (e.g., "shell")
        params: String parameters passed to the module
        max_retries: Maximum attempts for this task (0 = engine default)
        retry_delay: Delay between attempts (e.g., "3s"; None = engine default)
    """

    name: str
    module: str
    params: dict[str, str] = field(default_factory=dict)
    max_retries: int = 0
    retry_delay: str | None = None


@dataclass(frozen=True)
class ResultRecord:
    """Outcome of one task on one host.

    Attributes:
        host: Host name
        task: Task name
        module: Module identifier
        success: Whether the task succeeded
        result: Module output on success
        error: Error text on failure
        event_id: Identifier of this task instance, stable across retries
        session_id: Identifier of the host's processing session
        executed_at: RFC 3339 timestamp of completion
        duration: Elapsed seconds including retries
        unreachable: Whether the failure was connectivity-level
    """

    host: str
    task: str
    module: str
    success: bool
    event_id: str
    session_id: str
    executed_at: str
    duration: float
    result: str = ""
    error: str = ""
    unreachable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "host": self.host,
            "task": self.task,
            "module": self.module,
            "success": self.success,
        }
        if self.result:
            data["result"] = self.result
        if self.error:
            data["error"] = self.error
        if self.unreachable:
            data["unreachable"] = True
        data.update({
            "event_id": self.event_id,
            "session_id": self.session_id,
            "executed_at": self.executed_at,
            "duration": round(self.duration, 6),
        })
        return data

    def to_json(self) -> str:
        """Convert to a single JSON line (NDJSON)."""
        return json.dumps(self.to_dict())


@dataclass
class HostSummary:
    """Per-host totals derived from result records.

    A host with no records and no fault (cancelled before its first task,
    or an empty task list) is reported as SKIPPED.
    """

    total: int = 0
    failed: int = 0
    unreachable: bool = False
    error: str = ""

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def status(self) -> str:
        if self.unreachable:
            return "UNREACHABLE"
        if self.failed or self.error:
            return "FAILED"
        if not self.total:
            return "SKIPPED"
        return "OK"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "unreachable": self.unreachable,
            "status": self.status,
        }
        if self.error:
            data["error"] = self.error
        return data
