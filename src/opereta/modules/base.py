"""Execution module interface for opereta.

An execution module runs one task's logic against one host and returns
the result text, or raises an OperetaError subclass. Modules are stateless
across invocations and own any transport-level retry they need.
"""

import logging
from abc import ABC, abstractmethod
from typing import Mapping

from ..cancellation import CancellationToken
from ..exceptions import MissingParameterError
from ..retry import parse_duration
from ..ssh import SSHConfig
from ..types import HostConfig

logger = logging.getLogger(__name__)

DEFAULT_SSH_RETRY_DELAY = 2.0


class ExecutionModule(ABC):
    """Base class for execution modules.

    Subclasses set ``name`` and implement ``run``. A well-behaved module
    raises ConfigurationError for bad parameters, ModuleError for failed
    work and ExecutionCancelledError when the token fires; anything else is
    contained by the caller as a module fault.
    """

    name: str = ""

    @abstractmethod
    async def run(
        self,
        host: HostConfig,
        params: Mapping[str, str],
        token: CancellationToken,
    ) -> str:
        """Execute the module against a host.

        Args:
            host: Target host
            params: Task parameters
            token: Run cancellation token

        Returns:
            Result text
        """

    def require_param(self, params: Mapping[str, str], key: str) -> str:
        """Return a required parameter or raise MissingParameterError."""
        if key not in params:
            raise MissingParameterError(key)
        return params[key]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class SSHModule(ExecutionModule):
    """Base for modules that reach the host over SSH."""

    def ssh_config(self, host: HostConfig) -> SSHConfig:
        return SSHConfig(
            hostname=host.address,
            port=host.ssh_port,
            username=host.user or None,
            private_key=host.private_key,
            password=host.password,
        )

    def ssh_retry(self, host: HostConfig) -> tuple[float, int]:
        """Resolve the host's connection retry delay and attempt count."""
        delay = DEFAULT_SSH_RETRY_DELAY
        if host.retry_ssh:
            try:
                delay = parse_duration(host.retry_ssh)
            except ValueError as e:
                logger.warning(f"Invalid retry_ssh for host {host.name}: {e}, using default")
        count = host.retry_ssh_count if host.retry_ssh_count > 0 else 1
        return delay, count
