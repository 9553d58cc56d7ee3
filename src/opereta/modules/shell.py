"""Shell module - Execute shell commands over SSH.

Arguments:
  command (str, required): The shell command to execute

Returns:
  The command's combined standard output and standard error.

Idempotent: No
"""

import logging
from typing import Mapping

from ..cancellation import CancellationToken
from ..exceptions import CommandExecutionError
from ..ssh import close_connection, run_command, ssh_connect
from ..types import HostConfig
from .base import SSHModule

logger = logging.getLogger(__name__)


class ShellModule(SSHModule):
    """Connect to the host and run ``params["command"]``."""

    name = "shell"

    async def run(
        self,
        host: HostConfig,
        params: Mapping[str, str],
        token: CancellationToken,
    ) -> str:
        command = self.require_param(params, "command")
        retry_delay, retry_count = self.ssh_retry(host)

        conn = await ssh_connect(
            self.ssh_config(host),
            token,
            retry_delay=retry_delay,
            retry_count=retry_count,
        )
        try:
            return await run_command(conn, command, token)
        except CommandExecutionError as e:
            if e.output:
                logger.debug(f"Command output on {host.name}:\n{e.output}")
            raise
        finally:
            await close_connection(conn)
