"""Ping module - Check that a host accepts SSH sessions.

Arguments:
  (none)

Returns:
  "pong" once a command round-trip over SSH succeeds.

Idempotent: Yes
"""

from typing import Mapping

from ..cancellation import CancellationToken
from ..ssh import close_connection, run_command, ssh_connect
from ..types import HostConfig
from .base import SSHModule


class PingModule(SSHModule):
    name = "ping"

    async def run(
        self,
        host: HostConfig,
        params: Mapping[str, str],
        token: CancellationToken,
    ) -> str:
        retry_delay, retry_count = self.ssh_retry(host)
        conn = await ssh_connect(
            self.ssh_config(host),
            token,
            retry_delay=retry_delay,
            retry_count=retry_count,
        )
        try:
            return (await run_command(conn, "echo pong", token)).strip()
        finally:
            await close_connection(conn)
