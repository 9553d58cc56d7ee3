"""Async SSH transport for opereta.

Provides connection establishment with retry and cancellable remote
command execution using asyncssh.

Features:
- Key or password authentication (exactly one per host)
- Connection retry with a per-host delay and attempt count
- Remote commands that are terminated when the run is cancelled
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import asyncssh

from .cancellation import CancellationToken
from .exceptions import (
    CommandExecutionError,
    ExecutionCancelledError,
    HostUnreachableError,
    SSHConfigurationError,
)

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0


@dataclass
class SSHConfig:
    """SSH connection configuration.

    Attributes:
        hostname: Remote hostname or IP
        port: SSH port
        username: SSH username
        private_key: Path to a private key file (optional)
        password: Password for authentication (optional)
        connect_timeout: Timeout for a single dial attempt in seconds
    """

    hostname: str
    port: int = 22
    username: str | None = None
    private_key: str | None = None
    password: str | None = field(default=None, repr=False)
    connect_timeout: float = CONNECT_TIMEOUT

    def auth_options(self) -> dict[str, Any]:
        """Build the authentication kwargs for asyncssh.connect().

        The private key wins when both are set.

        Raises:
            SSHConfigurationError: If no credentials are configured or the
                private key cannot be read
        """
        if self.private_key:
            key_path = Path(self.private_key).expanduser()
            try:
                key = asyncssh.read_private_key(key_path)
            except (OSError, asyncssh.KeyImportError) as e:
                raise SSHConfigurationError(f"reading private key {key_path}: {e}") from e
            return {"client_keys": [key]}
        if self.password:
            return {"client_keys": None, "password": self.password}
        raise SSHConfigurationError(
            "no authentication method provided (private key or password)"
        )

    def to_asyncssh_options(self) -> dict[str, Any]:
        """Convert to asyncssh.connect() kwargs."""
        options: dict[str, Any] = {
            "host": self.hostname,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
            # Host keys are not verified
            "known_hosts": None,
        }
        if self.username:
            options["username"] = self.username
        options.update(self.auth_options())
        return options


async def ssh_connect(
    config: SSHConfig,
    token: CancellationToken,
    retry_delay: float = 2.0,
    retry_count: int = 1,
) -> asyncssh.SSHClientConnection:
    """Establish an SSH connection, retrying failed dials.

    Args:
        config: Connection settings
        token: Run cancellation token, checked before each attempt
        retry_delay: Seconds to wait between attempts
        retry_count: Number of dial attempts (at least 1)

    Returns:
        Connected asyncssh client connection

    Raises:
        SSHConfigurationError: No usable credentials (never retried)
        ExecutionCancelledError: The token fired before or between attempts
        HostUnreachableError: Every attempt failed
    """
    options = config.to_asyncssh_options()
    attempts = max(1, retry_count)
    address = f"{config.hostname}:{config.port}"
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        if token.cancelled:
            raise ExecutionCancelledError(f"SSH connection canceled: {token.reason}")

        logger.debug(f"Connecting to {address} (attempt {attempt}/{attempts})")
        try:
            conn = await asyncssh.connect(**options)
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            last_error = e
            logger.info(f"Connection to {address} failed (attempt {attempt}/{attempts}): {e}")
        else:
            logger.info(f"Connected to {address}")
            return conn

        if attempt < attempts:
            try:
                await token.sleep(retry_delay)
            except ExecutionCancelledError as e:
                raise ExecutionCancelledError(f"SSH connection canceled: {token.reason}") from e

    raise HostUnreachableError(
        f"SSH connection failed: dialing SSH after {attempts} attempts: "
        f"{_describe(last_error)}"
    ) from last_error


async def run_command(
    conn: asyncssh.SSHClientConnection,
    command: str,
    token: CancellationToken,
) -> str:
    """Run a command and return its combined stdout/stderr.

    The command runs in the background while waiting on the token; when the
    token fires first, the remote process is sent TERM.

    Raises:
        CommandExecutionError: The session could not be opened or the
            command exited non-zero
        ExecutionCancelledError: The token fired while the command ran
    """
    try:
        process = await conn.create_process(command, stderr=asyncssh.STDOUT)
    except (OSError, asyncssh.Error) as e:
        raise CommandExecutionError(f"creating SSH session: {e}") from e

    logger.debug(f"Running: {command[:100]}")
    try:
        try:
            completed = await token.wait(process.wait(check=False))
        except ExecutionCancelledError:
            logger.warning(f"Terminating remote command after cancellation: {command[:50]}")
            process.terminate()
            raise
    finally:
        process.close()

    output = completed.stdout or ""
    if isinstance(output, bytes):
        output = output.decode(errors="replace")

    status = completed.exit_status
    if completed.exit_signal:
        signal_name = completed.exit_signal[0]
        raise CommandExecutionError(
            f"command execution failed: Process exited with signal {signal_name}",
            output=output,
            exit_status=status,
        )
    if status:
        raise CommandExecutionError(
            f"command execution failed: Process exited with status {status}",
            output=output,
            exit_status=status,
        )

    logger.debug(f"Command completed: {len(output)} bytes of output")
    return output


async def close_connection(conn: asyncssh.SSHClientConnection) -> None:
    """Close a connection and wait for it to shut down."""
    conn.close()
    await conn.wait_closed()


def _describe(error: BaseException | None) -> str:
    if error is None:
        return "unknown error"
    text = str(error)
    if isinstance(error, asyncio.TimeoutError) and not text:
        return "connection timed out"
    return text or type(error).__name__
