"""Shared fakes for opereta tests."""

import asyncio
from types import SimpleNamespace
from typing import Mapping

import asyncssh
import pytest

from opereta.cancellation import CancellationToken
from opereta.exceptions import CommandExecutionError, HostUnreachableError
from opereta.modules import ExecutionModule
from opereta.types import HostConfig, TaskConfig


class RecordingModule(ExecutionModule):
    """Module that counts invocations and replays scripted outcomes.

    Each outcome is either a string (returned) or an exception (raised).
    The last outcome repeats once the script runs out.
    """

    name = "recording"

    def __init__(self, *outcomes, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes) or ["ok"]
        self.delay = delay
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def run(self, host: HostConfig, params: Mapping[str, str], token: CancellationToken) -> str:
        index = min(len(self.calls), len(self.outcomes) - 1)
        self.calls.append((host.name, dict(params)))
        if self.delay:
            await token.wait(asyncio.sleep(self.delay))
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_for(self, host: str) -> int:
        return sum(1 for name, _ in self.calls if name == host)


def unreachable() -> HostUnreachableError:
    return HostUnreachableError(
        "SSH connection failed: dialing SSH after 1 attempts: [Errno 111] Connection refused"
    )


def command_failed() -> CommandExecutionError:
    return CommandExecutionError("command execution failed: Process exited with status 1")


def make_host(name: str = "web01", **kwargs) -> HostConfig:
    kwargs.setdefault("address", "10.0.0.11")
    kwargs.setdefault("user", "deploy")
    kwargs.setdefault("password", "s3cret")
    return HostConfig(name=name, **kwargs)


def make_task(name: str = "uptime", module: str = "recording", **kwargs) -> TaskConfig:
    kwargs.setdefault("params", {"command": "uptime"})
    return TaskConfig(name=name, module=module, **kwargs)


class FakeProcess:
    """Stand-in for asyncssh.SSHClientProcess."""

    def __init__(self, output: str = "", exit_status: int = 0, delay: float = 0.0,
                 exit_signal: tuple | None = None) -> None:
        self.output = output
        self.exit_status = exit_status
        self.exit_signal = exit_signal
        self.delay = delay
        self.terminated = False
        self.closed = False

    async def wait(self, check: bool = False):
        if self.delay:
            await asyncio.sleep(self.delay)
        return SimpleNamespace(
            stdout=self.output,
            exit_status=self.exit_status,
            exit_signal=self.exit_signal,
        )

    def terminate(self) -> None:
        self.terminated = True

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """Stand-in for asyncssh.SSHClientConnection."""

    def __init__(self, process: FakeProcess | None = None, open_error: Exception | None = None) -> None:
        self.process = process or FakeProcess()
        self.open_error = open_error
        self.commands: list[tuple[str, dict]] = []
        self.closed = False

    async def create_process(self, command: str, **kwargs):
        self.commands.append((command, kwargs))
        if self.open_error is not None:
            raise self.open_error
        return self.process

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


class FakeConnect:
    """Replacement for asyncssh.connect replaying scripted dial outcomes."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def __call__(self, **options):
        index = min(len(self.calls), len(self.outcomes) - 1)
        self.calls.append(options)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def fake_connect(monkeypatch):
    """Patch asyncssh.connect; call the fixture with the dial outcomes."""

    def install(*outcomes) -> FakeConnect:
        fake = FakeConnect(*outcomes)
        monkeypatch.setattr(asyncssh, "connect", fake)
        return fake

    return install
