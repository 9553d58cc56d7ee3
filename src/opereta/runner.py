"""Per-host task execution for opereta.

A HostTaskRunner drives one host through the ordered task list:

- unknown module or bad parameters: record the failure, no retry, go on
- command failure: retry per the task's policy, record, go on
- connectivity failure: record, abort the host (later tasks get no record)
- cancellation: record for the in-flight task, stop the host
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Mapping

from .cancellation import CancellationToken
from .config import EngineConfig
from .exceptions import (
    ConfigurationError,
    ExecutionCancelledError,
    ModuleFaultError,
    ModuleNotRegisteredError,
    OperetaError,
)
from .logging import get_logger
from .modules import ExecutionModule, ModuleRegistry, get_module
from .retry import RetryPolicy, is_connectivity_failure, resolve_retry_policy
from .types import HostConfig, ResultRecord, TaskConfig

logger = logging.getLogger(__name__)

RecordCallback = Callable[[ResultRecord], Awaitable[None]]


class HostState(Enum):
    RUNNING = "running"
    ABORTED = "aborted"
    DONE = "done"


async def safe_execute(
    module: ExecutionModule,
    host: HostConfig,
    params: Mapping[str, str],
    token: CancellationToken,
) -> str:
    """Invoke a module, containing any unexpected exception.

    OperetaError subclasses pass through unchanged; every other exception
    becomes a ModuleFaultError so a misbehaving module can never unwind past
    this call.
    """
    try:
        return await module.run(host, params, token)
    except OperetaError:
        raise
    except Exception as e:
        logger.error(f"Module {module.name or module!r} faulted on {host.name}: {e!r}")
        raise ModuleFaultError(f"panic during module execution: {e}") from e


async def execute_with_retry(
    module: ExecutionModule,
    host: HostConfig,
    task: TaskConfig,
    policy: RetryPolicy,
    token: CancellationToken,
) -> str:
    """Run a task until it succeeds or its attempts are exhausted.

    Configuration errors, cancellation and connectivity failures are raised
    on the first occurrence. Other failures are retried after
    ``policy.delay``; the last one is raised once attempts run out.

    Raises:
        ExecutionCancelledError: The token fired during an attempt or a wait
        OperetaError: The final failure
    """
    log = get_logger(__name__, host=host.name, task=task.name, module=task.module)

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await safe_execute(module, host, task.params, token)
        except (ConfigurationError, ExecutionCancelledError):
            raise
        except OperetaError as e:
            if is_connectivity_failure(e):
                raise
            if attempt >= policy.max_attempts:
                raise
            log.warning(f"Task execution failed: {e}", attempt=attempt)

        await token.sleep(policy.delay)

    # max_attempts is at least 1, so the loop always returns or raises
    raise AssertionError("unreachable")


class HostTaskRunner:
    """Run the task list against one host.

    Attributes:
        host: Target host
        session_id: Unique identifier of this host's processing session
        state: Current state (RUNNING, ABORTED, DONE)
        abort_reason: Error text that aborted the host, if any
        records: Records produced so far, in task order

    Example:
        >>> runner = HostTaskRunner(host, tasks, register_modules(), EngineConfig(), token)
        >>> records = await runner.run()
    """

    def __init__(
        self,
        host: HostConfig,
        tasks: list[TaskConfig],
        registry: ModuleRegistry,
        config: EngineConfig,
        token: CancellationToken,
        on_record: RecordCallback | None = None,
    ) -> None:
        self.host = host
        self.tasks = tasks
        self.registry = registry
        self.config = config
        self.token = token
        self.on_record = on_record
        self.session_id = str(uuid.uuid4())
        self.state = HostState.RUNNING
        self.abort_reason: str | None = None
        self.records: list[ResultRecord] = []
        self.log = get_logger(__name__, host=host.name, session=self.session_id[:8])

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None

    async def run(self) -> list[ResultRecord]:
        """Process every task in order until done, aborted or cancelled."""
        self.log.debug("Starting host session", tasks=len(self.tasks))

        for task in self.tasks:
            if self.state is not HostState.RUNNING:
                break
            if self.token.cancelled:
                self._abort(f"cancelled before task {task.name}: {self.token.reason}")
                break
            await self._run_task(task)

        self.state = HostState.DONE
        self.log.debug("Host session finished", records=len(self.records), aborted=self.aborted)
        return self.records

    async def _run_task(self, task: TaskConfig) -> None:
        event_id = str(uuid.uuid4())
        started = time.monotonic()

        module = get_module(self.registry, task.module)
        if module is None:
            error = ModuleNotRegisteredError(task.module, task.name)
            self.log.warning(str(error), task=task.name)
            await self._record(task, event_id, started, error=str(error), duration=0.0)
            return

        policy = resolve_retry_policy(task, self.config)
        try:
            output = await execute_with_retry(module, self.host, task, policy, self.token)
        except ExecutionCancelledError as e:
            await self._record(task, event_id, started, error=f"Task {task.name} failed: {e}")
            self._abort(str(e))
        except OperetaError as e:
            unreachable = is_connectivity_failure(e)
            await self._record(
                task, event_id, started,
                error=f"Task {task.name} failed: {e}",
                unreachable=unreachable,
            )
            if unreachable:
                self.log.error(f"Host unreachable, skipping remaining tasks: {e}", task=task.name)
                self._abort(str(e))
        else:
            await self._record(task, event_id, started, result=output)

    def _abort(self, reason: str) -> None:
        self.abort_reason = reason
        self.state = HostState.ABORTED

    async def _record(
        self,
        task: TaskConfig,
        event_id: str,
        started: float,
        result: str = "",
        error: str = "",
        duration: float | None = None,
        unreachable: bool = False,
    ) -> None:
        record = ResultRecord(
            host=self.host.name,
            task=task.name,
            module=task.module,
            success=not error,
            result=result,
            error=error,
            event_id=event_id,
            session_id=self.session_id,
            executed_at=datetime.now(timezone.utc).isoformat(),
            duration=time.monotonic() - started if duration is None else duration,
            unreachable=unreachable,
        )
        self.records.append(record)
        if self.on_record is not None:
            await self.on_record(record)
