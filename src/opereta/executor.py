"""Run orchestration for opereta.

The ExecutionEngine runs a HostTaskRunner per host, either concurrently
(one asyncio task per host) or sequentially, under a single run deadline.
Records from all hosts are appended to one shared collection and the
per-host summary is derived from it once the run ends.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .cancellation import CancellationToken
from .config import EngineConfig
from .logging import log_performance
from .modules import ModuleRegistry
from .progress import NullResultReporter, ResultReporter
from .runner import HostTaskRunner, RecordCallback
from .types import HostConfig, HostSummary, ResultRecord, TaskConfig

logger = logging.getLogger(__name__)


class ResultCollection:
    """Append-only record list shared by all host workers."""

    def __init__(self) -> None:
        self._records: list[ResultRecord] = []
        self._lock = asyncio.Lock()

    async def append(self, record: ResultRecord) -> None:
        async with self._lock:
            self._records.append(record)

    def snapshot(self) -> list[ResultRecord]:
        """Copy of the records in append (completion) order."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


def summarize(
    records: list[ResultRecord],
    hosts: list[str] | None = None,
    host_errors: dict[str, str] | None = None,
) -> dict[str, HostSummary]:
    """Derive per-host summaries from result records.

    Every name in ``hosts`` gets an entry, in inventory order, even when it
    produced no record. A host is flagged unreachable if any of its records
    was classified connectivity-level when it was made.
    """
    summary: dict[str, HostSummary] = {host: HostSummary() for host in hosts or []}
    for record in records:
        host_summary = summary.setdefault(record.host, HostSummary())
        host_summary.total += 1
        if not record.success:
            host_summary.failed += 1
            if record.unreachable:
                host_summary.unreachable = True
    for host, error in (host_errors or {}).items():
        summary.setdefault(host, HostSummary()).error = error
    return summary


@dataclass
class ExecutionResults:
    """Results of one run across all hosts.

    Attributes:
        records: Result records in completion order
        hosts: Names of every host in the run, in inventory order
        host_errors: Faults that stopped a host's processing, by host name
        cancelled: Whether the run was cancelled or hit its deadline
    """

    records: list[ResultRecord] = field(default_factory=list)
    hosts: list[str] = field(default_factory=list)
    host_errors: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def summaries(self) -> dict[str, HostSummary]:
        return summarize(self.records, self.hosts, self.host_errors)

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.records if not r.success)

    def is_success(self) -> bool:
        """Check if every task on every host succeeded."""
        return self.failed == 0 and not self.host_errors and not self.cancelled

    def records_for(self, host: str) -> list[ResultRecord]:
        return [r for r in self.records if r.host == host]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "records": [r.to_dict() for r in self.records],
            "summary": {h: s.to_dict() for h, s in self.summaries.items()},
            "host_errors": self.host_errors,
            "cancelled": self.cancelled,
        }


class ExecutionEngine:
    """Runs a task list against an inventory of hosts.

    Attributes:
        registry: Module registry used to resolve task modules
        config: Engine configuration
        reporter: Receives each record (when streaming) and the final results

    Example:
        >>> engine = ExecutionEngine(register_modules(), EngineConfig(parallel=True))
        >>> results = await engine.run(hosts, tasks)
        >>> for host, summary in results.summaries.items():
        ...     print(host, summary.status)
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        config: EngineConfig | None = None,
        reporter: ResultReporter | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or EngineConfig()
        self.reporter = reporter or NullResultReporter()

    async def run(
        self,
        hosts: list[HostConfig],
        tasks: list[TaskConfig],
        token: CancellationToken | None = None,
    ) -> ExecutionResults:
        """Execute every task on every host.

        Args:
            hosts: Hosts to process
            tasks: Ordered task list shared by all hosts
            token: Optional externally owned token; by default a token with
                the configured run deadline is created

        Returns:
            ExecutionResults with all records and host faults
        """
        owns_token = token is None
        if token is None:
            token = CancellationToken.with_timeout(self.config.timeout)

        collection = ResultCollection()
        host_errors: dict[str, str] = {}

        async def on_record(record: ResultRecord) -> None:
            await collection.append(record)
            if self.config.stream_results:
                self._report(self.reporter.on_result, record)

        self._report(self.reporter.on_run_start, len(hosts), len(tasks))
        mode = "parallel" if self.config.parallel else "sequential"
        try:
            with log_performance(logger, "Run", hosts=len(hosts), tasks=len(tasks), mode=mode):
                if self.config.parallel:
                    await asyncio.gather(*(
                        self._process_host(host, tasks, token, on_record, host_errors)
                        for host in hosts
                    ))
                else:
                    for host in hosts:
                        await self._process_host(host, tasks, token, on_record, host_errors)
        finally:
            if owns_token:
                token.close()

        results = ExecutionResults(
            records=collection.snapshot(),
            hosts=[host.name for host in hosts],
            host_errors=host_errors,
            cancelled=token.cancelled,
        )
        self._report(self.reporter.on_run_complete, results)
        return results

    async def _process_host(
        self,
        host: HostConfig,
        tasks: list[TaskConfig],
        token: CancellationToken,
        on_record: RecordCallback,
        host_errors: dict[str, str],
    ) -> None:
        """Run one host, containing any fault so other hosts are unaffected."""
        runner = HostTaskRunner(host, tasks, self.registry, self.config, token, on_record)
        try:
            await runner.run()
        except Exception as e:
            logger.exception(f"Recovered from fault while processing host {host.name}: {e}")
            host_errors[host.name] = str(e) or type(e).__name__
            self._report(self.reporter.on_host_error, host.name, host_errors[host.name])

    @staticmethod
    def _report(hook: Any, *args: Any) -> None:
        try:
            hook(*args)
        except Exception as e:
            logger.warning(f"Reporter error in {getattr(hook, '__name__', hook)}: {e}")


def run(
    hosts: list[HostConfig],
    tasks: list[TaskConfig],
    registry: ModuleRegistry,
    config: EngineConfig | None = None,
    reporter: ResultReporter | None = None,
) -> ExecutionResults:
    """Synchronous entry point: run the engine on a fresh event loop."""
    engine = ExecutionEngine(registry, config, reporter)
    return asyncio.run(engine.run(hosts, tasks))
