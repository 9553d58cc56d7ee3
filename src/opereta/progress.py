"""Result reporting for opereta.

Reporters receive result records as they are produced and the aggregate
results at the end of a run. They replace global output state: the engine
is handed a reporter and never prints by itself.

Output formats:
- JSON: one NDJSON line per record, then the full record list
- Text: colored per-record blocks and a per-server summary table (rich)
"""

import json
import sys
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, TextIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .types import ResultRecord

if TYPE_CHECKING:
    from .executor import ExecutionResults

STATUS_STYLES = {
    "OK": "green",
    "FAILED": "red",
    "UNREACHABLE": "bold red",
    "SKIPPED": "yellow",
}


class ResultReporter(ABC):
    """Base class for result reporters."""

    @abstractmethod
    def on_run_start(self, total_hosts: int, total_tasks: int) -> None:
        """Called before any host is processed."""

    @abstractmethod
    def on_result(self, record: ResultRecord) -> None:
        """Called for each record as it is produced (streaming mode only)."""

    @abstractmethod
    def on_host_error(self, host: str, error: str) -> None:
        """Called when processing a host faulted."""

    @abstractmethod
    def on_run_complete(self, results: "ExecutionResults") -> None:
        """Called once with the aggregate results."""


class JsonResultReporter(ResultReporter):
    """Reports records as machine-readable JSON."""

    def __init__(self, output: TextIO | None = None) -> None:
        """Initialize JSON reporter.

        Args:
            output: Output stream (defaults to sys.stdout)
        """
        self.output = output or sys.stdout

    def _emit(self, text: str) -> None:
        print(text, file=self.output, flush=True)

    def on_run_start(self, total_hosts: int, total_tasks: int) -> None:
        pass

    def on_result(self, record: ResultRecord) -> None:
        self._emit(record.to_json())

    def on_host_error(self, host: str, error: str) -> None:
        self._emit(json.dumps({"host": host, "host_error": error}))

    def on_run_complete(self, results: "ExecutionResults") -> None:
        self._emit(json.dumps([r.to_dict() for r in results.records], indent=2))


class TextResultReporter(ResultReporter):
    """Reports records as colored human-readable text."""

    def __init__(self, output: TextIO | None = None, console: Console | None = None) -> None:
        """Initialize text reporter.

        Args:
            output: Output stream (defaults to sys.stdout)
            console: Rich console to print with (overrides output)
        """
        self.console = console or Console(file=output or sys.stdout, highlight=False)

    def on_run_start(self, total_hosts: int, total_tasks: int) -> None:
        self.console.print(
            f"Running {total_tasks} task(s) on {total_hosts} host(s)...", style="blue"
        )

    def on_result(self, record: ResultRecord) -> None:
        header = f"[{record.session_id[:8]}][{record.event_id[:8]}]"
        timing = f"Executed At: {record.executed_at} | Duration: {record.duration:.3f}s"
        if record.success:
            self.console.print(
                f"{escape(header)} [green]\\[-][/green] {escape(record.host)} "
                f"[green]\\[-][/green] Success {escape(record.task)}"
            )
            self.console.print(timing)
            self.console.print("Result:")
            self.console.print(record.result, markup=False)
        else:
            self.console.print(
                f"{escape(header)} [red]\\[-][/red] {escape(record.host)} "
                f"[red]\\[-][/red] Error {escape(record.error)}"
            )
            self.console.print(timing)

    def on_host_error(self, host: str, error: str) -> None:
        self.console.print(
            f"Recovered from fault in host {escape(host)}: {escape(error)}", style="red"
        )

    def on_run_complete(self, results: "ExecutionResults") -> None:
        table = Table(title="Summary per server", title_style="blue")
        table.add_column("Server")
        table.add_column("Total", justify="right")
        table.add_column("Success", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Status")

        for host, summary in results.summaries.items():
            style = STATUS_STYLES[summary.status]
            table.add_row(
                escape(host),
                str(summary.total),
                str(summary.succeeded),
                str(summary.failed),
                f"[{style}]{summary.status}[/{style}]",
            )

        self.console.print()
        self.console.print(table)
        if results.cancelled:
            self.console.print("Run cancelled before all tasks completed.", style="yellow")
        self.console.print("All tasks completed.", style="blue")


class NullResultReporter(ResultReporter):
    """No-op reporter that discards all events."""

    def on_run_start(self, total_hosts: int, total_tasks: int) -> None:
        pass

    def on_result(self, record: ResultRecord) -> None:
        pass

    def on_host_error(self, host: str, error: str) -> None:
        pass

    def on_run_complete(self, results: "ExecutionResults") -> None:
        pass


class CollectingReporter(ResultReporter):
    """Keeps every event in memory; useful for embedding and tests."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self.results: "ExecutionResults | None" = None

    @property
    def records(self) -> list[ResultRecord]:
        return [payload for kind, payload in self.events if kind == "result"]

    def on_run_start(self, total_hosts: int, total_tasks: int) -> None:
        self.events.append(("start", (total_hosts, total_tasks)))

    def on_result(self, record: ResultRecord) -> None:
        self.events.append(("result", record))

    def on_host_error(self, host: str, error: str) -> None:
        self.events.append(("host_error", (host, error)))

    def on_run_complete(self, results: "ExecutionResults") -> None:
        self.events.append(("complete", results))
        self.results = results


def create_reporter(
    enabled: bool = True,
    json_format: bool = False,
    output: TextIO | None = None,
) -> ResultReporter:
    """Create a result reporter.

    Args:
        enabled: Whether reporting is enabled
        json_format: Use JSON format instead of text
        output: Output stream (defaults to sys.stdout)
    """
    if not enabled:
        return NullResultReporter()
    if json_format:
        return JsonResultReporter(output)
    return TextResultReporter(output)
