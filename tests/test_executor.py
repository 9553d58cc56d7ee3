"""Tests for the execution engine."""

import asyncio

import pytest

from conftest import RecordingModule, command_failed, make_host, make_task, unreachable
from opereta.cancellation import CancellationToken
from opereta.config import EngineConfig
from opereta.executor import ExecutionEngine, ExecutionResults, ResultCollection, run, summarize
from opereta.progress import CollectingReporter
from opereta.types import ResultRecord

FAST = EngineConfig(default_retry_delay=0)


def record(host="web01", task="t", success=True, error="", unreachable=False):
    return ResultRecord(
        host=host,
        task=task,
        module="shell",
        success=success,
        error=error,
        event_id="e",
        session_id="s",
        executed_at="2024-01-01T00:00:00+00:00",
        duration=0.1,
        unreachable=unreachable,
    )


class TestScenarios:
    """End-to-end engine scenarios."""

    @pytest.mark.asyncio
    async def test_two_hosts_one_task(self):
        """Test two hosts with an always-succeeding module."""
        module = RecordingModule("ok")
        engine = ExecutionEngine({"recording": module}, FAST)

        results = await engine.run([make_host("web01"), make_host("web02")], [make_task()])

        assert results.total == 2
        assert all(r.success for r in results.records)
        assert {h: s.status for h, s in results.summaries.items()} == {
            "web01": "OK",
            "web02": "OK",
        }
        assert results.is_success()

    @pytest.mark.asyncio
    async def test_unreachable_host(self):
        """Test a connectivity failure leaves one record and skips task 2."""
        first = RecordingModule(unreachable())
        second = RecordingModule("never")
        engine = ExecutionEngine({"recording": first, "second": second}, FAST)

        results = await engine.run(
            [make_host()], [make_task("t1"), make_task("t2", module="second")]
        )

        assert len(results.records) == 1
        assert results.records[0].task == "t1"
        assert not results.records[0].success
        assert results.summaries["web01"].unreachable
        assert results.summaries["web01"].status == "UNREACHABLE"
        assert second.calls == []
        assert not results.is_success()

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self):
        """Test two command failures then success give one success record."""
        module = RecordingModule(command_failed(), command_failed(), "finally")
        engine = ExecutionEngine({"recording": module}, FAST)

        results = await engine.run([make_host()], [make_task()])

        assert len(results.records) == 1
        assert results.records[0].success
        assert results.records[0].result == "finally"
        assert len(module.calls) == 3

    @pytest.mark.asyncio
    async def test_deadline_cancels_in_flight(self):
        """Test the run deadline records cancellation and stops every host."""
        slow = RecordingModule("late", delay=5)
        after = RecordingModule("never")
        config = EngineConfig(default_retry_delay=0, timeout=0.05)
        engine = ExecutionEngine({"recording": slow, "after": after}, config)
        hosts = [make_host("web01"), make_host("web02")]

        loop = asyncio.get_running_loop()
        start = loop.time()
        results = await engine.run(hosts, [make_task("t1"), make_task("t2", module="after")])

        assert loop.time() - start < 2
        assert results.cancelled
        assert len(results.records) == 2
        for r in results.records:
            assert not r.success
            assert "execution cancelled: run deadline exceeded" in r.error
        assert after.calls == []
        assert not results.is_success()

    @pytest.mark.asyncio
    async def test_deadline_stops_later_hosts_sequential(self):
        """Test hosts queued after the deadline never start in sequential mode."""
        slow = RecordingModule("late", delay=5)
        config = EngineConfig(default_retry_delay=0, timeout=0.05, parallel=False)
        engine = ExecutionEngine({"recording": slow}, config)

        results = await engine.run(
            [make_host("web01"), make_host("web02")], [make_task("t1"), make_task("t2")]
        )

        assert results.cancelled
        assert slow.calls_for("web01") == 1
        assert slow.calls_for("web02") == 0
        assert results.records_for("web02") == []
        assert len(results.records_for("web01")) == 1
        assert "execution cancelled" in results.records_for("web01")[0].error
        assert results.summaries["web02"].status == "SKIPPED"
        assert not results.is_success()


class TestExecutionEngine:
    """Tests for ExecutionEngine behavior."""

    @pytest.mark.asyncio
    async def test_parallel_and_sequential_agree(self):
        """Test both modes produce the same (host, task, success) set."""
        hosts = [make_host(f"web{i:02d}") for i in range(4)]
        tasks = [make_task("t1"), make_task("t2", module="flaky")]

        outcomes = []
        for parallel in (True, False):
            registry = {
                "recording": RecordingModule("ok"),
                "flaky": RecordingModule(command_failed()),
            }
            config = EngineConfig(default_retry_delay=0, parallel=parallel)
            results = await ExecutionEngine(registry, config).run(hosts, tasks)
            outcomes.append({(r.host, r.task, r.success) for r in results.records})

        assert outcomes[0] == outcomes[1]
        assert len(outcomes[0]) == 8

    @pytest.mark.asyncio
    async def test_sequential_keeps_host_order(self):
        """Test sequential mode finishes each host before the next."""
        module = RecordingModule("ok")
        engine = ExecutionEngine({"recording": module}, EngineConfig(parallel=False))

        results = await engine.run(
            [make_host("a"), make_host("b")], [make_task("t1"), make_task("t2")]
        )

        assert [(r.host, r.task) for r in results.records] == [
            ("a", "t1"), ("a", "t2"), ("b", "t1"), ("b", "t2"),
        ]

    @pytest.mark.asyncio
    async def test_hosts_run_concurrently(self):
        """Test parallel mode overlaps host work."""
        module = RecordingModule("ok", delay=0.2)
        engine = ExecutionEngine({"recording": module}, FAST)
        hosts = [make_host(f"web{i:02d}") for i in range(5)]

        loop = asyncio.get_running_loop()
        start = loop.time()
        await engine.run(hosts, [make_task()])

        assert loop.time() - start < 0.8

    @pytest.mark.asyncio
    async def test_host_failure_isolated(self):
        """Test one host's failure does not affect another host's records."""

        class PerHost(RecordingModule):
            async def run(self, host, params, token):
                self.calls.append((host.name, dict(params)))
                if host.name == "bad":
                    raise unreachable()
                return "ok"

        module = PerHost()
        engine = ExecutionEngine({"recording": module}, FAST)

        results = await engine.run(
            [make_host("bad"), make_host("good")], [make_task("t1"), make_task("t2")]
        )

        assert [r.task for r in results.records_for("good")] == ["t1", "t2"]
        assert all(r.success for r in results.records_for("good"))
        assert len(results.records_for("bad")) == 1
        assert results.summaries["good"].status == "OK"

    @pytest.mark.asyncio
    async def test_host_fault_contained(self, monkeypatch):
        """Test an unexpected fault while processing a host is contained."""
        from opereta import executor

        original = executor.HostTaskRunner.run

        async def faulty_run(self):
            if self.host.name == "broken":
                raise RuntimeError("runner exploded")
            return await original(self)

        monkeypatch.setattr(executor.HostTaskRunner, "run", faulty_run)
        reporter = CollectingReporter()
        engine = ExecutionEngine({"recording": RecordingModule("ok")}, FAST, reporter)

        results = await engine.run([make_host("broken"), make_host("fine")], [make_task()])

        assert results.host_errors == {"broken": "runner exploded"}
        assert len(results.records_for("fine")) == 1
        assert ("host_error", ("broken", "runner exploded")) in reporter.events
        assert not results.is_success()
        assert list(results.summaries) == ["broken", "fine"]
        assert results.summaries["broken"].status == "FAILED"
        assert results.summaries["broken"].error == "runner exploded"

    @pytest.mark.asyncio
    async def test_connection_in_task_name_not_unreachable(self):
        """Test a command failure is not flagged unreachable by the task name."""
        failing = RecordingModule(command_failed())
        ok = RecordingModule("fine")
        engine = ExecutionEngine({"recording": failing, "ok": ok}, FAST)

        results = await engine.run(
            [make_host()],
            [make_task("check db connection"), make_task("after", module="ok")],
        )

        assert len(results.records) == 2
        assert results.records[0].error.startswith("Task check db connection failed:")
        assert not results.records[0].unreachable
        assert not results.summaries["web01"].unreachable
        assert results.summaries["web01"].status == "FAILED"

    @pytest.mark.asyncio
    async def test_missing_module_named_connection_not_unreachable(self):
        """Test a missing module record is never flagged unreachable."""
        engine = ExecutionEngine({}, FAST)

        results = await engine.run(
            [make_host()], [make_task("refresh connection failed cache", module="nope")]
        )

        assert results.summaries["web01"].status == "FAILED"

    @pytest.mark.asyncio
    async def test_streaming_reports_each_record(self):
        """Test records reach the reporter as they are produced."""
        reporter = CollectingReporter()
        engine = ExecutionEngine({"recording": RecordingModule("ok")}, FAST, reporter)

        results = await engine.run([make_host()], [make_task("t1"), make_task("t2")])

        kinds = [kind for kind, _ in reporter.events]
        assert kinds == ["start", "result", "result", "complete"]
        assert reporter.records == results.records
        assert reporter.results is results

    @pytest.mark.asyncio
    async def test_final_only_mode(self):
        """Test stream_results=False only reports the aggregate."""
        reporter = CollectingReporter()
        config = EngineConfig(default_retry_delay=0, stream_results=False)
        engine = ExecutionEngine({"recording": RecordingModule("ok")}, config, reporter)

        results = await engine.run([make_host()], [make_task()])

        assert reporter.records == []
        assert reporter.results is results
        assert len(results.records) == 1

    @pytest.mark.asyncio
    async def test_reporter_errors_do_not_stop_run(self, caplog):
        """Test a failing reporter only logs a warning."""

        class Broken(CollectingReporter):
            def on_result(self, record):
                raise ValueError("sink closed")

        engine = ExecutionEngine({"recording": RecordingModule("ok")}, FAST, Broken())

        results = await engine.run([make_host()], [make_task()])

        assert results.is_success()
        assert "Reporter error" in caplog.text

    @pytest.mark.asyncio
    async def test_external_token(self):
        """Test an externally cancelled token stops the run."""
        token = CancellationToken()
        token.cancel("operator abort")
        module = RecordingModule("ok")
        engine = ExecutionEngine({"recording": module}, FAST)

        results = await engine.run([make_host()], [make_task()], token=token)

        assert results.records == []
        assert results.cancelled
        assert module.calls == []

    @pytest.mark.asyncio
    async def test_unique_event_ids(self):
        """Test every record carries its own event id."""
        engine = ExecutionEngine({"recording": RecordingModule("ok")}, FAST)
        hosts = [make_host(f"web{i:02d}") for i in range(3)]

        results = await engine.run(hosts, [make_task("t1"), make_task("t2")])

        assert len({r.event_id for r in results.records}) == 6
        assert len({r.session_id for r in results.records}) == 3


class TestResults:
    """Tests for result aggregation."""

    def test_summarize(self):
        """Test per-host totals and status."""
        records = [
            record("a"),
            record("a", success=False, error="Task t failed: command execution failed"),
            record("b"),
            record(
                "c", success=False, error="Task t failed: SSH connection failed: refused",
                unreachable=True,
            ),
        ]

        summary = summarize(records)

        assert summary["a"].total == 2
        assert summary["a"].failed == 1
        assert summary["a"].succeeded == 1
        assert summary["a"].status == "FAILED"
        assert summary["b"].status == "OK"
        assert summary["c"].status == "UNREACHABLE"

    def test_summarize_uses_recorded_flag(self):
        """Test error text alone never marks a host unreachable."""
        records = [record("a", success=False, error="Task check connection failed: exit 1")]

        assert summarize(records)["a"].status == "FAILED"

    def test_summarize_lists_every_host(self):
        """Test hosts without records still appear, in inventory order."""
        summary = summarize(
            [record("b")], hosts=["a", "b", "c"], host_errors={"c": "runner exploded"}
        )

        assert list(summary) == ["a", "b", "c"]
        assert summary["a"].status == "SKIPPED"
        assert summary["b"].status == "OK"
        assert summary["c"].status == "FAILED"
        assert summary["c"].total == 0

    def test_to_dict(self):
        """Test serialization of aggregate results."""
        results = ExecutionResults(records=[record("a")], host_errors={"b": "boom"})
        data = results.to_dict()

        assert data["records"][0]["host"] == "a"
        assert data["summary"]["a"]["status"] == "OK"
        assert data["host_errors"] == {"b": "boom"}
        assert data["cancelled"] is False

    @pytest.mark.asyncio
    async def test_collection_concurrent_appends(self):
        """Test concurrent appends are all kept."""
        collection = ResultCollection()

        await asyncio.gather(*(collection.append(record(f"h{i}")) for i in range(50)))

        assert len(collection) == 50
        assert len({r.host for r in collection.snapshot()}) == 50


class TestSyncRun:
    """Tests for the synchronous entry point."""

    def test_run(self):
        """Test run() drives the engine on its own event loop."""
        results = run([make_host()], [make_task()], {"recording": RecordingModule("ok")}, FAST)
        assert results.is_success()
