"""opereta - minimal fleet automation runner.

Runs an ordered task list on every host of an inventory over SSH, retries
flaky command failures, stops talking to unreachable hosts and summarizes
the results.

Quick Start:
    import asyncio
    from opereta import EngineConfig, ExecutionEngine, register_modules
    from opereta.inventory import load_inventory
    from opereta.tasks import load_tasks

    engine = ExecutionEngine(register_modules(), EngineConfig())
    results = asyncio.run(
        engine.run(load_inventory("inventory.yml"), load_tasks("tasks.yml"))
    )
"""

__version__ = "0.1.0"

from opereta.config import EngineConfig
from opereta.executor import ExecutionEngine, ExecutionResults
from opereta.modules import register_modules
from opereta.types import HostConfig, HostSummary, ResultRecord, TaskConfig

__all__ = [
    "__version__",
    "EngineConfig",
    "ExecutionEngine",
    "ExecutionResults",
    "HostConfig",
    "HostSummary",
    "ResultRecord",
    "TaskConfig",
    "register_modules",
]
