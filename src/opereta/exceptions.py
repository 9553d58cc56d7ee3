"""Exception hierarchy for opereta.

Errors fall into three families that the host runner treats differently:

- ConfigurationError: recorded immediately, never retried, host continues
- ModuleError: retried per task policy; HostUnreachableError aborts the host
- ExecutionCancelledError: the run deadline fired or the run was cancelled
"""

from typing import Any


class OperetaError(Exception):
    """Base class for all opereta errors.

    Attributes:
        msg: Human-readable error message
        details: Additional structured fields describing the failure
    """

    def __init__(self, msg: str, **details: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        self.details: dict[str, Any] = details

    def __str__(self) -> str:
        return self.msg


class ConfigurationError(OperetaError):
    """A task or host is misconfigured; retrying cannot help."""


class ModuleNotRegisteredError(ConfigurationError):
    """Raised when a task references a module missing from the registry."""

    def __init__(self, module_name: str, task_name: str) -> None:
        super().__init__(
            f"Module {module_name} not found for task {task_name}",
            module=module_name,
            task=task_name,
        )


class MissingParameterError(ConfigurationError):
    """Raised when a module is invoked without a required parameter."""

    def __init__(self, param: str) -> None:
        super().__init__(f"missing {param} ('{param}')", param=param)


class SSHConfigurationError(ConfigurationError):
    """Raised when SSH credentials are absent or cannot be loaded."""


class InventoryError(ConfigurationError):
    """Raised when an inventory file is malformed."""


class TaskFileError(ConfigurationError):
    """Raised when a task file is malformed."""


class ConfigError(ConfigurationError):
    """Raised when an engine configuration file is malformed."""


class ModuleError(OperetaError):
    """A module invocation failed."""


class CommandExecutionError(ModuleError):
    """The remote command could not be run or exited non-zero.

    The command's combined output is kept in ``output`` rather than in the
    message, so that remote text never reaches failure classification.
    """

    def __init__(self, msg: str, output: str = "", exit_status: int | None = None) -> None:
        super().__init__(msg, exit_status=exit_status)
        self.output = output
        self.exit_status = exit_status


class HostUnreachableError(ModuleError):
    """The host could not be reached at the transport level."""


class ModuleFaultError(ModuleError):
    """An unexpected exception escaped a module and was contained."""


class ExecutionCancelledError(OperetaError):
    """The run was cancelled or its deadline elapsed."""
