"""Execution modules for opereta.

The registry maps module identifiers used in task files to module
instances. The engine only looks modules up by name; it never builds them.

Usage:
    from opereta.modules import register_modules

    registry = register_modules()
    shell = registry["shell"]
"""

from opereta.modules.base import ExecutionModule, SSHModule
from opereta.modules.ping import PingModule
from opereta.modules.shell import ShellModule

# Type for module registries
ModuleRegistry = dict[str, ExecutionModule]

# Built-in modules by identifier
MODULES: ModuleRegistry = {
    "shell": ShellModule(),
    "ping": PingModule(),
}


def register_modules() -> ModuleRegistry:
    """Return a fresh registry holding the built-in modules."""
    return dict(MODULES)


def get_module(registry: ModuleRegistry, name: str) -> ExecutionModule | None:
    """Look up a module by identifier.

    Returns:
        The module if registered, None otherwise
    """
    return registry.get(name)


def list_modules() -> list[str]:
    """List the identifiers of the built-in modules."""
    return sorted(MODULES)


__all__ = [
    "ExecutionModule",
    "SSHModule",
    "ShellModule",
    "PingModule",
    "ModuleRegistry",
    "MODULES",
    "register_modules",
    "get_module",
    "list_modules",
]
