"""Command line interface for opereta."""

import asyncio
import logging
import sys
from typing import Any

import click

from opereta import __version__
from opereta.config import EngineConfig, load_config
from opereta.exceptions import ConfigurationError
from opereta.executor import ExecutionEngine
from opereta.inventory import load_inventory
from opereta.logging import configure_logging, get_level_from_verbosity
from opereta.modules import list_modules, register_modules
from opereta.progress import create_reporter
from opereta.retry import parse_duration
from opereta.tasks import load_tasks

logger = logging.getLogger(__name__)


class DurationType(click.ParamType):
    """Click parameter accepting durations like "90s", "10m" or "2.5"."""

    name = "duration"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> float:
        if isinstance(value, float):
            return value
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = DurationType()


# Main CLI group
@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """opereta - run tasks on every host of an inventory over SSH."""
    if version:
        click.echo(f"opereta {__version__}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--inventory", "-i", "inventory_path", default="configs/inventory.yml",
              show_default=True, help="Inventory file (YAML format)")
@click.option("--tasks", "-t", "tasks_path", default="configs/tasks.yml",
              show_default=True, help="Tasks file (YAML format)")
@click.option("--output-json", is_flag=True, help="Output results in JSON format")
@click.option("--parallel/--sequential", default=None,
              help="Process hosts concurrently (default) or one at a time")
@click.option("--timeout", type=DURATION, default=None,
              help="Time budget for the whole run (e.g. 10m)")
@click.option("--retries", type=click.IntRange(min=1), default=None,
              help="Default attempts per task")
@click.option("--retry-delay", type=DURATION, default=None,
              help="Default delay between task attempts (e.g. 2s)")
@click.option("--no-stream", is_flag=True, help="Only report results at the end of the run")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Engine configuration file (YAML format)")
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v, -vv, -vvv)")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None,
              help="Also write debug logs to this file")
def run(
    inventory_path: str,
    tasks_path: str,
    output_json: bool,
    parallel: bool | None,
    timeout: float | None,
    retries: int | None,
    retry_delay: float | None,
    no_stream: bool,
    config_path: str | None,
    verbose: int,
    log_file: str | None,
) -> None:
    """Run the task list on every host in the inventory.

    Examples:
        opereta run -i inventory.yml -t tasks.yml

        opereta run -i inventory.yml -t tasks.yml --output-json --sequential

        opereta run -i inventory.yml -t tasks.yml --timeout 5m --retries 5
    """
    configure_logging(
        level=get_level_from_verbosity(verbose),
        json_format=output_json,
        log_file=log_file,
    )

    try:
        config = load_config(config_path) if config_path else EngineConfig()
    except ConfigurationError as e:
        raise click.BadParameter(str(e), param_hint="'--config'")
    try:
        config = config.with_overrides(
            parallel=parallel,
            timeout=timeout,
            default_max_attempts=retries,
            default_retry_delay=retry_delay,
            stream_results=False if no_stream else None,
        )
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    try:
        hosts = load_inventory(inventory_path)
    except (OSError, ConfigurationError) as e:
        raise click.BadParameter(str(e), param_hint="'--inventory'")
    try:
        tasks = load_tasks(tasks_path)
    except (OSError, ConfigurationError) as e:
        raise click.BadParameter(str(e), param_hint="'--tasks'")

    engine = ExecutionEngine(
        register_modules(),
        config,
        create_reporter(json_format=output_json),
    )
    results = asyncio.run(engine.run(hosts, tasks))

    if not results.is_success():
        sys.exit(1)


# Inventory subcommand group
@cli.group()
def inventory() -> None:
    """Inventory management commands."""
    pass


@inventory.command("validate")
@click.option("--inventory", "-i", "inventory_path", required=True,
              help="Inventory file (YAML format)")
def inventory_validate(inventory_path: str) -> None:
    """Validate an inventory file and list its hosts."""
    try:
        hosts = load_inventory(inventory_path)
    except (OSError, ConfigurationError) as e:
        raise click.ClickException(str(e))

    click.echo(f"Inventory: {inventory_path}")
    click.echo(f"Hosts: {len(hosts)}")
    for host in hosts:
        click.echo(
            f"  {host.name}: {host.user}@{host.address}:{host.ssh_port} "
            f"(auth: {host.auth_method})"
        )


# Module subcommand group
@cli.group()
def module() -> None:
    """Module discovery commands."""
    pass


@module.command("list")
def module_list() -> None:
    """List the available execution modules."""
    for name in list_modules():
        click.echo(name)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
