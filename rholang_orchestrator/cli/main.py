"""
Rholang Orchestrator CLI.

Commands:
- check: validate a settings file
- probe: wait for an RNode health endpoint
- plan: show the backend decision and server command line
- run: start the language server (and RNode if needed) until interrupted
"""

from __future__ import annotations

import asyncio
import json
import os
import signal

import click

from rholang_orchestrator import __version__
from rholang_orchestrator.backend import build_server_args
from rholang_orchestrator.cli._context import config_from_file, orchestrator_scope
from rholang_orchestrator.config import GrpcEndpoint, OrchestratorConfig
from rholang_orchestrator.config_validator import ConfigValidator
from rholang_orchestrator.constants import (
    DEFAULT_GRPC_ADDRESS,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_READY_INTERVAL,
    SERVER_LOG_LEVELS,
)
from rholang_orchestrator.health import AvailabilityProbe, ReadinessWaiter
from rholang_orchestrator.orchestrator import Orchestrator
from rholang_orchestrator.types.errors import OrchestratorError
from rholang_orchestrator.utils.logger import configure_logging, logger

settings_option = click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="JSON settings file (VS Code settings.json style).",
)


def _load_config(settings_path: str | None) -> OrchestratorConfig:
    try:
        return config_from_file(settings_path)
    except OrchestratorError as e:
        raise click.ClickException(e.user_message) from e


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="Rholang Orchestrator", message="%(prog)s v%(version)s")
@click.option(
    "--log-level",
    type=click.Choice(SERVER_LOG_LEVELS, case_sensitive=False),
    default="info",
    show_default=True,
    help="Orchestrator log level (logs go to stderr).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """Rholang Orchestrator - language server and RNode lifecycle manager."""
    configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@settings_option
def check(settings_path: str | None) -> None:
    """Validate settings and report conflicts."""
    config = _load_config(settings_path)
    report = ConfigValidator().validate(config)

    if not report.issues:
        click.echo("Configuration OK")
        return

    for issue in report.issues:
        label = "error" if issue.blocking else "warning"
        click.echo(f"{label}: [{issue.key}] {issue.message}")

    if report.has_blocking_error:
        raise SystemExit(1)


@cli.command()
@click.option("--address", default=DEFAULT_GRPC_ADDRESS, show_default=True, help="RNode gRPC address (host:port).")
@click.option("--attempts", default=1, show_default=True, type=click.IntRange(min=1), help="Probe attempts.")
@click.option(
    "--interval",
    default=DEFAULT_READY_INTERVAL,
    show_default=True,
    type=click.FloatRange(min=0),
    help="Seconds between attempts.",
)
@click.option(
    "--timeout",
    default=DEFAULT_PROBE_TIMEOUT,
    show_default=True,
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds per attempt.",
)
def probe(address: str, attempts: int, interval: float, timeout: float) -> None:
    """Check whether an RNode health endpoint answers (port + 1)."""
    try:
        endpoint = GrpcEndpoint.parse(address)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--address") from e

    waiter = ReadinessWaiter(AvailabilityProbe(timeout=timeout), max_attempts=attempts, interval=interval)
    ready = asyncio.run(waiter.wait_until_ready(endpoint.host, endpoint.health_port))

    if ready:
        click.echo(f"RNode ready at {endpoint.host}:{endpoint.health_port}")
    else:
        click.echo(f"RNode not ready at {endpoint.host}:{endpoint.health_port}")
        raise SystemExit(1)


@cli.command()
@settings_option
@click.option("--auto-start/--no-auto-start", default=None, help="Override rnode.autoStart.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def plan(settings_path: str | None, auto_start: bool | None, as_json: bool) -> None:
    """Show the validator backend decision and the server command line."""
    config = _load_config(settings_path)
    if auto_start is not None:
        config = config.replace(auto_start=auto_start)

    async def _plan() -> dict:
        async with orchestrator_scope(config) as orchestrator:
            decision = await orchestrator.decide_backend()
            return {
                **decision.to_dict(),
                "command": [config.server_path, *build_server_args(config, decision, os.getpid())],
            }

    result = asyncio.run(_plan())

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"Backend: {result['backend']}" + ("" if result["available"] else " (fallback)"))
    for warning in result["warnings"]:
        click.echo(f"warning: {warning}")
    click.echo("Command: " + " ".join(result["command"]))


@cli.command()
@settings_option
def run(settings_path: str | None) -> None:
    """Run the language server until interrupted. SIGHUP restarts it."""
    config = _load_config(settings_path)
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass
    except OrchestratorError as e:
        click.echo(e.get_formatted_message(), err=True)
        raise SystemExit(1)


async def _serve(config: OrchestratorConfig) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    async with orchestrator_scope(config) as orchestrator:

        def _restart() -> None:
            logger.info("SIGHUP received, restarting language server")
            loop.create_task(_explicit_restart(orchestrator))

        try:
            loop.add_signal_handler(signal.SIGINT, stop.set)
            loop.add_signal_handler(signal.SIGTERM, stop.set)
            loop.add_signal_handler(signal.SIGHUP, _restart)
        except (NotImplementedError, AttributeError):
            logger.debug("Signal handlers unavailable on this platform")

        await orchestrator.activate()
        logger.info(json.dumps(orchestrator.get_status()))
        await stop.wait()


async def _explicit_restart(orchestrator: Orchestrator) -> None:
    try:
        await orchestrator.restart()
    except OrchestratorError as e:
        logger.error(f"Restart failed: {e}")


if __name__ == "__main__":
    cli()
