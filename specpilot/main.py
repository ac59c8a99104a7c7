"""CLI entry point for specpilot."""

import asyncio
import signal
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click
import structlog

from specpilot.config.settings import SpecPilotSettings
from specpilot.engine.orchestrator import ImplementOptions, SpecStatus, WorkflowOrchestrator, WorkflowResult
from specpilot.engine.retry_ledger import FileRetryLedger
from specpilot.engine.types import RunSummary
from specpilot.enums import ImplementMethod
from specpilot.exceptions import ConfigurationError, RetryExhaustedError, SpecPilotError
from specpilot.providers.external_agent import ExternalAgentProvider
from specpilot.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

T = TypeVar("T")

EXIT_INVALID_ARGS = 3
EXIT_INTERRUPTED = 130


@click.group()
@click.option("--config", default="specpilot.yaml", help="Path to configuration file (optional)")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option("--json-logs/--console-logs", default=False, help="Render logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, json_logs: bool) -> None:
    """specpilot: drive an AI coding agent through specify, plan, tasks and implement."""
    configure_logging(log_level, json_output=json_logs)

    try:
        settings = SpecPilotSettings.load(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


def implement_options(func):  # type: ignore[no-untyped-def]
    """Shared options selecting the implement mode and resume point."""
    options = [
        click.option("--phases", "method", flag_value=ImplementMethod.PHASES.value, help="One session per phase"),
        click.option("--tasks", "method", flag_value=ImplementMethod.TASKS.value, help="One session per task"),
        click.option(
            "--single-session",
            "method",
            flag_value=ImplementMethod.SINGLE_SESSION.value,
            help="One session for the whole task list",
        ),
        click.option("--phase", type=int, help="Run only this phase"),
        click.option("--from-phase", type=int, help="Resume the phase loop from this phase"),
        click.option("--from-task", help="Resume the task loop from this task ID"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_options(
    method: str | None,
    phase: int | None,
    from_phase: int | None,
    from_task: str | None,
) -> ImplementOptions:
    try:
        return ImplementOptions(
            method=ImplementMethod(method) if method else None,
            phase=phase,
            from_phase=from_phase,
            from_task=from_task,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID_ARGS)


@cli.command()
@click.argument("feature")
@implement_options
@click.pass_context
def run(
    ctx: click.Context,
    feature: str,
    method: str | None,
    phase: int | None,
    from_phase: int | None,
    from_task: str | None,
) -> None:
    """Run specify, plan, tasks and implement for FEATURE."""
    options = _build_options(method, phase, from_phase, from_task)
    settings = ctx.obj["settings"]

    async def _run() -> WorkflowResult:
        orchestrator = _create_orchestrator(settings, _install_stop_handler())
        return await orchestrator.run_full_workflow(feature, options)

    result = _execute("run", _run())
    click.echo(f"Spec {result.spec_name}: {', '.join(str(stage) for stage in result.stages_completed)} done")
    if result.implement_summary is not None:
        _report_summary(result.implement_summary)


@cli.command()
@click.argument("feature")
@click.pass_context
def prep(ctx: click.Context, feature: str) -> None:
    """Run specify, plan and tasks for FEATURE without implementing."""
    settings = ctx.obj["settings"]

    async def _prep() -> None:
        result = await _create_orchestrator(settings).run_prepare_workflow(feature)
        click.echo(f"Spec {result.spec_name} is ready to implement")

    _execute("prep", _prep())


@cli.command()
@click.argument("feature")
@click.pass_context
def specify(ctx: click.Context, feature: str) -> None:
    """Create a new spec from a FEATURE description."""
    settings = ctx.obj["settings"]

    async def _specify() -> None:
        spec_name = await _create_orchestrator(settings).execute_specify(feature)
        click.echo(f"Created spec {spec_name}")

    _execute("specify", _specify())


@cli.command()
@click.option("--spec", "spec_name", help="Spec name or number (default: newest)")
@click.pass_context
def plan(ctx: click.Context, spec_name: str | None) -> None:
    """Generate plan.yaml from spec.yaml."""
    settings = ctx.obj["settings"]

    async def _plan() -> None:
        name = await _create_orchestrator(settings).execute_plan(spec_name)
        click.echo(f"Plan created for {name}")

    _execute("plan", _plan())


@cli.command()
@click.option("--spec", "spec_name", help="Spec name or number (default: newest)")
@click.pass_context
def tasks(ctx: click.Context, spec_name: str | None) -> None:
    """Generate tasks.yaml from plan.yaml."""
    settings = ctx.obj["settings"]

    async def _tasks() -> None:
        name = await _create_orchestrator(settings).execute_tasks(spec_name)
        click.echo(f"Tasks created for {name}")

    _execute("tasks", _tasks())


@cli.command()
@click.option("--spec", "spec_name", help="Spec name or number (default: newest)")
@implement_options
@click.pass_context
def implement(
    ctx: click.Context,
    spec_name: str | None,
    method: str | None,
    phase: int | None,
    from_phase: int | None,
    from_task: str | None,
) -> None:
    """Implement the tasks of a spec."""
    options = _build_options(method, phase, from_phase, from_task)
    settings = ctx.obj["settings"]

    async def _implement() -> RunSummary:
        orchestrator = _create_orchestrator(settings, _install_stop_handler())
        return await orchestrator.execute_implement(spec_name, options)

    _report_summary(_execute("implement", _implement()))


@cli.command()
@click.option("--spec", "spec_name", help="Spec name or number (default: newest)")
@click.pass_context
def status(ctx: click.Context, spec_name: str | None) -> None:
    """Show artifacts, task progress and retry counts of a spec."""
    settings = ctx.obj["settings"]

    async def _status() -> None:
        _report_status(await _create_orchestrator(settings).get_status(spec_name))

    _execute("status", _status())


@cli.command("reset-retries")
@click.option("--spec", "spec_name", help="Spec name or number (default: newest)")
@click.option("--stage", help="Only reset this stage key, e.g. plan or implement:task-T003")
@click.pass_context
def reset_retries(ctx: click.Context, spec_name: str | None, stage: str | None) -> None:
    """Clear persisted retry counts of a spec."""
    settings = ctx.obj["settings"]

    async def _reset() -> None:
        stages = await _create_orchestrator(settings).reset_retries(spec_name, stage)
        if stages:
            click.echo(f"Reset retry state: {', '.join(stages)}")
        else:
            click.echo("No retry state to reset")

    _execute("reset_retries", _reset())


def _execute(command: str, coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine and map errors to exit codes.

    Exit codes: 0 success, 1 failure, 2 retries exhausted (resumable),
    3 unknown target, 130 interrupted.
    """
    try:
        return asyncio.run(coro)
    except RetryExhaustedError as e:
        click.echo(f"Error: {e.message}", err=True)
        if e.resume_hint:
            click.echo(f"To resume: {e.resume_hint}", err=True)
        log.debug(f"{command}_retries_exhausted", exc_info=True)
        sys.exit(e.exit_code)
    except SpecPilotError as e:
        click.echo(f"Error: {e}", err=True)
        log.debug(f"{command}_error", exc_info=True)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error(f"{command}_unexpected", exc_info=True)
        sys.exit(1)


def _create_orchestrator(
    settings: SpecPilotSettings,
    stop_event: asyncio.Event | None = None,
) -> WorkflowOrchestrator:
    """Create the orchestrator with the configured agent CLI and file ledger."""
    agent = ExternalAgentProvider(settings.agent, working_dir=Path.cwd())
    ledger = FileRetryLedger(settings.state_dir)
    return WorkflowOrchestrator(settings, agent, ledger, stop_event=stop_event)


def _install_stop_handler() -> asyncio.Event:
    """Return an event set on SIGTERM so loops stop after the current unit."""
    stop_event = asyncio.Event()
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, stop_event.set)
    except (NotImplementedError, RuntimeError):
        log.debug("stop_handler_unavailable")
    return stop_event


def _report_summary(summary: RunSummary) -> None:
    click.echo(f"Processed {len(summary.processed)} unit(s), skipped {summary.skipped}")
    for unit in summary.skipped_blocked:
        click.echo(f"  blocked: {unit}")
    for unit in summary.deferred:
        click.echo(f"  dependencies not met: {unit}")
    if summary.interrupted:
        click.echo(f"Stopped before {summary.next_unit}", err=True)
        if summary.resume_hint:
            click.echo(f"To resume: {summary.resume_hint}", err=True)
        sys.exit(EXIT_INTERRUPTED)


def _report_status(spec_status: SpecStatus) -> None:
    click.echo(f"Spec: {spec_status.spec.name}")
    for name, present in spec_status.artifacts.items():
        click.echo(f"  {name}: {'present' if present else 'missing'}")

    stats = spec_status.stats
    if stats is not None:
        click.echo(
            f"Tasks: {stats.completed}/{stats.total} completed ({stats.completion_percentage:.1f}%), "
            f"{stats.in_progress} in progress, {stats.blocked} blocked, {stats.pending} pending"
        )
        for phase in stats.phases:
            click.echo(f"  Phase {phase.number}: {phase.title} [{phase.state}] {phase.completed}/{phase.total}")

    if spec_status.retry_states:
        click.echo("Retry state:")
        for state in spec_status.retry_states:
            click.echo(f"  {state.stage}: {state.count}/{state.max_retries}")


if __name__ == "__main__":
    cli()
