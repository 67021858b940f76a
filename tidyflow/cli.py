"""Command line interface for tidyflow workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import typer
from pydantic import ValidationError

from tidyflow.config import TidyflowConfig, load_config
from tidyflow.errors import TidyflowError
from tidyflow.host import (
    ArchiveStageRequest,
    CodeUpdateProvider,
    CodeUpdateRequest,
    ConfigCleanupHost,
    CreateCleanupWorkflowRequest,
    GenericWorkflowHost,
    WorkflowResponse,
)
from tidyflow.persistence import get_repository
from tidyflow.workflow import CleanupWorkflowType, SimulatedEffects

app = typer.Typer(help="CLI for tidyflow configuration cleanup workflows")

# Command groups
cleanup_app = typer.Typer(help="Commands for configuration cleanup workflows")
code_update_app = typer.Typer(help="Commands for code-update workflows")

app.add_typer(cleanup_app, name="cleanup")
app.add_typer(code_update_app, name="code-update")

T = TypeVar("T")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (default from config)"
    ),
) -> None:
    """tidyflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ----------------------------------------------------------------------
# Helpers
def _cleanup_host(config: TidyflowConfig) -> ConfigCleanupHost:
    return ConfigCleanupHost(
        get_repository(),
        effects=SimulatedEffects(delay=config.effects.simulated_delay_seconds),
        default_wait=timedelta(hours=config.workflow.default_wait_hours),
        default_stage_names=config.workflow.stage_names,
    )


def _code_update_host() -> GenericWorkflowHost:
    return GenericWorkflowHost(get_repository(), CodeUpdateProvider())


def _run(host: GenericWorkflowHost, action: Callable[[GenericWorkflowHost], Awaitable[T]]) -> T:
    """Run ``action`` against ``host`` and turn tidyflow errors into exit code 1."""

    async def runner() -> T:
        try:
            return await action(host)
        finally:
            await host.close()

    try:
        return asyncio.run(runner())
    except TidyflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for value in values or []:
        key, sep, val = value.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got {value!r}", param_hint=option)
        pairs[key] = val
    return pairs


def _parse_stage(value: str) -> ArchiveStageRequest:
    parts = value.split(":")
    if not 1 <= len(parts) <= 4 or not parts[0]:
        raise typer.BadParameter(
            f"expected name[:current[:target[:wait_hours]]], got {value!r}",
            param_hint="--stage",
        )
    fields: Dict[str, Any] = {"name": parts[0]}
    try:
        if len(parts) > 1 and parts[1]:
            fields["current_percentage"] = int(parts[1])
        if len(parts) > 2 and parts[2]:
            fields["target_percentage"] = int(parts[2])
        if len(parts) > 3 and parts[3]:
            fields["wait_hours"] = float(parts[3])
    except ValueError:
        raise typer.BadParameter(f"invalid number in {value!r}", param_hint="--stage")
    return ArchiveStageRequest(**fields)


def _echo_workflow(response: WorkflowResponse, history: bool = False) -> None:
    typer.echo(f"Workflow {response.id}: {response.state}")
    typer.echo(f"Name: {response.display_name} ({response.workflow_type})")
    typer.echo(f"Status: {response.status}")
    progress = response.progress
    typer.echo(
        f"Progress: {progress.current_step}/{progress.total_steps} "
        f"({progress.percent_complete:.0f}%) - {progress.current_step_description}"
    )
    if progress.requires_manual_action:
        typer.echo(f"Action required: {progress.manual_action_description}")
    if response.error_message:
        typer.secho(f"Error: {response.error_message}", fg=typer.colors.RED)
    if response.available_actions:
        typer.echo(f"Actions: {', '.join(response.available_actions)}")
    if response.metadata:
        typer.echo(f"Metadata: {response.metadata}")
    if history:
        for event in response.history:
            transition = (
                f" ({event.from_state} -> {event.to_state})"
                if event.from_state or event.to_state
                else ""
            )
            typer.echo(
                f"- {event.timestamp:%Y-%m-%d %H:%M:%S} {event.event_type}{transition}"
            )


# ----------------------------------------------------------------------
# cleanup
@cleanup_app.command("create")
def cleanup_create(
    name: str,
    workflow_type: CleanupWorkflowType = typer.Option(
        CleanupWorkflowType.ARCHIVE_ONLY, "--type", "-t", help="Cleanup workflow type"
    ),
    traffic: int = typer.Option(100, "--traffic", help="Current traffic percentage"),
    wait_hours: Optional[float] = typer.Option(
        None, "--wait-hours", help="Default wait between reductions, in hours"
    ),
    stage: Optional[List[str]] = typer.Option(
        None, "--stage", help="Stage as name:current:target:wait_hours (repeatable)"
    ),
    meta: Optional[List[str]] = typer.Option(
        None, "--meta", help="Metadata as key=value (repeatable)"
    ),
    description: Optional[str] = typer.Option(None, "--description"),
) -> None:
    """
    Create a configuration cleanup workflow.

    Example:
        tidyflow cleanup create feature.flag --stage dev:100:0:0 --stage prod:100:0:24
        tidyflow cleanup create old.setting --type CodeFirst --meta owner=payments
    """
    try:
        request = CreateCleanupWorkflowRequest(
            configuration_name=name,
            workflow_type=workflow_type,
            current_traffic_percentage=traffic,
            wait_duration=timedelta(hours=wait_hours) if wait_hours is not None else None,
            description=description,
            metadata=_parse_pairs(meta, "--meta"),
            stages=[_parse_stage(s) for s in stage or []],
        )
        # Stage bounds are checked when the stage set is built.
        workflow_id = _run(
            _cleanup_host(load_config()), lambda host: host.create_workflow(request)
        )
    except ValidationError as exc:
        typer.secho(f"Invalid workflow request: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(workflow_id)


@cleanup_app.command("list")
def cleanup_list() -> None:
    """List cleanup workflows, newest first."""
    responses = _run(_cleanup_host(load_config()), lambda host: host.get_all_workflows())
    if not responses:
        typer.echo("No workflows found")
        return
    for wf in responses:
        typer.echo(f"{wf.id}\t{wf.display_name}\t{wf.workflow_type}\t{wf.state}")


@cleanup_app.command("show")
def cleanup_show(workflow_id: str) -> None:
    """Show a cleanup workflow with its history."""
    response = _run(
        _cleanup_host(load_config()), lambda host: host.get_workflow(workflow_id)
    )
    _echo_workflow(response, history=True)


@cleanup_app.command("start")
def cleanup_start(workflow_id: str) -> None:
    """Start a cleanup workflow."""
    response = _run(
        _cleanup_host(load_config()), lambda host: host.start_workflow(workflow_id)
    )
    _echo_workflow(response)


@cleanup_app.command("proceed")
def cleanup_proceed(workflow_id: str) -> None:
    """Manually advance a staged archive or code review workflow."""
    response = _run(
        _cleanup_host(load_config()), lambda host: host.proceed_workflow(workflow_id)
    )
    _echo_workflow(response)


@cleanup_app.command("event")
def cleanup_event(
    workflow_id: str,
    event: str,
    data: Optional[List[str]] = typer.Option(
        None, "--data", help="Event data as key=value (repeatable)"
    ),
) -> None:
    """
    Deliver an external event to a cleanup workflow.

    Example:
        tidyflow cleanup event <id> PRCreated --data url=https://example.org/pr/1
    """
    payload = _parse_pairs(data, "--data")
    response = _run(
        _cleanup_host(load_config()),
        lambda host: host.handle_external_event(workflow_id, event, payload),
    )
    _echo_workflow(response)


@cleanup_app.command("delete")
def cleanup_delete(workflow_id: str) -> None:
    """Delete a cleanup workflow."""
    deleted = _run(
        _cleanup_host(load_config()), lambda host: host.delete_workflow(workflow_id)
    )
    if not deleted:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {workflow_id}")


@cleanup_app.command("summary")
def cleanup_summary() -> None:
    """Show counts over all stored workflows."""
    summary = _run(_cleanup_host(load_config()), lambda host: host.summary())
    typer.echo(
        f"Total: {summary.total}  Active: {summary.active}  "
        f"Completed: {summary.completed}  Failed: {summary.failed}  "
        f"Awaiting action: {summary.awaiting_manual_action}"
    )
    for workflow_type, count in sorted(summary.by_type.items()):
        typer.echo(f"type {workflow_type}: {count}")
    for state, count in sorted(summary.by_state.items()):
        typer.echo(f"state {state}: {count}")


@cleanup_app.command("resume")
def cleanup_resume(
    wait: bool = typer.Option(
        False, "--wait/--no-wait", help="Stay running until pending wait periods end"
    ),
) -> None:
    """Rehydrate unfinished cleanup workflows and settle elapsed wait periods."""

    async def action(host: GenericWorkflowHost) -> List[str]:
        recovered = await host.recover()
        if wait:
            await host.scheduler.join()
        return recovered

    recovered = _run(_cleanup_host(load_config()), action)
    typer.echo(f"Resumed {len(recovered)} workflow(s)")


# ----------------------------------------------------------------------
# code-update
@code_update_app.command("create")
def code_update_create(
    title: str,
    description: str = typer.Option("", "--description"),
) -> None:
    """Create a code-update workflow."""
    request = CodeUpdateRequest(title=title, description=description)
    workflow_id = _run(_code_update_host(), lambda host: host.create_workflow(request))
    typer.echo(workflow_id)


@code_update_app.command("start")
def code_update_start(workflow_id: str) -> None:
    """Start a code-update workflow."""
    response = _run(_code_update_host(), lambda host: host.start_workflow(workflow_id))
    _echo_workflow(response)


@code_update_app.command("event")
def code_update_event(
    workflow_id: str,
    event: str,
    data: Optional[List[str]] = typer.Option(
        None, "--data", help="Event data as key=value (repeatable)"
    ),
) -> None:
    """Deliver an event such as ValidateInTest or DetectDeployment."""
    payload = _parse_pairs(data, "--data")
    response = _run(
        _code_update_host(),
        lambda host: host.handle_external_event(workflow_id, event, payload),
    )
    _echo_workflow(response)


@code_update_app.command("show")
def code_update_show(workflow_id: str) -> None:
    """Show a code-update workflow with its history."""
    response = _run(_code_update_host(), lambda host: host.get_workflow(workflow_id))
    _echo_workflow(response, history=True)


if __name__ == "__main__":
    app()
