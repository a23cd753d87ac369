"""Command line interface for inspecting and driving concierge workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from concierge import WorkflowEngine, build_registry, get_repository, load_config
from concierge.contracts import WorkflowInstance
from concierge.errors import StepError, WorkflowError
from concierge.router import ConciergeRouter, KeywordIntentClassifier
from concierge.services import demo_services
from concierge.utils.tasks import drain_background_tasks

T = TypeVar("T")

app = typer.Typer(help="CLI for concierge workflows")

workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """Concierge CLI entry point."""
    config = load_config()
    logging.basicConfig(level=config.log_level.upper())


def _engine() -> WorkflowEngine:
    registry = build_registry(demo_services())
    return WorkflowEngine.from_config(registry, repository=get_repository())


def _run(action: Callable[[WorkflowEngine], Awaitable[T]]) -> T:
    async def runner() -> T:
        engine = _engine()
        try:
            return await action(engine)
        finally:
            await drain_background_tasks()
            await engine.close()

    return asyncio.run(runner())


def _parse_input(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON input: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    if not isinstance(data, dict):
        typer.secho("Input must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    return data


def _fail(exc: WorkflowError) -> None:
    typer.secho(f"Error ({exc.kind}): {exc.message}", fg=typer.colors.RED)
    if isinstance(exc, StepError) and exc.suggestions:
        typer.echo(f"Suggestions: {json.dumps(exc.suggestions)}")
    raise typer.Exit(code=1)


def _print_instance(wf: WorkflowInstance) -> None:
    typer.echo(f"Workflow {wf.id} ({wf.type}): {wf.status}")
    typer.echo(f"Owner: {wf.owner_id}  Step: {wf.current_step}/{wf.total_steps}")
    if wf.step_data:
        typer.echo(f"Data: {json.dumps(wf.step_data, default=str)}")
    if wf.last_error:
        typer.echo(f"Last error ({wf.last_error.step}): {wf.last_error.message}")
    if wf.prompt:
        typer.echo(f"> {wf.prompt}")


@workflow_app.command("types")
def workflow_types() -> None:
    """List registered workflow types and their steps."""
    registry = build_registry(demo_services())
    for definition in registry:
        typer.echo(f"{definition.type}\t{' -> '.join(definition.step_names)}")
        if definition.description:
            typer.echo(f"  {definition.description}")


@workflow_app.command("list")
def workflow_list(owner: Optional[str] = typer.Option(None, help="Only this owner")) -> None:
    """
    List workflows with their current status.

    Example:
        concierge workflow list --owner u1
        # Output: 3f0c...    book_mentor    u1    running    1/4
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows(owner))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(
            f"{wf.id}\t{wf.type}\t{wf.owner_id}\t{wf.status}\t{wf.current_step}/{wf.total_steps}"
        )


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show a workflow with its accumulated data and step history.

    Example:
        concierge workflow show 3f0c...
        # Output: Workflow 3f0c... (book_mentor): running
        #         - [0] search: completed
        #         - [1] select: invalid (Ada Okafor is no longer available.)
    """
    repo = get_repository()
    wf = asyncio.run(repo.get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    _print_instance(wf)
    for step in asyncio.run(repo.list_steps(workflow_id)):
        typer.echo(
            f"- [{step.step_index}] {step.step_name}: {step.status}"
            + (f" ({step.error})" if step.error else "")
        )


@workflow_app.command("start")
def workflow_start(
    workflow_type: str,
    owner: str,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object"),
) -> None:
    """
    Start a workflow for OWNER and run its first step.

    Example:
        concierge workflow start book_mentor u1 --input '{"expertise": "IoT"}'
    """
    data = _parse_input(input)
    try:
        wf = _run(lambda engine: engine.start(workflow_type, owner, data))
    except WorkflowError as exc:
        _fail(exc)
    _print_instance(wf)


@workflow_app.command("advance")
def workflow_advance(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object"),
) -> None:
    """
    Submit input for the current step of a workflow.

    Example:
        concierge workflow advance 3f0c... --input '{"mentor_id": "m-ada"}'
    """
    data = _parse_input(input)
    try:
        wf = _run(lambda engine: engine.advance(workflow_id, data))
    except WorkflowError as exc:
        _fail(exc)
    _print_instance(wf)


@workflow_app.command("pause")
def workflow_pause(workflow_id: str) -> None:
    """Pause a workflow so it stops receiving input."""
    try:
        wf = _run(lambda engine: engine.pause(workflow_id))
    except WorkflowError as exc:
        _fail(exc)
    _print_instance(wf)


@workflow_app.command("resume")
def workflow_resume(workflow_id: str) -> None:
    """Resume a paused workflow where it left off."""
    try:
        wf = _run(lambda engine: engine.resume(workflow_id))
    except WorkflowError as exc:
        _fail(exc)
    _print_instance(wf)


@workflow_app.command("cancel")
def workflow_cancel(workflow_id: str) -> None:
    """Cancel a workflow permanently."""
    try:
        wf = _run(lambda engine: engine.cancel(workflow_id))
    except WorkflowError as exc:
        _fail(exc)
    _print_instance(wf)


@workflow_app.command("active")
def workflow_active(owner: str) -> None:
    """Show the workflow currently receiving OWNER's messages."""
    wf = _run(lambda engine: engine.get_active(owner))
    if wf is None:
        typer.echo("No active workflow")
        return
    _print_instance(wf)


@app.command("chat")
def chat(owner: str, message: str) -> None:
    """
    Send a message to the concierge as OWNER.

    Entities are passed as key=value pairs.

    Example:
        concierge chat u1 "book a mentor expertise=IoT"
        concierge chat u1 "mentor_id=m-ada"
    """
    reply = _run(
        lambda engine: ConciergeRouter(engine, KeywordIntentClassifier()).handle(
            owner, message
        )
    )
    typer.echo(reply.message)
    if reply.workflow is not None:
        typer.echo(
            f"[{reply.workflow.type} {reply.workflow.id} "
            f"{reply.workflow.current_step}/{reply.workflow.total_steps} {reply.workflow.status}]"
        )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
