"""Command line interface for trellis workflows and workers."""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

import typer

from trellis import JobExecutor, get_repository
from trellis.config import load_config
from trellis.errors import JobNotFound, WorkflowNotFound
from trellis.repository import Repository
from trellis.workflow import Workflow

app = typer.Typer(help="CLI for trellis workflows")

workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, help="Path to a YAML config file"),
    module: List[str] = typer.Option(
        [], "--module", "-m", help="Module registering workflow and job types"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """trellis CLI entry point."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    settings = load_config(config)
    for name in [*settings.modules, *module]:
        importlib.import_module(name)
    ctx.meta["config"] = settings
    if ctx.obj is None:
        ctx.obj = get_repository(settings)


def _repo(ctx: typer.Context) -> Repository:
    return ctx.obj


def _parse_arguments(arguments: Optional[List[str]]) -> list:
    """Decode each argument as JSON, falling back to the raw string."""
    parsed = []
    for raw in arguments or []:
        try:
            parsed.append(json.loads(raw))
        except json.JSONDecodeError:
            parsed.append(raw)
    return parsed


def _format_time(timestamp: Optional[int]) -> str:
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _job_state(job) -> str:
    if job.failed_softly:
        return "failed (soft)"
    if job.failed:
        return "failed"
    if job.succeeded:
        return "succeeded"
    if job.running:
        return "running"
    if job.enqueued:
        return "enqueued"
    return "pending"


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@workflow_app.command("create")
def workflow_create(
    ctx: typer.Context, type_name: str, arguments: Optional[List[str]] = typer.Argument(None)
) -> None:
    """
    Build a workflow of a registered type and persist it without starting it.

    Arguments are passed to the workflow's ``configure`` in order; each is
    parsed as JSON when possible.

    Example:
        trellis -m myapp.flows workflow create PublishBook '"moby-dick"' 3
    """
    repo = _repo(ctx)

    async def _create() -> Workflow:
        workflow = await repo.create_workflow(type_name, *_parse_arguments(arguments))
        await repo.persist_workflow(workflow)
        return workflow

    try:
        workflow = asyncio.run(_create())
    except WorkflowNotFound as e:
        _fail(str(e))
    typer.echo(f"Workflow created with id: {workflow.id}")
    typer.echo(f"Start it with: trellis workflow start {workflow.id}")


@workflow_app.command("start")
def workflow_start(
    ctx: typer.Context, workflow_id: str, jobs: Optional[List[str]] = typer.Argument(None)
) -> None:
    """Enqueue the initial jobs of a stored workflow, or the named JOBS."""
    repo = _repo(ctx)

    async def _start():
        workflow = await repo.find_workflow(workflow_id)
        return await repo.start_workflow(workflow, jobs or [])

    try:
        started = asyncio.run(_start())
    except (WorkflowNotFound, JobNotFound) as e:
        _fail(str(e))
    for job in started:
        typer.echo(f"Enqueued {job.name}")


@workflow_app.command("create-and-start")
def workflow_create_and_start(
    ctx: typer.Context, type_name: str, arguments: Optional[List[str]] = typer.Argument(None)
) -> None:
    """Build, persist and start a workflow in one step."""
    repo = _repo(ctx)

    async def _run() -> Workflow:
        workflow = await repo.create_workflow(type_name, *_parse_arguments(arguments))
        await repo.start_workflow(workflow)
        return workflow

    try:
        workflow = asyncio.run(_run())
    except WorkflowNotFound as e:
        _fail(str(e))
    typer.echo(f"Workflow started with id: {workflow.id}")


@workflow_app.command("stop")
def workflow_stop(ctx: typer.Context, workflow_id: str) -> None:
    """Prevent further jobs of a workflow from being enqueued."""
    try:
        asyncio.run(_repo(ctx).stop_workflow(workflow_id))
    except WorkflowNotFound as e:
        _fail(str(e))
    typer.echo(f"Workflow {workflow_id} stopped")


@workflow_app.command("restart")
def workflow_restart(ctx: typer.Context, workflow_id: str, job_name: str) -> None:
    """
    Re-run a job and every job downstream of it.

    JOB_NAME may be a full job name or a bare job type name.
    """
    try:
        job = asyncio.run(_repo(ctx).restart_workflow(workflow_id, job_name))
    except (WorkflowNotFound, JobNotFound) as e:
        _fail(str(e))
    typer.echo(f"Restarted {workflow_id} from {job.name}")


@workflow_app.command("list")
def workflow_list(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, help="Maximum number of workflows"),
    offset: int = typer.Option(0, help="Number of newest workflows to skip"),
) -> None:
    """
    List stored workflows, newest first.

    Example:
        trellis workflow list --limit 10
        # Output: 3f2a...    PublishBook    running    2026-01-01 10:00:00
    """
    workflows = asyncio.run(_repo(ctx).all_workflows(limit=limit, offset=offset))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.klass}\t{wf.status}\t{_format_time(wf.created_at)}")


@workflow_app.command("show")
def workflow_show(ctx: typer.Context, workflow_id: str) -> None:
    """Show a workflow's status and the state of each of its jobs."""
    try:
        wf = asyncio.run(_repo(ctx).find_workflow(workflow_id))
    except WorkflowNotFound:
        _fail("Workflow not found")
    typer.echo(f"Workflow {wf.id} ({wf.klass}): {wf.status}")
    if wf.arguments:
        typer.echo(f"Arguments: {wf.arguments}")
    for job in wf.jobs.values():
        deps = f" after {', '.join(job.incoming)}" if job.incoming else ""
        typer.echo(
            f"- {job.name}: {_job_state(job)}{deps}"
            f" (enqueued {_format_time(job.enqueued_at)},"
            f" finished {_format_time(job.finished_at)})"
        )


@workflow_app.command("rm")
def workflow_rm(ctx: typer.Context, workflow_id: str) -> None:
    """Delete a workflow and all of its jobs."""
    repo = _repo(ctx)

    async def _rm() -> None:
        await repo.destroy_workflow(await repo.find_workflow(workflow_id))

    try:
        asyncio.run(_rm())
    except WorkflowNotFound as e:
        _fail(str(e))
    typer.echo(f"Workflow {workflow_id} removed")


@app.command("worker")
def worker(
    ctx: typer.Context,
    queue: Optional[str] = typer.Option(None, help="Queue to consume (default: namespace)"),
    lifespan: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
    max_attempts: Optional[int] = typer.Option(None, help="Attempts per retryable job"),
) -> None:
    """
    Run a worker process executing dispatched jobs.

    Example:
        trellis -m myapp.flows worker --lifespan 300
    """
    repo = _repo(ctx)
    executor = JobExecutor(
        repo,
        repo.dispatcher.transport,
        queue=queue,
        max_attempts=max_attempts or ctx.meta["config"].max_attempts,
    )
    typer.echo(f"Starting worker on queue: {queue or repo.dispatcher.namespace}")
    asyncio.run(executor.start(lifespan=lifespan))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
