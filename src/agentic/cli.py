from __future__ import annotations

import json
import logging
import signal
import threading
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from agentic import __version__
from agentic.agents import PLACEHOLDER_AGENTS, build_executor
from agentic.changes import ChangeManager
from agentic.checkpoint import CheckpointManager, get_progress
from agentic.config import DEFAULT_CONFIG_FILE, AgenticConfig, load_config, save_config
from agentic.context import DirectoryContextGenerator
from agentic.errors import AgenticError
from agentic.logging_setup import setup_logging
from agentic.orchestrator import AutopilotLoop, AutopilotOutcome
from agentic.specs import SpecResolver
from agentic.tasks import COLLECTIONS, TaskStore, can_claim_task, format_readiness_result


@dataclass(slots=True)
class Runtime:
    root: Path
    config_path: Path
    config: AgenticConfig
    tasks: TaskStore
    checkpoints: CheckpointManager
    changes: ChangeManager
    resolver: SpecResolver


def _resolve_config_path(root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = root / config_path
    return config_path.resolve()


def _load_runtime(config_value: str) -> Runtime:
    root = Path.cwd().resolve()
    config_path = _resolve_config_path(root, config_value)
    try:
        config = load_config(config_path).resolve(root)
    except (tomllib.TOMLDecodeError, TypeError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    return Runtime(
        root=root,
        config_path=config_path,
        config=config,
        tasks=TaskStore(Path(config.paths.tasks_dir)),
        checkpoints=CheckpointManager(Path(config.paths.checkpoint_dir)),
        changes=ChangeManager(Path(config.paths.openspec_dir)),
        resolver=SpecResolver(
            [*config.paths.spec_dirs, config.paths.openspec_dir], base_dir=root
        ),
    )


def _runtime(ctx: click.Context) -> Runtime:
    return _load_runtime(ctx.obj["config"])


def _dump(payload: Any) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@click.group()
@click.version_option(__version__, prog_name="agentic")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
@click.option("--verbose", is_flag=True, default=False, help="Log debug output.")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def cli(ctx: click.Context, config_value: str, verbose: bool, log_file: Path | None) -> None:
    """Agentic task lifecycle CLI."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_value


@cli.command("init")
@click.option("--name", "project_name", default=None)
@click.option("--agent", "agent_name", default=None)
@click.pass_context
def init_command(ctx: click.Context, project_name: str | None, agent_name: str | None) -> None:
    root = Path.cwd().resolve()
    config_path = _resolve_config_path(root, ctx.obj["config"])
    try:
        config = load_config(config_path)
    except (tomllib.TOMLDecodeError, TypeError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    config.project.name = project_name or config.project.name or root.name
    if agent_name:
        config.agent.active = agent_name
    save_config(config_path, config)

    resolved = config.resolve(root)
    for directory in (
        resolved.paths.tasks_dir,
        resolved.paths.checkpoint_dir,
        resolved.paths.openspec_dir,
    ):
        Path(directory).mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized agentic project {config.project.name} in {root}")
    click.echo(f"Config: {config_path}")
    if config.agent.active:
        click.echo(f"Agent: {config.agent.active}")


@cli.group("task")
def task_group() -> None:
    """Manage backlog, in-progress and done tasks."""


@task_group.command("create")
@click.argument("title")
@click.option("--description", default="")
@click.option("--scope", "scope", multiple=True)
@click.option("--input", "inputs", multiple=True)
@click.option("--output", "outputs", multiple=True)
@click.option("--spec", "spec_refs", multiple=True)
@click.option("--acceptance", multiple=True)
@click.pass_context
def task_create(
    ctx: click.Context,
    title: str,
    description: str,
    scope: tuple[str, ...],
    inputs: tuple[str, ...],
    outputs: tuple[str, ...],
    spec_refs: tuple[str, ...],
    acceptance: tuple[str, ...],
) -> None:
    runtime = _runtime(ctx)
    try:
        task = runtime.tasks.create_task(title)
        if description or scope or inputs or outputs or spec_refs or acceptance:
            task.description = description
            task.scope = list(scope)
            task.inputs = list(inputs)
            task.outputs = list(outputs)
            task.spec_refs = list(spec_refs)
            task.acceptance = list(acceptance)
            runtime.tasks.update_task(task)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created task {task.id}: {task.title}")


@task_group.command("list")
@click.option("--collection", type=click.Choice(list(COLLECTIONS)), default=None)
@click.pass_context
def task_list(ctx: click.Context, collection: str | None) -> None:
    runtime = _runtime(ctx)
    names = [collection] if collection else list(COLLECTIONS)
    try:
        for name in names:
            tasks = runtime.tasks.load_collection(name)
            click.echo(f"{name} ({len(tasks)})")
            for task in tasks:
                owner = f" @{task.assigned_to}" if task.assigned_to else ""
                click.echo(f"  {task.id} {task.title}{owner}")
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc


@task_group.command("show")
@click.argument("task_id")
@click.pass_context
def task_show(ctx: click.Context, task_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        task, collection = runtime.tasks.find_task(task_id)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    if task is None:
        raise click.ClickException(f"Task not found: {task_id}")
    _dump({"collection": collection, "task": task.to_dict()})


@task_group.command("claim")
@click.argument("task_id")
@click.option("--owner", default=None)
@click.pass_context
def task_claim(ctx: click.Context, task_id: str, owner: str | None) -> None:
    runtime = _runtime(ctx)
    owner = owner or runtime.config.autopilot_owner()
    try:
        task = runtime.tasks.claim_with_readiness(task_id, owner, runtime.resolver)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Claimed {task.id} for {task.assigned_to}")


@task_group.command("complete")
@click.argument("task_id")
@click.pass_context
def task_complete(ctx: click.Context, task_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        task = runtime.tasks.complete_task(task_id)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Completed {task.id}")


@task_group.command("ready")
@click.argument("task_id")
@click.pass_context
def task_ready(ctx: click.Context, task_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        task, _ = runtime.tasks.find_task(task_id)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    if task is None:
        raise click.ClickException(f"Task not found: {task_id}")
    result = can_claim_task(task, runtime.resolver, base_dir=runtime.root)
    click.echo(format_readiness_result(result), nl=False)
    if not result.ready:
        ctx.exit(1)


@task_group.command("audit")
@click.pass_context
def task_audit(ctx: click.Context) -> None:
    runtime = _runtime(ctx)
    try:
        report = runtime.tasks.audit()
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    if report.ok:
        click.echo("Task collections are consistent.")
        return
    for task_id, names in sorted(report.duplicates.items()):
        click.echo(f"duplicate {task_id}: {', '.join(names)}")
    for task_id, name, status in report.status_mismatches:
        click.echo(f"status mismatch {task_id}: {status} in {name}")
    ctx.exit(1)


@cli.group("checkpoint")
def checkpoint_group() -> None:
    """Inspect and clear execution checkpoints."""


@checkpoint_group.command("list")
@click.argument("task_id")
@click.pass_context
def checkpoint_list(ctx: click.Context, task_id: str) -> None:
    runtime = _runtime(ctx)
    checkpoints = runtime.checkpoints.list(task_id)
    if not checkpoints:
        click.echo(f"No checkpoints for {task_id}.")
        return
    for item in checkpoints:
        click.echo(
            f"{item.iteration:03d} {item.created_at} tokens={item.tokens_used} "
            f"met={len(item.criteria_met)} left={len(item.criteria_left)}"
        )


@checkpoint_group.command("show")
@click.argument("task_id")
@click.option("--iteration", type=int, default=None)
@click.pass_context
def checkpoint_show(ctx: click.Context, task_id: str, iteration: int | None) -> None:
    runtime = _runtime(ctx)
    try:
        if iteration is None:
            checkpoint = runtime.checkpoints.load(task_id)
        else:
            checkpoint = runtime.checkpoints.load_iteration(task_id, iteration)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    if checkpoint is None:
        raise click.ClickException(f"Checkpoint not found for {task_id}")
    payload = checkpoint.to_dict()
    task, _ = runtime.tasks.find_task(task_id)
    if task is not None:
        payload["progress"] = round(get_progress(checkpoint, len(task.acceptance)), 1)
    _dump(payload)


@checkpoint_group.command("clear")
@click.argument("task_id")
@click.pass_context
def checkpoint_clear(ctx: click.Context, task_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        runtime.checkpoints.delete_all(task_id)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Cleared checkpoints for {task_id}")


@cli.group("change")
def change_group() -> None:
    """Import externally-authored change proposals into the backlog."""


@change_group.command("init")
@click.argument("name")
@click.option(
    "--from",
    "source_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Requirements document to embed in the proposal.",
)
@click.pass_context
def change_init(ctx: click.Context, name: str, source_file: Path | None) -> None:
    runtime = _runtime(ctx)
    try:
        change = runtime.changes.init(name, source_file)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created change {change.id}")
    click.echo(f"Edit {runtime.changes.change_dir(change.id) / 'tasks.md'} then run sync.")


@change_group.command("import")
@click.argument("change_id")
@click.pass_context
def change_import(ctx: click.Context, change_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        tasks = runtime.changes.import_change(change_id, runtime.tasks)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Imported {len(tasks)} task(s) from {change_id}")
    for task in tasks:
        click.echo(f"  {task.id} {task.title}")


@change_group.command("sync")
@click.pass_context
def change_sync(ctx: click.Context) -> None:
    runtime = _runtime(ctx)
    try:
        result = runtime.changes.sync(runtime.tasks)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"Imported {result.tasks_created} task(s) from {len(result.changes_imported)} change(s)"
    )
    for change_id in result.changes_skipped:
        click.echo(f"  skipped {change_id} (no tasks yet)")
    for message in result.errors:
        click.echo(f"  error: {message}")


@change_group.command("status")
@click.argument("change_id", required=False)
@click.pass_context
def change_status(ctx: click.Context, change_id: str | None) -> None:
    runtime = _runtime(ctx)
    try:
        changes = [runtime.changes.get(change_id)] if change_id else runtime.changes.list()
        if not changes:
            click.echo("No changes.")
            return
        for change in changes:
            progress = runtime.changes.progress(change.id, runtime.tasks)
            status = progress.derived_status(change.status)
            click.echo(
                f"{change.id} {status} "
                f"({progress.done}/{progress.total} done, {progress.in_progress} in progress)"
            )
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc


@change_group.command("complete")
@click.argument("change_id")
@click.pass_context
def change_complete(ctx: click.Context, change_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        change = runtime.changes.complete(change_id, runtime.tasks)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Change {change.id} is {change.status}")


@change_group.command("archive")
@click.argument("change_id")
@click.pass_context
def change_archive(ctx: click.Context, change_id: str) -> None:
    runtime = _runtime(ctx)
    try:
        destination = runtime.changes.archive(change_id)
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Archived {change_id} to {destination}")


@change_group.command("scaffold")
@click.argument("change_id")
@click.argument("titles", nargs=-1, required=True)
@click.pass_context
def change_scaffold(ctx: click.Context, change_id: str, titles: tuple[str, ...]) -> None:
    runtime = _runtime(ctx)
    try:
        created = runtime.changes.scaffold_task_files(change_id, list(titles))
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    for path in created:
        click.echo(f"Created {path}")


@cli.command("autopilot")
@click.option("--max-iterations", type=int, default=None)
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--execute-agent", is_flag=True, default=False)
@click.option("--agent", "agent_name", default=None, help="Override the configured agent.")
@click.pass_context
def autopilot_command(
    ctx: click.Context,
    max_iterations: int | None,
    dry_run: bool,
    execute_agent: bool,
    agent_name: str | None,
) -> None:
    """Select, claim and prepare backlog tasks, optionally running an agent.

    Track gating needs a track lookup, which the CLI does not have; pass
    ``track_status`` to ``AutopilotLoop`` to skip tasks on inactive tracks.
    """
    runtime = _runtime(ctx)
    executor = None
    if execute_agent:
        name = agent_name or runtime.config.agent.active
        if not name:
            raise click.ClickException(
                "No agent configured; set [agent].active or pass --agent."
            )
        if name.lower() in PLACEHOLDER_AGENTS:
            click.echo(f"Warning: agent {name} has no executor yet; tasks will not run.")
        try:
            executor = build_executor(
                name,
                model=runtime.config.agent.model,
                stop_signal=runtime.config.autopilot.stop_signal,
            )
        except AgenticError as exc:
            raise click.ClickException(str(exc)) from exc

    cancel_event = threading.Event()
    loop = AutopilotLoop(
        runtime.config,
        runtime.tasks,
        root=runtime.root,
        resolver=runtime.resolver,
        context_generator=DirectoryContextGenerator(base_dir=runtime.root),
        change_manager=runtime.changes,
        executor=executor,
        checkpoint_manager=runtime.checkpoints,
        dry_run=dry_run,
        max_iterations=max_iterations,
        cancel_event=cancel_event,
    )

    def _request_cancel(signum: int, frame: Any) -> None:
        click.echo("Cancellation requested; stopping after this iteration.")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _request_cancel)
    try:
        result = loop.run()
    except AgenticError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        signal.signal(signal.SIGINT, previous)

    if result.outcome == AutopilotOutcome.DRY_RUN:
        click.echo(f"Dry run: next task would be {result.candidate}")
    elif result.outcome == AutopilotOutcome.COMPLETED:
        click.echo("All tasks complete.")
    elif result.outcome == AutopilotOutcome.BLOCKED:
        click.echo("Remaining tasks are waiting on inactive tracks.")
    else:
        click.echo(f"Reached max iterations ({loop.max_iterations}).")
    if result.claimed:
        click.echo(f"Claimed: {', '.join(result.claimed)}")
    completed = [report.task_id for report in result.executions if report.completed]
    if completed:
        click.echo(f"Completed: {', '.join(completed)}")

