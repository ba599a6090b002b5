# src/canvasflow/cli.py
"""canvasflow Command Line Interface.

Entry point for the canvasflow CLI tool.
"""

import asyncio
from pathlib import Path

import typer
from pydantic import ValidationError

from canvasflow import __version__
from canvasflow.contracts import CanvasflowError, Task
from canvasflow.core.config import CanvasflowSettings, load_settings
from canvasflow.core.logging import configure_logging
from canvasflow.core.store import StoreDB, TaskStore
from canvasflow.engine.orchestrator import BatchOrchestrator, BatchResult
from canvasflow.engine.recovery import BatchRecovery, RecoveryReport
from canvasflow.plugins.registry import ProcessorRegistry

app = typer.Typer(
    name="canvasflow",
    help="canvasflow: run and recover node-canvas workflow batches.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"canvasflow version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """canvasflow: run and recover node-canvas workflow batches."""
    pass


def _load_settings_or_exit(settings: str) -> CanvasflowSettings:
    """Load settings, printing field errors and exiting 1 on failure."""
    try:
        config = load_settings(Path(settings))
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None

    configure_logging(config.logging.level, json_output=config.logging.json_output)
    return config


def build_registry() -> ProcessorRegistry:
    """Registry with built-in and entry-point processors."""
    registry = ProcessorRegistry()
    registry.register_builtin_processors()
    registry.load_entrypoints()
    return registry


def _build_orchestrator(config: CanvasflowSettings) -> BatchOrchestrator:
    db = StoreDB.from_url(config.database.url, echo=config.database.echo)
    registry = build_registry()
    orchestrator = BatchOrchestrator(
        db,
        registry,
        scheduler_settings=config.scheduler,
        recovery_settings=config.recovery,
    )
    orchestrator.canvas_repo.sync_templates(registry.templates())
    return orchestrator


def _echo_task(task: Task) -> None:
    line = f"  {task.node_id}  {task.status.value:<9}  {task.name}"
    if task.error is not None:
        line += f"  ({task.error.message})"
    typer.echo(line)


def _echo_result(result: BatchResult) -> None:
    typer.echo(
        f"Batch {result.batch_id}: {len(result.completed)} completed, "
        f"{len(result.failed)} failed"
    )
    for task in result.tasks:
        _echo_task(task)


def _echo_report(report: RecoveryReport) -> None:
    typer.echo(
        f"Recovery: {len(report.resumed)} resumed, {len(report.skipped)} skipped, "
        f"{len(report.errors)} errors"
    )
    for batch_id, error in report.errors.items():
        typer.echo(f"  {batch_id}: {error}", err=True)


@app.command()
def run(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    canvas: str = typer.Option(
        ...,
        "--canvas",
        "-c",
        help="Canvas ID to execute.",
    ),
    node: list[str] = typer.Option(
        [],
        "--node",
        "-n",
        help="Target node ID (repeatable). Omit to run every node.",
    ),
    recover_first: bool = typer.Option(
        True,
        "--recover/--no-recover",
        help="Resume dangling batches first when recovery.on_startup is set.",
    ),
) -> None:
    """Execute a canvas (or the given target nodes) as one batch.

    Exits 1 if any node failed.
    """
    config = _load_settings_or_exit(settings)
    orchestrator = _build_orchestrator(config)

    async def _run() -> BatchResult:
        if recover_first and config.recovery.on_startup:
            _echo_report(await BatchRecovery(orchestrator).resume_dangling_batches())
        return await orchestrator.execute(canvas, node or None)

    try:
        result = asyncio.run(_run())
    except CanvasflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    _echo_result(result)
    if result.failed:
        raise typer.Exit(1)


@app.command()
def recover(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Resume every batch left open by an interrupted process.

    Exits 1 if recovering any batch raised.
    """
    config = _load_settings_or_exit(settings)
    orchestrator = _build_orchestrator(config)

    report = asyncio.run(BatchRecovery(orchestrator).resume_dangling_batches())
    _echo_report(report)
    for result in report.resumed.values():
        _echo_result(result)
    if report.errors:
        raise typer.Exit(1)


@app.command()
def status(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    batch: str = typer.Option(
        ...,
        "--batch",
        "-b",
        help="Batch ID to show.",
    ),
) -> None:
    """Show a batch and its tasks."""
    config = _load_settings_or_exit(settings)
    store = TaskStore(StoreDB.from_url(config.database.url, echo=config.database.echo))

    found = store.get_batch(batch)
    if found is None:
        typer.echo(f"Error: Batch '{batch}' not found.", err=True)
        raise typer.Exit(1)

    state = "finished" if found.is_finished else "open"
    typer.echo(f"Batch {found.batch_id} ({state})")
    typer.echo(f"  Canvas: {found.canvas_id}")
    typer.echo(f"  Created: {found.created_at.isoformat()}")
    if found.finished_at is not None:
        typer.echo(f"  Finished: {found.finished_at.isoformat()}")
    if found.claimed_by is not None:
        typer.echo(f"  Claimed by: {found.claimed_by}")
    for task in store.get_tasks(batch):
        _echo_task(task)


@app.command()
def processors() -> None:
    """List registered node processors."""
    registry = build_registry()
    specs = registry.specs()
    if not specs:
        typer.echo("No processors registered.")
        return

    typer.echo("Registered processors:")
    for spec in specs:
        flags = []
        if spec.is_terminal:
            flags.append("terminal")
        if spec.is_transient:
            flags.append("transient")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        name = f"{spec.node_type:<20} {spec.display_name}"
        typer.echo(f"  {name} v{spec.version}{suffix}")


if __name__ == "__main__":
    app()
