"""CLI run commands.

This module provides commands for the run lifecycle:
- start: Start a run over one or more work items
- complete-item: Complete the current item and advance
- complete: Finalize the active run
- checkpoint: Set an item's approval gate state
- status: Show the active run
- history: List completed runs
- next: Suggest intent work items to run next
- show: Show the metadata recorded in a run log

Usage:
    fire run start intent-auth:WI-001 intent-auth:WI-002 --mode confirm
    fire run complete-item run-001
    fire run complete run-001 --tests 12 --coverage 85
"""

import logging
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich.markup import escape
from rich.table import Table

from fireflow.cli.helpers import (
    console,
    emit_json,
    fail,
    format_date,
    load_structured_file,
    root_option,
)
from fireflow.core import runs
from fireflow.core.errors import ErrorFamily, FireError, fire_error
from fireflow.core.models import CompletionParams
from fireflow.core.run_log import read_run_log_metadata
from fireflow.core.workspace import get_workspace, validate_root

logger = logging.getLogger(__name__)

run_app = typer.Typer(
    name="run",
    help="Run lifecycle management",
    no_args_is_help=True,
)

STATUS_STYLES = {
    "pending": "dim",
    "in_progress": "yellow",
    "completed": "green",
}


def parse_item_arg(arg: str, default_mode: str) -> dict[str, Any]:
    """Parse an ``INTENT:ITEM[:MODE]`` argument into a work item mapping.

    A bare ``ITEM`` yields a mapping without an intent, which the
    lifecycle manager rejects with a structured error.
    """
    parts = [p.strip() for p in arg.split(":")]
    if len(parts) == 1:
        return {"id": parts[0], "mode": default_mode}
    if len(parts) == 2:
        return {"intent": parts[0], "id": parts[1], "mode": default_mode}
    return {"intent": parts[0], "id": parts[1], "mode": parts[2]}


def _load_items_file(path: Path) -> list[Any]:
    data = load_structured_file(path)
    if isinstance(data, dict):
        data = data.get("work_items")
    if not isinstance(data, list):
        console.print(f"[red]Error:[/red] {escape(str(path))} must hold a list of work items")
        raise typer.Exit(1)
    return data


def _load_params(params_file: Optional[Path]) -> dict[str, Any]:
    """Load a params file with camelCase keys renamed to field names."""
    if params_file is None:
        return {}
    data = load_structured_file(params_file)
    if data is None:
        return {}
    if not isinstance(data, dict):
        console.print(f"[red]Error:[/red] {escape(str(params_file))} must hold a mapping")
        raise typer.Exit(1)
    aliases = {f.alias: name for name, f in CompletionParams.model_fields.items() if f.alias}
    return {aliases.get(key, key): value for key, value in data.items()}


def _style_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


@run_app.command()
def start(
    items: Optional[list[str]] = typer.Argument(
        None, help="Work items as INTENT:ITEM or INTENT:ITEM:MODE"
    ),
    mode: str = typer.Option("confirm", "--mode", "-m", help="Mode for items given without one"),
    items_file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="YAML/JSON file with a list of {id, intent, mode}"
    ),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Override scope: single, batch or wide"),
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Start a new run.

    The first work item becomes the current item; the rest wait as pending.

    Examples:

        fire run start intent-auth:WI-001

        fire run start intent-auth:WI-001:autopilot intent-auth:WI-002:validate

        fire run start --file items.yaml --scope wide
    """
    work_items: list[Any] = [parse_item_arg(arg, mode) for arg in items or []]
    if items_file is not None:
        work_items.extend(_load_items_file(items_file))

    try:
        result = runs.init_run(root, work_items, scope=scope)
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(result.to_dict())
        return

    console.print(f"[green]✓ Started run[/green] [bold]{escape(result.run_id)}[/bold] ({result.scope})")
    console.print(f"  Current item: [cyan]{escape(result.current_item)}[/cyan]")
    console.print(f"  Run log: {escape(result.run_path)}")


@run_app.command("complete-item")
def complete_item(
    run_id: str = typer.Argument(..., help="Active run ID (e.g. run-001)"),
    params_file: Optional[Path] = typer.Option(
        None, "--params", "-p", help="YAML/JSON file with completion details"
    ),
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Complete the current work item and move to the next pending one.

    The run stays active; finalize it with `fire run complete`.

    Example:

        fire run complete-item run-001
    """
    try:
        result = runs.complete_current_item(root, run_id, _load_params(params_file))
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(result.to_dict())
        return

    console.print(f"[green]✓ Completed[/green] [bold]{escape(result.completed_item)}[/bold]")
    if result.all_items_completed:
        console.print("  All work items completed.")
        console.print(f"\n[cyan]Finalize:[/cyan] fire run complete {escape(run_id)}")
    else:
        console.print(f"  Next item: [cyan]{escape(str(result.next_item))}[/cyan] ({result.remaining_items} remaining)")


@run_app.command()
def complete(
    run_id: str = typer.Argument(..., help="Active run ID (e.g. run-001)"),
    tests: Optional[int] = typer.Option(None, "--tests", "-t", help="Number of tests added"),
    coverage: Optional[float] = typer.Option(None, "--coverage", "-c", help="Coverage percentage (0-100)"),
    params_file: Optional[Path] = typer.Option(
        None, "--params", "-p", help="YAML/JSON file with files created/modified and decisions"
    ),
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Finalize the active run and record it in history.

    Examples:

        fire run complete run-001

        fire run complete run-001 --tests 12 --coverage 85 --params details.yaml
    """
    params = _load_params(params_file)
    if tests is not None:
        params["tests_added"] = tests
    if coverage is not None:
        params["coverage"] = coverage

    try:
        result = runs.complete_run(root, run_id, params)
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(result.to_dict())
        return

    console.print(f"[green]✓ Run completed:[/green] [bold]{escape(result.run_id)}[/bold]")
    console.print(f"  Work items completed: {result.work_items_completed}")
    console.print(f"  Files created: {result.files_created}, modified: {result.files_modified}")
    console.print(f"  Tests added: {result.tests_added}, coverage: {result.coverage:g}%")


@run_app.command()
def checkpoint(
    run_id: str = typer.Argument(..., help="Active run ID (e.g. run-001)"),
    state: str = typer.Argument(..., help="Checkpoint state (waiting, approved, none, not_required...)"),
    item: Optional[str] = typer.Option(None, "--item", "-i", help="Work item (default: current item)"),
    name: Optional[str] = typer.Option(None, "--checkpoint", "-k", help="Checkpoint name (e.g. plan)"),
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Set the approval checkpoint state of a work item.

    Examples:

        fire run checkpoint run-001 waiting --checkpoint plan

        fire run checkpoint run-001 approved --item WI-002
    """
    try:
        result = runs.update_checkpoint(root, run_id, state, item_id=item, checkpoint=name)
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(result.to_dict())
        return

    previous = result.previous_checkpoint_state or "none"
    console.print(
        f"[green]✓ Checkpoint updated[/green] for [bold]{escape(result.work_item_id)}[/bold]: "
        f"{previous} -> {result.checkpoint_state}"
    )
    if result.current_checkpoint:
        console.print(f"  Checkpoint: {escape(result.current_checkpoint)}")


@run_app.command()
def status(
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print the run as JSON"),
):
    """Show the active run and its work items."""
    try:
        run = runs.get_active_run(root)
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(run.to_state() if run else None)
        return

    if run is None:
        console.print("[yellow]No active run.[/yellow]")
        console.print("Start one: fire run start INTENT:ITEM")
        return

    table = Table(title=f"Run {escape(run.id)} ({run.scope.value})")
    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Intent")
    table.add_column("Mode")
    table.add_column("Status")
    table.add_column("Checkpoint")

    for wi in run.work_items:
        marker = " *" if wi.id == run.current_item else ""
        checkpoint_state = wi.checkpoint_state.value if wi.checkpoint_state else ""
        table.add_row(
            escape(f"{wi.id}{marker}"),
            escape(wi.intent),
            wi.mode.value,
            _style_status(wi.status.value),
            escape(f"{checkpoint_state} {wi.current_checkpoint or ''}".strip()),
        )

    console.print(table)
    console.print(f"Started: {format_date(run.started)}")


@run_app.command()
def history(
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print history as JSON"),
):
    """List completed runs, oldest first."""
    try:
        entries = runs.list_completed_runs(root)
    except FireError as e:
        fail(e)

    if as_json:
        emit_json([entry.to_state() for entry in entries])
        return

    if not entries:
        console.print("[yellow]No completed runs.[/yellow]")
        return

    table = Table(title=f"Completed runs ({len(entries)} total)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Scope")
    table.add_column("Items")
    table.add_column("Started")
    table.add_column("Completed")

    for entry in entries:
        table.add_row(
            escape(entry.id),
            escape(entry.scope or ""),
            escape(", ".join(wi.id for wi in entry.work_items)),
            format_date(entry.started),
            format_date(entry.completed),
        )

    console.print(table)


@run_app.command("next")
def next_items(
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum suggestions to show"),
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print suggestions as JSON"),
):
    """Suggest intent work items to run next.

    Ready items come first, then the ones that unblock the most other work.
    """
    try:
        suggestions = runs.suggest_next(root)[:limit]
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(
            [
                {
                    "id": b.id,
                    "status": b.status.value,
                    "is_blocked": b.is_blocked,
                    "blocked_by": list(b.blocked_by),
                    "unblocks_count": b.unblocks_count,
                }
                for b in suggestions
            ]
        )
        return

    if not suggestions:
        console.print("[yellow]Nothing left to run.[/yellow]")
        return

    table = Table(title="Up next")
    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Ready")
    table.add_column("Blocked by")
    table.add_column("Unblocks", justify="right")

    for b in suggestions:
        table.add_row(
            escape(b.id),
            "[red]no[/red]" if b.is_blocked else "[green]yes[/green]",
            escape(", ".join(b.blocked_by)),
            str(b.unblocks_count),
        )

    console.print(table)


@run_app.command()
def show(
    run_id: str = typer.Argument(..., help="Run ID (e.g. run-001)"),
    root: Path = root_option(),
    as_json: bool = typer.Option(False, "--json", help="Print metadata as JSON"),
):
    """Show the metadata recorded in a run's run.md."""
    family = ErrorFamily.COMPLETE
    try:
        workspace = get_workspace(family, validate_root(family, root))
        path = workspace.run_log_path(run_id)
        if not path.is_file():
            raise fire_error(
                family,
                "031",
                f'Run log not found: "{path}".',
                "Check the run ID with `fire run history`.",
            )
        try:
            metadata = read_run_log_metadata(path)
        except (OSError, yaml.YAMLError) as e:
            raise fire_error(
                family, "032", f"Failed to read run log: {e}", "Check the run.md front matter."
            ) from e
    except FireError as e:
        fail(e)

    if as_json:
        emit_json(metadata)
        return

    console.print(f"\n[bold]Run {escape(str(metadata.get('id', run_id)))}[/bold]")
    console.print(f"[bold]Scope:[/bold] {escape(str(metadata.get('scope', '')))}")
    console.print(f"[bold]Status:[/bold] {escape(str(metadata.get('status', '')))}")
    console.print(f"[bold]Current item:[/bold] {escape(str(metadata.get('current_item') or ''))}")
    console.print(f"[bold]Started:[/bold] {format_date(metadata.get('started'))}")
    if metadata.get("completed"):
        console.print(f"[bold]Completed:[/bold] {format_date(metadata.get('completed'))}")
    for wi in metadata.get("work_items") or []:
        if isinstance(wi, dict):
            console.print(escape(f"  - {wi.get('id')} ({wi.get('mode')}): {wi.get('status')}"))
