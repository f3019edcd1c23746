"""CLI bolt dependency commands.

Analyzes a bolt file without touching project state:
- status: Show every bolt with its blocked state and unblock count
- next: Show the "up next" queue

A bolt file is YAML (or JSON) holding a list of ``{id, status, requires}``
mappings, or a mapping with a ``bolts`` list.

Usage:
    fire bolts status bolts.yaml
    fire bolts next bolts.yaml --json
"""

from pathlib import Path
from typing import Any

import typer
from rich.markup import escape
from rich.table import Table

from fireflow.cli.helpers import console, emit_json, load_structured_file
from fireflow.core.dependencies import (
    Bolt,
    BoltStatus,
    bolt_status_for,
    compute_dependencies,
    detect_cycle,
    get_up_next,
)

bolts_app = typer.Typer(
    name="bolts",
    help="Bolt dependency analysis",
    no_args_is_help=True,
)

BOLT_STATUS_STYLES = {
    BoltStatus.DRAFT: "white",
    BoltStatus.BLOCKED: "red",
    BoltStatus.IN_PROGRESS: "yellow",
    BoltStatus.COMPLETE: "green",
}


def _parse_status(value: Any) -> BoltStatus:
    if isinstance(value, str):
        try:
            return BoltStatus(value)
        except ValueError:
            return bolt_status_for(value)
    return BoltStatus.DRAFT


def parse_bolts(data: Any) -> list[Bolt]:
    """Build Bolt objects from loaded YAML/JSON data.

    Raises:
        ValueError: If the data is not a list of mappings with ids
    """
    if isinstance(data, dict):
        data = data.get("bolts")
    if not isinstance(data, list):
        raise ValueError("bolt file must hold a list of bolts (or a mapping with a 'bolts' list)")

    bolts = []
    for index, raw in enumerate(data):
        if not isinstance(raw, dict) or not raw.get("id"):
            raise ValueError(f"bolt at index {index} must be a mapping with an id")
        requires = raw.get("requires") or raw.get("depends_on") or []
        if isinstance(requires, str):
            requires = [requires]
        bolts.append(
            Bolt(
                id=str(raw["id"]),
                status=_parse_status(raw.get("status")),
                requires=tuple(str(r) for r in requires),
                title=raw.get("title"),
            )
        )
    return bolts


def _load_bolts(path: Path) -> list[Bolt]:
    try:
        return parse_bolts(load_structured_file(path))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(path))}: {escape(str(e))}")
        raise typer.Exit(1)


def _bolt_dict(bolt: Bolt) -> dict[str, Any]:
    return {
        "id": bolt.id,
        "status": bolt.status.value,
        "requires": list(bolt.requires),
        "is_blocked": bolt.is_blocked,
        "blocked_by": list(bolt.blocked_by),
        "unblocks_count": bolt.unblocks_count,
    }


def _styled(status: BoltStatus) -> str:
    style = BOLT_STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


@bolts_app.command()
def status(
    bolt_file: Path = typer.Argument(..., help="YAML/JSON bolt file", exists=True, dir_okay=False),
    as_json: bool = typer.Option(False, "--json", help="Print computed bolts as JSON"),
):
    """Show blocked state and unblock counts for every bolt.

    Example:

        fire bolts status bolts.yaml
    """
    bolts = compute_dependencies(_load_bolts(bolt_file))
    cycle = detect_cycle(bolts)

    if as_json:
        emit_json({"bolts": [_bolt_dict(b) for b in bolts], "cycle": cycle})
        return

    table = Table(title=f"Bolts ({len(bolts)} total)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Requires")
    table.add_column("Blocked by")
    table.add_column("Unblocks", justify="right")

    for b in bolts:
        table.add_row(
            escape(b.id),
            _styled(b.status),
            escape(", ".join(b.requires)),
            escape(", ".join(b.blocked_by)),
            str(b.unblocks_count),
        )

    console.print(table)
    if cycle:
        console.print(f"[yellow]Warning:[/yellow] requirement cycle: {escape(' -> '.join(cycle))}")


@bolts_app.command("next")
def next_bolts(
    bolt_file: Path = typer.Argument(..., help="YAML/JSON bolt file", exists=True, dir_okay=False),
    as_json: bool = typer.Option(False, "--json", help="Print the queue as JSON"),
):
    """Show not-yet-started bolts in priority order.

    Ready bolts come first, then the ones that unblock the most others,
    then by id.

    Example:

        fire bolts next bolts.yaml
    """
    queue = get_up_next(compute_dependencies(_load_bolts(bolt_file)))

    if as_json:
        emit_json([_bolt_dict(b) for b in queue])
        return

    if not queue:
        console.print("[yellow]No pending bolts.[/yellow]")
        return

    for position, b in enumerate(queue, start=1):
        if b.is_blocked:
            console.print(f"{position}. {escape(b.id)} [red](blocked by {escape(', '.join(b.blocked_by))})[/red]")
        else:
            console.print(f"{position}. {escape(b.id)} [green](ready, unblocks {b.unblocks_count})[/green]")
