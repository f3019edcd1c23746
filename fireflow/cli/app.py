"""fireflow CLI - headless, CLI-first interface.

All commands call core modules directly; there is no server.

Command structure: fire <domain> <verb> [args] [--options]

Examples:
    fire init .
    fire run start intent-auth:WI-001 intent-auth:WI-002
    fire run complete-item run-001
    fire run checkpoint run-001 waiting --checkpoint plan
    fire run complete run-001 --tests 12 --coverage 85
    fire bolts next bolts.yaml
"""

from pathlib import Path
from typing import Optional

import typer

from fireflow.cli.helpers import console, setup_logging
from fireflow.core.config import get_settings, load_environment, reset_settings

app = typer.Typer(
    name="fire",
    help="fireflow: run lifecycle and dependency tracking for FIRE projects",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    env_file: Optional[Path] = typer.Option(
        None,
        "--env-file",
        help="Load FIRE_* settings from this .env file",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """Load environment and configure logging for every command."""
    load_environment(env_file)
    reset_settings()
    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid configuration: {e}")
        raise typer.Exit(1)
    setup_logging("DEBUG" if verbose else settings.log_level)


@app.command()
def init(
    repo_path: Path = typer.Argument(
        Path("."),
        help="Path to the project root",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Project name (default: folder name)"),
) -> None:
    """Initialize a FIRE project (.specs-fire/ with an empty state.yaml).

    This is idempotent - safe to run multiple times on the same project.

    Examples:
        fire init .
        fire init ./my-repo --name my-repo
    """
    from fireflow.core.workspace import init_workspace, workspace_exists

    already_existed = workspace_exists(repo_path)
    try:
        workspace = init_workspace(repo_path, project_name=name)
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if already_existed:
        console.print("[blue]Project already initialized[/blue]")
    else:
        console.print("[green]✓ Initialized FIRE project[/green]")
    console.print(f"  State: {workspace.state_path}")
    console.print("\nNext steps:")
    console.print("  1. Add intents with work items to state.yaml")
    console.print("  2. fire run next    - See what to work on")
    console.print("  3. fire run start   - Start a run")


@app.command()
def version() -> None:
    """Show fireflow version."""
    from fireflow import __version__

    console.print(f"fireflow version: [bold green]{__version__}[/bold green]")


# =============================================================================
# Command groups
# NOTE: These imports must come after app definition (E402 intentional)
# =============================================================================

from fireflow.cli.run_commands import run_app  # noqa: E402
from fireflow.cli.bolts_commands import bolts_app  # noqa: E402

app.add_typer(run_app, name="run", help="Run lifecycle (start, complete-item, complete, checkpoint)")
app.add_typer(bolts_app, name="bolts", help="Dependency analysis over a bolt file (status, next)")


if __name__ == "__main__":
    app()
