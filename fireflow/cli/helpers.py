"""Shared CLI helper utilities.

This module provides common utilities used across CLI command modules:
- console: Shared Rich Console instance
- fail: Print a FireError and exit 1
- emit_json: Print a result mapping as JSON
- load_structured_file: Read a YAML/JSON input file
- root_option: The common --root option

Usage:
    from fireflow.cli.helpers import console, fail
"""

import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import typer
import yaml
from rich.console import Console
from rich.markup import escape

from fireflow.core.errors import FireError

# Shared console instance for all CLI modules
console = Console()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    """Configure root logging for a CLI invocation."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def root_option() -> Any:
    return typer.Option(
        Path("."),
        "--root",
        "-r",
        help="Project root (default: current directory)",
        file_okay=False,
        dir_okay=True,
    )


def fail(error: FireError) -> NoReturn:
    """Print a structured error with its suggestion and exit 1.

    Raises:
        typer.Exit: Always (exit code 1)
    """
    console.print(f"[red]Error:[/red] {escape(f'[{error.code}]')} {escape(error.message)}")
    if error.suggestion:
        console.print(f"  [dim]{escape(error.suggestion)}[/dim]")
    raise typer.Exit(1)


def emit_json(data: Any) -> None:
    """Print ``data`` as indented JSON, bypassing Rich markup and wrapping."""
    typer.echo(json.dumps(data, indent=2, default=str))


def load_structured_file(path: Path) -> Any:
    """Load a YAML or JSON file given on the command line.

    Raises:
        typer.Exit: If the file cannot be read or parsed
    """
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot read {escape(str(path))}: {escape(str(e))}")
        raise typer.Exit(1)
    except yaml.YAMLError as e:
        console.print(f"[red]Error:[/red] Invalid YAML/JSON in {escape(str(path))}: {escape(str(e))}")
        raise typer.Exit(1)


def format_date(date_str: str | None, length: int = 19) -> str:
    """Safely shorten an ISO datetime string for table display.

    Examples:
        >>> format_date("2026-01-15T10:30:00.123456+00:00")
        '2026-01-15T10:30:00'
        >>> format_date(None)
        ''
    """
    if not date_str:
        return ""
    return date_str[:length]
