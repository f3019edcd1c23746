"""Command-line interface for fireflow.

The main Typer app is exported for use as the entry point:
    fire = "fireflow.cli.app:app"
"""

from fireflow.cli.app import app

__all__ = ["app"]
