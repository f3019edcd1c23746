"""
fireflow: run lifecycle and dependency tracking for FIRE projects

Coordinates work items grouped under intents, executed in runs with
approval checkpoints, and ordered by their dependencies.
"""

__version__ = "0.1.0"

from fireflow.core.errors import FireError
from fireflow.core.runs import (
    complete_current_item,
    complete_run,
    init_run,
    update_checkpoint,
)

__all__ = [
    "FireError",
    "init_run",
    "complete_current_item",
    "complete_run",
    "update_checkpoint",
]
