"""Core components for fireflow run tracking."""

from fireflow.core.dependencies import Bolt, BoltStatus, compute_dependencies, get_up_next
from fireflow.core.errors import ErrorFamily, FireError
from fireflow.core.models import CompletionParams, Run, RunHistoryEntry, RunWorkItem
from fireflow.core.state_machine import CheckpointState, RunScope, WorkItemMode, WorkItemStatus

__all__ = [
    "Bolt",
    "BoltStatus",
    "compute_dependencies",
    "get_up_next",
    "ErrorFamily",
    "FireError",
    "CompletionParams",
    "Run",
    "RunHistoryEntry",
    "RunWorkItem",
    "CheckpointState",
    "RunScope",
    "WorkItemMode",
    "WorkItemStatus",
]
