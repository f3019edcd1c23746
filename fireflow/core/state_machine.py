"""Work item state machine for fireflow runs.

Defines the run-scoped work item statuses, the checkpoint sub-machine,
and the allowed transitions between them.

Item statuses:
- PENDING: Queued in the run, not started
- IN_PROGRESS: The run's current item
- COMPLETED: Done (terminal)

Checkpoint states (orthogonal to item status):
- NONE: No approval gate open
- AWAITING_APPROVAL: Execution paused at a named gate
- APPROVED: Gate passed
- NOT_REQUIRED: Gate bypassed (settable from any state)

This module is headless - no CLI dependencies.
"""

import re
from enum import Enum
from typing import Optional, Set


class WorkItemStatus(str, Enum):
    """Run-scoped work item status.

    Uses str mixin for easy YAML serialization.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WorkItemMode(str, Enum):
    """How much human confirmation a work item needs."""

    AUTOPILOT = "autopilot"
    CONFIRM = "confirm"
    VALIDATE = "validate"


class RunScope(str, Enum):
    """How many work items a run covers."""

    SINGLE = "single"
    BATCH = "batch"
    WIDE = "wide"


class CheckpointState(str, Enum):
    """Approval gate state for a work item inside an active run."""

    NONE = "none"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    NOT_REQUIRED = "not_required"


# Allowed item transitions (from -> set of allowed targets).
# PENDING -> COMPLETED is only taken by full run finalization.
ALLOWED_TRANSITIONS: dict[WorkItemStatus, Set[WorkItemStatus]] = {
    WorkItemStatus.PENDING: {WorkItemStatus.IN_PROGRESS, WorkItemStatus.COMPLETED},
    WorkItemStatus.IN_PROGRESS: {WorkItemStatus.COMPLETED},
    WorkItemStatus.COMPLETED: set(),  # Terminal state
}

CHECKPOINT_TRANSITIONS: dict[CheckpointState, Set[CheckpointState]] = {
    CheckpointState.NONE: {CheckpointState.AWAITING_APPROVAL, CheckpointState.NOT_REQUIRED},
    CheckpointState.AWAITING_APPROVAL: {
        CheckpointState.NONE,
        CheckpointState.APPROVED,
        CheckpointState.NOT_REQUIRED,
    },
    CheckpointState.APPROVED: {
        CheckpointState.NONE,
        CheckpointState.AWAITING_APPROVAL,
        CheckpointState.NOT_REQUIRED,
    },
    CheckpointState.NOT_REQUIRED: {CheckpointState.NOT_REQUIRED},
}

# Free-form spellings accepted for checkpoint states
CHECKPOINT_SYNONYMS: dict[str, CheckpointState] = {
    "waiting": CheckpointState.AWAITING_APPROVAL,
    "awaiting": CheckpointState.AWAITING_APPROVAL,
    "awaiting_approval": CheckpointState.AWAITING_APPROVAL,
    "pending_approval": CheckpointState.AWAITING_APPROVAL,
    "approval_needed": CheckpointState.AWAITING_APPROVAL,
    "approval_required": CheckpointState.AWAITING_APPROVAL,
    "approved": CheckpointState.APPROVED,
    "confirmed": CheckpointState.APPROVED,
    "accepted": CheckpointState.APPROVED,
    "resumed": CheckpointState.APPROVED,
    "none": CheckpointState.NONE,
    "clear": CheckpointState.NONE,
    "cleared": CheckpointState.NONE,
    "reset": CheckpointState.NONE,
    "not_required": CheckpointState.NOT_REQUIRED,
    "n_a": CheckpointState.NOT_REQUIRED,
    "na": CheckpointState.NOT_REQUIRED,
    "skipped": CheckpointState.NOT_REQUIRED,
}


class InvalidTransitionError(Exception):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current: WorkItemStatus, target: WorkItemStatus):
        self.current = current
        self.target = target
        allowed = ALLOWED_TRANSITIONS.get(current, set())
        allowed_str = ", ".join(sorted(s.value for s in allowed)) if allowed else "none"
        super().__init__(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Allowed transitions from {current.value}: {allowed_str}"
        )


def can_transition(current: WorkItemStatus, target: WorkItemStatus) -> bool:
    """Check if a status transition is allowed.

    Args:
        current: Current item status
        target: Desired target status

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    return target in allowed


def validate_transition(current: WorkItemStatus, target: WorkItemStatus) -> None:
    """Validate a status transition, raising if invalid.

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def can_change_checkpoint(current: Optional[CheckpointState], target: CheckpointState) -> bool:
    """Check whether a checkpoint may move from ``current`` to ``target``.

    A missing current state behaves like NONE. Re-setting the same state
    and moving to NOT_REQUIRED are always allowed.
    """
    current = current or CheckpointState.NONE
    if target == current or target == CheckpointState.NOT_REQUIRED:
        return True
    return target in CHECKPOINT_TRANSITIONS.get(current, set())


def _normalize_token(value: object) -> str:
    return re.sub(r"[\s-]+", "_", str(value if value is not None else "").strip().lower())


def normalize_checkpoint_state(value: object) -> Optional[CheckpointState]:
    """Map a free-form checkpoint state string onto the enumeration.

    Matching is case-insensitive and treats spaces and hyphens as
    underscores ("Pending Approval" -> AWAITING_APPROVAL).

    Args:
        value: Raw user input

    Returns:
        CheckpointState, or None if the input is not recognized
    """
    return CHECKPOINT_SYNONYMS.get(_normalize_token(value))


def parse_mode(value: object) -> Optional[WorkItemMode]:
    """Parse a work item mode; returns None for anything unrecognized."""
    if not isinstance(value, str):
        return None
    try:
        return WorkItemMode(value.strip().lower())
    except ValueError:
        return None


def parse_scope(value: object) -> Optional[RunScope]:
    """Parse a run scope; returns None for anything unrecognized."""
    if not isinstance(value, str):
        return None
    try:
        return RunScope(value.strip().lower())
    except ValueError:
        return None
