"""Run lifecycle management for fireflow.

Creates runs, advances their work items, finalizes them into history and
tracks checkpoint (approval gate) state. Every operation validates its
inputs before touching storage, then performs a single locked
read-validate-mutate-write cycle on the state document. Failures raise
FireError and leave the document unchanged.

Ownership: the run owns transient execution status; the intent owns
durable status, updated from the run when the run is finalized.

This module is headless - no CLI dependencies.
"""

import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from fireflow.core.config import FireSettings
from fireflow.core.dependencies import Bolt, bolt_status_for, compute_dependencies, get_up_next
from fireflow.core.errors import ErrorFamily, fire_error
from fireflow.core.models import CompletionParams, Run, RunHistoryEntry, RunWorkItem
from fireflow.core.run_log import render_run_log, write_run_log
from fireflow.core.state_machine import (
    CheckpointState,
    InvalidTransitionError,
    RunScope,
    WorkItemMode,
    WorkItemStatus,
    can_change_checkpoint,
    normalize_checkpoint_state,
    parse_mode,
    parse_scope,
    validate_transition,
)
from fireflow.core.state_store import StateDocument, StateStore
from fireflow.core.workspace import Workspace, get_workspace, validate_root

logger = logging.getLogger(__name__)

RootLike = Union[str, Path]
ParamsLike = Union[CompletionParams, Mapping[str, Any], None]

_RUN_NUMBER = re.compile(r"(\d+)$")


def _utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Results
# =============================================================================


@dataclass
class InitRunResult:
    """Outcome of init_run."""

    run_id: str
    run_path: str
    scope: str
    work_items: list[dict[str, Any]]
    current_item: str
    started: str
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CompleteItemResult:
    """Outcome of complete_current_item."""

    run_id: str
    completed_item: str
    next_item: Optional[str]
    remaining_items: int
    all_items_completed: bool
    completed_at: str
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CompleteRunResult:
    """Outcome of complete_run."""

    run_id: str
    scope: str
    work_items_completed: int
    completed_at: str
    files_created: int
    files_modified: int
    tests_added: int
    coverage: float
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CheckpointResult:
    """Outcome of update_checkpoint."""

    run_id: str
    work_item_id: str
    checkpoint_state: str
    previous_checkpoint_state: Optional[str]
    current_checkpoint: Optional[str]
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Validation helpers
# =============================================================================


def _validate_run_id(family: str, run_id: Any) -> str:
    if not isinstance(run_id, str) or not run_id.strip():
        raise fire_error(family, "002", "runId is required.", "Provide the run ID (e.g. run-003).")
    return run_id.strip()


def _validate_params(family: str, params: ParamsLike) -> CompletionParams:
    if params is None:
        return CompletionParams()
    if isinstance(params, CompletionParams):
        return params
    try:
        return CompletionParams.model_validate(dict(params))
    except (ValidationError, TypeError, ValueError) as exc:
        raise fire_error(
            family,
            "005",
            f"Invalid completion parameters: {exc}",
            "Pass files as {path, purpose|changes}, decisions as {decision, choice, rationale}, "
            "tests as a non-negative integer and coverage between 0 and 100.",
        ) from exc


def _validate_work_items(items: Any) -> list[RunWorkItem]:
    family = ErrorFamily.INIT
    if not isinstance(items, (list, tuple)) or not items:
        raise fire_error(
            family,
            "002",
            "At least one work item is required.",
            "Provide a list of work items with id, intent and mode.",
        )

    seen: set[str] = set()
    validated = []
    for index, raw in enumerate(items):
        if isinstance(raw, RunWorkItem):
            raw = raw.to_state()
        if not isinstance(raw, Mapping):
            raise fire_error(
                family,
                "014",
                f"Work item at index {index} must be a mapping.",
                "Provide each work item as {id, intent, mode}.",
            )

        item_id = raw.get("id")
        if not isinstance(item_id, str) or not item_id.strip():
            raise fire_error(
                family,
                "010",
                f"Work item at index {index} is missing an id.",
                "Every work item needs a non-empty id (e.g. WI-001).",
            )
        item_id = item_id.strip()

        intent = raw.get("intent")
        if not isinstance(intent, str) or not intent.strip():
            raise fire_error(
                family,
                "011",
                f'Work item "{item_id}" is missing an intent.',
                "Every work item needs the id of its owning intent.",
            )

        mode = parse_mode(raw.get("mode"))
        if mode is None:
            valid = ", ".join(m.value for m in WorkItemMode)
            raise fire_error(
                family,
                "012",
                f'Work item "{item_id}" has invalid mode "{raw.get("mode")}".',
                f"Valid modes are: {valid}",
            )

        if item_id in seen:
            raise fire_error(
                family,
                "013",
                f'Work item "{item_id}" appears more than once.',
                "List each work item once per run.",
            )
        seen.add(item_id)

        validated.append(RunWorkItem(id=item_id, intent=intent.strip(), mode=mode))

    return validated


def _require_active_run(family: str, state: StateDocument, run_id: str) -> Run:
    active = state.active_run
    if active is None:
        raise fire_error(
            family,
            "040",
            f'Run "{run_id}" is not active: there is no active run.',
            "The run may have already been completed or was never started.",
        )
    if active.id != run_id:
        raise fire_error(
            family,
            "040",
            f'Run "{run_id}" is not active (active run is "{active.id}").',
            f'Use the active run id "{active.id}" or complete it first.',
        )
    return active


def _require_run_artifacts(family: str, workspace: Workspace, run_id: str) -> Path:
    run_dir = workspace.run_dir(run_id)
    if not run_dir.is_dir():
        raise fire_error(
            family,
            "030",
            f'Run folder not found: "{run_dir}".',
            f'Ensure run "{run_id}" was properly initialized.',
        )
    run_log = workspace.run_log_path(run_id)
    if not run_log.is_file():
        raise fire_error(
            family,
            "031",
            f'Run log not found: "{run_log}".',
            "The run may have been partially initialized.",
        )
    return run_log


def _write_log(family: str, path: Path, run: Run, params: Optional[CompletionParams] = None) -> None:
    try:
        write_run_log(path, render_run_log(run, params))
    except OSError as exc:
        raise fire_error(family, "033", f"Failed to write run log: {exc}", "Check file permissions.") from exc


def _set_status(family: str, item: RunWorkItem, target: WorkItemStatus) -> None:
    try:
        validate_transition(item.status, target)
    except InvalidTransitionError as exc:
        raise fire_error(
            family,
            "022",
            f'Work item "{item.id}" cannot move from {item.status.value} to {target.value}.',
            "The state file may have been edited by hand; check the active run's work items.",
        ) from exc
    item.status = target


# =============================================================================
# Run numbering
# =============================================================================


def run_number(run_id: str) -> Optional[int]:
    """Extract the trailing sequence number of a run id (``run-007`` -> 7)."""
    match = _RUN_NUMBER.search(run_id)
    return int(match.group(1)) if match else None


def next_run_id(workspace: Workspace, state: StateDocument) -> str:
    """Compute the next run id from every known source.

    Merges run folder names on disk with ids recorded in the state
    document (history and active run) and returns ``max + 1``, so gaps
    are tolerated and no source can cause a collision.
    """
    settings = workspace.settings
    known = set(workspace.list_run_folders()) | set(state.known_run_ids())
    numbers = [n for n in (run_number(run_id) for run_id in known) if n is not None]
    next_number = max(numbers, default=0) + 1
    return f"{settings.run_prefix}-{next_number:0{settings.run_id_width}d}"


# =============================================================================
# Operations
# =============================================================================


def init_run(
    root: RootLike,
    work_items: Sequence[Mapping[str, Any]],
    scope: Optional[str] = None,
    *,
    settings: Optional[FireSettings] = None,
) -> InitRunResult:
    """Start a new run over ``work_items``.

    The first item becomes ``in_progress`` and the run's current item; the
    rest are ``pending``. Only one run may be active at a time.

    Args:
        root: Project root
        work_items: Items as mappings with ``id``, ``intent`` and ``mode``
        scope: Optional scope override (``single``, ``batch``, ``wide``)
        settings: Layout settings (default: process settings)

    Returns:
        InitRunResult describing the new run

    Raises:
        FireError: INIT_* on invalid input, missing project, or an
            already active run
    """
    family = ErrorFamily.INIT
    if not isinstance(root, (str, Path)) or not str(root).strip():
        raise fire_error(family, "001", "rootPath is required.", "Provide a valid project root path.")
    items = _validate_work_items(work_items)

    scope_value: RunScope
    if scope is not None:
        parsed = parse_scope(scope)
        if parsed is None:
            valid = ", ".join(s.value for s in RunScope)
            raise fire_error(family, "003", f'Invalid scope "{scope}".', f"Valid scopes are: {valid}")
        scope_value = parsed
    else:
        scope_value = RunScope.SINGLE if len(items) == 1 else RunScope.BATCH

    root_path = validate_root(family, root)
    workspace = get_workspace(family, root_path, settings)
    store = StateStore(workspace, family)

    with store.transaction() as state:
        active = state.active_run
        if active is not None:
            raise fire_error(
                family,
                "040",
                f'Run "{active.id}" is already active.',
                f'Complete run "{active.id}" before starting a new one.',
            )

        run_id = next_run_id(workspace, state)
        run_dir = workspace.run_dir(run_id)
        if run_dir.exists():
            raise fire_error(
                family,
                "041",
                f'Run folder already exists: "{run_dir}".',
                "Remove the stale folder or check the runs directory.",
            )

        _set_status(family, items[0], WorkItemStatus.IN_PROGRESS)

        started = _utc_now()
        run = Run(
            id=run_id,
            scope=scope_value,
            work_items=items,
            current_item=items[0].id,
            started=started,
            completed=None,
        )

        try:
            run_dir.mkdir(parents=True)
        except OSError as exc:
            raise fire_error(
                family, "041", f"Failed to create run folder: {exc}", "Check file permissions."
            ) from exc
        _write_log(family, workspace.run_log_path(run_id), run)

        state.set_active_run(run)

    logger.info("Started %s run %s with %d work item(s)", scope_value.value, run_id, len(items))

    return InitRunResult(
        run_id=run_id,
        run_path=str(run_dir),
        scope=scope_value.value,
        work_items=[item.to_state() for item in items],
        current_item=items[0].id,
        started=started,
    )


def complete_current_item(
    root: RootLike,
    run_id: str,
    params: ParamsLike = None,
    *,
    settings: Optional[FireSettings] = None,
) -> CompleteItemResult:
    """Complete the run's current item and advance to the next pending one.

    The run stays active even when every item is done; only complete_run
    finalizes it into history.

    Args:
        root: Project root
        run_id: Id of the active run
        params: Optional completion details (validated, recorded at
            finalization)
        settings: Layout settings (default: process settings)

    Returns:
        CompleteItemResult with the completed and next item

    Raises:
        FireError: COMPLETE_* on invalid input, missing project or run
            artifacts, inactive run, or missing current item
    """
    family = ErrorFamily.COMPLETE
    root_path = validate_root(family, root)
    run_id = _validate_run_id(family, run_id)
    _validate_params(family, params)

    workspace = get_workspace(family, root_path, settings)
    run_log = _require_run_artifacts(family, workspace, run_id)
    store = StateStore(workspace, family)

    with store.transaction() as state:
        run = _require_active_run(family, state, run_id)

        current_id = run.current_item
        if not current_id:
            raise fire_error(
                family,
                "050",
                f'Run "{run_id}" has no current item; all items are completed.',
                "Finalize the run with complete_run.",
            )
        current = run.find_item(current_id)
        if current is None:
            raise fire_error(
                family,
                "051",
                f'Current item "{current_id}" not found in work items.',
                "The run state may be corrupted.",
            )

        completed_at = _utc_now()
        _set_status(family, current, WorkItemStatus.COMPLETED)
        current.completed_at = completed_at

        next_item = next((i for i in run.work_items if i.status == WorkItemStatus.PENDING), None)
        if next_item is not None:
            _set_status(family, next_item, WorkItemStatus.IN_PROGRESS)
        run.current_item = next_item.id if next_item else None

        _write_log(family, run_log, run)
        state.set_active_run(run)

    remaining = sum(1 for i in run.work_items if i.status != WorkItemStatus.COMPLETED)
    logger.info(
        "Completed item %s in run %s (next: %s, remaining: %d)",
        current_id,
        run_id,
        run.current_item,
        remaining,
    )

    return CompleteItemResult(
        run_id=run_id,
        completed_item=current_id,
        next_item=run.current_item,
        remaining_items=remaining,
        all_items_completed=next_item is None,
        completed_at=completed_at,
    )


def complete_run(
    root: RootLike,
    run_id: str,
    params: ParamsLike = None,
    *,
    settings: Optional[FireSettings] = None,
) -> CompleteRunResult:
    """Finalize the active run.

    Marks every work item completed and stamps it with ``run_id``, mirrors
    that into the owning intents, appends a history entry (once per run
    id), clears the active run and rewrites the run log with the
    completion details. All state changes land in a single write.

    Args:
        root: Project root
        run_id: Id of the active run
        params: Optional files created/modified, decisions, tests added
            and coverage; missing values default to empty/zero
        settings: Layout settings (default: process settings)

    Returns:
        CompleteRunResult with counts for the finalized run

    Raises:
        FireError: COMPLETE_* on invalid input, missing project or run
            artifacts, or inactive run
    """
    family = ErrorFamily.COMPLETE
    root_path = validate_root(family, root)
    run_id = _validate_run_id(family, run_id)
    completion = _validate_params(family, params)

    workspace = get_workspace(family, root_path, settings)
    run_log = _require_run_artifacts(family, workspace, run_id)
    store = StateStore(workspace, family)

    with store.transaction() as state:
        run = _require_active_run(family, state, run_id)
        completed_at = _utc_now()

        for item in run.work_items:
            if item.status != WorkItemStatus.COMPLETED:
                _set_status(family, item, WorkItemStatus.COMPLETED)
                item.completed_at = completed_at
            item.run_id = run_id

            intent_item = state.find_intent_item(item.intent, item.id)
            if intent_item is not None:
                intent_item["status"] = WorkItemStatus.COMPLETED.value
                intent_item["run_id"] = run_id
            else:
                logger.debug("No intent record for %s/%s; skipping mirror", item.intent, item.id)

        run.current_item = None
        run.completed = completed_at

        _write_log(family, run_log, run, completion)

        state.append_completed(RunHistoryEntry.from_run(run, completed_at))
        state.set_active_run(None)

    logger.info("Completed run %s (%d work item(s))", run_id, len(run.work_items))

    return CompleteRunResult(
        run_id=run_id,
        scope=run.scope.value,
        work_items_completed=len(run.work_items),
        completed_at=completed_at,
        files_created=len(completion.files_created),
        files_modified=len(completion.files_modified),
        tests_added=completion.tests_added,
        coverage=completion.coverage,
    )


def update_checkpoint(
    root: RootLike,
    run_id: str,
    checkpoint_state: str,
    item_id: Optional[str] = None,
    checkpoint: Optional[str] = None,
    *,
    settings: Optional[FireSettings] = None,
) -> CheckpointResult:
    """Set the approval gate state of a work item in the active run.

    Args:
        root: Project root
        run_id: Id of the active run
        checkpoint_state: Free-form state ("waiting", "Approved", ...)
        item_id: Target item (default: the run's current item)
        checkpoint: Gate name to record (e.g. "plan")
        settings: Layout settings (default: process settings)

    Returns:
        CheckpointResult with the new and previous state

    Raises:
        FireError: CHECKPOINT_* on invalid input, missing project,
            inactive run, or unknown item
    """
    family = ErrorFamily.CHECKPOINT
    if not isinstance(root, (str, Path)) or not str(root).strip():
        raise fire_error(family, "001", "rootPath is required.", "Provide a valid project root path.")
    run_id = _validate_run_id(family, run_id)

    new_state = normalize_checkpoint_state(checkpoint_state)
    if new_state is None:
        valid = ", ".join(s.value for s in CheckpointState)
        raise fire_error(
            family,
            "003",
            f'Invalid checkpointState: "{checkpoint_state}".',
            f"Valid states are: {valid}",
        )

    root_path = validate_root(family, root)
    workspace = get_workspace(family, root_path, settings)
    defaults = workspace.settings
    store = StateStore(workspace, family)

    with store.transaction() as state:
        run = _require_active_run(family, state, run_id)

        target_id = (item_id or "").strip() or run.current_item
        if not target_id:
            raise fire_error(
                family,
                "050",
                f'Run "{run_id}" has no current item.',
                "Specify the work item explicitly.",
            )
        item = run.find_item(target_id)
        if item is None:
            raise fire_error(
                family,
                "051",
                f'Work item "{target_id}" not found in run "{run_id}".',
                "Check the work item ID or run state.",
            )

        previous = item.checkpoint_state
        if not can_change_checkpoint(previous, new_state):
            logger.warning(
                "Checkpoint for %s moved %s -> %s outside the usual gate flow",
                target_id,
                previous.value if previous else CheckpointState.NONE.value,
                new_state.value,
            )
        item.checkpoint_state = new_state

        if checkpoint and checkpoint.strip():
            item.current_checkpoint = checkpoint.strip()
        elif not item.current_checkpoint and new_state in (
            CheckpointState.AWAITING_APPROVAL,
            CheckpointState.APPROVED,
        ):
            item.current_checkpoint = defaults.default_checkpoint

        if not item.current_phase and new_state == CheckpointState.AWAITING_APPROVAL:
            item.current_phase = defaults.default_phase

        state.set_active_run(run)

    logger.info("Checkpoint for %s in run %s set to %s", target_id, run_id, new_state.value)

    return CheckpointResult(
        run_id=run_id,
        work_item_id=target_id,
        checkpoint_state=new_state.value,
        previous_checkpoint_state=previous.value if previous else None,
        current_checkpoint=item.current_checkpoint,
    )


# =============================================================================
# Queries
# =============================================================================


def _open_store(root: RootLike, settings: Optional[FireSettings]) -> StateStore:
    family = ErrorFamily.COMPLETE
    root_path = validate_root(family, root)
    return StateStore(get_workspace(family, root_path, settings), family)


def get_active_run(root: RootLike, *, settings: Optional[FireSettings] = None) -> Optional[Run]:
    """Return the active run, or None."""
    return _open_store(root, settings).read().active_run


def list_completed_runs(
    root: RootLike, *, settings: Optional[FireSettings] = None
) -> list[RunHistoryEntry]:
    """Return run history, oldest first."""
    return _open_store(root, settings).read().history()


def intent_bolts(state: StateDocument) -> list[Bolt]:
    """Build the bolt universe from every intent's work items.

    Run-context statuses map onto graph statuses; ``depends_on`` (or
    ``requires``) lists become requirement edges.
    """
    bolts = []
    for intent in state.intents:
        if not isinstance(intent, dict):
            continue
        for item in intent.get("work_items") or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            requires = item.get("depends_on") or item.get("requires") or []
            if isinstance(requires, str):
                requires = [requires]
            bolts.append(
                Bolt(
                    id=str(item["id"]),
                    status=bolt_status_for(item.get("status")),
                    requires=tuple(str(r) for r in requires),
                    title=item.get("title"),
                )
            )
    return bolts


def suggest_next(root: RootLike, *, settings: Optional[FireSettings] = None) -> list[Bolt]:
    """Rank not-yet-started intent work items for the next run.

    Applies the resolver's "up next" policy: ready items first, then the
    ones that unblock the most other items, then by id.
    """
    state = _open_store(root, settings).read()
    return get_up_next(compute_dependencies(intent_bolts(state)))
