"""Run artifact (run.md) rendering for fireflow.

The run log is a human-readable projection of a run's state: a front
matter metadata block followed by Scope, Work Items, Current Item, Files
Created, Files Modified, Decisions and (once finalized) Summary sections.
It is re-rendered from state on every lifecycle mutation; when the file
and the state document disagree, the state document wins.

This module is headless - no CLI dependencies.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from fireflow.core.models import CompletionParams, Run
from fireflow.core.state_store import StateLoader, atomic_write_text, dump_yaml

logger = logging.getLogger(__name__)

PENDING_PLACEHOLDER = "(none yet)"
EMPTY_PLACEHOLDER = "(none)"

RUN_STATUS_IN_PROGRESS = "in_progress"
RUN_STATUS_COMPLETED = "completed"


def _metadata(run: Run, status: str) -> dict[str, Any]:
    return {
        "id": run.id,
        "scope": run.scope.value,
        "work_items": [
            {
                "id": item.id,
                "intent": item.intent,
                "mode": item.mode.value,
                "status": item.status.value,
            }
            for item in run.work_items
        ],
        "current_item": run.current_item or "none",
        "status": status,
        "started": run.started,
        "completed": run.completed,
    }


def _scope_line(run: Run) -> str:
    count = len(run.work_items)
    plural = "s" if count != 1 else ""
    return f"{run.scope.value} ({count} work item{plural})"


def _work_items_section(run: Run) -> str:
    return "\n".join(
        f"{index}. **{item.id}** ({item.mode.value}) — {item.status.value}"
        for index, item in enumerate(run.work_items, start=1)
    )


def _current_item_line(run: Run) -> str:
    if run.current_item:
        item = run.find_item(run.current_item)
        if item is not None:
            return f"{item.id} ({item.mode.value})"
        return run.current_item
    return "(all completed)"


def _files_created(params: CompletionParams) -> str:
    if not params.files_created:
        return EMPTY_PLACEHOLDER
    return "\n".join(f"- `{f.path}`: {f.purpose or '(no purpose)'}" for f in params.files_created)


def _files_modified(params: CompletionParams) -> str:
    if not params.files_modified:
        return EMPTY_PLACEHOLDER
    return "\n".join(f"- `{f.path}`: {f.changes or '(no changes)'}" for f in params.files_modified)


def _decisions(params: CompletionParams) -> str:
    if not params.decisions:
        return EMPTY_PLACEHOLDER
    return "\n".join(
        f"- **{d.decision}**: {d.choice} ({d.rationale or 'no rationale'})" for d in params.decisions
    )


def _format_coverage(coverage: float) -> str:
    return f"{coverage:g}"


def render_run_log(run: Run, params: Optional[CompletionParams] = None) -> str:
    """Render the full run.md document for ``run``.

    A run with ``completed`` set is rendered as finalized: file and
    decision sections are filled from ``params`` (empty lists render as
    ``(none)``) and a Summary block is appended. Otherwise those sections
    show ``(none yet)``.

    Args:
        run: Run to render (statuses as they should appear)
        params: Completion details, used only for finalized runs

    Returns:
        Markdown text with a YAML front matter block
    """
    finalized = run.completed is not None
    status = RUN_STATUS_COMPLETED if finalized else RUN_STATUS_IN_PROGRESS

    if finalized:
        params = params or CompletionParams()
        files_created = _files_created(params)
        files_modified = _files_modified(params)
        decisions = _decisions(params)
    else:
        files_created = files_modified = decisions = PENDING_PLACEHOLDER

    sections = [
        f"---\n{dump_yaml(_metadata(run, status))}---",
        f"# Run: {run.id}",
        f"## Scope\n{_scope_line(run)}",
        f"## Work Items\n{_work_items_section(run)}",
        f"## Current Item\n{_current_item_line(run)}",
        f"## Files Created\n{files_created}",
        f"## Files Modified\n{files_modified}",
        f"## Decisions\n{decisions}",
    ]

    if finalized:
        sections.append(
            "## Summary\n\n"
            f"- Work items completed: {len(run.work_items)}\n"
            f"- Files created: {len(params.files_created)}\n"
            f"- Files modified: {len(params.files_modified)}\n"
            f"- Tests added: {params.tests_added}\n"
            f"- Coverage: {_format_coverage(params.coverage)}%\n"
            f"- Completed: {run.completed}"
        )

    return "\n\n".join(sections) + "\n"


def write_run_log(path: Path, content: str) -> None:
    """Atomically write a rendered run log."""
    atomic_write_text(path, content)
    logger.debug("Wrote run log %s", path)


def read_run_log_metadata(path: Path) -> dict[str, Any]:
    """Parse the front matter block of a run log.

    Returns:
        The metadata mapping, or an empty dict if the file has no
        front matter

    Raises:
        OSError: If the file cannot be read
        yaml.YAMLError: If the front matter is not valid YAML
    """
    text = path.read_text(encoding="utf-8")
    if not text.startswith("---\n"):
        return {}
    end = text.find("\n---", 4)
    if end == -1:
        return {}
    data = yaml.load(text[4:end], Loader=StateLoader)
    return data if isinstance(data, dict) else {}
