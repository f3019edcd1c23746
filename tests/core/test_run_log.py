"""Tests for run.md rendering."""

from fireflow.core.models import CompletionParams, Run, RunWorkItem
from fireflow.core.run_log import (
    EMPTY_PLACEHOLDER,
    PENDING_PLACEHOLDER,
    read_run_log_metadata,
    render_run_log,
    write_run_log,
)
from fireflow.core.state_machine import RunScope, WorkItemMode, WorkItemStatus


def batch_run(**overrides):
    data = dict(
        id="run-002",
        scope=RunScope.BATCH,
        work_items=[
            RunWorkItem(
                id="WI-001",
                intent="intent-auth",
                mode=WorkItemMode.AUTOPILOT,
                status=WorkItemStatus.IN_PROGRESS,
            ),
            RunWorkItem(id="WI-002", intent="intent-auth", mode=WorkItemMode.VALIDATE),
        ],
        current_item="WI-001",
        started="2026-01-15T10:30:00+00:00",
    )
    data.update(overrides)
    return Run(**data)


class TestRenderActiveRun:
    """Tests for rendering a run that is still in progress."""

    def test_front_matter(self, tmp_path):
        path = tmp_path / "run.md"
        write_run_log(path, render_run_log(batch_run()))

        metadata = read_run_log_metadata(path)
        assert metadata["id"] == "run-002"
        assert metadata["scope"] == "batch"
        assert metadata["status"] == "in_progress"
        assert metadata["current_item"] == "WI-001"
        assert metadata["started"] == "2026-01-15T10:30:00+00:00"
        assert metadata["completed"] is None
        assert metadata["work_items"][1] == {
            "id": "WI-002",
            "intent": "intent-auth",
            "mode": "validate",
            "status": "pending",
        }

    def test_sections(self):
        text = render_run_log(batch_run())

        assert "# Run: run-002" in text
        assert "## Scope\nbatch (2 work items)" in text
        assert "1. **WI-001** (autopilot) — in_progress" in text
        assert "2. **WI-002** (validate) — pending" in text
        assert "## Current Item\nWI-001 (autopilot)" in text
        assert f"## Files Created\n{PENDING_PLACEHOLDER}" in text
        assert f"## Decisions\n{PENDING_PLACEHOLDER}" in text
        assert "## Summary" not in text

    def test_single_item_scope_line(self):
        run = batch_run(scope=RunScope.SINGLE, work_items=batch_run().work_items[:1])
        assert "single (1 work item)\n" in render_run_log(run)

    def test_all_items_completed(self):
        text = render_run_log(batch_run(current_item=None))
        assert "## Current Item\n(all completed)" in text
        assert "current_item: none" in text


class TestRenderFinalizedRun:
    """Tests for rendering a completed run."""

    def test_empty_params(self):
        run = batch_run(current_item=None, completed="2026-01-15T12:00:00+00:00")
        text = render_run_log(run)

        assert "status: completed" in text
        assert "completed: 2026-01-15T12:00:00+00:00" in text
        assert f"## Files Created\n{EMPTY_PLACEHOLDER}" in text
        assert f"## Files Modified\n{EMPTY_PLACEHOLDER}" in text
        assert f"## Decisions\n{EMPTY_PLACEHOLDER}" in text
        assert "- Work items completed: 2" in text
        assert "- Tests added: 0" in text
        assert "- Coverage: 0%" in text

    def test_with_params(self):
        params = CompletionParams.model_validate(
            {
                "filesCreated": [{"path": "src/auth.py", "purpose": "login flow"}],
                "filesModified": [{"path": "README.md"}],
                "decisions": [
                    {"decision": "Token storage", "choice": "cookie", "rationale": "httpOnly"}
                ],
                "testsAdded": 7,
                "coverage": 85,
            }
        )
        run = batch_run(current_item=None, completed="2026-01-15T12:00:00+00:00")
        text = render_run_log(run, params)

        assert "- `src/auth.py`: login flow" in text
        assert "- `README.md`: (no changes)" in text
        assert "- **Token storage**: cookie (httpOnly)" in text
        assert "- Files created: 1" in text
        assert "- Files modified: 1" in text
        assert "- Tests added: 7" in text
        assert "- Coverage: 85%" in text
        assert "- Completed: 2026-01-15T12:00:00+00:00" in text

    def test_fractional_coverage(self):
        run = batch_run(completed="2026-01-15T12:00:00+00:00")
        text = render_run_log(run, CompletionParams(coverage=72.5))
        assert "- Coverage: 72.5%" in text


class TestReadRunLogMetadata:
    """Tests for read_run_log_metadata."""

    def test_no_front_matter(self, tmp_path):
        path = tmp_path / "run.md"
        path.write_text("# Run: run-001\n")
        assert read_run_log_metadata(path) == {}

    def test_unterminated_front_matter(self, tmp_path):
        path = tmp_path / "run.md"
        path.write_text("---\nid: run-001\n")
        assert read_run_log_metadata(path) == {}
