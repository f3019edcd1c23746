"""Tests for state document storage and workspace layout."""

import pytest

from fireflow.core.errors import ErrorFamily, FireError
from fireflow.core.models import Run, RunHistoryEntry, RunWorkItem
from fireflow.core.state_machine import WorkItemMode
from fireflow.core.state_store import (
    StateStore,
    atomic_write_text,
    dump_yaml,
    parse_document,
    read_document,
)
from fireflow.core.workspace import (
    get_workspace,
    init_workspace,
    validate_root,
    workspace_exists,
)
from tests.conftest import read_state, state_path, write_state


def make_run(run_id="run-001"):
    return Run(
        id=run_id,
        work_items=[RunWorkItem(id="WI-001", intent="intent-auth", mode=WorkItemMode.CONFIRM)],
        current_item="WI-001",
        started="2026-01-15T10:30:00+00:00",
    )


class TestWorkspace:
    """Tests for workspace initialization and lookup."""

    def test_init_creates_layout(self, tmp_path):
        workspace = init_workspace(tmp_path, project_name="demo")

        assert workspace.state_path.is_file()
        assert workspace.runs_dir.is_dir()
        data = read_state(tmp_path)
        assert data["project"] == {"name": "demo"}
        assert data["intents"] == []
        assert data["active_run"] is None
        assert data["runs"] == {"completed": []}

    def test_init_is_idempotent(self, project):
        data = read_state(project)
        data["custom"] = "kept"
        write_state(project, data)

        init_workspace(project)

        assert read_state(project)["custom"] == "kept"

    def test_workspace_exists(self, tmp_path):
        assert workspace_exists(tmp_path) is False
        init_workspace(tmp_path)
        assert workspace_exists(tmp_path) is True

    def test_validate_root_blank(self):
        with pytest.raises(FireError) as exc_info:
            validate_root(ErrorFamily.COMPLETE, "  ")
        assert exc_info.value.code == "COMPLETE_001"

    def test_validate_root_wrong_type(self):
        with pytest.raises(FireError) as exc_info:
            validate_root(ErrorFamily.INIT, 42)
        assert exc_info.value.code == "INIT_001"

    def test_validate_root_missing(self, tmp_path):
        with pytest.raises(FireError) as exc_info:
            validate_root(ErrorFamily.CHECKPOINT, tmp_path / "nope")
        assert exc_info.value.code == "CHECKPOINT_004"

    def test_uninitialized_project(self, tmp_path):
        with pytest.raises(FireError) as exc_info:
            get_workspace(ErrorFamily.INIT, tmp_path)
        assert exc_info.value.code == "INIT_020"

    def test_missing_state_file(self, project):
        state_path(project).unlink()
        with pytest.raises(FireError) as exc_info:
            get_workspace(ErrorFamily.COMPLETE, project)
        assert exc_info.value.code == "COMPLETE_021"


class TestParseDocument:
    """Tests for parsing and shape checks."""

    def test_empty_document(self):
        with pytest.raises(FireError) as exc_info:
            parse_document("", ErrorFamily.COMPLETE)
        assert exc_info.value.code == "COMPLETE_022"

    def test_non_mapping_document(self):
        with pytest.raises(FireError) as exc_info:
            parse_document("- a\n- b\n", ErrorFamily.INIT)
        assert exc_info.value.code == "INIT_022"

    def test_invalid_yaml(self):
        with pytest.raises(FireError) as exc_info:
            parse_document("intents: [unclosed\n", ErrorFamily.CHECKPOINT)
        assert exc_info.value.code == "CHECKPOINT_023"

    def test_intents_must_be_list(self):
        with pytest.raises(FireError) as exc_info:
            parse_document("intents: nope\n", ErrorFamily.COMPLETE)
        assert exc_info.value.code == "COMPLETE_022"

    def test_timestamps_stay_strings(self):
        text = "active_run: null\nstarted: 2026-01-15T10:30:00Z\n"
        document = parse_document(text, ErrorFamily.COMPLETE)
        assert document.data["started"] == "2026-01-15T10:30:00Z"

    def test_round_trip_preserves_unknown_keys(self):
        text = (
            "project:\n  name: demo\n  owner: ops\n"
            "intents: []\n"
            "active_run: null\n"
            "runs:\n  completed: []\n"
            "custom_section:\n  flag: true\n"
        )
        document = parse_document(text, ErrorFamily.COMPLETE)
        again = parse_document(document.to_yaml(), ErrorFamily.COMPLETE)
        assert again.data == document.data
        assert again.data["custom_section"] == {"flag": True}

    def test_dump_keeps_timestamps_unquoted(self):
        assert dump_yaml({"completed": "2026-01-15T10:30:00+00:00"}) == (
            "completed: 2026-01-15T10:30:00+00:00\n"
        )


class TestLegacyMigration:
    """Tests for folding runs.active into active_run."""

    def test_single_legacy_entry_migrated(self):
        run = make_run().to_state()
        document = parse_document(dump_yaml({"runs": {"active": [run], "completed": []}}), "COMPLETE")

        assert document.active_run.id == "run-001"
        assert "active" not in document.data["runs"]

    def test_empty_legacy_list_dropped(self):
        document = parse_document(dump_yaml({"runs": {"active": []}}), "COMPLETE")
        assert document.active_run is None
        assert "active" not in document.data["runs"]

    def test_multiple_legacy_entries_rejected(self):
        runs = [make_run("run-001").to_state(), make_run("run-002").to_state()]
        with pytest.raises(FireError) as exc_info:
            parse_document(dump_yaml({"runs": {"active": runs}}), "CHECKPOINT")
        assert exc_info.value.code == "CHECKPOINT_022"
        assert "run-002" in exc_info.value.message

    def test_conflicting_active_run_rejected(self):
        data = {
            "active_run": make_run("run-001").to_state(),
            "runs": {"active": [make_run("run-002").to_state()]},
        }
        with pytest.raises(FireError) as exc_info:
            parse_document(dump_yaml(data), "COMPLETE")
        assert exc_info.value.code == "COMPLETE_022"


class TestStateDocument:
    """Tests for StateDocument accessors."""

    def test_malformed_active_run(self):
        document = parse_document("active_run:\n  id: run-001\n  scope: galaxy\n", "COMPLETE")
        with pytest.raises(FireError) as exc_info:
            document.active_run
        assert exc_info.value.code == "COMPLETE_022"

    def test_append_completed_does_not_duplicate(self):
        document = parse_document("project: {}\n", "COMPLETE")
        entry = RunHistoryEntry.from_run(make_run(), "2026-01-15T11:00:00+00:00")

        assert document.append_completed(entry) is True
        assert document.append_completed(entry) is False
        assert len(document.completed_runs) == 1

    def test_known_run_ids(self):
        document = parse_document(
            dump_yaml(
                {
                    "active_run": make_run("run-004").to_state(),
                    "runs": {"completed": [{"id": "run-001"}, {"id": "run-002"}]},
                }
            ),
            "INIT",
        )
        assert sorted(document.known_run_ids()) == ["run-001", "run-002", "run-004"]

    def test_find_intent_item(self):
        document = parse_document(
            "intents:\n- id: intent-auth\n  work_items:\n  - id: WI-001\n    status: pending\n",
            "COMPLETE",
        )
        assert document.find_intent_item("intent-auth", "WI-001") == {"id": "WI-001", "status": "pending"}
        assert document.find_intent_item("intent-auth", "WI-404") is None
        assert document.find_intent_item("intent-x", "WI-001") is None

    def test_history_skips_entries_without_id(self):
        document = parse_document(
            "runs:\n  completed:\n  - id: run-001\n    scope: single\n  - scope: batch\n",
            "COMPLETE",
        )
        assert [entry.id for entry in document.history()] == ["run-001"]


class TestStateStore:
    """Tests for locked transactions."""

    def test_transaction_writes_on_success(self, project):
        store = StateStore(get_workspace("COMPLETE", project), "COMPLETE")
        with store.transaction() as state:
            state.set_active_run(make_run())

        assert read_state(project)["active_run"]["id"] == "run-001"

    def test_transaction_discards_on_error(self, project):
        store = StateStore(get_workspace("COMPLETE", project), "COMPLETE")
        before = state_path(project).read_text()

        with pytest.raises(RuntimeError):
            with store.transaction() as state:
                state.set_active_run(make_run())
                raise RuntimeError("boom")

        assert state_path(project).read_text() == before

    def test_read_document_unreadable(self, tmp_path):
        with pytest.raises(FireError) as exc_info:
            read_document(tmp_path / "missing.yaml", "COMPLETE")
        assert exc_info.value.code == "COMPLETE_023"

    def test_atomic_write_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "out.txt"
        atomic_write_text(target, "hello")
        atomic_write_text(target, "world")

        assert target.read_text() == "world"
        assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]
