"""Shared pytest fixtures for fireflow tests."""

import os
from pathlib import Path
from typing import Any

import pytest
import yaml

from fireflow.core.config import reset_settings
from fireflow.core.state_store import StateLoader, dump_yaml
from fireflow.core.workspace import init_workspace

STATE_DIR = ".specs-fire"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate every test from FIRE_* variables in the host environment."""
    for key in list(os.environ):
        if key.startswith("FIRE_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


def state_path(root: Path) -> Path:
    return root / STATE_DIR / "state.yaml"


def run_log_path(root: Path, run_id: str) -> Path:
    return root / STATE_DIR / "runs" / run_id / "run.md"


def read_state(root: Path) -> dict[str, Any]:
    """Load the raw state document the same way fireflow does."""
    return yaml.load(state_path(root).read_text(encoding="utf-8"), Loader=StateLoader)


def write_state(root: Path, data: dict[str, Any]) -> None:
    state_path(root).write_text(dump_yaml(data), encoding="utf-8")


def work_item(item_id: str, intent: str = "intent-auth", mode: str = "confirm") -> dict[str, str]:
    return {"id": item_id, "intent": intent, "mode": mode}


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An initialized, empty FIRE project."""
    init_workspace(tmp_path, project_name="demo")
    return tmp_path


@pytest.fixture
def project_with_intents(project: Path) -> Path:
    """A project whose state lists one intent with three work items."""
    data = read_state(project)
    data["intents"] = [
        {
            "id": "intent-auth",
            "title": "User authentication",
            "work_items": [
                {"id": "WI-001", "status": "pending"},
                {"id": "WI-002", "status": "pending", "depends_on": ["WI-001"]},
                {"id": "WI-003", "status": "pending", "depends_on": ["WI-001", "WI-002"]},
            ],
        }
    ]
    write_state(project, data)
    return project
