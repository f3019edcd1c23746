"""State document storage for fireflow.

Reads, validates, migrates and writes ``state.yaml``. The document is
treated as an open mapping: keys fireflow does not own (project metadata,
custom fields) are written back verbatim.

All writes use atomic temp-file-then-rename, and every read-modify-write
transaction holds an exclusive ``fcntl`` lock on a ``.lock`` sidecar so two
callers sharing a project root cannot lose each other's updates.

This module is headless - no CLI dependencies.
"""

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from pydantic import ValidationError

from fireflow.core.errors import fire_error
from fireflow.core.models import Run, RunHistoryEntry
from fireflow.core.workspace import Workspace

logger = logging.getLogger(__name__)

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"
_LOCK_SUFFIX = ".lock"


def _without_timestamps(resolvers: dict) -> dict:
    return {
        first_char: [(tag, regexp) for tag, regexp in entries if tag != _TIMESTAMP_TAG]
        for first_char, entries in resolvers.items()
    }


class StateLoader(yaml.SafeLoader):
    """SafeLoader that keeps ISO timestamps as plain strings."""


class StateDumper(yaml.SafeDumper):
    """SafeDumper matching StateLoader: timestamp-like strings stay unquoted."""


StateLoader.yaml_implicit_resolvers = _without_timestamps(yaml.SafeLoader.yaml_implicit_resolvers)
StateDumper.yaml_implicit_resolvers = _without_timestamps(yaml.SafeDumper.yaml_implicit_resolvers)


def dump_yaml(data: Any) -> str:
    """Serialize ``data`` in block style, preserving key order."""
    return yaml.dump(
        data,
        Dumper=StateDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


@contextmanager
def _locked_file(path: Path) -> Iterator[None]:
    """Hold an exclusive lock on ``path``'s sidecar for the context.

    The lock lives on a separate file so the data file itself can be
    replaced with ``os.replace`` while the lock is held.
    """
    lock_path = path.with_name(path.name + _LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# StateDocument
# ---------------------------------------------------------------------------


class StateDocument:
    """In-memory view over the raw state mapping.

    Owned keys are ``intents``, ``active_run`` and ``runs.completed``;
    everything else passes through untouched.
    """

    def __init__(self, data: dict[str, Any], family: str = "STATE"):
        self.data = data
        self.family = family

    # -- intents ----------------------------------------------------------

    @property
    def intents(self) -> list[dict[str, Any]]:
        intents = self.data.get("intents")
        return intents if isinstance(intents, list) else []

    def find_intent_item(self, intent_id: str, item_id: str) -> Optional[dict[str, Any]]:
        """Return the intent-side record of a work item, or None."""
        for intent in self.intents:
            if not isinstance(intent, dict) or intent.get("id") != intent_id:
                continue
            for item in intent.get("work_items") or []:
                if isinstance(item, dict) and item.get("id") == item_id:
                    return item
        return None

    # -- active run -------------------------------------------------------

    @property
    def active_run(self) -> Optional[Run]:
        raw = self.data.get("active_run")
        if raw is None:
            return None
        try:
            return Run.model_validate(raw)
        except ValidationError as exc:
            raise fire_error(
                self.family,
                "022",
                f"Active run in state file is malformed: {exc.error_count()} validation error(s).",
                "Fix active_run in state.yaml or re-initialize the run.",
            ) from exc

    def set_active_run(self, run: Optional[Run]) -> None:
        self.data["active_run"] = run.to_state() if run is not None else None

    # -- history ----------------------------------------------------------

    def _runs(self) -> dict[str, Any]:
        runs = self.data.get("runs")
        if not isinstance(runs, dict):
            runs = {}
            self.data["runs"] = runs
        if not isinstance(runs.get("completed"), list):
            runs["completed"] = []
        return runs

    @property
    def completed_runs(self) -> list[dict[str, Any]]:
        runs = self.data.get("runs")
        if not isinstance(runs, dict) or not isinstance(runs.get("completed"), list):
            return []
        return runs["completed"]

    def has_completed(self, run_id: str) -> bool:
        return any(
            isinstance(entry, dict) and str(entry.get("id")) == run_id
            for entry in self.completed_runs
        )

    def append_completed(self, entry: RunHistoryEntry) -> bool:
        """Append ``entry`` to history unless its run id is already recorded.

        Returns:
            True if the entry was appended
        """
        if self.has_completed(entry.id):
            logger.info("Run %s already recorded in history; not duplicating", entry.id)
            return False
        self._runs()["completed"].append(entry.to_state())
        return True

    def history(self) -> list[RunHistoryEntry]:
        """Parse history entries, skipping ones without an id."""
        entries = []
        for raw in self.completed_runs:
            if not isinstance(raw, dict) or raw.get("id") is None:
                continue
            try:
                entries.append(RunHistoryEntry.model_validate({**raw, "id": str(raw["id"])}))
            except ValidationError as exc:
                raise fire_error(
                    self.family,
                    "022",
                    f"History entry {raw['id']} is malformed: {exc.error_count()} validation error(s).",
                    "Fix runs.completed in state.yaml.",
                ) from exc
        return entries

    def known_run_ids(self) -> list[str]:
        """Run ids recorded in the document (history and active run)."""
        ids = [str(entry.get("id")) for entry in self.completed_runs if isinstance(entry, dict) and entry.get("id")]
        active = self.data.get("active_run")
        if isinstance(active, dict) and active.get("id"):
            ids.append(str(active["id"]))
        return ids

    def to_yaml(self) -> str:
        return dump_yaml(self.data)


def _migrate_legacy_active_runs(data: dict[str, Any], family: str) -> None:
    """Fold a legacy ``runs.active`` list into the ``active_run`` field."""
    runs = data.get("runs")
    if not isinstance(runs, dict) or "active" not in runs:
        return

    legacy = runs.pop("active")
    if legacy is None or legacy == []:
        return
    if not isinstance(legacy, list):
        raise fire_error(family, "022", "runs.active must be a list.", "Check state.yaml format.")
    if len(legacy) > 1:
        ids = ", ".join(str(r.get("id")) for r in legacy if isinstance(r, dict))
        raise fire_error(
            family,
            "022",
            f"State file lists {len(legacy)} active runs ({ids}); only one run may be active.",
            "Complete or remove the extra runs from runs.active in state.yaml.",
        )

    current = data.get("active_run")
    candidate = legacy[0]
    if current and isinstance(candidate, dict) and isinstance(current, dict) and current.get("id") != candidate.get("id"):
        raise fire_error(
            family,
            "022",
            f'State file has conflicting active runs "{current.get("id")}" and "{candidate.get("id")}".',
            "Keep a single active run in state.yaml.",
        )
    data["active_run"] = candidate
    logger.info("Migrated legacy runs.active entry %s to active_run", candidate.get("id") if isinstance(candidate, dict) else candidate)


def parse_document(text: str, family: str, source: str = "state.yaml") -> StateDocument:
    """Parse and shape-check a state document.

    Raises:
        FireError: ``<family>_022`` for empty or mis-shaped documents,
            ``<family>_023`` for invalid YAML
    """
    try:
        data = yaml.load(text, Loader=StateLoader)
    except yaml.YAMLError as exc:
        raise fire_error(
            family,
            "023",
            f"Failed to read state file {source}: {exc}",
            "Check file permissions and YAML syntax.",
        ) from exc

    if not data or not isinstance(data, dict):
        raise fire_error(family, "022", "State file is empty or invalid.", "Check state.yaml format.")

    if "intents" in data and data["intents"] is not None and not isinstance(data["intents"], list):
        raise fire_error(family, "022", "intents must be a list.", "Check state.yaml format.")
    if "runs" in data and data["runs"] is not None and not isinstance(data["runs"], dict):
        raise fire_error(family, "022", "runs must be a mapping.", "Check state.yaml format.")
    active = data.get("active_run")
    if active is not None and not isinstance(active, dict):
        raise fire_error(family, "022", "active_run must be a mapping or null.", "Check state.yaml format.")

    _migrate_legacy_active_runs(data, family)
    return StateDocument(data, family)


def read_document(path: Path, family: str) -> StateDocument:
    """Read and parse the state document at ``path`` (no locking)."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise fire_error(
            family,
            "023",
            f"Failed to read state file: {exc}",
            "Check file permissions and YAML syntax.",
        ) from exc
    return parse_document(text, family, str(path))


def write_document(path: Path, document: StateDocument, family: Optional[str] = None) -> None:
    """Atomically write ``document`` to ``path`` (no locking)."""
    family = family or document.family
    try:
        atomic_write_text(path, document.to_yaml())
    except OSError as exc:
        raise fire_error(
            family,
            "024",
            f"Failed to write state file: {exc}",
            "Check file permissions and disk space.",
        ) from exc


# ---------------------------------------------------------------------------
# StateStore
# ---------------------------------------------------------------------------


class StateStore:
    """Locked access to a workspace's state document.

    Example:
        store = StateStore(workspace, ErrorFamily.COMPLETE)
        with store.transaction() as state:
            state.set_active_run(None)
    """

    def __init__(self, workspace: Workspace, family: str):
        self.workspace = workspace
        self.family = family

    @property
    def path(self) -> Path:
        return self.workspace.state_path

    def read(self) -> StateDocument:
        """Read a consistent snapshot of the document."""
        with _locked_file(self.path):
            return read_document(self.path, self.family)

    @contextmanager
    def transaction(self) -> Iterator[StateDocument]:
        """Read-modify-write the document under the lock.

        The document is written back only if the block exits normally;
        a FireError (or any exception) leaves the file untouched.
        """
        with _locked_file(self.path):
            document = read_document(self.path, self.family)
            yield document
            write_document(self.path, document, self.family)
            logger.debug("Wrote state document %s", self.path)
