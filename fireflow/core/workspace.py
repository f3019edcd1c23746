"""Workspace layout for fireflow projects.

A workspace is a project root containing a state directory
(``.specs-fire/`` by default) with:
- ``state.yaml``: the persisted state document
- ``runs/<run-id>/run.md``: one human-readable artifact per run

This module is headless - no CLI dependencies.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from fireflow.core.config import FireSettings, get_settings
from fireflow.core.errors import fire_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workspace:
    """Resolved paths for a fireflow project.

    Attributes:
        root: Absolute path to the project root
        state_dir: Path to the state directory (``.specs-fire/``)
        settings: Layout settings the paths were derived from
    """

    root: Path
    state_dir: Path
    settings: FireSettings

    @property
    def state_path(self) -> Path:
        """Path to the YAML state document."""
        return self.state_dir / self.settings.state_file

    @property
    def runs_dir(self) -> Path:
        """Directory holding one folder per run."""
        return self.state_dir / self.settings.runs_dir

    def run_dir(self, run_id: str) -> Path:
        return self.runs_dir / run_id

    def run_log_path(self, run_id: str) -> Path:
        return self.run_dir(run_id) / self.settings.run_log_name

    def list_run_folders(self) -> list[str]:
        """Return the names of existing run folders, sorted."""
        if not self.runs_dir.is_dir():
            return []
        return sorted(p.name for p in self.runs_dir.iterdir() if p.is_dir())


def validate_root(family: str, root: Any) -> Path:
    """Check that ``root`` names an existing directory.

    Args:
        family: Error family for raised codes
        root: Caller-supplied root path (str or Path)

    Returns:
        Resolved root path

    Raises:
        FireError: ``<family>_001`` for a blank or wrong-typed value,
            ``<family>_004`` if the path does not exist
    """
    if isinstance(root, Path):
        root = str(root)
    if not isinstance(root, str) or not root.strip():
        raise fire_error(family, "001", "rootPath is required.", "Provide a valid project root path.")

    path = Path(root).expanduser()
    if not path.exists():
        raise fire_error(
            family,
            "004",
            f'Project root not found: "{root}".',
            "Ensure the path exists and is accessible.",
        )
    return path.resolve()


def get_workspace(
    family: str,
    root: Path,
    settings: Optional[FireSettings] = None,
) -> Workspace:
    """Load the workspace at ``root``, checking the state directory exists.

    Raises:
        FireError: ``<family>_020`` if the project is not initialized,
            ``<family>_021`` if the state document is missing
    """
    settings = settings or get_settings()
    workspace = Workspace(root=root, state_dir=root / settings.dir_name, settings=settings)

    if not workspace.state_dir.is_dir():
        raise fire_error(
            family,
            "020",
            f'FIRE project not initialized at: "{root}".',
            "Run `fire init` first to initialize the project.",
        )
    if not workspace.state_path.is_file():
        raise fire_error(
            family,
            "021",
            f'State file not found at: "{workspace.state_path}".',
            "The project may be corrupted. Try re-initializing.",
        )
    return workspace


def workspace_exists(root: Path, settings: Optional[FireSettings] = None) -> bool:
    """Check if ``root`` already holds an initialized fireflow project."""
    settings = settings or get_settings()
    return (root / settings.dir_name / settings.state_file).is_file()


def init_workspace(
    root: Path,
    project_name: Optional[str] = None,
    settings: Optional[FireSettings] = None,
) -> Workspace:
    """Create the state directory and an empty state document.

    Idempotent: an existing state document is left untouched.

    Args:
        root: Existing project root
        project_name: Name recorded under ``project.name`` (default: folder name)
        settings: Layout settings (default: process settings)

    Returns:
        The initialized Workspace
    """
    # Imported here: state_store depends on this module
    from fireflow.core.state_store import StateDocument, write_document

    settings = settings or get_settings()
    root = root.resolve()
    workspace = Workspace(root=root, state_dir=root / settings.dir_name, settings=settings)
    workspace.runs_dir.mkdir(parents=True, exist_ok=True)

    if workspace.state_path.exists():
        logger.info("Workspace already initialized at %s", workspace.state_dir)
        return workspace

    document = StateDocument(
        {
            "project": {"name": project_name or root.name},
            "intents": [],
            "active_run": None,
            "runs": {"completed": []},
        }
    )
    write_document(workspace.state_path, document)
    logger.info("Initialized workspace at %s", workspace.state_dir)
    return workspace
