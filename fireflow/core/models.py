"""Pydantic models for the fireflow state document.

The state document is hand-editable YAML, so every record keeps fields
it does not know about (``extra="allow"``) and writes them back unchanged.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fireflow.core.state_machine import (
    CheckpointState,
    RunScope,
    WorkItemMode,
    WorkItemStatus,
)


class _Record(BaseModel):
    """Base for persisted records: lenient about unknown keys."""

    model_config = ConfigDict(extra="allow", use_enum_values=False)

    def to_state(self) -> dict[str, Any]:
        """Serialize for the YAML document (enum values, unset fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)


class RunWorkItem(_Record):
    """A work item as tracked inside a run."""

    id: str
    intent: str
    mode: WorkItemMode
    status: WorkItemStatus = WorkItemStatus.PENDING
    checkpoint_state: Optional[CheckpointState] = None
    current_checkpoint: Optional[str] = None
    current_phase: Optional[str] = None
    completed_at: Optional[str] = None
    run_id: Optional[str] = None


class Run(_Record):
    """An execution session over one or more work items."""

    id: str
    scope: RunScope = RunScope.SINGLE
    work_items: list[RunWorkItem] = Field(default_factory=list)
    current_item: Optional[str] = None
    started: Optional[str] = None
    completed: Optional[str] = None

    def find_item(self, item_id: str) -> Optional[RunWorkItem]:
        """Return the work item with ``item_id``, or None."""
        for item in self.work_items:
            if item.id == item_id:
                return item
        return None

    def to_state(self) -> dict[str, Any]:
        # Keep explicit nulls for the fields readers look for
        data = super().to_state()
        data["current_item"] = self.current_item
        data["completed"] = self.completed
        return data


class HistoryWorkItem(_Record):
    """Work item reference stored in run history."""

    id: str
    intent: Optional[str] = None
    mode: Optional[str] = None


class RunHistoryEntry(_Record):
    """Immutable record of a fully completed run."""

    id: str
    scope: Optional[str] = None
    work_items: list[HistoryWorkItem] = Field(default_factory=list)
    started: Optional[str] = None
    completed: Optional[str] = None

    @classmethod
    def from_run(cls, run: Run, completed: str) -> "RunHistoryEntry":
        return cls(
            id=run.id,
            scope=run.scope.value,
            work_items=[
                HistoryWorkItem(id=item.id, intent=item.intent, mode=item.mode.value)
                for item in run.work_items
            ],
            started=run.started,
            completed=completed,
        )


class FileCreated(BaseModel):
    """A file added during a run."""

    path: str
    purpose: Optional[str] = None


class FileModified(BaseModel):
    """A file changed during a run."""

    path: str
    changes: Optional[str] = None


class Decision(BaseModel):
    """A design decision recorded during a run."""

    decision: str
    choice: str = ""
    rationale: Optional[str] = None


class CompletionParams(BaseModel):
    """Optional details reported when completing items or runs.

    Every field defaults to empty/zero; ``None`` values are coerced to
    the defaults so callers can pass partially filled mappings.
    """

    model_config = ConfigDict(populate_by_name=True)

    files_created: list[FileCreated] = Field(default_factory=list, alias="filesCreated")
    files_modified: list[FileModified] = Field(default_factory=list, alias="filesModified")
    decisions: list[Decision] = Field(default_factory=list)
    tests_added: int = Field(0, alias="testsAdded", ge=0)
    coverage: float = Field(0, ge=0, le=100)

    @field_validator("files_created", "files_modified", "decisions", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("tests_added", "coverage", mode="before")
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v
