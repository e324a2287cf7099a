"""Domain models for backlog tasks."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypedDict

from backlog_store.ordering import UNORDERED, Order


class TaskSource(str, Enum):
    """Where a task variant was read from."""

    LOCAL = "local"
    BRANCH = "branch"


class TaskFolder(str, Enum):
    """Task-bearing directories inside the backlog folder."""

    TASKS = "tasks"
    DRAFTS = "drafts"
    COMPLETED = "completed"
    ARCHIVE = "archive/tasks"


class ChecklistKind(str, Enum):
    ACCEPTANCE_CRITERIA = "acceptance_criteria"
    DEFINITION_OF_DONE = "definition_of_done"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ChecklistItem:
    """Checklist line; sequential_id is its 1-based position in the list."""

    sequential_id: int
    text: str
    checked: bool = False


@dataclass
class Task:
    """One observed variant of a backlog task."""

    id: str  # TASK-12, TASK-2.1
    title: str
    status: str
    file_path: str  # Absolute path, or "<branch>:<repo path>" for branch variants
    folder: TaskFolder = TaskFolder.TASKS
    source: TaskSource = TaskSource.LOCAL
    branch: str | None = None
    priority: Priority | None = None
    milestone: str | None = None
    labels: list[str] = field(default_factory=list)
    assignee: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    documentation: list[str] = field(default_factory=list)
    parent_task_id: str | None = None
    subtask_ids: list[str] = field(default_factory=list)
    type: str | None = None
    description: str | None = None
    plan: str | None = None
    implementation_notes: str | None = None
    final_summary: str | None = None
    acceptance_criteria: list[ChecklistItem] = field(default_factory=list)
    definition_of_done: list[ChecklistItem] = field(default_factory=list)
    order: Order = UNORDERED
    created_date: str | None = None
    updated_date: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)  # Unknown frontmatter keys, in file order
    degraded: bool = False

    @property
    def ordinal(self) -> float | None:
        return self.order.ordinal

    @property
    def is_read_only(self) -> bool:
        return self.source is TaskSource.BRANCH

    @property
    def variant_key(self) -> tuple[str, str, str | None, str]:
        return (self.id, self.source.value, self.branch, self.file_path)


class TaskPatch(TypedDict, total=False):
    """Partial task update; only keys present are written.

    None clears a scalar field or removes the ordinal.
    """

    title: str
    status: str
    priority: str | None
    milestone: str | None
    labels: list[str]
    assignee: list[str]
    dependencies: list[str]
    references: list[str]
    documentation: list[str]
    parent_task_id: str | None
    ordinal: float | None
    description: str | None
    plan: str | None
    implementation_notes: str | None
    final_summary: str | None
    acceptance_criteria: list[ChecklistItem]
    definition_of_done: list[ChecklistItem]
