"""API models for the backlog store."""

from typing import Any

from pydantic import BaseModel, Field

from backlog_store.config import BacklogConfig
from backlog_store.models import ChecklistItem, ChecklistKind, Task
from backlog_store.ordering import OrdinalUpdate


class ChecklistItemModel(BaseModel):
    """Checklist line as sent and received over the API."""

    sequential_id: int = 0
    text: str
    checked: bool = False

    def to_item(self, position: int) -> ChecklistItem:
        return ChecklistItem(sequential_id=position, text=self.text, checked=self.checked)


class TaskResponse(BaseModel):
    """API response model for one task variant."""

    id: str
    title: str
    status: str
    file_path: str
    folder: str
    source: str
    branch: str | None
    is_read_only: bool
    priority: str | None
    milestone: str | None
    labels: list[str]
    assignee: list[str]
    dependencies: list[str]
    references: list[str]
    documentation: list[str]
    parent_task_id: str | None
    subtask_ids: list[str]
    type: str | None
    description: str | None
    plan: str | None
    implementation_notes: str | None
    final_summary: str | None
    acceptance_criteria: list[ChecklistItemModel]
    definition_of_done: list[ChecklistItemModel]
    ordinal: float | None
    created_date: str | None
    updated_date: str | None
    extra: dict[str, Any]
    degraded: bool

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            file_path=task.file_path,
            folder=task.folder.value,
            source=task.source.value,
            branch=task.branch,
            is_read_only=task.is_read_only,
            priority=task.priority.value if task.priority else None,
            milestone=task.milestone,
            labels=task.labels,
            assignee=task.assignee,
            dependencies=task.dependencies,
            references=task.references,
            documentation=task.documentation,
            parent_task_id=task.parent_task_id,
            subtask_ids=task.subtask_ids,
            type=task.type,
            description=task.description,
            plan=task.plan,
            implementation_notes=task.implementation_notes,
            final_summary=task.final_summary,
            acceptance_criteria=[_item_model(item) for item in task.acceptance_criteria],
            definition_of_done=[_item_model(item) for item in task.definition_of_done],
            ordinal=task.ordinal,
            created_date=task.created_date,
            updated_date=task.updated_date,
            extra=task.extra,
            degraded=task.degraded,
        )


class ConfigResponse(BaseModel):
    """Backlog settings plus lists derived from the tasks."""

    config: BacklogConfig
    branches: list[str]
    labels: list[str]
    assignees: list[str]


class UpdateTaskRequest(BaseModel):
    """Partial update; only fields sent by the client are applied."""

    title: str | None = None
    status: str | None = None
    priority: str | None = None
    milestone: str | None = None
    labels: list[str] | None = None
    assignee: list[str] | None = None
    dependencies: list[str] | None = None
    references: list[str] | None = None
    documentation: list[str] | None = None
    parent_task_id: str | None = None
    ordinal: float | None = None
    description: str | None = None
    plan: str | None = None
    implementation_notes: str | None = None
    final_summary: str | None = None
    acceptance_criteria: list[ChecklistItemModel] | None = None
    definition_of_done: list[ChecklistItemModel] | None = None

    def to_patch(self) -> dict[str, Any]:
        """Patch containing only the fields present in the request body."""
        patch: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name in ("acceptance_criteria", "definition_of_done"):
                value = [item.to_item(i) for i, item in enumerate(value or [], start=1)]
            patch[name] = value
        return patch


class OrdinalUpdateModel(BaseModel):
    task_id: str
    ordinal: float
    file_path: str | None = None

    def to_update(self) -> OrdinalUpdate:
        return OrdinalUpdate(self.task_id, self.ordinal, self.file_path)

    @classmethod
    def from_update(cls, update: OrdinalUpdate) -> "OrdinalUpdateModel":
        return cls(task_id=update.task_id, ordinal=update.ordinal, file_path=update.file_path)


class ReorderRequest(BaseModel):
    updates: list[OrdinalUpdateModel]


class MoveTaskRequest(BaseModel):
    """Drop of a card into a column."""

    file_path: str
    status: str
    drop_index: int = Field(ge=0)


class MoveTaskResponse(BaseModel):
    task: TaskResponse
    updates: list[OrdinalUpdateModel]
    needs_rebalance: bool


class ToggleChecklistRequest(BaseModel):
    file_path: str
    list_kind: ChecklistKind
    sequential_id: int = Field(ge=1)


class ArchiveTaskRequest(BaseModel):
    file_path: str


class CreateTaskRequest(BaseModel):
    """Request model for creating a task."""

    title: str = Field(min_length=1)
    status: str | None = None
    description: str | None = None
    priority: str | None = None
    labels: list[str] = Field(default_factory=list)
    assignee: list[str] = Field(default_factory=list)
    milestone: str | None = None
    parent_task_id: str | None = None
    acceptance_criteria: list[str] = Field(default_factory=list)


def _item_model(item: ChecklistItem) -> ChecklistItemModel:
    return ChecklistItemModel(sequential_id=item.sequential_id, text=item.text, checked=item.checked)
