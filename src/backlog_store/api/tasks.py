"""Task API endpoints."""

# FastAPI Depends pattern is safe in function signatures

import asyncio
import logging
from collections.abc import Callable
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException

from backlog_store.api.models import (
    ArchiveTaskRequest,
    ConfigResponse,
    CreateTaskRequest,
    MoveTaskRequest,
    MoveTaskResponse,
    OrdinalUpdateModel,
    ReorderRequest,
    TaskResponse,
    ToggleChecklistRequest,
    UpdateTaskRequest,
)
from backlog_store.errors import (
    InvalidPatchError,
    IoFailureError,
    NotFoundError,
    ReadOnlyViolationError,
)
from backlog_store.factory import get_task_store
from backlog_store.models import TaskFolder
from backlog_store.store.task_store import TaskStore

logger = logging.getLogger(__name__)

router = APIRouter()

Store = Annotated[TaskStore, Depends(get_task_store)]

T = TypeVar("T")


async def _call(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store call off the event loop and map store errors to HTTP."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ReadOnlyViolationError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except InvalidPatchError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except IoFailureError as e:
        logger.error(f"[API] I/O failure: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/config", response_model=ConfigResponse)
async def get_config(store: Store) -> ConfigResponse:
    """Backlog settings with known labels, assignees and scanned branches."""
    return ConfigResponse(
        config=await _call(store.get_config),
        branches=await _call(store.get_branches),
        labels=await _call(store.get_unique_labels),
        assignees=await _call(store.get_unique_assignees),
    )


@router.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(
    store: Store,
    folder: TaskFolder = TaskFolder.TASKS,
    status: str | None = None,
    include_duplicates: bool = False,
) -> list[TaskResponse]:
    """List tasks of a folder.

    Args:
        folder: tasks, drafts, completed or archive/tasks
        status: Only tasks with this status
        include_duplicates: Also return read-only variants from other branches

    Returns:
        Tasks in natural id order
    """
    tasks = await _call(
        store.list_tasks, folder=folder, status=status, include_duplicates=include_duplicates
    )
    return [TaskResponse.from_task(task) for task in tasks]


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(request: CreateTaskRequest, store: Store) -> TaskResponse:
    """Create a task file with the next free id."""
    task = await _call(store.create_task, **request.model_dump())
    return TaskResponse.from_task(task)


@router.post("/tasks/reorder", response_model=list[TaskResponse])
async def reorder_tasks(request: ReorderRequest, store: Store) -> list[TaskResponse]:
    """Write ordinals computed by the client; each file is written independently."""
    tasks = await _call(store.reorder, [update.to_update() for update in request.updates])
    return [TaskResponse.from_task(task) for task in tasks]


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, store: Store, file_path: str | None = None) -> TaskResponse:
    """Get the authoritative variant, or the exact variant at file_path.

    Raises:
        HTTPException: If no matching variant exists
    """
    if file_path:
        task = await _call(store.get_task_variant, task_id, file_path)
    else:
        task = await _call(store.get_task, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return TaskResponse.from_task(task)


@router.get("/tasks/{task_id}/variants", response_model=list[TaskResponse])
async def get_variants(task_id: str, store: Store) -> list[TaskResponse]:
    """Every observed variant of a task id, local and branch."""
    variants = await _call(store.get_variants, task_id)
    if not variants:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return [TaskResponse.from_task(task) for task in variants]


@router.get("/tasks/{task_id}/blocked-by", response_model=list[str])
async def get_blocked_by(task_id: str, store: Store) -> list[str]:
    """Ids of tasks that list this task as a dependency."""
    return await _call(store.get_blocked_by, task_id)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    file_path: str,
    request: UpdateTaskRequest,
    store: Store,
) -> TaskResponse:
    """Apply a partial update to the variant at file_path.

    Raises:
        HTTPException: 404 unknown variant, 409 read-only variant, 400 bad patch
    """
    task = await _call(store.update_task, task_id, file_path, request.to_patch())
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/move", response_model=MoveTaskResponse)
async def move_task(task_id: str, request: MoveTaskRequest, store: Store) -> MoveTaskResponse:
    """Drop a card into a column at a position."""
    result = await _call(
        store.move_task, task_id, request.file_path, request.status, request.drop_index
    )
    return MoveTaskResponse(
        task=TaskResponse.from_task(result.task),
        updates=[OrdinalUpdateModel.from_update(update) for update in result.updates],
        needs_rebalance=result.needs_rebalance,
    )


@router.post("/tasks/{task_id}/checklist/toggle", response_model=TaskResponse)
async def toggle_checklist_item(
    task_id: str, request: ToggleChecklistRequest, store: Store
) -> TaskResponse:
    """Flip one acceptance criterion or definition-of-done item."""
    task = await _call(
        store.toggle_checklist_item,
        task_id,
        request.file_path,
        request.list_kind,
        request.sequential_id,
    )
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/archive", response_model=TaskResponse)
async def archive_task(task_id: str, request: ArchiveTaskRequest, store: Store) -> TaskResponse:
    """Move a local task into archive/tasks."""
    task = await _call(store.archive_task, task_id, request.file_path)
    return TaskResponse.from_task(task)


@router.get("/columns/{status}", response_model=list[TaskResponse])
async def get_column(status: str, store: Store) -> list[TaskResponse]:
    """Tasks of one board column in display order."""
    if status not in await _call(store.get_statuses):
        raise HTTPException(status_code=404, detail=f"Unknown status: {status}")
    tasks = await _call(store.get_column, status)
    return [TaskResponse.from_task(task) for task in tasks]


@router.post("/columns/{status}/rebalance", response_model=list[OrdinalUpdateModel])
async def rebalance_column(status: str, store: Store) -> list[OrdinalUpdateModel]:
    """Respace the ordinals of a column."""
    updates = await _call(store.rebalance_column, status)
    return [OrdinalUpdateModel.from_update(update) for update in updates]


@router.post("/reload")
async def reload_tasks(store: Store) -> dict[str, int]:
    """Force a full reload for debugging/recovery.

    Returns:
        {"tasks": <number of tasks>, "variants": <number of variants>}
    """
    await _call(store.on_files_changed)
    tasks = await _call(store.list_tasks)
    variants = await _call(store.list_tasks, include_duplicates=True)
    return {"tasks": len(tasks), "variants": len(variants)}
