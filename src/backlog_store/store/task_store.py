"""Task store: loads the merged backlog and writes changes back to task files."""

import functools
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

from backlog_store.config import BacklogConfig, Milestone, load_backlog_config
from backlog_store.errors import InvalidPatchError, IoFailureError, NotFoundError, ReadOnlyViolationError
from backlog_store.git.branch_service import GitBranchService, GitTreeReader
from backlog_store.markdown.task_parser import (
    apply_patch,
    parse_task,
    read_text,
    render_new_task,
    slugify,
    toggle_checklist,
    validate_patch,
)
from backlog_store.models import ChecklistKind, Task, TaskFolder, TaskPatch, TaskSource
from backlog_store.ordering import (
    DEFAULT_STEP,
    Card,
    OrdinalUpdate,
    calculate_ordinals_for_drop,
    card_sort_key,
    natural_id_key,
    needs_rebalance,
)
from backlog_store.ordering import rebalance_column as rebalance_cards
from backlog_store.store.cross_branch import CrossBranchResolver, compute_subtasks

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]

T = TypeVar("T")


def _synchronized(method: Callable[..., T]) -> Callable[..., T]:
    """Run a TaskStore method while holding the store lock."""

    @functools.wraps(method)
    def wrapper(self: "TaskStore", *args: Any, **kwargs: Any) -> T:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


@dataclass
class MoveResult:
    """Outcome of a drag-and-drop move."""

    task: Task
    updates: list[OrdinalUpdate] = field(default_factory=list)
    needs_rebalance: bool = False


class TaskStore:
    """Read/write façade over a backlog folder.

    The in-memory snapshot is rebuilt from scratch on every reload. Writes
    target one exact variant by (id, file_path); branch variants are rejected
    before any file is touched. Reloads and writes run one at a time.
    """

    def __init__(
        self,
        backlog_path: Path,
        config: BacklogConfig | None = None,
        git: GitTreeReader | None = None,
        today: Callable[[], date] = date.today,
        step: float = DEFAULT_STEP,
    ) -> None:
        """Initialize store.

        Args:
            backlog_path: Path to the backlog folder
            config: Fixed backlog settings; None reads config.yml on every reload
            git: Branch reader; defaults to the git executable when branch
                scanning is enabled
            today: Clock used for created/updated dates
            step: Ordinal spacing for drops and rebalancing
        """
        self._backlog_path = backlog_path
        self._fixed_config = config
        self._config = config or BacklogConfig()
        self._git = git
        self._today = today
        self._step = step
        self._tasks: list[Task] = []
        self._variants: list[Task] = []
        self._branches: list[str] = []
        self._listeners: list[ChangeListener] = []
        self._loaded = False
        # HTTP worker threads and the watcher timer share one store
        self._lock = threading.RLock()

    @property
    def backlog_path(self) -> Path:
        return self._backlog_path

    # Loading

    @_synchronized
    def reload(self) -> None:
        """Rebuild the snapshot from disk and branches."""
        self._config = self._fixed_config or load_backlog_config(self._backlog_path)
        resolved = CrossBranchResolver(self._backlog_path, self._config, self._git_reader()).resolve()
        self._tasks = resolved.tasks
        self._variants = resolved.variants
        self._branches = resolved.branches
        self._loaded = True

    def add_listener(self, callback: ChangeListener) -> None:
        """Register a callback run after every change-driven reload."""
        self._listeners.append(callback)

    def on_files_changed(self) -> None:
        """Reload after an external change and notify listeners."""
        logger.info("[TaskStore] Files changed, reloading backlog")
        self.reload()
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"[TaskStore] Change listener failed: {e}")

    def _git_reader(self) -> GitTreeReader | None:
        if self._git is not None:
            return self._git
        if not self._config.check_active_branches:
            return None
        return GitBranchService(self._backlog_path.parent)

    @_synchronized
    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.reload()

    # Reads

    def list_tasks(
        self,
        folder: TaskFolder | str = TaskFolder.TASKS,
        status: str | None = None,
        include_duplicates: bool = False,
    ) -> list[Task]:
        """List tasks of a folder, optionally with read-only branch duplicates."""
        self._ensure_loaded()
        folder = TaskFolder(folder)
        source = self._variants if include_duplicates else self._tasks
        tasks = [
            task
            for task in source
            if task.folder is folder and (status is None or task.status == status)
        ]
        return sorted(
            tasks,
            key=lambda t: (natural_id_key(t.id), t.source is TaskSource.BRANCH, t.branch or ""),
        )

    def get_task(self, task_id: str) -> Task | None:
        """Return the authoritative variant, or the representative of a branch-only task."""
        self._ensure_loaded()
        wanted = task_id.upper()
        return next((task for task in self._tasks if task.id == wanted), None)

    def get_task_variant(self, task_id: str, file_path: str) -> Task | None:
        """Return the exact variant at file_path, never a same-id substitute."""
        self._ensure_loaded()
        wanted = task_id.upper()
        return next(
            (t for t in self._variants if t.id == wanted and t.file_path == file_path),
            None,
        )

    def get_variants(self, task_id: str) -> list[Task]:
        self._ensure_loaded()
        wanted = task_id.upper()
        return [task for task in self._variants if task.id == wanted]

    def get_column(self, status: str) -> list[Task]:
        """Tasks of one board column in display order."""
        self._ensure_loaded()
        column = [
            task
            for task in self._tasks
            if task.folder is TaskFolder.TASKS and task.status == status
        ]
        return sorted(column, key=lambda t: card_sort_key(t.order, t.id))

    def get_config(self) -> BacklogConfig:
        self._ensure_loaded()
        return self._config

    def get_statuses(self) -> list[str]:
        return list(self.get_config().statuses)

    def get_milestones(self) -> list[Milestone]:
        return list(self.get_config().milestones)

    def get_branches(self) -> list[str]:
        """Branches scanned during the last reload."""
        self._ensure_loaded()
        return list(self._branches)

    def get_unique_labels(self) -> list[str]:
        """Labels from config and all tasks, sorted."""
        self._ensure_loaded()
        labels = set(self._config.labels)
        for task in self._tasks:
            labels.update(task.labels)
        return sorted(labels)

    def get_unique_assignees(self) -> list[str]:
        self._ensure_loaded()
        return sorted({name for task in self._tasks for name in task.assignee})

    def get_blocked_by(self, task_id: str) -> list[str]:
        """Ids of tasks that depend on the given task."""
        self._ensure_loaded()
        wanted = task_id.upper()
        return [
            task.id
            for task in self._tasks
            if wanted in (dependency.upper() for dependency in task.dependencies)
        ]

    # Writes

    @_synchronized
    def update_task(self, task_id: str, file_path: str, patch: TaskPatch) -> Task:
        """Apply a partial update to one local variant.

        Raises:
            NotFoundError: If no variant matches (id, file_path)
            ReadOnlyViolationError: If the variant comes from another branch
            InvalidPatchError: If the patch has unknown fields or bad values
            IoFailureError: If the file cannot be read or written
        """
        task = self._writable_variant(task_id, file_path)
        validate_patch(patch, self._config.statuses)
        return self._write_patch(task, patch)

    @_synchronized
    def reorder(self, updates: Iterable[OrdinalUpdate]) -> list[Task]:
        """Write ordinals file by file; stops at the first I/O failure.

        Every target is checked before the first write. Files written before
        a failure keep their new ordinal.
        """
        updates = list(updates)
        targets = [(self._resolve_update_target(update), update) for update in updates]

        written: list[Task] = []
        for task, update in targets:
            written.append(self._write_patch(task, {"ordinal": update.ordinal}))
        return written

    @_synchronized
    def move_task(self, task_id: str, file_path: str, status: str, drop_index: int) -> MoveResult:
        """Drop a card into a column at drop_index, changing its status if needed.

        Raises:
            NotFoundError: If no variant matches (id, file_path)
            ReadOnlyViolationError: If the card or a card needing a new
                ordinal is a branch variant
            InvalidPatchError: If status is not a configured status
        """
        task = self._writable_variant(task_id, file_path)
        if status not in self._config.statuses:
            raise InvalidPatchError(f"Unknown status: {status!r}")

        # For a same-column move the card is still in the list and drop_index
        # counts its old slot.
        column = self.get_column(status)
        by_id = {t.id: t for t in column}
        cards = [Card(t.id, t.order) for t in column]
        updates = calculate_ordinals_for_drop(cards, Card(task.id, task.order), drop_index, self._step)

        pinned: list[tuple[Task, OrdinalUpdate]] = []
        dropped_update = updates[-1]
        for update in updates[:-1]:
            neighbour = by_id[update.task_id]
            if neighbour.is_read_only:
                raise ReadOnlyViolationError(
                    f"Cannot assign an ordinal to {neighbour.id}: read-only variant from "
                    f"branch {neighbour.branch}"
                )
            pinned.append((neighbour, OrdinalUpdate(neighbour.id, update.ordinal, neighbour.file_path)))

        for neighbour, update in pinned:
            self._write_patch(neighbour, {"ordinal": update.ordinal})

        patch: TaskPatch = {"ordinal": dropped_update.ordinal}
        if task.status != status:
            patch["status"] = status
        moved = self._write_patch(task, patch)

        applied = [update for _, update in pinned]
        applied.append(OrdinalUpdate(task.id, dropped_update.ordinal, task.file_path))
        rebalance = needs_rebalance([Card(t.id, t.order) for t in self.get_column(status)])
        if rebalance:
            logger.warning(f"[TaskStore] Column {status!r} has exhausted ordinal gaps")
        return MoveResult(task=moved, updates=applied, needs_rebalance=rebalance)

    @_synchronized
    def rebalance_column(self, status: str) -> list[OrdinalUpdate]:
        """Respace the explicit ordinals of a column's local cards."""
        if status not in self.get_statuses():
            raise InvalidPatchError(f"Unknown status: {status!r}")
        column = [task for task in self.get_column(status) if not task.is_read_only]
        by_id = {task.id: task for task in column}
        updates = [
            OrdinalUpdate(update.task_id, update.ordinal, by_id[update.task_id].file_path)
            for update in rebalance_cards([Card(t.id, t.order) for t in column], self._step)
        ]
        self.reorder(updates)
        logger.info(f"[TaskStore] Rebalanced column {status!r}: {len(updates)} cards updated")
        return updates

    @_synchronized
    def toggle_checklist_item(
        self,
        task_id: str,
        file_path: str,
        list_kind: ChecklistKind | str,
        sequential_id: int,
    ) -> Task:
        """Flip one checklist box; every other byte of the file is kept."""
        task = self._writable_variant(task_id, file_path)
        kind = ChecklistKind(list_kind)
        path = Path(task.file_path)
        content, encoding = self._read(path)

        toggled = toggle_checklist(content, kind, sequential_id)
        if toggled is None:
            raise NotFoundError(f"{task.id} has no {kind.value} item #{sequential_id}")

        self._write(path, toggled, encoding)
        return self._replace_variant(task, toggled)

    @_synchronized
    def create_task(
        self,
        title: str,
        status: str | None = None,
        description: str | None = None,
        priority: str | None = None,
        labels: list[str] | None = None,
        assignee: list[str] | None = None,
        milestone: str | None = None,
        parent_task_id: str | None = None,
        acceptance_criteria: list[str] | None = None,
    ) -> Task:
        """Create a task file in tasks/ with the next free id."""
        self._ensure_loaded()
        if not title.strip():
            raise InvalidPatchError("Title must not be empty")
        status = status or self._config.default_status
        validate_patch({"status": status, "priority": priority}, self._config.statuses)

        task_id = self.next_task_id(parent_task_id)
        content = render_new_task(
            task_id,
            title.strip(),
            status,
            created_date=self._today().isoformat(),
            description=description,
            priority=priority,
            labels=labels,
            assignee=assignee,
            milestone=milestone,
            parent_task_id=parent_task_id.upper() if parent_task_id else None,
            acceptance_criteria=acceptance_criteria,
        )

        tasks_dir = self._backlog_path / TaskFolder.TASKS.value
        path = tasks_dir / f"{task_id.lower()} - {slugify(title)}.md"
        try:
            tasks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailureError(f"Cannot create {tasks_dir}: {e}") from e
        # Exclusive create: never replace a file that appeared since the last reload
        self._write(path, content, "utf-8", mode="x")

        task = self._parse(content, path, TaskFolder.TASKS)
        self._tasks.append(task)
        self._variants.append(task)
        compute_subtasks(self._tasks)
        logger.info(f"[TaskStore] Created {task_id} at {path.name}")
        return task

    @_synchronized
    def next_task_id(self, parent_task_id: str | None = None) -> str:
        """Next id above every variant seen, branch variants included.

        With a parent, the next dotted sub-id of that parent.
        """
        self._ensure_loaded()
        ids = {task.id for task in self._variants}
        if parent_task_id:
            parent = parent_task_id.upper()
            prefix = f"{parent}."
            numbers = [
                int(rest)
                for rest in (task_id[len(prefix):] for task_id in ids if task_id.startswith(prefix))
                if rest.isdigit()
            ]
            return f"{parent}.{max(numbers, default=0) + 1}"

        prefix = f"{self._config.id_prefix}-"
        numbers = []
        for task_id in ids:
            if not task_id.startswith(prefix):
                continue
            head = task_id[len(prefix):].split(".", 1)[0]
            if head.isdigit():
                numbers.append(int(head))
        return f"{prefix}{max(numbers, default=0) + 1}"

    @_synchronized
    def archive_task(self, task_id: str, file_path: str) -> Task:
        """Move a local task file into archive/tasks/."""
        task = self._writable_variant(task_id, file_path)
        if task.folder is TaskFolder.ARCHIVE:
            return task

        source = Path(task.file_path)
        archive_dir = self._backlog_path / TaskFolder.ARCHIVE.value
        target = archive_dir / source.name
        try:
            archive_dir.mkdir(parents=True, exist_ok=True)
            source.rename(target)
        except OSError as e:
            raise IoFailureError(f"Cannot archive {source.name}: {e}") from e

        content, _ = self._read(target)
        archived = self._parse(content, target, TaskFolder.ARCHIVE)
        self._swap(task, archived)
        logger.info(f"[TaskStore] Archived {task.id} to {target}")
        return archived

    # Helpers

    def _writable_variant(self, task_id: str, file_path: str) -> Task:
        task = self.get_task_variant(task_id, file_path)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found at {file_path}")
        if task.is_read_only:
            raise ReadOnlyViolationError(
                f"{task.id} at {file_path} is a read-only variant from branch {task.branch}"
            )
        return task

    def _resolve_update_target(self, update: OrdinalUpdate) -> Task:
        if update.file_path is not None:
            return self._writable_variant(update.task_id, update.file_path)
        task = self.get_task(update.task_id)
        if task is None:
            raise NotFoundError(f"Task {update.task_id} not found")
        if task.is_read_only:
            raise ReadOnlyViolationError(f"{task.id} exists only on branch {task.branch}")
        return task

    def _write_patch(self, task: Task, patch: TaskPatch) -> Task:
        path = Path(task.file_path)
        content, encoding = self._read(path)
        updated = apply_patch(content, patch, self._today().isoformat())
        self._write(path, updated, encoding)
        return self._replace_variant(task, updated)

    def _replace_variant(self, task: Task, content: str) -> Task:
        updated = self._parse(content, Path(task.file_path), task.folder)
        self._swap(task, updated)
        return updated

    def _swap(self, old: Task, new: Task) -> None:
        for collection in (self._tasks, self._variants):
            for index, task in enumerate(collection):
                if task is old:
                    collection[index] = new
        compute_subtasks(self._tasks)

    def _parse(self, content: str, path: Path, folder: TaskFolder) -> Task:
        return parse_task(
            content,
            str(path),
            folder=folder,
            statuses=self._config.statuses,
            default_status=self._config.default_status,
        )

    @staticmethod
    def _read(path: Path) -> tuple[str, str]:
        try:
            return read_text(path)
        except OSError as e:
            raise IoFailureError(f"Cannot read {path}: {e}") from e

    @staticmethod
    def _write(path: Path, content: str, encoding: str, mode: str = "w") -> None:
        try:
            # Keep the document's line endings exactly as given
            with path.open(mode, encoding=encoding, newline="") as f:
                f.write(content)
        except FileExistsError as e:
            raise IoFailureError(f"Cannot create {path}: file already exists") from e
        except OSError as e:
            raise IoFailureError(f"Cannot write {path}: {e}") from e
        logger.debug(f"[TaskStore] Wrote {path}")
