"""Merge task variants from the working tree and other git branches."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from backlog_store.config import BacklogConfig, TaskResolutionStrategy
from backlog_store.errors import GitError
from backlog_store.git.branch_service import GitTreeReader
from backlog_store.markdown.task_parser import parse_task, read_text, task_id_from_filename
from backlog_store.models import Task, TaskFolder, TaskSource
from backlog_store.ordering import natural_id_key

logger = logging.getLogger(__name__)

TASK_FOLDERS = (TaskFolder.TASKS, TaskFolder.DRAFTS, TaskFolder.COMPLETED, TaskFolder.ARCHIVE)


def branch_file_path(branch: str, repo_path: str) -> str:
    """Address of a file on a branch, in git revision syntax."""
    return f"{branch}:{repo_path}"


@dataclass
class ResolvedBacklog:
    """Result of a load: representatives plus every observed variant."""

    tasks: list[Task] = field(default_factory=list)
    variants: list[Task] = field(default_factory=list)
    branches: list[str] = field(default_factory=list)


class CrossBranchResolver:
    """Builds the merged task set from local files and qualifying branches."""

    def __init__(
        self,
        backlog_path: Path,
        config: BacklogConfig,
        git: GitTreeReader | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            backlog_path: Path to the backlog folder in the working tree
            config: Backlog settings (statuses, branch scanning, strategy)
            git: Branch reader; None disables cross-branch loading
        """
        self._backlog_path = backlog_path
        self._config = config
        self._git = git

    def resolve(self) -> ResolvedBacklog:
        """Load all variants and merge them by id."""
        local = self.load_local()
        branch_variants, branches = self.load_branches()
        resolved = merge_variants(
            local,
            branch_variants,
            self._config.task_resolution_strategy,
            self._config.statuses,
        )
        resolved.branches = branches
        logger.info(
            f"[CrossBranch] Loaded {len(resolved.tasks)} tasks "
            f"({len(local)} local, {len(branch_variants)} from {len(branches)} branches)"
        )
        return resolved

    def load_local(self) -> list[Task]:
        """Parse every task file in the working tree."""
        tasks: list[Task] = []
        for folder in TASK_FOLDERS:
            folder_path = self._backlog_path / folder.value
            if not folder_path.is_dir():
                continue
            for file_path in sorted(folder_path.glob("*.md")):
                try:
                    content, _ = read_text(file_path)
                    tasks.append(
                        parse_task(
                            content,
                            str(file_path),
                            folder=folder,
                            statuses=self._config.statuses,
                            default_status=self._config.default_status,
                        )
                    )
                except Exception as e:
                    logger.warning(f"[CrossBranch] Failed to parse {file_path.name}: {e}")
                    continue
        return tasks

    def load_branches(self) -> tuple[list[Task], list[str]]:
        """Parse task files from qualifying branches.

        Returns (variants, scanned branch names). Any failure while finding
        branches yields no branch variants.
        """
        if not self._config.check_active_branches or self._git is None:
            return [], []

        try:
            toplevel = self._git.toplevel().resolve()
            backlog_rel = self._backlog_path.resolve().relative_to(toplevel).as_posix()
            branches = self._git.list_qualifying_branches(self._config.active_branch_days)
        except (GitError, ValueError) as e:
            logger.warning(f"[CrossBranch] Branch scan unavailable, using local tasks only: {e}")
            return [], []

        variants: list[Task] = []
        for branch in branches:
            try:
                variants.extend(self._load_branch(branch.name, backlog_rel))
            except GitError as e:
                logger.warning(f"[CrossBranch] Skipping branch {branch.name}: {e}")
        return variants, [branch.name for branch in branches]

    def _load_branch(self, branch: str, backlog_rel: str) -> list[Task]:
        tasks: list[Task] = []
        for folder in TASK_FOLDERS:
            dir_path = f"{backlog_rel}/{folder.value}"
            for filename in self._git.list_files_at_ref(branch, dir_path):  # type: ignore[union-attr]
                if not filename.endswith(".md") or task_id_from_filename(filename) is None:
                    continue
                repo_path = f"{dir_path}/{filename}"
                content = self._git.read_file_at_ref(branch, repo_path)  # type: ignore[union-attr]
                if content is None:
                    continue
                try:
                    tasks.append(
                        parse_task(
                            content,
                            branch_file_path(branch, repo_path),
                            folder=folder,
                            statuses=self._config.statuses,
                            default_status=self._config.default_status,
                            source=TaskSource.BRANCH,
                            branch=branch,
                        )
                    )
                except Exception as e:
                    logger.warning(f"[CrossBranch] Failed to parse {filename} on {branch}: {e}")
                    continue
        return tasks


def merge_variants(
    local: Iterable[Task],
    branch_variants: Iterable[Task],
    strategy: TaskResolutionStrategy,
    statuses: list[str],
) -> ResolvedBacklog:
    """Group variants by id and pick representatives.

    A local variant is always the representative of its id; branch variants
    of that id stay available as read-only duplicates. Branch-only ids get
    one read-only representative chosen by the strategy.
    """
    local = list(local)
    branch_variants = list(branch_variants)

    groups: dict[str, list[Task]] = {}
    for task in [*local, *branch_variants]:
        groups.setdefault(task.id, []).append(task)

    representatives: list[Task] = []
    for variants in groups.values():
        local_variants = [t for t in variants if t.source is TaskSource.LOCAL]
        if local_variants:
            representatives.extend(local_variants)
        else:
            representatives.append(pick_representative(variants, strategy, statuses))

    compute_subtasks(representatives)
    return ResolvedBacklog(tasks=representatives, variants=[*local, *branch_variants])


def pick_representative(
    variants: list[Task], strategy: TaskResolutionStrategy, statuses: list[str]
) -> Task:
    """Choose among branch-only variants; ties go to the first branch by name."""

    def rank(task: Task) -> tuple[int, datetime]:
        if strategy is TaskResolutionStrategy.MOST_PROGRESSED:
            progress = statuses.index(task.status) if task.status in statuses else -1
            return (progress, datetime.min)
        return (0, _parse_timestamp(task.updated_date or task.created_date))

    by_branch = sorted(variants, key=lambda task: (task.branch or "", task.file_path))
    return max(by_branch, key=rank)


def compute_subtasks(tasks: list[Task]) -> None:
    """Fill subtask_ids of parents from their children's parent_task_id."""
    children: dict[str, list[str]] = {}
    for task in tasks:
        if task.parent_task_id:
            children.setdefault(task.parent_task_id, []).append(task.id)

    for task in tasks:
        if task.id in children:
            task.subtask_ids = sorted(set(children[task.id]), key=natural_id_key)


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.min
    try:
        return datetime.fromisoformat(value.strip().replace("T", " ")).replace(tzinfo=None)
    except ValueError:
        return datetime.min
