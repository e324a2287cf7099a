"""Create a new backlog folder with its directory layout and config.yml."""

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from backlog_store.config import DEFAULT_STATUSES

logger = logging.getLogger(__name__)

BACKLOG_DIRECTORIES = (
    "tasks",
    "drafts",
    "completed",
    "archive/tasks",
    "archive/drafts",
    "archive/milestones",
    "docs",
    "decisions",
    "milestones",
)

_TASK_PREFIX_RE = re.compile(r"^[a-zA-Z]+$")


def validate_task_prefix(prefix: str) -> bool:
    """Task prefixes are letters only ("task", "BUG")."""
    return bool(_TASK_PREFIX_RE.match(prefix))


def render_config(
    project_name: str,
    task_prefix: str = "task",
    statuses: list[str] | None = None,
    check_active_branches: bool | None = None,
    active_branch_days: int | None = None,
) -> str:
    """Render config.yml; optional branch settings are only written when given."""
    statuses = list(statuses or DEFAULT_STATUSES)
    data: dict[str, Any] = {
        "project_name": project_name,
        "default_status": statuses[0],
        "statuses": statuses,
        "labels": [],
        "milestones": [],
        "date_format": "yyyy-mm-dd",
    }
    if check_active_branches is not None:
        data["check_active_branches"] = check_active_branches
    if active_branch_days is not None:
        data["active_branch_days"] = active_branch_days
    data["task_prefix"] = task_prefix
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def init_backlog(
    workspace_root: Path,
    project_name: str,
    task_prefix: str = "task",
    statuses: list[str] | None = None,
    backlog_folder: str = "backlog",
    check_active_branches: bool | None = None,
    active_branch_days: int | None = None,
) -> Path:
    """Create the backlog folder under workspace_root.

    Returns:
        Path of the new backlog folder

    Raises:
        ValueError: If the task prefix is not letters only
        FileExistsError: If the backlog folder already exists
    """
    if not validate_task_prefix(task_prefix):
        raise ValueError(f"Invalid task prefix {task_prefix!r}: must contain only letters")

    backlog_path = workspace_root / backlog_folder
    if backlog_path.exists():
        raise FileExistsError(f"Backlog folder already exists at {backlog_path}")

    for directory in BACKLOG_DIRECTORIES:
        (backlog_path / directory).mkdir(parents=True, exist_ok=True)

    config = render_config(
        project_name,
        task_prefix=task_prefix,
        statuses=statuses,
        check_active_branches=check_active_branches,
        active_branch_days=active_branch_days,
    )
    (backlog_path / "config.yml").write_text(config, encoding="utf-8")
    logger.info(f"[Scaffold] Initialized backlog at {backlog_path}")
    return backlog_path
