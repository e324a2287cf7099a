"""Test fixtures for BacklogStore."""

from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

import pytest

from backlog_store.errors import GitError
from backlog_store.git.branch_service import BranchInfo
from backlog_store.store.task_store import TaskStore


class FakeGitReader:
    """In-memory GitTreeReader: {branch: {repo path: content}}."""

    def __init__(self, root: Path, branches: dict[str, dict[str, str]], fail: bool = False):
        self.root = root
        self.branches = branches
        self.fail = fail
        self.calls: list[str] = []

    def toplevel(self) -> Path:
        if self.fail:
            raise GitError("not a git repository")
        return self.root

    def current_branch(self) -> str | None:
        return "main"

    def list_qualifying_branches(self, active_days: int) -> list[BranchInfo]:
        return [BranchInfo(name, datetime(2024, 1, 1)) for name in self.branches]

    def list_files_at_ref(self, branch: str, dir_path: str) -> list[str]:
        prefix = dir_path.rstrip("/") + "/"
        return [
            path[len(prefix) :]
            for path in self.branches[branch]
            if path.startswith(prefix) and "/" not in path[len(prefix) :]
        ]

    def read_file_at_ref(self, branch: str, file_path: str) -> str | None:
        self.calls.append(f"{branch}:{file_path}")
        return self.branches[branch].get(file_path)


def render_task_doc(
    task_id: str,
    status: str = "To Do",
    updated: str | None = None,
    ordinal: float | None = None,
    extra: str = "",
) -> str:
    """Minimal task document with frontmatter."""
    lines = ["---", f"id: {task_id}", f"title: {task_id} title", f"status: {status}"]
    if updated:
        lines.append(f"updated_date: {updated}")
    if ordinal is not None:
        lines.append(f"ordinal: {ordinal}")
    if extra:
        lines.append(extra)
    lines.append("---")
    return "\n".join(lines) + "\n"


@pytest.fixture
def tmp_backlog(tmp_path: Path) -> Path:
    """Create temporary backlog folder structure."""
    backlog = tmp_path / "backlog"
    for folder in ("tasks", "drafts", "completed", "archive/tasks"):
        (backlog / folder).mkdir(parents=True)
    (backlog / "config.yml").write_text(
        'project_name: "Test"\n'
        "statuses: [To Do, In Progress, Done]\n"
        "labels: [backend]\n"
        "milestones: [v1]\n",
        encoding="utf-8",
    )
    return backlog


@pytest.fixture
def task_doc() -> Callable[..., str]:
    return render_task_doc


@pytest.fixture
def write_task(tmp_backlog: Path) -> Callable[..., Path]:
    """Write a task file; returns its path."""

    def write(filename: str, content: str, folder: str = "tasks") -> Path:
        path = tmp_backlog / folder / filename
        path.write_text(content, encoding="utf-8")
        return path

    return write


@pytest.fixture
def make_git(tmp_backlog: Path) -> Callable[..., FakeGitReader]:
    """Build a fake branch reader rooted at the backlog's parent directory."""

    def make(branches: dict[str, dict[str, str]], fail: bool = False) -> FakeGitReader:
        return FakeGitReader(tmp_backlog.parent, branches, fail)

    return make


@pytest.fixture
def sample_task_file(write_task: Callable[..., Path]) -> Path:
    """Create a sample task file."""
    content = """---
id: TASK-1
title: Fix login bug
status: In Progress
assignee:
  - alice
created_date: 2024-01-10
labels:
  - backend
dependencies: []
priority: high
ordinal: 1000
custom_field: keep me
---

## Description

<!-- SECTION:DESCRIPTION:BEGIN -->
Users cannot log in with SSO.
<!-- SECTION:DESCRIPTION:END -->

## Acceptance Criteria
<!-- AC:BEGIN -->
- [ ] #1 SSO login works
- [x] #2 Error message shown
- [ ] #3 Tests added
<!-- AC:END -->
"""
    return write_task("task-1 - Fix-login-bug.md", content)


@pytest.fixture
def store(tmp_backlog: Path) -> TaskStore:
    """TaskStore over the temporary backlog with a fixed clock."""
    return TaskStore(tmp_backlog, today=lambda: date(2024, 3, 1))
