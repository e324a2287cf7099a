"""Read-only access to git branches and their file trees."""

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from backlog_store.errors import GitError

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class BranchInfo:
    """A local branch and the time of its tip commit."""

    name: str
    last_commit_date: datetime


class GitTreeReader(Protocol):
    """Protocol for reading task files from other branches."""

    def toplevel(self) -> Path:
        """Root directory of the working tree."""
        ...

    def current_branch(self) -> str | None:
        """Checked-out branch, or None when HEAD is detached."""
        ...

    def list_qualifying_branches(self, active_days: int) -> list[BranchInfo]:
        """Branches other than the current one with a commit in the last N days."""
        ...

    def list_files_at_ref(self, branch: str, dir_path: str) -> list[str]:
        """File names directly inside dir_path at the branch tip."""
        ...

    def read_file_at_ref(self, branch: str, file_path: str) -> str | None:
        """Content of file_path at the branch tip, or None if absent."""
        ...


class GitBranchService:
    """GitTreeReader backed by the git executable. Never checks anything out."""

    def __init__(self, workspace_root: Path, git_cli: str = "git") -> None:
        """Initialize with the working tree directory and git command."""
        self._workspace_root = workspace_root
        self._git_cli = git_cli

    def is_git_repository(self) -> bool:
        """Check if the workspace is inside a git working tree."""
        try:
            self._run("rev-parse", "--git-dir")
            return True
        except GitError:
            return False

    def toplevel(self) -> Path:
        return Path(self._run("rev-parse", "--show-toplevel").strip())

    def current_branch(self) -> str | None:
        branch = self._run("rev-parse", "--abbrev-ref", "HEAD").strip()
        if branch and branch != "HEAD":
            return branch
        return None

    def list_local_branches(self) -> list[BranchInfo]:
        """List local branches with their tip commit dates."""
        output = self._run(
            "for-each-ref", "--format=%(refname:short)%09%(committerdate:unix)", "refs/heads/"
        )
        branches: list[BranchInfo] = []
        for line in output.splitlines():
            name, _, timestamp = line.strip().rpartition("\t")
            if not name or not timestamp.isdigit():
                continue
            branches.append(BranchInfo(name, datetime.fromtimestamp(int(timestamp))))
        return branches

    def list_qualifying_branches(self, active_days: int) -> list[BranchInfo]:
        cutoff = datetime.now() - timedelta(days=active_days)
        current = self.current_branch()
        branches = [
            branch
            for branch in self.list_local_branches()
            if branch.name != current and branch.last_commit_date > cutoff
        ]
        branches.sort(key=lambda b: b.last_commit_date, reverse=True)
        return branches

    def list_files_at_ref(self, branch: str, dir_path: str) -> list[str]:
        normalized = dir_path.replace("\\", "/").rstrip("/") + "/"
        try:
            output = self._run("ls-tree", "-z", "--name-only", branch, normalized)
        except GitError:
            # Directory doesn't exist on this branch
            return []
        return [entry.rsplit("/", 1)[-1] for entry in output.split("\0") if entry.strip()]

    def read_file_at_ref(self, branch: str, file_path: str) -> str | None:
        normalized = file_path.replace("\\", "/")
        try:
            return self._run("show", f"{branch}:{normalized}")
        except GitError:
            return None

    def _run(self, *args: str) -> str:
        """Run a git command in the workspace and return stdout.

        Raises:
            GitError: If git is missing, times out or exits non-zero
        """
        try:
            result = subprocess.run(
                [self._git_cli, *args],
                cwd=self._workspace_root,
                capture_output=True,
                timeout=GIT_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise GitError(f"git {args[0]} failed: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise GitError(f"git {' '.join(args)} exited {result.returncode}: {stderr}")

        # Try UTF-8 first, fallback to latin-1 for non-UTF-8 files
        try:
            return result.stdout.decode("utf-8")
        except UnicodeDecodeError:
            return result.stdout.decode("latin-1")
