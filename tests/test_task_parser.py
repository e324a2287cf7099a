"""Tests for mapping task documents to Task records and back."""

from pathlib import Path

import pytest

from backlog_store.errors import InvalidPatchError
from backlog_store.markdown import frontmatter
from backlog_store.markdown.task_parser import (
    apply_patch,
    parse_task,
    read_text,
    render_new_task,
    slugify,
    task_id_from_filename,
    toggle_checklist,
    validate_patch,
)
from backlog_store.models import ChecklistItem, ChecklistKind, Priority, TaskFolder, TaskSource
from backlog_store.ordering import UNORDERED, Explicit

STATUSES = ["To Do", "In Progress", "Done"]


def test_parse_task_fields(sample_task_file: Path) -> None:
    """Test typed fields, sections and unknown keys are read."""
    content, encoding = read_text(sample_task_file)
    task = parse_task(content, str(sample_task_file), statuses=STATUSES)

    assert encoding == "utf-8"
    assert task.id == "TASK-1"
    assert task.title == "Fix login bug"
    assert task.status == "In Progress"
    assert task.priority is Priority.HIGH
    assert task.assignee == ["alice"]
    assert task.labels == ["backend"]
    assert task.created_date == "2024-01-10"
    assert task.order == Explicit(1000.0)
    assert task.description == "Users cannot log in with SSO."
    assert [item.checked for item in task.acceptance_criteria] == [False, True, False]
    assert task.extra == {"custom_field": "keep me"}
    assert task.source is TaskSource.LOCAL
    assert not task.is_read_only
    assert not task.degraded


def test_parse_task_fallbacks_without_frontmatter() -> None:
    """Test id from file name and title from the first heading."""
    task = parse_task("# TASK-4 - Write docs\n\nSome text\n", "/b/tasks/task-4 - Write-docs.md")

    assert task.id == "TASK-4"
    assert task.title == "Write docs"
    assert task.status == "To Do"
    assert task.order is UNORDERED


def test_parse_task_title_from_filename() -> None:
    task = parse_task("no heading\n", "/b/tasks/task-5 - Clean-up-logs.md")

    assert task.title == "Clean up logs"


def test_parse_task_degraded_frontmatter_keeps_loading() -> None:
    """Test malformed YAML still yields a task marked degraded."""
    task = parse_task("---\ntitle: [broken\n---\nbody\n", "/b/tasks/task-6 - Broken.md")

    assert task.id == "TASK-6"
    assert task.degraded


def test_parse_task_status_matching_and_default() -> None:
    """Test statuses match case-insensitively and missing status uses the default."""
    matched = parse_task("---\nstatus: in progress\n---\n", "/b/tasks/task-1 - A.md", statuses=STATUSES)
    missing = parse_task("---\ntitle: A\n---\n", "/b/tasks/task-2 - A.md", default_status="Backlog")

    assert matched.status == "In Progress"
    assert missing.status == "Backlog"


def test_parse_task_drafts_are_draft() -> None:
    task = parse_task("---\nstatus: Done\n---\n", "/b/drafts/task-3 - A.md", folder=TaskFolder.DRAFTS)

    assert task.status == "Draft"


def test_parse_task_dotted_id_infers_parent() -> None:
    task = parse_task("---\nid: task-2.1\n---\n", "/b/tasks/task-2.1 - Sub.md")

    assert task.id == "TASK-2.1"
    assert task.parent_task_id == "TASK-2"


def test_parse_task_aliases_and_scalars() -> None:
    """Test assignees/parent aliases and scalar strings as one-element lists."""
    content = "---\nassignees: bob\nparent: task-9\nlabels: ''\npriority: 3\nordinal: abc\n---\n"
    task = parse_task(content, "/b/tasks/task-10 - A.md")

    assert task.assignee == ["bob"]
    assert task.parent_task_id == "TASK-9"
    assert task.labels == []
    assert task.priority is None
    assert task.order is UNORDERED


def test_parse_task_branch_variant_is_read_only() -> None:
    task = parse_task(
        "---\nid: TASK-1\n---\n",
        "feature/x:backlog/tasks/task-1 - A.md",
        source=TaskSource.BRANCH,
        branch="feature/x",
    )

    assert task.is_read_only
    assert task.branch == "feature/x"


def test_task_id_from_filename() -> None:
    assert task_id_from_filename("task-12 - Something.md") == "TASK-12"
    assert task_id_from_filename("bug-3.2 - Sub.md") == "BUG-3.2"
    assert task_id_from_filename("README.md") is None


def test_apply_patch_preserves_unknown_keys(sample_task_file: Path) -> None:
    """Test an unrelated update keeps unknown frontmatter and the body."""
    content, _ = read_text(sample_task_file)
    updated = apply_patch(content, {"status": "Done"}, "2024-03-01")
    document = frontmatter.parse(updated)

    assert document.frontmatter["status"] == "Done"
    assert document.frontmatter["custom_field"] == "keep me"
    assert document.frontmatter["updated_date"] == "2024-03-01"
    assert document.body == frontmatter.parse(content).body


def test_apply_patch_none_removes_ordinal(sample_task_file: Path) -> None:
    content, _ = read_text(sample_task_file)
    updated = apply_patch(content, {"ordinal": None, "milestone": None}, "2024-03-01")
    task = parse_task(updated, str(sample_task_file))

    assert task.order is UNORDERED
    assert "ordinal" not in frontmatter.parse(updated).frontmatter


def test_apply_patch_updates_alias_in_place() -> None:
    """Test an existing assignees key is updated instead of adding assignee."""
    updated = apply_patch("---\nassignees:\n- bob\n---\n", {"assignee": ["carol"]}, "2024-03-01")
    fm = frontmatter.parse(updated).frontmatter

    assert fm["assignees"] == ["carol"]
    assert "assignee" not in fm


def test_apply_patch_writes_sections_and_checklists(sample_task_file: Path) -> None:
    content, _ = read_text(sample_task_file)
    patch = {
        "description": "New description",
        "plan": "1. Reproduce",
        "acceptance_criteria": [ChecklistItem(1, "Only item", True)],
    }
    task = parse_task(apply_patch(content, patch, "2024-03-01"), str(sample_task_file))

    assert task.description == "New description"
    assert task.plan == "1. Reproduce"
    assert task.acceptance_criteria == [ChecklistItem(1, "Only item", True)]


def test_toggle_checklist_is_byte_exact(sample_task_file: Path) -> None:
    """Test toggling changes a single character and does not stamp updated_date."""
    content, _ = read_text(sample_task_file)
    toggled = toggle_checklist(content, ChecklistKind.ACCEPTANCE_CRITERIA, 3)

    assert toggled is not None
    assert toggled == content.replace("- [ ] #3 Tests added", "- [x] #3 Tests added")
    assert toggle_checklist(content, ChecklistKind.DEFINITION_OF_DONE, 1) is None


@pytest.mark.parametrize(
    "patch",
    [
        {"unknown": 1},
        {"status": "Nope"},
        {"priority": "urgent"},
        {"title": "  "},
        {"title": None},
        {"ordinal": "high"},
        {"ordinal": True},
    ],
)
def test_validate_patch_rejects(patch: dict) -> None:
    with pytest.raises(InvalidPatchError):
        validate_patch(patch, STATUSES)  # type: ignore[arg-type]


def test_validate_patch_accepts_draft_and_clears() -> None:
    validate_patch({"status": "Draft", "priority": None, "ordinal": 12}, STATUSES)


def test_render_new_task_parses_back() -> None:
    content = render_new_task(
        "TASK-7",
        "New thing",
        "To Do",
        created_date="2024-03-01",
        description="Describe it",
        priority="low",
        labels=["ui"],
        acceptance_criteria=["Works"],
    )
    task = parse_task(content, "/b/tasks/task-7 - New-thing.md", statuses=STATUSES)

    assert content.startswith("---\nid: TASK-7\ntitle: New thing\nstatus: To Do\n")
    assert task.priority is Priority.LOW
    assert task.labels == ["ui"]
    assert task.description == "Describe it"
    assert task.acceptance_criteria == [ChecklistItem(1, "Works", False)]


def test_slugify() -> None:
    assert slugify("Fix login bug!") == "Fix-login-bug"
    assert slugify("???") == "task"


def test_read_text_latin1_fallback(tmp_path: Path) -> None:
    path = tmp_path / "task-1 - A.md"
    path.write_bytes("---\ntitle: Caf\xe9\n---\n".encode("latin-1"))

    content, encoding = read_text(path)

    assert encoding == "latin-1"
    assert "Café" in content
