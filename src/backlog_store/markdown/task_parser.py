"""Mapping between task documents and Task records."""

import logging
import re
from contextlib import suppress
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from backlog_store.errors import InvalidPatchError
from backlog_store.markdown import frontmatter as codec
from backlog_store.markdown import sections
from backlog_store.models import (
    ChecklistItem,
    ChecklistKind,
    Priority,
    Task,
    TaskFolder,
    TaskPatch,
    TaskSource,
)
from backlog_store.ordering import order_of

logger = logging.getLogger(__name__)

TASK_ID_RE = re.compile(r"^([a-zA-Z]+-\d+(?:\.\d+)*)")

DRAFT_STATUS = "Draft"

# Frontmatter keys mapped onto typed fields; everything else lands in Task.extra.
KNOWN_KEYS = frozenset(
    {
        "id",
        "title",
        "status",
        "priority",
        "milestone",
        "labels",
        "assignee",
        "assignees",
        "dependencies",
        "references",
        "documentation",
        "parent_task_id",
        "parent",
        "subtasks",
        "type",
        "created_date",
        "created",
        "updated_date",
        "updated",
        "ordinal",
    }
)

# Patch field -> frontmatter keys; the first key is canonical, the rest are aliases.
FRONTMATTER_FIELDS: dict[str, tuple[str, ...]] = {
    "title": ("title",),
    "status": ("status",),
    "priority": ("priority",),
    "milestone": ("milestone",),
    "labels": ("labels",),
    "assignee": ("assignee", "assignees"),
    "dependencies": ("dependencies",),
    "references": ("references",),
    "documentation": ("documentation",),
    "parent_task_id": ("parent_task_id", "parent"),
    "ordinal": ("ordinal",),
}

BODY_SECTIONS = {
    "description": sections.DESCRIPTION,
    "plan": sections.PLAN,
    "implementation_notes": sections.NOTES,
    "final_summary": sections.FINAL_SUMMARY,
}

CHECKLIST_SECTIONS = {
    ChecklistKind.ACCEPTANCE_CRITERIA: sections.ACCEPTANCE_CRITERIA,
    ChecklistKind.DEFINITION_OF_DONE: sections.DEFINITION_OF_DONE,
}

PATCHABLE_FIELDS = frozenset(FRONTMATTER_FIELDS) | frozenset(BODY_SECTIONS) | {
    kind.value for kind in ChecklistKind
}


def read_text(file_path: Path) -> tuple[str, str]:
    """Read a task file, returning (content, encoding)."""
    # Try UTF-8 first, fallback to latin-1 for non-UTF-8 files.
    # newline="" keeps CRLF line endings so rewrites stay byte-exact.
    try:
        with file_path.open(encoding="utf-8", newline="") as f:
            return f.read(), "utf-8"
    except UnicodeDecodeError:
        with file_path.open(encoding="latin-1", newline="") as f:
            return f.read(), "latin-1"


def task_id_from_filename(filename: str) -> str | None:
    """Extract the task id from a file name ("task-1 - Title.md" -> "TASK-1")."""
    match = TASK_ID_RE.match(Path(filename).name)
    return match.group(1).upper() if match else None


def parse_task(
    content: str,
    file_path: str,
    folder: TaskFolder = TaskFolder.TASKS,
    statuses: list[str] | None = None,
    default_status: str = "To Do",
    source: TaskSource = TaskSource.LOCAL,
    branch: str | None = None,
) -> Task:
    """Parse markdown content into a Task variant. Never raises for malformed input."""
    document = codec.parse(content)
    if document.degraded is not None:
        logger.warning(f"[TaskParser] {file_path}: {document.degraded}")
    fm = document.frontmatter
    body = document.body
    filename = Path(file_path.split(":", 1)[-1] if source is TaskSource.BRANCH else file_path).name

    # Task ID from frontmatter, then filename, then bare stem
    raw_id = fm.get("id")
    task_id = str(raw_id).strip().upper() if raw_id else None
    task_id = task_id or task_id_from_filename(filename) or Path(filename).stem.upper()

    title = _string(fm.get("title")) or _title_from_heading(body) or _title_from_filename(filename)

    status = _normalize_status(fm.get("status"), statuses) or default_status
    if folder is TaskFolder.DRAFTS:
        status = DRAFT_STATUS

    parent_task_id = _string(fm.get("parent_task_id") or fm.get("parent"))
    if parent_task_id:
        parent_task_id = parent_task_id.upper()
    elif "." in task_id:
        parent_task_id = task_id.rsplit(".", 1)[0]

    return Task(
        id=task_id,
        title=title,
        status=status,
        file_path=file_path,
        folder=folder,
        source=source,
        branch=branch,
        priority=_normalize_priority(fm.get("priority")),
        milestone=_string(fm.get("milestone")),
        labels=_string_list(fm.get("labels")),
        assignee=_string_list(fm.get("assignee") or fm.get("assignees")),
        dependencies=_string_list(fm.get("dependencies")),
        references=_string_list(fm.get("references")),
        documentation=_string_list(fm.get("documentation")),
        parent_task_id=parent_task_id,
        subtask_ids=[s.upper() for s in _string_list(fm.get("subtasks"))],
        type=_string(fm.get("type")),
        description=sections.read_section(body, sections.DESCRIPTION),
        plan=sections.read_section(body, sections.PLAN),
        implementation_notes=sections.read_section(body, sections.NOTES),
        final_summary=sections.read_section(body, sections.FINAL_SUMMARY),
        acceptance_criteria=sections.read_checklist(body, sections.ACCEPTANCE_CRITERIA),
        definition_of_done=sections.read_checklist(body, sections.DEFINITION_OF_DONE),
        order=order_of(_normalize_ordinal(fm.get("ordinal"))),
        created_date=_date_to_string(fm.get("created_date") or fm.get("created")),
        updated_date=_date_to_string(fm.get("updated_date") or fm.get("updated")),
        extra={key: value for key, value in fm.items() if key not in KNOWN_KEYS},
        degraded=document.degraded is not None,
    )


def validate_patch(patch: TaskPatch, statuses: list[str]) -> None:
    """Reject unknown fields and invalid values before any I/O."""
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise InvalidPatchError(f"Unknown patch fields: {', '.join(sorted(unknown))}")

    if "status" in patch and patch["status"] not in [*statuses, DRAFT_STATUS]:
        raise InvalidPatchError(f"Unknown status: {patch['status']!r}")

    priority = patch.get("priority")
    if priority is not None and priority not in {p.value for p in Priority}:
        raise InvalidPatchError(f"Invalid priority: {priority!r}")

    if "title" in patch and not (patch["title"] or "").strip():
        raise InvalidPatchError("Title must not be empty")

    ordinal = patch.get("ordinal")
    if ordinal is not None and (isinstance(ordinal, bool) or not isinstance(ordinal, int | float)):
        raise InvalidPatchError(f"Invalid ordinal: {ordinal!r}")


def apply_patch(content: str, patch: TaskPatch, updated_date: str) -> str:
    """Apply a partial update to a task document and return the new text.

    Only keys present in the patch are touched; unknown frontmatter keys and
    unrelated body text are carried through unchanged.
    """
    values: dict[str, Any] = dict(patch)
    document = codec.parse(content)
    fm = dict(document.frontmatter)
    body = document.body
    newline = document.newline

    for field_name, keys in FRONTMATTER_FIELDS.items():
        if field_name not in values:
            continue
        value = values[field_name]
        key = next((k for k in keys if k in fm), keys[0])
        if value is None:
            for alias in keys:
                fm.pop(alias, None)
        elif isinstance(value, list):
            fm[key] = [str(item) for item in value]
        elif isinstance(value, Enum):
            fm[key] = value.value
        else:
            fm[key] = value

    for field_name, section in BODY_SECTIONS.items():
        if field_name in values:
            body = sections.write_section(body, section, values[field_name] or "", newline)

    for kind, section in CHECKLIST_SECTIONS.items():
        if kind.value in values:
            body = sections.write_checklist(body, section, list(values[kind.value]), newline)

    fm["updated_date"] = updated_date
    return codec.serialize(fm, body, newline)


def toggle_checklist(content: str, kind: ChecklistKind, sequential_id: int) -> str | None:
    """Flip one checklist item in a document; None if the item does not exist."""
    document = codec.parse(content)
    toggled = sections.toggle_checklist_line(
        document.body, CHECKLIST_SECTIONS[kind], sequential_id
    )
    if toggled is None:
        return None
    return content[: document.body_offset] + toggled


def render_new_task(
    task_id: str,
    title: str,
    status: str,
    created_date: str,
    description: str | None = None,
    priority: str | None = None,
    labels: list[str] | None = None,
    assignee: list[str] | None = None,
    milestone: str | None = None,
    parent_task_id: str | None = None,
    acceptance_criteria: list[str] | None = None,
) -> str:
    """Render the document for a newly created task."""
    fm: dict[str, Any] = {
        "id": task_id,
        "title": title,
        "status": status,
        "assignee": list(assignee or []),
        "created_date": created_date,
        "labels": list(labels or []),
        "dependencies": [],
    }
    if milestone:
        fm["milestone"] = milestone
    if parent_task_id:
        fm["parent_task_id"] = parent_task_id
    if priority:
        fm["priority"] = priority

    body = sections.write_section("", sections.DESCRIPTION, description or "")
    if acceptance_criteria:
        items = [ChecklistItem(i, text) for i, text in enumerate(acceptance_criteria, start=1)]
        body = sections.write_checklist(body, sections.ACCEPTANCE_CRITERIA, items)
    return codec.serialize(fm, body)


def slugify(title: str) -> str:
    """File-name slug for a title ("Fix login bug" -> "Fix-login-bug")."""
    slug = re.sub(r"[^\w\s-]", "", title).strip()
    return re.sub(r"[\s_]+", "-", slug) or "task"


def _normalize_status(value: Any, statuses: list[str] | None) -> str | None:
    """Match a status case-insensitively against the configured list."""
    text = _string(value)
    if text is None:
        return None
    for status in statuses or []:
        if status.lower() == text.lower():
            return status
    return text


def _normalize_priority(value: Any) -> Priority | None:
    """Normalize priority to high/medium/low.

    Matches by substring so "High Priority" and "HIGH" both map to high.
    Anything else (numbers, booleans, unknown words) is dropped.
    """
    if not isinstance(value, str):
        return None
    lower = value.lower()
    for priority in Priority:
        if priority.value in lower:
            return priority
    return None


def _normalize_ordinal(value: Any) -> float | None:
    """Normalize ordinal to a float; absent or invalid means no ordinal."""
    # Check bool before int (bool is subclass of int in Python)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        with suppress(ValueError):
            return float(value)
    return None


def _date_to_string(value: Any) -> str | None:
    """Convert date values to strings; strings pass through as written."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _string(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _string_list(value: Any) -> list[str]:
    """Normalize a string or list of strings; blanks are dropped."""
    if not value:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def _title_from_heading(body: str) -> str | None:
    heading = sections.first_heading_title(body)
    if not heading:
        return None
    return re.sub(r"^[a-zA-Z]+-\d+(?:\.\d+)*\s*-\s*", "", heading).strip() or None


def _title_from_filename(filename: str) -> str:
    stem = Path(filename).stem
    title = TASK_ID_RE.sub("", stem).lstrip(" -")
    return title.replace("-", " ").strip() or stem
