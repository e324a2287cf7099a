"""Marker-delimited sections and checklists inside a task body.

A section is bounded by an HTML comment pair such as
``<!-- SECTION:DESCRIPTION:BEGIN -->`` / ``<!-- SECTION:DESCRIPTION:END -->``.
Files written by hand or by older tools may only have the ``## Heading``;
reads fall back to the heading and writes upgrade it to markers.
"""

import re
from dataclasses import dataclass
from enum import Enum

from backlog_store.models import ChecklistItem

_HEADING_RE = re.compile(r"^##[ \t]+(.+?)[ \t\r]*$", re.MULTILINE)
_CHECKLIST_RE = re.compile(r"^(\s*-\s*\[)([ xX])(\]\s*)(?:#(\d+)\s+)?(.*)$")


class Placement(str, Enum):
    """Where a missing section is created."""

    TOP = "top"
    END = "end"


@dataclass(frozen=True)
class MarkedSection:
    """A named body region with its markers and conventional headings."""

    marker: str
    headings: tuple[str, ...]
    placement: Placement = Placement.END

    @property
    def begin(self) -> str:
        return f"<!-- {self.marker}:BEGIN -->"

    @property
    def end(self) -> str:
        return f"<!-- {self.marker}:END -->"

    @property
    def title(self) -> str:
        return self.headings[0]


DESCRIPTION = MarkedSection("SECTION:DESCRIPTION", ("Description",), Placement.TOP)
PLAN = MarkedSection("SECTION:PLAN", ("Implementation Plan", "Plan"))
NOTES = MarkedSection("SECTION:NOTES", ("Implementation Notes", "Notes"))
FINAL_SUMMARY = MarkedSection("SECTION:FINAL_SUMMARY", ("Final Summary", "Summary"))
ACCEPTANCE_CRITERIA = MarkedSection("AC", ("Acceptance Criteria",))
DEFINITION_OF_DONE = MarkedSection("DOD", ("Definition of Done",))


def section_span(body: str, section: MarkedSection) -> tuple[int, int] | None:
    """Return the (start, end) offsets of a section's content, or None."""
    begin = body.find(section.begin)
    if begin != -1:
        end = body.find(section.end, begin + len(section.begin))
        if end != -1:
            return begin + len(section.begin), end

    heading = _find_heading(body, section)
    if heading is None:
        return None
    return heading.end(), _next_heading_start(body, heading.end())


def read_section(body: str, section: MarkedSection) -> str | None:
    """Read a section's text, or None when it is missing or empty."""
    span = section_span(body, section)
    if span is None:
        return None
    text = body[span[0] : span[1]]
    lines = [line for line in text.split("\n") if not line.strip().startswith("<!--")]
    content = "\n".join(lines).strip()
    return content or None


def write_section(body: str, section: MarkedSection, content: str, newline: str = "\n") -> str:
    """Write a section's text, returning the new body.

    Replaces text between existing markers; otherwise puts markers under the
    existing heading; otherwise creates heading and markers. The returned
    body uses ``newline`` for every line ending.
    """
    if newline != "\n":
        body = body.replace("\r\n", "\n")
        content = content.replace("\r\n", "\n")
        return _write_section(body, section, content).replace("\n", newline)
    return _write_section(body, section, content)


def _write_section(body: str, section: MarkedSection, content: str) -> str:
    content = content.strip("\n")
    block = f"{section.begin}\n{content}\n{section.end}"

    begin = body.find(section.begin)
    if begin != -1:
        end = body.find(section.end, begin + len(section.begin))
        if end != -1:
            head = body[: begin + len(section.begin)]
            return f"{head}\n{content}\n{body[end:]}"

    heading = _find_heading(body, section)
    if heading is not None:
        rest_start = _next_heading_start(body, heading.end())
        rest = body[rest_start:]
        tail = f"\n\n{rest}" if rest else "\n"
        return f"{body[: heading.end()]}\n\n{block}{tail}"

    new_section = f"## {section.title}\n\n{block}\n"
    if section.placement is Placement.TOP:
        return f"\n{new_section}{body}"
    if body and not body.endswith("\n"):
        body += "\n"
    return f"{body}\n{new_section}"


def read_checklist(body: str, section: MarkedSection) -> list[ChecklistItem]:
    """Parse the checklist lines of a section; ids are positional."""
    span = section_span(body, section)
    if span is None:
        return []
    items: list[ChecklistItem] = []
    for line in body[span[0] : span[1]].split("\n"):
        match = _CHECKLIST_RE.match(line)
        if match:
            items.append(
                ChecklistItem(
                    sequential_id=len(items) + 1,
                    text=match.group(5).strip(),
                    checked=match.group(2) in "xX",
                )
            )
    return items


def write_checklist(
    body: str, section: MarkedSection, items: list[ChecklistItem], newline: str = "\n"
) -> str:
    """Rewrite a section's checklist, renumbering items from 1."""
    lines = [
        f"- [{'x' if item.checked else ' '}] #{index} {item.text}"
        for index, item in enumerate(items, start=1)
    ]
    return write_section(body, section, "\n".join(lines), newline)


def toggle_checklist_line(text: str, section: MarkedSection, sequential_id: int) -> str | None:
    """Flip the checkbox of the n-th checklist line in a section.

    Only the single checkbox character changes. Returns None when the
    section or the item does not exist.
    """
    span = section_span(text, section)
    if span is None or sequential_id < 1:
        return None

    position = 0
    offset = span[0]
    for line in text[span[0] : span[1]].split("\n"):
        match = _CHECKLIST_RE.match(line)
        if match:
            position += 1
            if position == sequential_id:
                box = offset + match.start(2)
                flipped = " " if text[box] in "xX" else "x"
                return text[:box] + flipped + text[box + 1 :]
        offset += len(line) + 1
    return None


def first_heading_title(body: str) -> str | None:
    """Return the text of the first level-one heading, if any."""
    match = re.search(r"^#[ \t]+(.+?)[ \t\r]*$", body, re.MULTILINE)
    return match.group(1) if match else None


def _find_heading(body: str, section: MarkedSection) -> re.Match[str] | None:
    wanted = {heading.lower() for heading in section.headings}
    for match in _HEADING_RE.finditer(body):
        if match.group(1).lower() in wanted:
            return match
    return None


def _next_heading_start(body: str, start: int) -> int:
    match = _HEADING_RE.search(body, start)
    return match.start() if match else len(body)
