"""YAML frontmatter codec for task files."""

import logging
from dataclasses import dataclass, field
from typing import Any

import yaml

from backlog_store.errors import ParseDegraded

logger = logging.getLogger(__name__)

DELIMITER = "---"

# Known keys are written first, in this order. Aliases sit next to their canonical key.
CANONICAL_KEY_ORDER = (
    "id",
    "title",
    "status",
    "assignee",
    "assignees",
    "reporter",
    "created_date",
    "updated_date",
    "labels",
    "milestone",
    "dependencies",
    "references",
    "documentation",
    "parent_task_id",
    "parent",
    "subtasks",
    "priority",
    "ordinal",
    "type",
)

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader that keeps dates as the strings they were written as."""


_FrontmatterLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class _FrontmatterDumper(yaml.SafeDumper):
    """SafeDumper writing integral floats as integers and date strings unquoted."""


_FrontmatterDumper.yaml_implicit_resolvers = _FrontmatterLoader.yaml_implicit_resolvers


def _represent_float(dumper: yaml.SafeDumper, value: float) -> yaml.ScalarNode:
    if value.is_integer():
        return dumper.represent_int(int(value))
    return dumper.represent_float(value)


_FrontmatterDumper.add_representer(float, _represent_float)


@dataclass
class FrontmatterDocument:
    """A task file split into frontmatter mapping and Markdown body."""

    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    body_offset: int = 0  # Index in the raw text where the body starts
    degraded: ParseDegraded | None = None
    newline: str = "\n"


def parse(raw: str) -> FrontmatterDocument:
    """Split raw Markdown into frontmatter and body.

    Malformed documents never raise. A missing delimiter, invalid YAML or a
    non-mapping YAML document yields an empty frontmatter and the whole input
    as body, with ``degraded`` describing why.
    """
    newline = detect_newline(raw)
    lines = raw.splitlines(keepends=True)
    if not lines or lines[0].strip() != DELIMITER:
        return FrontmatterDocument(body=raw, newline=newline)

    closing = None
    for index in range(1, len(lines)):
        if lines[index].strip() == DELIMITER:
            closing = index
            break

    if closing is None:
        return _degraded(raw, "no closing frontmatter delimiter")

    yaml_text = "".join(lines[1:closing])
    body_offset = sum(len(line) for line in lines[: closing + 1])

    try:
        data = yaml.load(yaml_text, Loader=_FrontmatterLoader)
    except yaml.YAMLError as e:
        return _degraded(raw, f"invalid YAML: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        return _degraded(raw, f"frontmatter is a {type(data).__name__}, not a mapping")

    return FrontmatterDocument(
        frontmatter={str(key): value for key, value in data.items()},
        body=raw[body_offset:],
        body_offset=body_offset,
        newline=newline,
    )


def serialize(frontmatter: dict[str, Any], body: str, newline: str = "\n") -> str:
    """Render frontmatter and body back to Markdown.

    Known keys come first in canonical order, unknown keys follow in
    insertion order. An empty mapping renders the body alone. The
    frontmatter block uses ``newline``; the body is written as given.
    """
    if not frontmatter:
        return body
    yaml_text = dump_yaml(order_keys(frontmatter)).replace("\n", newline)
    return f"{DELIMITER}{newline}{yaml_text}{DELIMITER}{newline}{body}"


def detect_newline(raw: str) -> str:
    """Line ending of the first line: "\\r\\n" or "\\n"."""
    end = raw.find("\n")
    return "\r\n" if end > 0 and raw[end - 1] == "\r" else "\n"


def order_keys(frontmatter: dict[str, Any]) -> dict[str, Any]:
    """Return a copy with known keys in canonical order, unknown keys after."""
    ordered = {key: frontmatter[key] for key in CANONICAL_KEY_ORDER if key in frontmatter}
    for key, value in frontmatter.items():
        if key not in ordered:
            ordered[key] = value
    return ordered


def dump_yaml(data: dict[str, Any]) -> str:
    """Dump a mapping in block style without line wrapping."""
    return yaml.dump(
        data,
        Dumper=_FrontmatterDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )


def _degraded(raw: str, reason: str) -> FrontmatterDocument:
    logger.debug(f"[Frontmatter] Degraded parse: {reason}")
    return FrontmatterDocument(
        body=raw, degraded=ParseDegraded(reason), newline=detect_newline(raw)
    )
