"""Tests for the frontmatter codec."""

from backlog_store.errors import ParseDegraded
from backlog_store.markdown import frontmatter

CANONICAL = """---
id: TASK-1
title: Fix login bug
status: To Do
assignee: []
created_date: 2024-01-10
labels:
- backend
dependencies: []
ordinal: 1500.5
custom_field: keep me
---

## Description

Body text
"""


def test_parse_splits_frontmatter_and_body() -> None:
    """Test frontmatter mapping and body are separated at the closing delimiter."""
    document = frontmatter.parse(CANONICAL)

    assert document.degraded is None
    assert document.frontmatter["id"] == "TASK-1"
    assert document.frontmatter["labels"] == ["backend"]
    assert document.body == "\n## Description\n\nBody text\n"
    assert CANONICAL[document.body_offset :] == document.body


def test_parse_keeps_dates_as_written() -> None:
    """Test dates are not converted to date objects."""
    document = frontmatter.parse("---\ncreated_date: 2024-01-10\nupdated_date: 2024-01-11 09:30\n---\n")

    assert document.frontmatter["created_date"] == "2024-01-10"
    assert document.frontmatter["updated_date"] == "2024-01-11 09:30"


def test_serialize_round_trips_canonical_text() -> None:
    """Test a canonical document is reproduced byte for byte."""
    document = frontmatter.parse(CANONICAL)

    assert frontmatter.serialize(document.frontmatter, document.body) == CANONICAL


def test_serialize_converges_after_one_pass() -> None:
    """Test hand-written YAML normalizes once and is stable afterwards."""
    raw = "---\nlabels: [a, b]\ntitle: 'Quoted'\nid: task-3\n---\nbody\n"
    first = frontmatter.parse(raw)
    once = frontmatter.serialize(first.frontmatter, first.body)
    second = frontmatter.parse(once)
    twice = frontmatter.serialize(second.frontmatter, second.body)

    assert once == twice
    assert once.startswith("---\nid: task-3\ntitle: Quoted\nlabels:\n- a\n- b\n---\n")


def test_serialize_orders_known_keys_then_unknown_in_insertion_order() -> None:
    """Test canonical key order with unknown keys kept after, as inserted."""
    text = frontmatter.serialize({"zeta": 1, "status": "Done", "alpha": 2, "id": "TASK-9"}, "")

    assert text == "---\nid: TASK-9\nstatus: Done\nzeta: 1\nalpha: 2\n---\n"


def test_serialize_writes_integral_ordinals_as_integers() -> None:
    """Test 2000.0 is written as 2000."""
    text = frontmatter.serialize({"ordinal": 2000.0}, "")

    assert "ordinal: 2000\n" in text


def test_serialize_does_not_wrap_long_values() -> None:
    """Test long strings stay on one line."""
    title = "word " * 60
    text = frontmatter.serialize({"title": title.strip()}, "")

    assert text.count("\n") == 3


def test_serialize_empty_frontmatter_returns_body() -> None:
    """Test no delimiters are written without frontmatter."""
    assert frontmatter.serialize({}, "just body\n") == "just body\n"


def test_parse_without_frontmatter() -> None:
    """Test plain Markdown is all body and not degraded."""
    document = frontmatter.parse("# Title\n\ntext\n")

    assert document.frontmatter == {}
    assert document.body == "# Title\n\ntext\n"
    assert document.degraded is None


def test_parse_missing_closing_delimiter_degrades() -> None:
    """Test unterminated frontmatter keeps the whole input as body."""
    raw = "---\ntitle: Broken\n\nno closing line\n"
    document = frontmatter.parse(raw)

    assert document.frontmatter == {}
    assert document.body == raw
    assert isinstance(document.degraded, ParseDegraded)


def test_parse_invalid_yaml_degrades() -> None:
    """Test invalid YAML never raises."""
    raw = "---\ntitle: [unclosed\n---\nbody\n"
    document = frontmatter.parse(raw)

    assert document.frontmatter == {}
    assert document.body == raw
    assert document.degraded is not None
    assert "invalid YAML" in str(document.degraded)


def test_parse_non_mapping_yaml_degrades() -> None:
    """Test a YAML list is not accepted as frontmatter."""
    document = frontmatter.parse("---\n- a\n- b\n---\nbody\n")

    assert document.frontmatter == {}
    assert document.degraded is not None


def test_parse_crlf_document() -> None:
    """Test Windows line endings are accepted and kept in the body."""
    document = frontmatter.parse("---\r\nid: TASK-1\r\n---\r\nbody\r\n")

    assert document.frontmatter == {"id": "TASK-1"}
    assert document.body == "body\r\n"


def test_serialize_uses_document_newline() -> None:
    """Test a CRLF document is written back with CRLF frontmatter."""
    raw = "---\r\nid: TASK-1\r\nlabels:\r\n- a\r\n---\r\nbody\r\n"
    document = frontmatter.parse(raw)

    assert document.newline == "\r\n"
    assert frontmatter.serialize(document.frontmatter, document.body, document.newline) == raw
    assert frontmatter.parse("---\nid: TASK-1\n---\n").newline == "\n"
