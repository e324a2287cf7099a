"""Tests for backlog and application configuration."""

from pathlib import Path

import pytest

from backlog_store.config import (
    DEFAULT_STATUSES,
    BacklogConfig,
    Config,
    TaskResolutionStrategy,
    load_backlog_config,
)


def test_load_backlog_config(tmp_backlog: Path) -> None:
    config = load_backlog_config(tmp_backlog)

    assert config.project_name == "Test"
    assert config.statuses == ["To Do", "In Progress", "Done"]
    assert config.labels == ["backend"]
    assert config.milestones[0].name == "v1"
    assert not config.check_active_branches


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_backlog_config(tmp_path)

    assert config == BacklogConfig()
    assert config.statuses == DEFAULT_STATUSES
    assert config.id_prefix == "TASK"


@pytest.mark.parametrize(
    "content",
    ["statuses: [unclosed\n", "- just\n- a list\n", "active_branch_days: many\n"],
)
def test_invalid_config_falls_back_to_defaults(tmp_path: Path, content: str) -> None:
    """Test malformed or mistyped settings do not prevent loading."""
    (tmp_path / "config.yml").write_text(content, encoding="utf-8")

    assert load_backlog_config(tmp_path) == BacklogConfig()


def test_config_yaml_extension_and_branch_settings(tmp_path: Path) -> None:
    (tmp_path / "config.yaml").write_text(
        "task_prefix: bug\n"
        "check_active_branches: true\n"
        "active_branch_days: 7\n"
        "task_resolution_strategy: most_progressed\n"
        "labels:\n"
        "unknown_setting: 1\n",
        encoding="utf-8",
    )

    config = load_backlog_config(tmp_path)

    assert config.id_prefix == "BUG"
    assert config.check_active_branches
    assert config.active_branch_days == 7
    assert config.task_resolution_strategy is TaskResolutionStrategy.MOST_PROGRESSED
    assert config.labels == []


def test_milestone_mappings() -> None:
    config = BacklogConfig(milestones=[{"id": "m-1", "name": "Beta", "description": "First"}, "GA"])

    assert [(m.id, m.name) for m in config.milestones] == [("m-1", "Beta"), ("GA", "GA")]


def test_app_config_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BACKLOG_WORKSPACE_ROOT", str(tmp_path))
    monkeypatch.setenv("BACKLOG_BACKLOG_FOLDER", "planning")
    monkeypatch.setenv("BACKLOG_PORT", "9001")

    config = Config()

    assert config.backlog_path == tmp_path.resolve() / "planning"
    assert config.port == 9001
