"""Configuration for the backlog store."""

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("config.yml", "config.yaml")
DEFAULT_STATUSES = ["To Do", "In Progress", "Done"]


class TaskResolutionStrategy(str, Enum):
    """How a branch-only task picks its representative variant."""

    MOST_RECENT = "most_recent"
    MOST_PROGRESSED = "most_progressed"


class Milestone(BaseModel):
    """Milestone declared in config.yml."""

    name: str
    id: str | None = None
    description: str | None = None


class BacklogConfig(BaseModel):
    """Backlog settings read from backlog/config.yml."""

    model_config = ConfigDict(extra="ignore")

    project_name: str | None = None
    default_status: str = "To Do"
    statuses: list[str] = Field(default_factory=lambda: list(DEFAULT_STATUSES))
    labels: list[str] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    task_prefix: str = "task"
    check_active_branches: bool = False
    active_branch_days: int = 30
    task_resolution_strategy: TaskResolutionStrategy = TaskResolutionStrategy.MOST_RECENT

    @field_validator("statuses", "labels", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("milestones", mode="before")
    @classmethod
    def _milestone_names(cls, value: Any) -> Any:
        """Accept bare milestone names as well as mappings."""
        if value is None:
            return []
        if isinstance(value, list):
            return [m if isinstance(m, dict) else {"id": str(m), "name": str(m)} for m in value]
        return value

    @property
    def id_prefix(self) -> str:
        return self.task_prefix.upper()


def load_backlog_config(backlog_path: Path) -> BacklogConfig:
    """Load config.yml (or config.yaml) from the backlog folder.

    A missing, unreadable or invalid file yields the defaults.
    """
    for filename in CONFIG_FILENAMES:
        config_path = backlog_path / filename
        if config_path.exists():
            break
    else:
        logger.info(f"[Config] No config file in {backlog_path}, using defaults")
        return BacklogConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning(f"[Config] Failed to read {config_path}: {e}")
        return BacklogConfig()

    if not isinstance(data, dict):
        logger.warning(f"[Config] {config_path} is not a mapping, using defaults")
        return BacklogConfig()

    try:
        return BacklogConfig.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[Config] Invalid settings in {config_path}: {e}")
        return BacklogConfig()


class Config(BaseSettings):
    """Application configuration (environment variables prefixed BACKLOG_)."""

    model_config = SettingsConfigDict(env_prefix="BACKLOG_")

    workspace_root: str = Field(default=".")
    backlog_folder: str = Field(default="backlog")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    watch_debounce_seconds: float = Field(default=0.3)

    @property
    def backlog_path(self) -> Path:
        return Path(self.workspace_root).resolve() / self.backlog_folder
