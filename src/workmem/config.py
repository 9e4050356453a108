"""Configuration settings for workmem.

This module provides Pydantic Settings for configuration management with:
- Environment variable support (WORKMEM_ prefix)
- CLI argument override support
- Type validation and defaults

The resolved settings object is passed explicitly to every component that
needs it; nothing reads the environment after construction.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_WATCHED_FILES = [
    "AGENTS.md",
    "SOUL.md",
    "TOOLS.md",
    "USER.md",
    "HEARTBEAT.md",
]


class WorkmemSettings(BaseSettings):
    """Configuration settings for workmem.

    Settings are loaded from environment variables with the WORKMEM_ prefix.
    CLI arguments can override these settings when provided.

    Attributes:
        state_dir: Root directory for JSON store documents (default: ~/.workmem/state)
        workspace_dir: Workspace root for markdown artifacts (default: cwd)
        log_level: Logging level (default: INFO)

    Example:
        >>> settings = WorkmemSettings()
        >>> print(settings.trigger_cooldown_hours)
        4.0

        >>> # Override via environment
        >>> # WORKMEM_STATE_DIR=/tmp/wm
        >>> settings = WorkmemSettings()
        >>> print(settings.resolve_state_dir())
        /tmp/wm
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKMEM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Storage paths
    state_dir: Optional[Path] = Field(
        default=None,
        description="Root directory for store documents (default: ~/.workmem/state)",
    )
    workspace_dir: Optional[Path] = Field(
        default=None,
        description="Workspace root where memory/ markdown artifacts are written (default: cwd)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # Store capacities
    correction_max_entries: int = Field(default=500, ge=1)
    correction_min_overlap: int = Field(
        default=2,
        ge=1,
        description="Keyword overlaps required for a correction to match a search",
    )
    tool_failure_max_entries: int = Field(default=100, ge=10)
    task_max_total: int = Field(default=100, ge=1)
    task_max_active: int = Field(default=25, ge=1)
    scratch_max_entries: int = Field(default=20, ge=1)

    # Proactive triggers
    trigger_cooldown_hours: float = Field(default=4.0, gt=0)
    stale_task_hours: float = Field(default=72.0, gt=0)
    stuck_subagent_minutes: float = Field(default=30.0, gt=0)
    repeated_failure_threshold: int = Field(default=3, ge=1)
    max_triggers_per_check: int = Field(default=5, ge=1)
    watched_files: list[str] = Field(default_factory=lambda: list(DEFAULT_WATCHED_FILES))

    # Hybrid retrieval
    recency_weight: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Default weight of the recency term in hybrid result fusion",
    )

    def resolve_state_dir(self) -> Path:
        """Get the state directory, resolving to the default if not set."""
        if self.state_dir:
            return self.state_dir.expanduser().resolve()
        return Path.home() / ".workmem" / "state"

    def resolve_workspace_dir(self) -> Path:
        """Get the workspace directory, resolving to cwd if not set."""
        if self.workspace_dir:
            return self.workspace_dir.expanduser().resolve()
        return Path.cwd()
