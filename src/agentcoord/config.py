"""Configuration management for agentcoord.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Values passed to the AgentcoordConfig constructor, which is how
   load_config hands over the TOML file's contents
2. Environment variables (AGENTCOORD_* prefix)
3. Default values defined in this module

So a key set in the TOML file wins over the same key in the environment;
environment variables fill in keys the file leaves out.

Example TOML configuration:
    [coordinator]
    max_concurrent_agents = 5
    coordination_interval_seconds = 30

    [tracker]
    command = "bd"
    project_path = "/srv/repo"

Example environment variables:
    AGENTCOORD_COORDINATOR__MAX_CONCURRENT_AGENTS=8
    AGENTCOORD_TRACKER__TIMEOUT_SECONDS=60
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoordinatorConfig(BaseSettings):
    """Coordination cycle and helper spawning configuration.

    Attributes:
        coordination_interval_seconds: Seconds between timer-driven cycles
        max_concurrent_agents: Global ceiling on running assignments
        enable_auto_assignment: Let the cycle dispatch ready work automatically
        enable_helper_spawning: Allow running assignments to spawn helpers
        max_agent_age_seconds: Age after which an assignment is reclaimed
        helper_priority: Priority given to helper work items (0 is highest)
        helper_title_length: Characters of the task description kept in
            helper titles
        completion_queue_size: Completion records kept for
            ``drain_completions`` before the oldest is dropped
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCOORD_COORDINATOR__",
        extra="forbid",
    )

    coordination_interval_seconds: float = Field(default=30.0, gt=0, le=86400)
    max_concurrent_agents: int = Field(default=5, ge=1, le=100)
    enable_auto_assignment: bool = Field(default=True)
    enable_helper_spawning: bool = Field(default=True)
    max_agent_age_seconds: float = Field(default=7200.0, gt=0)  # 2 hours
    helper_priority: int = Field(default=2, ge=0, le=4)
    helper_title_length: int = Field(default=50, ge=1, le=500)
    completion_queue_size: int = Field(default=1000, ge=1, le=100000)


class TrackerConfig(BaseSettings):
    """Work item tracker (``bd`` CLI) configuration.

    Attributes:
        command: Executable name or path of the tracker CLI
        project_path: Repository the tracker operates in
        timeout_seconds: Upper bound for a single tracker call
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCOORD_TRACKER__",
        extra="forbid",
    )

    command: str = Field(default="bd")
    project_path: Path = Field(default_factory=Path.cwd)
    timeout_seconds: float = Field(default=30.0, gt=0, le=600)


class ExecutionConfig(BaseSettings):
    """Execution backend configuration.

    Attributes:
        command: Command line started for each assignment; the prompt is
            written to its stdin
        working_dir: Directory the command runs in (defaults to the tracker
            project path)
        timeout_seconds: Optional wall-clock limit for one execution
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCOORD_EXECUTION__",
        extra="forbid",
    )

    command: list[str] = Field(default_factory=lambda: ["claude", "--print"])
    working_dir: Path | None = Field(default=None)
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        """Reject an empty command line."""
        if not v:
            raise ValueError("Execution command must not be empty")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCOORD_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class AgentcoordConfig(BaseSettings):
    """Root configuration for agentcoord.

    Aggregates all subsystem configurations. Configuration can be loaded from:
    1. TOML files (using load_config function)
    2. Environment variables (AGENTCOORD_* prefix)
    3. Direct instantiation with keyword arguments

    Environment variable format for nested config:
        AGENTCOORD_<SECTION>__<KEY>=value
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCOORD_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | None = None) -> AgentcoordConfig:
    """Load configuration from a TOML file, filling gaps from the environment.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./agentcoord.toml (current directory)
    3. ~/.config/agentcoord/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        AgentcoordConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path = config_path
    else:
        search_paths = [
            Path.cwd() / "agentcoord.toml",
            Path.home() / ".config" / "agentcoord" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    # TOML values arrive as init kwargs, which rank above the environment
    try:
        return AgentcoordConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
