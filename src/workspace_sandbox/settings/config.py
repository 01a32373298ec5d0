"""
Workspace sandbox configuration.

This module provides configuration management for the sandbox tools,
including resource limits, pagination defaults and container runtime
readiness settings.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ToolsConfig(BaseModel):
    """
    Resource limits and defaults shared by all tools.

    Every limit is validated to be positive before use; a configuration
    file with ``max_file_size: 0`` fails to load rather than silently
    disabling reads.

    Example:
        ```python
        config = ToolsConfig(max_file_size=1_000_000, max_list_directory_results=500)
        ```
    """

    model_config = {"extra": "forbid"}

    # File operations
    max_file_size: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        description="Maximum size of a file that can be read, written or edited (bytes)",
    )
    binary_detection_sample_size: int = Field(
        default=8000,
        ge=1,
        description="Number of leading bytes scanned for NUL when detecting binary content",
    )
    max_checksum_entries: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of cached file checksums per session (LRU evicted)",
    )
    max_symlink_hops: int = Field(
        default=64,
        ge=1,
        description="Maximum symlink chain length followed during path resolution",
    )

    # Directory listing
    default_list_directory_limit: int = Field(default=1000, ge=1)
    max_list_directory_limit: int = Field(default=10_000, ge=1)
    max_list_directory_results: int = Field(
        default=50_000,
        ge=1,
        description="Hard cap on entries collected by a single directory walk",
    )

    # Find
    find_command: str = Field(
        default="fd",
        description="Glob enumeration command (fd compatible)",
    )
    default_find_file_limit: int = Field(default=100, ge=1)
    max_find_file_limit: int = Field(default=1000, ge=1)
    max_find_file_results: int = Field(default=10_000, ge=1)

    # Content search
    default_search_content_limit: int = Field(default=100, ge=1)
    max_search_content_limit: int = Field(default=1000, ge=1)
    max_search_content_results: int = Field(default=10_000, ge=1)
    max_line_length: int = Field(default=10_000, ge=1)

    # Command execution
    max_command_output_size: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Maximum bytes captured per output stream",
    )
    default_shell_timeout: int = Field(
        default=600,
        ge=1,
        description="Default command timeout (seconds)",
    )

    @field_validator("find_command")
    @classmethod
    def non_empty_command(cls, v: str) -> str:
        """Reject an empty find command."""
        if not v.strip():
            raise ValueError("find_command must not be empty")
        return v


class ContainerRuntimeConfig(BaseModel):
    """
    Container runtime readiness settings.

    Commands whose executable is ``docker`` first wait for the runtime to
    answer ``check_command``; if it does not, ``start_command`` is run once
    and the check is retried.
    """

    model_config = {"extra": "forbid"}

    check_command: list[str] = Field(
        default_factory=lambda: ["docker", "info"],
        min_length=1,
        description="Command that exits 0 when the runtime is ready",
    )
    start_command: list[str] = Field(
        default_factory=lambda: ["docker", "desktop", "start"],
        min_length=1,
        description="Command that starts the runtime",
    )
    retry_attempts: int = Field(default=10, ge=1)
    retry_interval_ms: int = Field(default=1000, ge=1)
    check_timeout_ms: int = Field(
        default=10_000,
        ge=1,
        description="Time limit for one readiness check (ms)",
    )
    start_timeout_ms: int = Field(
        default=60_000,
        ge=1,
        description="Time limit for the start command (ms)",
    )
    graceful_shutdown_ms: int = Field(
        default=2000,
        ge=1,
        description="Grace period between terminate and kill on timeout (ms)",
    )


class SandboxSettings(BaseSettings):
    """
    Complete workspace sandbox configuration.

    Values come from (highest priority first) explicit constructor
    arguments, ``WORKSPACE_SANDBOX_*`` environment variables (nested keys use
    ``__``, e.g. ``WORKSPACE_SANDBOX_TOOLS__MAX_FILE_SIZE``), and defaults.

    Example:
        ```python
        settings = SandboxSettings.from_file("~/.config/workspace-sandbox/config.yaml")
        print(settings.tools.max_file_size)
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKSPACE_SANDBOX_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    workspace_root: Optional[Path] = Field(
        default=None,
        description="Workspace root directory (defaults to the current directory)",
    )
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    container: ContainerRuntimeConfig = Field(default_factory=ContainerRuntimeConfig)
    log_level: str = Field(default="INFO", description="Logging level name")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Normalise and validate the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SandboxSettings":
        """
        Load settings from a YAML or JSON file.

        File format (YAML):
            ```yaml
            workspace_root: ~/projects/demo
            tools:
              max_file_size: 1048576
              default_shell_timeout: 120
            container:
              retry_attempts: 5
            ```

        Keys set in the file take precedence over ``WORKSPACE_SANDBOX_*``
        environment variables; keys the file leaves out come from the
        environment or keep their defaults.

        Args:
            path: Path to configuration file

        Returns:
            Loaded SandboxSettings instance

        Raises:
            FileNotFoundError: If the config file doesn't exist
        """
        path = Path(path).expanduser().resolve()

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            # Try YAML first, then JSON
            try:
                data = yaml.safe_load(content)
            except yaml.YAMLError:
                data = json.loads(content)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SandboxSettings":
        """
        Create settings from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            SandboxSettings instance
        """
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Export settings as a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    def __str__(self) -> str:
        """Short string representation."""
        return (
            f"SandboxSettings(workspace_root={self.workspace_root}, "
            f"max_file_size={self.tools.max_file_size})"
        )
