"""
Command execution confined to the workspace.

Example:
    ```python
    from workspace_sandbox.shell import ShellTool

    tool = ShellTool(resolver, settings.tools, settings.container)
    result = await tool.run_command(["make", "test"], timeout_seconds=300)
    ```
"""

from workspace_sandbox.shell.collector import BINARY_PLACEHOLDER, OutputCollector
from workspace_sandbox.shell.container import (
    collect_compose_containers,
    ensure_container_ready,
    format_container_started_note,
    is_compose_up_detached,
    is_container_command,
)
from workspace_sandbox.shell.env import build_environment, parse_env_file
from workspace_sandbox.shell.executor import (
    CommandDisposition,
    CommandExecutor,
    CommandResult,
)
from workspace_sandbox.shell.tool import RunCommandResult, ShellTool

__all__ = [
    "BINARY_PLACEHOLDER",
    "CommandDisposition",
    "CommandExecutor",
    "CommandResult",
    "OutputCollector",
    "RunCommandResult",
    "ShellTool",
    "build_environment",
    "collect_compose_containers",
    "ensure_container_ready",
    "format_container_started_note",
    "is_compose_up_detached",
    "is_container_command",
    "parse_env_file",
]
