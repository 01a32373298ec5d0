"""
Workspace Sandbox - confined file and command tools for coding agents.

Every tool operates inside a single workspace directory: paths are
resolved symlink by symlink against the workspace root, edits use
checksum-based optimistic concurrency with atomic writes, and commands
run with timeouts, graceful shutdown and bounded output.
"""

from workspace_sandbox.exceptions import (
    ErrorCode,
    OperationCancelledError,
    SandboxError,
    ToolError,
    WorkspaceRootError,
)
from workspace_sandbox.settings import SandboxSettings
from workspace_sandbox.tools import WorkspaceTools

__version__ = "0.1.0"

__all__ = [
    "ErrorCode",
    "OperationCancelledError",
    "SandboxError",
    "SandboxSettings",
    "ToolError",
    "WorkspaceRootError",
    "WorkspaceTools",
]
