"""
Session facade over the workspace tools.

One ``WorkspaceTools`` instance corresponds to one agent session: all tools
share the same workspace root, configuration and checksum store. Each tool
method returns a JSON-compatible dict; typed tool failures become
``{"success": False, ...}`` results, while cancellation and unexpected
infrastructure errors propagate to the caller.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from workspace_sandbox.exceptions import CommandTimeoutError, ToolError
from workspace_sandbox.filesystem.checksum import ChecksumStore
from workspace_sandbox.filesystem.ignore import IgnoreMatcher
from workspace_sandbox.filesystem.models import EditOperation
from workspace_sandbox.filesystem.paths import PathResolver, canonicalise_root
from workspace_sandbox.filesystem.reader import WorkspaceFileReader
from workspace_sandbox.filesystem.search import CancelSignal, WorkspaceSearchTools
from workspace_sandbox.filesystem.writer import WorkspaceFileWriter
from workspace_sandbox.settings.config import SandboxSettings
from workspace_sandbox.shell.tool import ShellTool

logger = logging.getLogger(__name__)


class WorkspaceTools:
    """
    All workspace tools bound to one workspace root.

    Usage:
        settings = SandboxSettings(workspace_root=Path("/tmp/project"))
        tools = WorkspaceTools(settings)

        result = await tools.read_file("README.md")
        if result["success"]:
            print(result["content"])
        else:
            print(result["code"], result["error"])
    """

    def __init__(
        self,
        settings: Optional[SandboxSettings] = None,
        workspace_root: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize the session.

        Args:
            settings: Sandbox settings (defaults plus environment when omitted)
            workspace_root: Overrides ``settings.workspace_root``; falls back
                to the current directory

        Raises:
            WorkspaceRootError: If the root does not exist or is not a directory
        """
        self.settings = settings or SandboxSettings()
        root = workspace_root or self.settings.workspace_root or os.getcwd()
        self.root = canonicalise_root(root)

        tools_config = self.settings.tools
        self.resolver = PathResolver(self.root, max_symlink_hops=tools_config.max_symlink_hops)
        self.checksums = ChecksumStore(max_entries=tools_config.max_checksum_entries)
        self.ignore_matcher = IgnoreMatcher.from_workspace(self.root)

        self.reader = WorkspaceFileReader(self.resolver, tools_config, self.checksums)
        self.writer = WorkspaceFileWriter(self.resolver, tools_config, self.checksums)
        self.search = WorkspaceSearchTools(self.resolver, tools_config, self.ignore_matcher)
        self.shell = ShellTool(self.resolver, tools_config, self.settings.container)

        logger.info(f"Workspace tools ready for {self.root}")

    async def read_file(
        self, path: str, offset: int = 0, limit: Optional[int] = None
    ) -> dict[str, Any]:
        try:
            result = self.reader.read_file(path, offset=offset, limit=limit)
        except ToolError as e:
            return self._failure("read_file", e)
        return {"success": True, **result.to_dict()}

    async def write_file(
        self, path: str, content: str, mode: Optional[int] = None
    ) -> dict[str, Any]:
        try:
            result = self.writer.write_file(path, content, mode=mode)
        except ToolError as e:
            return self._failure("write_file", e)
        return {"success": True, **result.to_dict()}

    async def edit_file(
        self,
        path: str,
        operations: Sequence[Union[EditOperation, dict]],
    ) -> dict[str, Any]:
        try:
            result = self.writer.edit_file(path, operations)
        except ToolError as e:
            return self._failure("edit_file", e)
        return {"success": True, **result.to_dict()}

    async def list_directory(
        self,
        path: str = "",
        max_depth: int = 0,
        include_ignored: bool = False,
        offset: int = 0,
        limit: int = 0,
        cancel_event: Optional[CancelSignal] = None,
    ) -> dict[str, Any]:
        """
        List a directory.

        The walk runs in a worker thread so that ``cancel_event`` can be set
        from the event loop while it is in progress.
        """
        try:
            result = await asyncio.to_thread(
                self.search.list_directory,
                path,
                max_depth=max_depth,
                include_ignored=include_ignored,
                offset=offset,
                limit=limit,
                cancel_event=cancel_event,
            )
        except ToolError as e:
            return self._failure("list_directory", e)
        return {"success": True, **result.to_dict()}

    async def find_files(
        self,
        pattern: str,
        search_path: str = "",
        max_depth: int = 0,
        include_ignored: bool = False,
        offset: int = 0,
        limit: int = 0,
    ) -> dict[str, Any]:
        try:
            result = await self.search.find_files(
                pattern,
                search_path=search_path,
                max_depth=max_depth,
                include_ignored=include_ignored,
                offset=offset,
                limit=limit,
            )
        except ToolError as e:
            return self._failure("find_files", e)
        return {"success": True, **result.to_dict()}

    async def search_content(
        self,
        query: str,
        search_path: str = "",
        case_sensitive: bool = True,
        include_ignored: bool = False,
        offset: int = 0,
        limit: int = 0,
        cancel_event: Optional[CancelSignal] = None,
    ) -> dict[str, Any]:
        try:
            result = await asyncio.to_thread(
                self.search.search_content,
                query,
                search_path=search_path,
                case_sensitive=case_sensitive,
                include_ignored=include_ignored,
                offset=offset,
                limit=limit,
                cancel_event=cancel_event,
            )
        except ToolError as e:
            return self._failure("search_content", e)
        return {"success": True, **result.to_dict()}

    async def run_command(
        self,
        argv: Sequence[str],
        working_dir: str = "",
        timeout_seconds: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
        env_files: Optional[Sequence[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> dict[str, Any]:
        """
        Run a command in the workspace.

        A timed out command is reported as a failure that still carries
        the partial output under ``"result"``.
        """
        try:
            result = await self.shell.run_command(
                argv,
                working_dir=working_dir,
                timeout_seconds=timeout_seconds,
                env=env,
                env_files=env_files,
                cancel_event=cancel_event,
            )
        except CommandTimeoutError as e:
            failure = self._failure("run_command", e)
            if e.result is not None:
                failure["result"] = e.result.to_dict()
            return failure
        except ToolError as e:
            return self._failure("run_command", e)
        return {"success": True, **result.to_dict()}

    @staticmethod
    def _failure(operation: str, error: ToolError) -> dict[str, Any]:
        logger.warning(f"{operation} failed: {error}")
        failure = {
            "success": False,
            "error": str(error),
            "error_type": type(error).__name__,
            "code": error.code.value,
        }
        if error.path is not None:
            failure["path"] = error.path
        return failure
