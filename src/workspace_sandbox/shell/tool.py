"""
The run-command tool.
"""

import asyncio
import logging
import os
import shlex
import stat
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Optional, Sequence

from workspace_sandbox.exceptions import (
    CommandTimeoutError,
    ContainerRuntimeError,
    FileMissingError,
    FileOperationError,
    InvalidInputError,
    NotDirectoryError,
    OperationCancelledError,
)
from workspace_sandbox.filesystem.paths import PathResolver
from workspace_sandbox.settings.config import ContainerRuntimeConfig, ToolsConfig
from workspace_sandbox.shell.container import (
    collect_compose_containers,
    ensure_container_ready,
    format_container_started_note,
    is_compose_up_detached,
    is_container_command,
)
from workspace_sandbox.shell.env import build_environment
from workspace_sandbox.shell.executor import (
    CommandDisposition,
    CommandExecutor,
    CommandResult,
)

logger = logging.getLogger(__name__)


@dataclass
class RunCommandResult:
    stdout: str
    stderr: str
    exit_code: int
    truncated: bool
    disposition: str
    duration_ms: int
    working_dir: str
    notes: list[str] = field(default_factory=list)

    @classmethod
    def from_command_result(cls, result: CommandResult, working_dir: str) -> "RunCommandResult":
        return cls(
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
            truncated=result.truncated,
            disposition=result.disposition.value,
            duration_ms=result.duration_ms,
            working_dir=working_dir,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ShellTool:
    """
    Runs commands inside the workspace.

    The working directory must resolve inside the workspace. The child
    environment is the process environment, overlaid with any ``.env``
    files and then with explicit variables. Commands for the ``docker``
    executable first wait for the container runtime to be ready.

    Usage:
        tool = ShellTool(resolver, ToolsConfig(), ContainerRuntimeConfig())
        result = await tool.run_command(["pytest", "-q"], working_dir="backend")
        print(result.exit_code)
    """

    def __init__(
        self,
        resolver: PathResolver,
        config: ToolsConfig,
        container: Optional[ContainerRuntimeConfig] = None,
        executor: Optional[CommandExecutor] = None,
    ):
        """
        Initialize the shell tool.

        Args:
            resolver: Workspace path resolver
            config: Tool limits (output size, default timeout)
            container: Container runtime readiness settings
            executor: Command executor (built from the settings when omitted)
        """
        self.resolver = resolver
        self.config = config
        self.container = container or ContainerRuntimeConfig()
        self.executor = executor or CommandExecutor(
            max_output_size=config.max_command_output_size,
            binary_sample_size=config.binary_detection_sample_size,
            graceful_shutdown_ms=self.container.graceful_shutdown_ms,
        )

    async def run_command(
        self,
        argv: Sequence[str],
        working_dir: str = "",
        timeout_seconds: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
        env_files: Optional[Sequence[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunCommandResult:
        """
        Run a command and capture its output.

        A non-zero exit code is a normal result, not an error.

        Args:
            argv: Command and arguments (no shell interpretation)
            working_dir: Workspace directory to run in ("" for the root)
            timeout_seconds: Timeout (None or 0 uses ``default_shell_timeout``)
            env: Extra environment variables (highest precedence)
            env_files: Workspace paths of ``.env`` files to load
            cancel_event: Setting this event stops the command

        Returns:
            RunCommandResult

        Raises:
            InvalidInputError: If argv is empty or the timeout is negative
            OutsideWorkspaceError: If the working dir or an env file is outside
            FileMissingError: If the working directory does not exist
            NotDirectoryError: If the working directory is not a directory
            EnvFileError: If an env file cannot be parsed
            ContainerRuntimeError: If the container runtime never became ready
            CommandStartError: If the command cannot be spawned
            CommandTimeoutError: If the command timed out (carries the partial result)
            OperationCancelledError: If ``cancel_event`` was set
        """
        argv = list(argv)
        if not argv or not argv[0]:
            raise InvalidInputError("command must not be empty", field="argv")
        if timeout_seconds is not None and timeout_seconds < 0:
            raise InvalidInputError("timeout must not be negative", field="timeout_seconds")

        resolved = self.resolver.resolve(working_dir)
        try:
            st = os.stat(resolved.absolute)
        except FileNotFoundError:
            raise FileMissingError(resolved.relative or working_dir)
        except OSError as e:
            raise FileOperationError("stat", resolved.absolute, e) from e
        if not stat.S_ISDIR(st.st_mode):
            raise NotDirectoryError(resolved.relative or working_dir)

        child_env = build_environment(self.resolver, env_files, env)

        if is_container_command(argv):
            await ensure_container_ready(self.executor, self.container, cancel_event)

        timeout = timeout_seconds or self.config.default_shell_timeout
        command = shlex.join(argv)

        result = await self.executor.run_with_timeout(
            argv,
            cwd=resolved.absolute,
            env=child_env,
            timeout=timeout,
            cancel_event=cancel_event,
        )
        response = RunCommandResult.from_command_result(result, resolved.relative)

        if result.disposition == CommandDisposition.TIMED_OUT:
            logger.warning(f"Command timed out after {timeout:g}s: {command}")
            raise CommandTimeoutError(command, timeout, result=response)
        if result.disposition == CommandDisposition.CANCELLED:
            raise OperationCancelledError(f"run_command {command}", result=response)

        if result.exit_code == 0 and is_compose_up_detached(argv):
            try:
                ids = await collect_compose_containers(
                    self.executor,
                    resolved.absolute,
                    timeout_ms=self.container.check_timeout_ms,
                    cancel_event=cancel_event,
                )
            except ContainerRuntimeError as e:
                response.notes.append(f"Warning: Could not list started containers: {e}")
            else:
                note = format_container_started_note(ids)
                if note:
                    response.notes.append(note)

        return response
