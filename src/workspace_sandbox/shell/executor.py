"""
Asynchronous command execution with timeout, cancellation and bounded output.
"""

import asyncio
import logging
import os
import shlex
import signal
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from workspace_sandbox.exceptions import CommandStartError
from workspace_sandbox.filesystem.content import DEFAULT_BINARY_SAMPLE_SIZE
from workspace_sandbox.shell.collector import OutputCollector

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_OUTPUT_SIZE = 10 * 1024 * 1024
DEFAULT_GRACEFUL_SHUTDOWN_MS = 2000


class CommandDisposition(str, Enum):
    """Lifecycle state of a command execution."""

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class CommandResult:
    """
    Outcome of a command execution.

    A non-zero ``exit_code`` with ``COMPLETED`` disposition is a normal
    result. Timed out and cancelled executions report ``exit_code == -1``.
    """

    stdout: str
    stderr: str
    exit_code: int
    truncated: bool
    disposition: CommandDisposition
    duration_ms: int

    @property
    def succeeded(self) -> bool:
        return self.disposition == CommandDisposition.COMPLETED and self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["disposition"] = self.disposition.value
        return data


class CommandExecutor:
    """
    Runs external commands (argv lists, never shell strings).

    Each child gets its own process group, no stdin, and two pipes that
    are drained concurrently into size-limited collectors. On timeout
    the whole group receives SIGTERM and, after the grace period, SIGKILL.

    Usage:
        executor = CommandExecutor(max_output_size=1024 * 1024)
        result = await executor.run_with_timeout(["ls", "-la"], cwd="/tmp", timeout=10)
        print(result.exit_code, result.stdout)
    """

    def __init__(
        self,
        max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE,
        binary_sample_size: int = DEFAULT_BINARY_SAMPLE_SIZE,
        graceful_shutdown_ms: int = DEFAULT_GRACEFUL_SHUTDOWN_MS,
    ):
        self.max_output_size = max_output_size
        self.binary_sample_size = binary_sample_size
        self.graceful_shutdown_ms = graceful_shutdown_ms

    async def run(
        self,
        argv: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CommandResult:
        """Run a command to completion without a timeout."""
        return await self.run_with_timeout(argv, cwd=cwd, env=env, timeout=None, cancel_event=cancel_event)

    async def run_with_timeout(
        self,
        argv: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CommandResult:
        """
        Run a command, stopping it on timeout or cancellation.

        Args:
            argv: Command and arguments
            cwd: Working directory
            env: Complete environment for the child (inherits ours if None)
            timeout: Wall-clock limit in seconds (None for no limit)
            cancel_event: Setting this event stops the command

        Returns:
            CommandResult; its disposition tells completion, timeout and
            cancellation apart

        Raises:
            CommandStartError: If the process cannot be spawned
            asyncio.CancelledError: If the awaiting task is cancelled (the
                child is killed first)
        """
        command = shlex.join(argv)
        started = time.monotonic()
        logger.debug(f"Starting command: {command} (cwd={cwd}, timeout={timeout})")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"Failed to start command {command}: {e}")
            raise CommandStartError(command, e) from e

        stdout = OutputCollector(self.max_output_size, self.binary_sample_size)
        stderr = OutputCollector(self.max_output_size, self.binary_sample_size)
        drains = [
            asyncio.create_task(self._drain(proc.stdout, stdout)),
            asyncio.create_task(self._drain(proc.stderr, stderr)),
        ]

        try:
            disposition = await self._supervise(proc, timeout, cancel_event)

            if disposition == CommandDisposition.COMPLETED:
                remaining = None
                if timeout is not None:
                    remaining = max(timeout - (time.monotonic() - started), 0)
                _, pending = await asyncio.wait(drains, timeout=remaining)
                if pending:
                    # Descendants still hold the pipes open
                    self._signal_group(proc, signal.SIGKILL)
            else:
                await self._terminate(proc)

            await asyncio.gather(*drains)
        except asyncio.CancelledError:
            logger.debug(f"Task cancelled, killing command: {command}")
            self._signal_group(proc, signal.SIGKILL)
            await asyncio.gather(proc.wait(), *drains, return_exceptions=True)
            raise

        if disposition == CommandDisposition.COMPLETED:
            exit_code = proc.returncode
        else:
            exit_code = -1

        duration_ms = int((time.monotonic() - started) * 1000)
        result = CommandResult(
            stdout=stdout.text(),
            stderr=stderr.text(),
            exit_code=exit_code,
            truncated=stdout.truncated or stderr.truncated,
            disposition=disposition,
            duration_ms=duration_ms,
        )

        logger.info(
            f"Command {command} {disposition.value} "
            f"(exit code {exit_code}, {duration_ms} ms)"
        )
        return result

    async def _supervise(
        self,
        proc: asyncio.subprocess.Process,
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> CommandDisposition:
        """Race process exit against cancellation and the timeout."""
        wait_task = asyncio.create_task(proc.wait())
        cancel_task = None
        waiters = {wait_task}
        if cancel_event is not None:
            cancel_task = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if wait_task in done:
            return CommandDisposition.COMPLETED
        if cancel_task is not None and cancel_task in done:
            return CommandDisposition.CANCELLED
        return CommandDisposition.TIMED_OUT

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after the grace period."""
        if proc.returncode is not None:
            # Leader is gone but its group may not be
            self._signal_group(proc, signal.SIGKILL)
            return

        self._signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.graceful_shutdown_ms / 1000)
        except asyncio.TimeoutError:
            logger.debug(f"Process {proc.pid} ignored SIGTERM, sending SIGKILL")
            self._signal_group(proc, signal.SIGKILL)
            await proc.wait()
        else:
            self._signal_group(proc, signal.SIGKILL)

    @staticmethod
    def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.debug(f"Cannot signal process group {proc.pid}: {e}")

    @staticmethod
    async def _drain(stream: Optional[asyncio.StreamReader], collector: OutputCollector) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            collector.write(chunk)
