"""
Container runtime readiness and ``docker compose`` helpers.
"""

import asyncio
import logging
import os
from typing import Optional, Sequence

from workspace_sandbox.exceptions import (
    CommandStartError,
    ContainerRuntimeError,
    OperationCancelledError,
)
from workspace_sandbox.settings.config import ContainerRuntimeConfig
from workspace_sandbox.shell.executor import (
    CommandDisposition,
    CommandExecutor,
    CommandResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CHECK_TIMEOUT_MS = 10_000


def is_container_command(argv: Sequence[str]) -> bool:
    """True if the executable is ``docker`` (by basename)."""
    return bool(argv) and os.path.basename(argv[0]) == "docker"


def is_compose_up_detached(argv: Sequence[str]) -> bool:
    """
    True for ``docker ... compose ... up ... -d|--detach``.

    The words must appear in that order; other flags may sit between them.
    """
    if not is_container_command(argv) or len(argv) < 3:
        return False

    stage = 0
    for arg in argv[1:]:
        if stage == 0 and arg == "compose":
            stage = 1
        elif stage == 1 and arg == "up":
            stage = 2
        elif stage == 2 and arg in ("-d", "--detach"):
            return True
    return False


async def _run_bounded(
    executor: CommandExecutor,
    argv: Sequence[str],
    timeout_ms: int,
    cancel_event: Optional[asyncio.Event],
    cwd: Optional[str] = None,
) -> CommandResult:
    result = await executor.run_with_timeout(
        argv, cwd=cwd, timeout=timeout_ms / 1000, cancel_event=cancel_event
    )
    if result.disposition == CommandDisposition.CANCELLED:
        raise OperationCancelledError("container runtime readiness", result=result)
    return result


async def _pause(interval: float, cancel_event: Optional[asyncio.Event]) -> None:
    """Sleep for ``interval`` seconds; raise as soon as ``cancel_event`` is set."""
    if cancel_event is None:
        await asyncio.sleep(interval)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError("container runtime readiness")


async def _runtime_ready(
    executor: CommandExecutor,
    config: ContainerRuntimeConfig,
    cancel_event: Optional[asyncio.Event] = None,
) -> bool:
    try:
        result = await _run_bounded(
            executor, config.check_command, config.check_timeout_ms, cancel_event
        )
    except CommandStartError as e:
        logger.debug(f"Container runtime check could not start: {e}")
        return False
    if result.disposition == CommandDisposition.TIMED_OUT:
        logger.debug(f"Container runtime check timed out after {config.check_timeout_ms} ms")
    return result.succeeded


async def ensure_container_ready(
    executor: CommandExecutor,
    config: ContainerRuntimeConfig,
    cancel_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Make sure the container runtime answers before a container command runs.

    Runs the check command; if that fails, runs the start command once and
    polls the check ``retry_attempts`` times, ``retry_interval_ms`` apart.
    Every check is bounded by ``check_timeout_ms`` (a timed out check counts
    as not ready) and the start command by ``start_timeout_ms``.

    Args:
        executor: Executor used for check and start commands
        config: Runtime readiness settings
        cancel_event: Setting this event aborts the wait

    Raises:
        ContainerRuntimeError: If the runtime cannot be started or never becomes ready
        OperationCancelledError: If ``cancel_event`` was set while waiting
    """
    if await _runtime_ready(executor, config, cancel_event):
        return

    logger.info(f"Container runtime not ready, starting: {config.start_command}")
    try:
        start = await _run_bounded(
            executor, config.start_command, config.start_timeout_ms, cancel_event
        )
    except CommandStartError as e:
        raise ContainerRuntimeError(f"Failed to start container runtime: {e}") from e
    if start.disposition == CommandDisposition.TIMED_OUT:
        logger.warning(
            f"Container runtime start command timed out after {config.start_timeout_ms} ms"
        )

    interval = config.retry_interval_ms / 1000
    for attempt in range(1, config.retry_attempts + 1):
        await _pause(interval, cancel_event)
        if await _runtime_ready(executor, config, cancel_event):
            logger.info(f"Container runtime ready after {attempt} attempt(s)")
            return

    try:
        result = await _run_bounded(
            executor, config.check_command, config.check_timeout_ms, cancel_event
        )
    except CommandStartError as e:
        raise ContainerRuntimeError(f"Container runtime check failed: {e}") from e
    if not result.succeeded:
        logger.warning(
            f"Container runtime failed to start after {config.retry_attempts} retries"
        )
        if result.disposition == CommandDisposition.TIMED_OUT:
            reason = f"check timed out after {config.check_timeout_ms} ms"
        else:
            reason = f"exit code {result.exit_code}"
        raise ContainerRuntimeError(
            f"Container runtime failed to start after retries: {reason}",
            exit_code=result.exit_code,
        )


async def collect_compose_containers(
    executor: CommandExecutor,
    directory: str,
    timeout_ms: int = DEFAULT_CHECK_TIMEOUT_MS,
    cancel_event: Optional[asyncio.Event] = None,
) -> list[str]:
    """
    List the container IDs of the compose project in ``directory``.

    Raises:
        ContainerRuntimeError: If ``docker compose ps -q`` fails or times out
        OperationCancelledError: If ``cancel_event`` was set
    """
    cmd = ["docker", "compose", "--project-directory", directory, "ps", "-q"]
    try:
        result = await _run_bounded(executor, cmd, timeout_ms, cancel_event, cwd=directory)
    except CommandStartError as e:
        raise ContainerRuntimeError(str(e)) from e
    if result.disposition == CommandDisposition.TIMED_OUT:
        raise ContainerRuntimeError(f"docker compose ps timed out after {timeout_ms} ms")
    if not result.succeeded:
        raise ContainerRuntimeError(
            f"docker compose ps failed: {result.stderr.strip()}",
            exit_code=result.exit_code,
        )
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def format_container_started_note(ids: list[str]) -> str:
    if not ids:
        return ""
    if len(ids) == 1:
        return f"Started 1 Docker container: {ids[0]}"
    return f"Started {len(ids)} Docker containers"
