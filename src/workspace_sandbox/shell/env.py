"""
Environment layering for command execution.
"""

import logging
import os
from typing import Iterable, Mapping, Optional

from dotenv import dotenv_values

from workspace_sandbox.exceptions import EnvFileError
from workspace_sandbox.filesystem.paths import PathResolver

logger = logging.getLogger(__name__)


def parse_env_file(path: str) -> dict[str, str]:
    """
    Parse a ``.env`` file into a dict.

    Values are taken literally (no ``${VAR}`` interpolation); quotes are
    stripped.

    Raises:
        EnvFileError: If the file is missing, unreadable, or has a line
            without ``=``
    """
    if not os.path.isfile(path):
        raise EnvFileError(path, "file does not exist")

    try:
        values = dotenv_values(path, interpolate=False, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise EnvFileError(path, str(e)) from e

    env = {}
    for key, value in values.items():
        if value is None:
            raise EnvFileError(path, f"missing '=' for {key!r}")
        env[key] = value
    return env


def build_environment(
    resolver: PathResolver,
    env_files: Optional[Iterable[str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """
    Layer the child environment: process env, then env files, then overrides.

    Later layers win. Env file paths are resolved inside the workspace.

    Args:
        resolver: Workspace path resolver for env file paths
        env_files: Workspace paths of ``.env`` files, applied in order
        overrides: Explicit per-call variables
        base: Starting environment (defaults to ``os.environ``)

    Returns:
        Complete environment mapping for the child process
    """
    env = dict(os.environ if base is None else base)

    for env_file in env_files or ():
        resolved = resolver.resolve(env_file)
        values = parse_env_file(resolved.absolute)
        logger.debug(f"Loaded {len(values)} variables from {resolved.relative}")
        env.update(values)

    if overrides:
        env.update({str(k): str(v) for k, v in overrides.items()})

    return env
