"""
Gitignore matching for directory walks.

Patterns come from the ``.gitignore`` at the workspace root and are matched
with pathspec's gitignore implementation.
"""

import logging
import os
from typing import Union

import pathspec

from workspace_sandbox.exceptions import FileOperationError

logger = logging.getLogger(__name__)


class NoOpIgnoreMatcher:
    """Matcher that never ignores anything."""

    def should_ignore(self, relative_path: str, is_dir: bool = False) -> bool:
        return False


class IgnoreMatcher:
    """
    Decides whether a workspace-relative path is ignored by ``.gitignore``.

    Usage:
        matcher = IgnoreMatcher.from_workspace("/tmp/project")
        if matcher.should_ignore("build", is_dir=True):
            ...
    """

    def __init__(self, spec: pathspec.PathSpec):
        self.spec = spec

    @classmethod
    def from_lines(cls, lines: list[str]) -> "IgnoreMatcher":
        return cls(pathspec.GitIgnoreSpec.from_lines(lines))

    @classmethod
    def from_workspace(cls, root: str) -> Union["IgnoreMatcher", NoOpIgnoreMatcher]:
        """
        Load the root ``.gitignore`` of a workspace.

        Args:
            root: Canonical workspace root

        Returns:
            IgnoreMatcher, or NoOpIgnoreMatcher if there is no ``.gitignore``

        Raises:
            FileOperationError: If the file exists but cannot be read
        """
        gitignore_path = os.path.join(root, ".gitignore")
        if not os.path.isfile(gitignore_path):
            return NoOpIgnoreMatcher()

        try:
            with open(gitignore_path, encoding="utf-8", errors="replace") as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise FileOperationError("read", gitignore_path, e) from e

        logger.debug(f"Loaded {len(lines)} .gitignore lines from {gitignore_path}")
        return cls.from_lines(lines)

    def should_ignore(self, relative_path: str, is_dir: bool = False) -> bool:
        """
        Check a slash separated, workspace-relative path.

        Args:
            relative_path: Path relative to the workspace root
            is_dir: Whether the path is a directory (matches ``dir/`` patterns)
        """
        path = _normalize(relative_path)
        if not path:
            return False
        if is_dir:
            path += "/"
        return self.spec.match_file(path)


def _normalize(path: str) -> str:
    segments = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
    return "/".join(segments)
