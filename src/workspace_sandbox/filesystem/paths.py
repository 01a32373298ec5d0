"""
Workspace-bounded path resolution.

Every path a tool touches goes through ``PathResolver.resolve``. The resolver
follows symlinks one hop at a time and re-checks the workspace boundary after
each hop, so a link can never be used to reach a file outside the workspace.
"""

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from workspace_sandbox.exceptions import (
    OutsideWorkspaceError,
    PathResolutionError,
    SymlinkChainTooLongError,
    SymlinkLoopError,
    WorkspaceRootError,
    WorkspaceRootNotSetError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_SYMLINK_HOPS = 64


@dataclass(frozen=True)
class ResolvedPath:
    """
    A path proven to lie inside the workspace.

    Attributes:
        absolute: Absolute path (WorkspaceRoot or a descendant)
        relative: Slash separated path relative to the root, "" for the root
    """

    absolute: str
    relative: str

    @property
    def is_root(self) -> bool:
        return self.relative == ""


def canonicalise_root(root: Union[str, Path]) -> str:
    """
    Return the absolute, symlink-resolved form of a workspace root.

    Args:
        root: Workspace root as given on the command line or in settings

    Returns:
        Canonical root path

    Raises:
        WorkspaceRootError: If the root does not exist or is not a directory
    """
    raw = os.path.expanduser(str(root))
    try:
        canonical = os.path.realpath(os.path.abspath(raw))
    except (OSError, RuntimeError) as e:
        raise WorkspaceRootError(str(root), f"cannot resolve: {e}") from e

    if not os.path.exists(canonical):
        raise WorkspaceRootError(str(root), "does not exist")
    if not os.path.isdir(canonical):
        raise WorkspaceRootError(str(root), "not a directory")
    return canonical


def is_within(path: str, root: str) -> bool:
    """Check whether a cleaned absolute path equals root or lies below it."""
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


class PathResolver:
    """
    Resolves user supplied paths against a fixed workspace root.

    Usage:
        resolver = PathResolver(canonicalise_root("/tmp/project"))
        target = resolver.resolve("src/main.py")
        print(target.absolute, target.relative)
    """

    def __init__(
        self,
        root: Optional[str],
        max_symlink_hops: int = DEFAULT_MAX_SYMLINK_HOPS,
    ):
        """
        Initialize the resolver.

        Args:
            root: Canonical workspace root (see ``canonicalise_root``)
            max_symlink_hops: Longest symlink chain that may be followed
        """
        self.root = root
        self.max_symlink_hops = max_symlink_hops

    def resolve(self, raw: str) -> ResolvedPath:
        """
        Resolve a path and prove it stays within the workspace.

        Args:
            raw: Absolute, relative, or ``~`` prefixed path. Empty or "."
                means the workspace root.

        Returns:
            ResolvedPath with absolute and workspace-relative forms

        Raises:
            WorkspaceRootNotSetError: If the resolver has no root
            OutsideWorkspaceError: If the path or a link target leaves the root
            SymlinkLoopError: If a symlink chain revisits a path
            SymlinkChainTooLongError: If a chain exceeds ``max_symlink_hops``
            PathResolutionError: If stat/readlink/home lookup fails
        """
        if not self.root:
            raise WorkspaceRootNotSetError()
        root = self.root

        if raw in ("", "."):
            return ResolvedPath(absolute=root, relative="")

        path = raw
        if path == "~" or path.startswith("~/"):
            home = os.path.expanduser("~")
            if home == "~":
                raise PathResolutionError(raw, RuntimeError("home directory not found"))
            path = home + path[1:]

        if os.path.isabs(path):
            cleaned = os.path.normpath(path)
        else:
            cleaned = os.path.normpath(os.path.join(root, path))

        if not is_within(cleaned, root):
            raise OutsideWorkspaceError(raw)

        resolved = self._resolve_symlinks(cleaned, raw)
        return ResolvedPath(absolute=resolved, relative=self.relative(resolved))

    def relative(self, absolute: str) -> str:
        """
        Convert an absolute in-workspace path to a slash separated relative path.

        Raises:
            OutsideWorkspaceError: If the path is not inside the workspace
        """
        if not self.root:
            raise WorkspaceRootNotSetError()
        cleaned = os.path.normpath(absolute)
        if not is_within(cleaned, self.root):
            raise OutsideWorkspaceError(absolute)
        rel = os.path.relpath(cleaned, self.root)
        if rel == ".":
            return ""
        return rel.replace(os.sep, "/")

    def _resolve_symlinks(self, cleaned: str, raw: str) -> str:
        rel = os.path.relpath(cleaned, self.root)
        components = [] if rel == "." else rel.split(os.sep)

        current = self.root
        for index, component in enumerate(components):
            candidate = os.path.join(current, component)
            try:
                st = os.lstat(candidate)
            except FileNotFoundError:
                # The rest does not exist yet, e.g. a file about to be written
                current = os.path.normpath(
                    os.path.join(candidate, *components[index + 1:])
                )
                if not is_within(current, self.root):
                    raise OutsideWorkspaceError(raw)
                return self._check_canonical(current, raw)
            except OSError as e:
                raise PathResolutionError(candidate, e) from e

            if stat.S_ISLNK(st.st_mode):
                current = self._follow_chain(candidate, raw)
            else:
                current = candidate

        return self._check_canonical(current, raw)

    def _follow_chain(self, link: str, raw: str) -> str:
        visited = set()
        current = link

        for hop in range(self.max_symlink_hops + 1):
            if current in visited:
                raise SymlinkLoopError(raw)
            visited.add(current)

            try:
                st = os.lstat(current)
            except FileNotFoundError:
                # Dangling link
                return self._check_canonical(current, raw)
            except OSError as e:
                raise PathResolutionError(current, e) from e

            if not stat.S_ISLNK(st.st_mode):
                return self._check_canonical(current, raw)

            if hop == self.max_symlink_hops:
                break

            try:
                target = os.readlink(current)
            except OSError as e:
                raise PathResolutionError(current, e) from e

            if not os.path.isabs(target):
                target = os.path.join(os.path.dirname(current), target)
            current = os.path.normpath(target)

            if not is_within(current, self.root):
                logger.warning(f"Symlink {link} points outside workspace: {current}")
                raise OutsideWorkspaceError(raw)

        raise SymlinkChainTooLongError(raw, self.max_symlink_hops)

    def _check_canonical(self, path: str, raw: str) -> str:
        """Verify that the canonical form of ``path`` (links in parents included) is in bounds."""
        try:
            canonical = os.path.realpath(path)
        except (OSError, RuntimeError) as e:
            raise PathResolutionError(path, e) from e
        if not is_within(canonical, self.root):
            logger.warning(f"Path {raw} resolves outside workspace: {canonical}")
            raise OutsideWorkspaceError(raw)
        return path
