"""
Directory listing, file finding and content search inside the workspace.
"""

import asyncio
import logging
import os
import re
import stat
from typing import Iterator, Optional, Protocol, Union

from workspace_sandbox.exceptions import (
    FileMissingError,
    FileOperationError,
    InvalidInputError,
    NotDirectoryError,
    OperationCancelledError,
    OutsideWorkspaceError,
    SearchError,
)
from workspace_sandbox.filesystem.content import is_binary_content
from workspace_sandbox.filesystem.ignore import IgnoreMatcher, NoOpIgnoreMatcher
from workspace_sandbox.filesystem.models import (
    DirectoryEntry,
    FindResult,
    ListResult,
    SearchMatch,
    SearchResult,
)
from workspace_sandbox.filesystem.pagination import normalize_limit, paginate
from workspace_sandbox.filesystem.paths import PathResolver, ResolvedPath, is_within
from workspace_sandbox.settings.config import ToolsConfig

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "...[truncated]"


class CancelSignal(Protocol):
    """Anything with ``is_set()``: ``asyncio.Event`` or ``threading.Event``."""

    def is_set(self) -> bool: ...


class _Walk:
    """State of one depth-first directory walk."""

    def __init__(self, max_results: Optional[int], cancel_event: Optional[CancelSignal]):
        self.max_results = max_results
        self.cancel_event = cancel_event
        self.visited: set[str] = set()
        self.count = 0
        self.cap_hit = False

    def full(self) -> bool:
        return self.max_results is not None and self.count >= self.max_results

    def check_cancelled(self, operation: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError(operation)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill and reap a child process."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


class WorkspaceSearchTools:
    """
    List, find and search tools confined to the workspace.

    Walks are cycle safe (directories are visited once by canonical path),
    honour the root ``.gitignore`` unless ``include_ignored`` is set, and
    stop early when their result cap is reached. All results are sorted
    before pagination so paging is deterministic.

    Usage:
        search = WorkspaceSearchTools(resolver, ToolsConfig())

        listing = search.list_directory("src", max_depth=1)
        found = await search.find_files("*.py")
        hits = search.search_content(r"def main")
    """

    def __init__(
        self,
        resolver: PathResolver,
        config: ToolsConfig,
        ignore_matcher: Optional[Union[IgnoreMatcher, NoOpIgnoreMatcher]] = None,
    ):
        """
        Initialize search tools.

        Args:
            resolver: Workspace path resolver
            config: Tool limits
            ignore_matcher: Gitignore matcher (never ignores when omitted)
        """
        self.resolver = resolver
        self.config = config
        self.ignore_matcher = ignore_matcher or NoOpIgnoreMatcher()

    # =========================================================================
    # list_directory
    # =========================================================================

    def list_directory(
        self,
        path: str = "",
        max_depth: int = 0,
        include_ignored: bool = False,
        offset: int = 0,
        limit: int = 0,
        cancel_event: Optional[CancelSignal] = None,
    ) -> ListResult:
        """
        List a directory, optionally recursively.

        Args:
            path: Workspace path of the directory ("" for the root)
            max_depth: -1 for unlimited, 0 for this level only, N for N levels below
            include_ignored: Include entries matched by ``.gitignore``
            offset: Index of the first entry to return
            limit: Page size (0 uses the configured default)
            cancel_event: Polled before each directory descent

        Returns:
            ListResult with directories first, then lexicographic order

        Raises:
            InvalidInputError: If offset/limit/max_depth are out of range
            FileMissingError: If the directory does not exist
            NotDirectoryError: If the path is not a directory
            OperationCancelledError: If ``cancel_event`` was set
        """
        if max_depth < -1:
            raise InvalidInputError("max_depth must be -1 or greater", field="max_depth")
        if offset < 0:
            raise InvalidInputError("offset must not be negative", field="offset")
        limit = normalize_limit(
            limit,
            self.config.default_list_directory_limit,
            self.config.max_list_directory_limit,
        )

        resolved = self._resolve_directory(path)
        walk = _Walk(self.config.max_list_directory_results, cancel_event)
        entries = list(
            self._walk(resolved.absolute, 0, max_depth, include_ignored, walk, "list_directory")
        )

        entries.sort(key=lambda e: (not e.is_dir, e.relative_path))
        page, total, has_more = paginate(entries, offset, limit)

        if walk.cap_hit:
            reason = "max_results"
        elif has_more:
            reason = "pagination"
        else:
            reason = None

        logger.debug(
            f"Listed {resolved.relative or '.'}: {total} entries (cap_hit={walk.cap_hit})"
        )

        return ListResult(
            directory_path=resolved.relative,
            entries=page,
            total_count=total,
            truncated=walk.cap_hit or has_more,
            truncation_reason=reason,
            offset=offset,
            limit=limit,
        )

    def _walk(
        self,
        directory: str,
        depth: int,
        max_depth: int,
        include_ignored: bool,
        walk: _Walk,
        operation: str,
    ) -> Iterator[DirectoryEntry]:
        if max_depth >= 0 and depth > max_depth:
            return
        if walk.full():
            walk.cap_hit = True
            return
        walk.check_cancelled(operation)

        canonical = os.path.realpath(directory)
        if canonical in walk.visited:
            return
        walk.visited.add(canonical)

        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise FileOperationError("list directory", directory, e) from e

        for child in children:
            if walk.full():
                walk.cap_hit = True
                return

            rel = self.resolver.relative(child.path)
            is_dir = child.is_dir(follow_symlinks=True)

            if not include_ignored and self.ignore_matcher.should_ignore(rel, is_dir):
                continue

            walk.count += 1
            yield DirectoryEntry(relative_path=rel, is_dir=is_dir)

            if is_dir:
                if child.is_symlink() and not is_within(
                    os.path.realpath(child.path), self.resolver.root
                ):
                    logger.debug(f"Not descending into {rel}: links outside workspace")
                    continue
                yield from self._walk(
                    child.path, depth + 1, max_depth, include_ignored, walk, operation
                )
                if walk.cap_hit:
                    return

    # =========================================================================
    # find_files
    # =========================================================================

    async def find_files(
        self,
        pattern: str,
        search_path: str = "",
        max_depth: int = 0,
        include_ignored: bool = False,
        offset: int = 0,
        limit: int = 0,
    ) -> FindResult:
        """
        Find files whose names match a glob, using an ``fd`` compatible command.

        The command is spawned directly (never through a shell) and the
        pattern is passed as a single argument.

        Args:
            pattern: Glob pattern, e.g. ``*.py``
            search_path: Workspace directory to search ("" for the root)
            max_depth: Maximum depth (0 for unlimited)
            include_ignored: Also search ignored and hidden files
            offset: Index of the first match to return
            limit: Page size (0 uses the configured default)

        Returns:
            FindResult with sorted workspace-relative paths

        Raises:
            InvalidInputError: If the pattern or paging arguments are invalid
            FileMissingError: If the search directory does not exist
            NotDirectoryError: If the search path is not a directory
            SearchError: If the find command is missing or fails
        """
        if not pattern:
            raise InvalidInputError("pattern must not be empty", field="pattern")
        if os.path.isabs(pattern):
            raise InvalidInputError("pattern must be relative", field="pattern")
        if ".." in pattern:
            raise InvalidInputError("pattern must not contain '..'", field="pattern")
        if max_depth < 0:
            raise InvalidInputError("max_depth must not be negative", field="max_depth")
        if offset < 0:
            raise InvalidInputError("offset must not be negative", field="offset")
        limit = normalize_limit(
            limit,
            self.config.default_find_file_limit,
            self.config.max_find_file_limit,
        )

        resolved = self._resolve_directory(search_path)
        abs_dir = resolved.absolute

        cmd = [self.config.find_command, "--glob", pattern, abs_dir]
        if include_ignored:
            cmd.extend(["--no-ignore", "--hidden"])
        if max_depth > 0:
            cmd.extend(["--max-depth", str(max_depth)])

        logger.debug(f"Running find: {cmd}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=abs_dir,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise SearchError(
                f"Find command not found: {self.config.find_command}"
            ) from e
        except OSError as e:
            raise SearchError(f"Failed to start find command: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.config.default_shell_timeout
            )
        except asyncio.TimeoutError:
            await _kill(proc)
            logger.error(f"find timed out after {self.config.default_shell_timeout}s")
            raise SearchError(
                f"Find timed out after {self.config.default_shell_timeout} seconds"
            )
        except asyncio.CancelledError:
            logger.debug(f"find cancelled, killing {self.config.find_command}")
            await _kill(proc)
            raise

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise SearchError(
                f"Find command failed (exit code {proc.returncode}): {message}"
            )

        matches = []
        for line in stdout.decode("utf-8", errors="replace").splitlines():
            line = line.strip()
            if not line:
                continue
            candidate = line if os.path.isabs(line) else os.path.join(abs_dir, line)
            try:
                rel = self.resolver.relative(candidate)
            except OutsideWorkspaceError:
                logger.debug(f"Dropping find result outside workspace: {line}")
                continue
            matches.append(rel.rstrip("/"))
            if len(matches) >= self.config.max_find_file_results:
                break

        matches.sort()
        page, total, has_more = paginate(matches, offset, limit)
        logger.debug(f"find '{pattern}' in {resolved.relative or '.'}: {total} matches")

        return FindResult(
            matches=page,
            total_count=total,
            truncated=has_more,
            offset=offset,
            limit=limit,
        )

    # =========================================================================
    # search_content
    # =========================================================================

    def search_content(
        self,
        query: str,
        search_path: str = "",
        case_sensitive: bool = True,
        include_ignored: bool = False,
        offset: int = 0,
        limit: int = 0,
        cancel_event: Optional[CancelSignal] = None,
    ) -> SearchResult:
        """
        Search text files for lines matching a regular expression.

        Binary files and files larger than ``max_file_size`` are skipped.

        Args:
            query: Regular expression
            search_path: Workspace directory to search ("" for the root)
            case_sensitive: Whether matching is case sensitive
            include_ignored: Also search files matched by ``.gitignore``
            offset: Index of the first match to return
            limit: Page size (0 uses the configured default)
            cancel_event: Polled before each directory descent and file

        Returns:
            SearchResult with matches sorted by file then line number

        Raises:
            InvalidInputError: If the query is empty or not a valid regex
            FileMissingError: If the search directory does not exist
            NotDirectoryError: If the search path is not a directory
            OperationCancelledError: If ``cancel_event`` was set
        """
        if not query:
            raise InvalidInputError("query must not be empty", field="query")
        if offset < 0:
            raise InvalidInputError("offset must not be negative", field="offset")
        limit = normalize_limit(
            limit,
            self.config.default_search_content_limit,
            self.config.max_search_content_limit,
        )

        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(query, flags)
        except re.error as e:
            raise InvalidInputError(f"Invalid regex pattern: {e}", field="query") from e

        resolved = self._resolve_directory(search_path)
        # Only the match cap bounds a content search
        walk = _Walk(max_results=None, cancel_event=cancel_event)
        max_results = self.config.max_search_content_results

        matches: list[SearchMatch] = []
        cap_hit = False
        for entry in self._walk(resolved.absolute, 0, -1, include_ignored, walk, "search_content"):
            if entry.is_dir:
                continue
            walk.check_cancelled("search_content")
            for match in self._search_file(entry.relative_path, regex):
                matches.append(match)
                if len(matches) >= max_results:
                    break
            if len(matches) >= max_results:
                cap_hit = True
                logger.warning(
                    f"Search returned {len(matches)} results, stopping at limit"
                )
                break

        matches.sort(key=lambda m: (m.file, m.line_number))
        page, total, has_more = paginate(matches, offset, limit)
        logger.debug(f"search '{query}' in {resolved.relative or '.'}: {total} matches")

        return SearchResult(
            matches=page,
            total_count=total,
            truncated=cap_hit or has_more,
            offset=offset,
            limit=limit,
        )

    def _search_file(self, rel_path: str, regex: "re.Pattern[str]") -> Iterator[SearchMatch]:
        abs_path = os.path.join(self.resolver.root, *rel_path.split("/"))
        if not is_within(os.path.realpath(abs_path), self.resolver.root):
            return

        try:
            st = os.stat(abs_path)
            if not stat.S_ISREG(st.st_mode) or st.st_size > self.config.max_file_size:
                return
            with open(abs_path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.debug(f"Skipping unreadable file {rel_path}: {e}")
            return

        if is_binary_content(data, self.config.binary_detection_sample_size):
            return

        text = data.decode("utf-8", errors="replace")
        max_len = self.config.max_line_length
        for line_number, line in enumerate(text.splitlines(), start=1):
            if regex.search(line):
                content = line.strip()
                if len(content) > max_len:
                    content = content[:max_len] + TRUNCATION_MARKER
                yield SearchMatch(file=rel_path, line_number=line_number, line_content=content)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_directory(self, path: str) -> ResolvedPath:
        resolved = self.resolver.resolve(path)
        try:
            st = os.stat(resolved.absolute)
        except FileNotFoundError:
            raise FileMissingError(resolved.relative or path)
        except OSError as e:
            raise FileOperationError("stat", resolved.absolute, e) from e
        if not stat.S_ISDIR(st.st_mode):
            raise NotDirectoryError(resolved.relative or path)
        return resolved
