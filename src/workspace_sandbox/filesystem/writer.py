"""
Workspace file writer and editor.

Writes never overwrite, edits never clobber: ``write_file`` refuses existing
targets, and ``edit_file`` refuses to touch a file whose content changed
since this session last read or wrote it.
"""

import difflib
import logging
import os
import stat
from typing import Optional, Sequence, Union

from workspace_sandbox.exceptions import (
    BinaryContentError,
    EditConflictError,
    FileExistsConflictError,
    FileMissingError,
    FileOperationError,
    InvalidInputError,
    IsDirectoryError,
    ReplacementCountMismatchError,
    SnippetNotFoundError,
)
from workspace_sandbox.filesystem.atomic import ensure_dirs, write_atomic
from workspace_sandbox.filesystem.checksum import ChecksumStore
from workspace_sandbox.filesystem.content import check_size, is_binary_content
from workspace_sandbox.filesystem.models import EditOperation, EditResult, WriteResult
from workspace_sandbox.filesystem.paths import PathResolver
from workspace_sandbox.settings.config import ToolsConfig

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


class WorkspaceFileWriter:
    """
    Creates and edits text files inside the workspace.

    Usage:
        writer = WorkspaceFileWriter(resolver, ToolsConfig(), checksums)
        writer.write_file("notes/todo.md", "- ship it\\n")
        writer.edit_file(
            "notes/todo.md",
            [EditOperation(before="ship it", after="ship it today")],
        )
    """

    def __init__(
        self,
        resolver: PathResolver,
        config: ToolsConfig,
        checksums: ChecksumStore,
    ):
        """
        Initialize the file writer.

        Args:
            resolver: Workspace path resolver
            config: Tool limits
            checksums: Session checksum store shared with the reader
        """
        self.resolver = resolver
        self.config = config
        self.checksums = checksums

    def write_file(
        self, path: str, content: str, mode: Optional[int] = None
    ) -> WriteResult:
        """
        Create a new file.

        Missing parent directories are created.

        Args:
            path: Workspace path of the new file
            content: Text content
            mode: Permission bits (default 0o644)

        Returns:
            WriteResult

        Raises:
            InvalidInputError: If mode is outside 0..0o777
            FileExistsConflictError: If the target already exists
            BinaryContentError: If the content is binary
            FileTooLargeError: If the content exceeds ``max_file_size``
            FileOperationError: If creating directories or writing fails
        """
        if mode is None or mode == 0:
            mode = DEFAULT_FILE_MODE
        if mode < 0 or mode > 0o777:
            raise InvalidInputError(f"invalid file mode: {mode:o}", field="mode")

        resolved = self.resolver.resolve(path)
        abs_path = resolved.absolute

        if os.path.lexists(abs_path):
            raise FileExistsConflictError(resolved.relative)

        data = content.encode("utf-8")
        if is_binary_content(data, self.config.binary_detection_sample_size):
            raise BinaryContentError(resolved.relative)
        check_size(resolved.relative, len(data), self.config.max_file_size)

        parent = os.path.dirname(abs_path)
        try:
            ensure_dirs(parent)
        except OSError as e:
            raise FileOperationError("create directory", parent, e) from e

        try:
            write_atomic(abs_path, data, mode)
        except OSError as e:
            logger.error(f"Failed to write file {abs_path}: {e}")
            raise FileOperationError("write", abs_path, e) from e

        self.checksums.update(abs_path, ChecksumStore.compute(data))
        logger.info(f"Wrote file: {resolved.relative} ({len(data)} bytes)")

        return WriteResult(
            bytes_written=len(data),
            mode=mode,
            relative_path=resolved.relative,
            absolute_path=abs_path,
        )

    def edit_file(
        self,
        path: str,
        operations: Sequence[Union[EditOperation, dict]],
    ) -> EditResult:
        """
        Apply search-and-replace operations to an existing file.

        Operations run in order against an in-memory copy; each sees the
        result of the previous ones. Nothing is written unless every
        operation succeeds. Line endings are matched as LF and a CRLF file
        keeps its CRLF endings.

        Args:
            path: Workspace path of the file
            operations: Edit operations (models or plain dicts)

        Returns:
            EditResult including a unified diff

        Raises:
            InvalidInputError: If no operations are given
            FileMissingError: If the file does not exist
            IsDirectoryError: If the path is a directory
            BinaryContentError: If the file is binary
            EditConflictError: If the file changed since it was last read
            SnippetNotFoundError: If an operation's text does not occur
            ReplacementCountMismatchError: If an occurrence count is wrong
            FileTooLargeError: If the result exceeds ``max_file_size``
            FileOperationError: If reading or writing fails
        """
        ops = [
            op if isinstance(op, EditOperation) else EditOperation(**op)
            for op in operations
        ]
        if not ops:
            raise InvalidInputError("at least one operation is required", field="operations")

        resolved = self.resolver.resolve(path)
        abs_path = resolved.absolute
        rel_path = resolved.relative

        try:
            st = os.stat(abs_path)
        except FileNotFoundError:
            raise FileMissingError(rel_path or path)
        except OSError as e:
            raise FileOperationError("stat", abs_path, e) from e
        if stat.S_ISDIR(st.st_mode):
            raise IsDirectoryError(rel_path or path)
        check_size(rel_path, st.st_size, self.config.max_file_size)

        raw = self._read_all(abs_path)
        if is_binary_content(raw, self.config.binary_detection_sample_size):
            raise BinaryContentError(rel_path)

        prior = self.checksums.get(abs_path)
        if prior is not None and prior != ChecksumStore.compute(raw):
            logger.warning(f"Edit conflict on {rel_path}: changed since last read")
            raise EditConflictError(rel_path)

        # Undecodable bytes round-trip unchanged through surrogate escapes
        text = raw.decode("utf-8", errors="surrogateescape")
        has_crlf = "\r\n" in text
        original = text.replace("\r\n", "\n")

        content = original
        for index, op in enumerate(ops, start=1):
            content = self._apply(content, op, rel_path, index)

        final = content.replace("\n", "\r\n") if has_crlf else content
        try:
            data = final.encode("utf-8", errors="surrogateescape")
        except UnicodeEncodeError as e:
            raise InvalidInputError(f"replacement text is not valid text: {e}", field="operations") from e
        check_size(rel_path, len(data), self.config.max_file_size)

        if prior is not None:
            # Re-verify right before the write to narrow the race window
            if ChecksumStore.compute(self._read_all(abs_path)) != prior:
                logger.warning(f"Edit conflict on {rel_path}: changed during edit")
                raise EditConflictError(rel_path)

        try:
            write_atomic(abs_path, data, stat.S_IMODE(st.st_mode) & 0o777)
        except OSError as e:
            logger.error(f"Failed to write file {abs_path}: {e}")
            raise FileOperationError("write", abs_path, e) from e

        self.checksums.update(abs_path, ChecksumStore.compute(data))

        diff, added, removed = unified_diff(os.path.basename(abs_path), original, content)
        logger.info(
            f"Edited file: {rel_path} ({len(ops)} operations, +{added} -{removed})"
        )

        return EditResult(
            operations_applied=len(ops),
            file_size=len(data),
            diff=diff,
            added_lines=added,
            removed_lines=removed,
            relative_path=rel_path,
            absolute_path=abs_path,
        )

    @staticmethod
    def _apply(content: str, op: EditOperation, path: str, index: int) -> str:
        before = op.before.replace("\r\n", "\n")
        after = op.after.replace("\r\n", "\n")

        if before == "":
            if op.expected_replacements is not None and op.expected_replacements != 1:
                raise ReplacementCountMismatchError(
                    path, op.expected_replacements, 1, index
                )
            return content + after

        count = content.count(before)
        if count == 0:
            raise SnippetNotFoundError(path, op.before, index)

        expected = op.expected_replacements
        if expected is None or expected <= 0:
            expected = 1
        if count != expected:
            raise ReplacementCountMismatchError(path, expected, count, index)

        return content.replace(before, after)

    @staticmethod
    def _read_all(abs_path: str) -> bytes:
        try:
            with open(abs_path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise FileMissingError(abs_path)
        except OSError as e:
            raise FileOperationError("read", abs_path, e) from e


def unified_diff(filename: str, old: str, new: str) -> tuple[str, int, int]:
    """
    Build a unified diff and count added/removed lines.

    Returns:
        Tuple of (diff text, added lines, removed lines)
    """
    lines = list(
        difflib.unified_diff(
            old.splitlines(keepends=True),
            new.splitlines(keepends=True),
            fromfile=f"a/{filename}",
            tofile=f"b/{filename}",
            n=3,
        )
    )
    # Skip the ---/+++ header pair
    body = lines[2:]
    added = sum(1 for line in body if line.startswith("+"))
    removed = sum(1 for line in body if line.startswith("-"))
    diff = "".join(line if line.endswith("\n") else line + "\n" for line in lines)
    diff = diff.encode("utf-8", errors="surrogateescape").decode("utf-8", errors="replace")
    return diff, added, removed
