"""
Workspace file reader.
"""

import logging
import os
import stat
from typing import Optional

from workspace_sandbox.exceptions import (
    BinaryContentError,
    FileMissingError,
    FileOperationError,
    InvalidInputError,
    IsDirectoryError,
)
from workspace_sandbox.filesystem.checksum import ChecksumStore
from workspace_sandbox.filesystem.content import check_size, is_binary_content
from workspace_sandbox.filesystem.models import ReadResult
from workspace_sandbox.filesystem.paths import PathResolver
from workspace_sandbox.settings.config import ToolsConfig

logger = logging.getLogger(__name__)


class WorkspaceFileReader:
    """
    Reads text files inside the workspace.

    A read that covers the whole file records its checksum, which later
    lets ``WorkspaceFileWriter.edit_file`` detect external modifications.

    Usage:
        reader = WorkspaceFileReader(resolver, ToolsConfig(), ChecksumStore())
        result = reader.read_file("src/main.py")
        print(result.content)
    """

    def __init__(
        self,
        resolver: PathResolver,
        config: ToolsConfig,
        checksums: ChecksumStore,
    ):
        """
        Initialize the file reader.

        Args:
            resolver: Workspace path resolver
            config: Tool limits
            checksums: Session checksum store shared with the writer
        """
        self.resolver = resolver
        self.config = config
        self.checksums = checksums

    def read_file(
        self, path: str, offset: int = 0, limit: Optional[int] = None
    ) -> ReadResult:
        """
        Read a text file, optionally a byte range of it.

        Args:
            path: Workspace path of the file
            offset: Byte offset to start reading at
            limit: Maximum number of bytes to read (0 or None reads to the end)

        Returns:
            ReadResult with the decoded content

        Raises:
            InvalidInputError: If offset or limit is negative
            FileMissingError: If the file does not exist
            IsDirectoryError: If the path is a directory
            FileTooLargeError: If the file exceeds ``max_file_size``
            BinaryContentError: If the content is binary
            FileOperationError: If the file cannot be read
        """
        if offset < 0:
            raise InvalidInputError("offset must not be negative", field="offset")
        if limit is not None and limit < 0:
            raise InvalidInputError("limit must not be negative", field="limit")

        resolved = self.resolver.resolve(path)
        abs_path = resolved.absolute

        try:
            st = os.stat(abs_path)
        except FileNotFoundError:
            raise FileMissingError(resolved.relative or path)
        except OSError as e:
            raise FileOperationError("stat", abs_path, e) from e

        if stat.S_ISDIR(st.st_mode):
            raise IsDirectoryError(resolved.relative or path)

        check_size(resolved.relative, st.st_size, self.config.max_file_size)

        try:
            with open(abs_path, "rb") as f:
                if offset:
                    f.seek(offset)
                data = f.read(limit) if limit else f.read()
        except OSError as e:
            raise FileOperationError("read", abs_path, e) from e

        if is_binary_content(data, self.config.binary_detection_sample_size):
            raise BinaryContentError(resolved.relative)

        if offset == 0 and len(data) == st.st_size:
            self.checksums.update(abs_path, ChecksumStore.compute(data))

        truncated = offset + len(data) < st.st_size
        logger.debug(
            f"Read {len(data)} bytes from {resolved.relative} "
            f"(offset={offset}, truncated={truncated})"
        )

        return ReadResult(
            content=data.decode("utf-8", errors="replace"),
            size=st.st_size,
            truncated=truncated,
            offset=offset,
            relative_path=resolved.relative,
            absolute_path=abs_path,
        )
