"""
Workspace-confined filesystem tools.

Provides path resolution, text file read/write/edit with optimistic
concurrency, and directory listing, finding and content search.

Example:
    ```python
    from workspace_sandbox.filesystem import (
        ChecksumStore,
        PathResolver,
        WorkspaceFileReader,
        WorkspaceFileWriter,
        canonicalise_root,
    )
    from workspace_sandbox.settings import ToolsConfig

    resolver = PathResolver(canonicalise_root("/tmp/project"))
    checksums = ChecksumStore()
    reader = WorkspaceFileReader(resolver, ToolsConfig(), checksums)
    writer = WorkspaceFileWriter(resolver, ToolsConfig(), checksums)

    content = reader.read_file("README.md").content
    ```
"""

from workspace_sandbox.filesystem.checksum import ChecksumStore
from workspace_sandbox.filesystem.ignore import IgnoreMatcher, NoOpIgnoreMatcher
from workspace_sandbox.filesystem.models import (
    DirectoryEntry,
    EditOperation,
    EditResult,
    FindResult,
    ListResult,
    ReadResult,
    SearchMatch,
    SearchResult,
    WriteResult,
)
from workspace_sandbox.filesystem.paths import (
    PathResolver,
    ResolvedPath,
    canonicalise_root,
)
from workspace_sandbox.filesystem.reader import WorkspaceFileReader
from workspace_sandbox.filesystem.search import WorkspaceSearchTools
from workspace_sandbox.filesystem.writer import WorkspaceFileWriter

__all__ = [
    "ChecksumStore",
    "DirectoryEntry",
    "EditOperation",
    "EditResult",
    "FindResult",
    "IgnoreMatcher",
    "ListResult",
    "NoOpIgnoreMatcher",
    "PathResolver",
    "ReadResult",
    "ResolvedPath",
    "SearchMatch",
    "SearchResult",
    "WorkspaceFileReader",
    "WorkspaceFileWriter",
    "WorkspaceSearchTools",
    "WriteResult",
    "canonicalise_root",
]
