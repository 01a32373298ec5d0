"""
Exceptions for workspace sandbox operations.

Every expected tool outcome (missing file, edit conflict, timeout, ...) is a
``ToolError`` carrying an ``ErrorCode``. Callers recognise failures by code
or class, never by message text. ``OperationCancelledError`` and
``WorkspaceRootError`` are deliberately *not* tool errors: they abort the
enclosing agent turn instead of being reported back to the model.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Tagged error variants reported to tool callers."""

    INVALID_INPUT = "invalid_input"
    OUTSIDE_WORKSPACE = "outside_workspace"
    WORKSPACE_ROOT_NOT_SET = "workspace_root_not_set"
    SYMLINK_LOOP = "symlink_loop"
    SYMLINK_CHAIN_TOO_LONG = "symlink_chain_too_long"
    PATH_RESOLUTION = "path_resolution"
    FILE_MISSING = "file_missing"
    FILE_EXISTS = "file_exists"
    IS_DIRECTORY = "is_directory"
    NOT_DIRECTORY = "not_directory"
    BINARY_CONTENT = "binary_content"
    TOO_LARGE = "too_large"
    EDIT_CONFLICT = "edit_conflict"
    SNIPPET_NOT_FOUND = "snippet_not_found"
    REPLACEMENT_COUNT_MISMATCH = "replacement_count_mismatch"
    IO_ERROR = "io_error"
    SEARCH_FAILED = "search_failed"
    ENV_FILE = "env_file"
    COMMAND_START = "command_start"
    COMMAND_TIMEOUT = "command_timeout"
    CONTAINER_RUNTIME = "container_runtime"


class SandboxError(Exception):
    """Base exception for all workspace sandbox errors."""

    pass


class WorkspaceRootError(SandboxError):
    """Raised at startup when the workspace root is missing or not a directory."""

    def __init__(self, root: str, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(f"Invalid workspace root {root}: {reason}")


class OperationCancelledError(SandboxError):
    """Raised when the caller cancelled an in-flight operation."""

    def __init__(self, operation: str, result: Any = None):
        self.operation = operation
        self.result = result
        super().__init__(f"Operation cancelled: {operation}")


class ToolError(SandboxError):
    """
    Base class for typed, non-fatal tool failures.

    Attributes:
        code: Machine readable error variant
        path: Path the failure relates to (if any)
    """

    code: ErrorCode = ErrorCode.IO_ERROR

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class InvalidInputError(ToolError):
    """Raised when a request is rejected before any I/O happens."""

    code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


# Path resolution


class OutsideWorkspaceError(ToolError):
    """Raised when a path resolves outside the workspace root."""

    code = ErrorCode.OUTSIDE_WORKSPACE

    def __init__(self, path: str):
        super().__init__(f"Path is outside workspace root: {path}", path=path)


class WorkspaceRootNotSetError(ToolError):
    """Raised when a resolver is used without a workspace root."""

    code = ErrorCode.WORKSPACE_ROOT_NOT_SET

    def __init__(self):
        super().__init__("Workspace root not set")


class SymlinkLoopError(ToolError):
    """Raised when a symlink chain revisits a path."""

    code = ErrorCode.SYMLINK_LOOP

    def __init__(self, path: str):
        super().__init__(f"Symlink loop detected: {path}", path=path)


class SymlinkChainTooLongError(ToolError):
    """Raised when a symlink chain exceeds the hop limit."""

    code = ErrorCode.SYMLINK_CHAIN_TOO_LONG

    def __init__(self, path: str, max_hops: int):
        self.max_hops = max_hops
        super().__init__(
            f"Symlink chain too long (max {max_hops} hops): {path}", path=path
        )


class PathResolutionError(ToolError):
    """Raised when stat/readlink/home lookup fails during resolution."""

    code = ErrorCode.PATH_RESOLUTION

    def __init__(self, path: str, cause: BaseException):
        self.cause = cause
        super().__init__(f"Failed to resolve path {path}: {cause}", path=path)


# File operations


class FileMissingError(ToolError):
    """Raised when a file or directory does not exist."""

    code = ErrorCode.FILE_MISSING

    def __init__(self, path: str):
        super().__init__(f"Path does not exist: {path}", path=path)


class FileExistsConflictError(ToolError):
    """Raised when a write would overwrite an existing file."""

    code = ErrorCode.FILE_EXISTS

    def __init__(self, path: str):
        super().__init__(f"File already exists: {path}", path=path)


class IsDirectoryError(ToolError):
    """Raised when a file was expected but the path is a directory."""

    code = ErrorCode.IS_DIRECTORY

    def __init__(self, path: str):
        super().__init__(f"Path is a directory: {path}", path=path)


class NotDirectoryError(ToolError):
    """Raised when a directory was expected."""

    code = ErrorCode.NOT_DIRECTORY

    def __init__(self, path: str):
        super().__init__(f"Path is not a directory: {path}", path=path)


class BinaryContentError(ToolError):
    """Raised when binary content is read or written."""

    code = ErrorCode.BINARY_CONTENT

    def __init__(self, path: str):
        super().__init__(f"Binary file not supported: {path}", path=path)


class FileTooLargeError(ToolError):
    """Raised when a file or content exceeds the size limit."""

    code = ErrorCode.TOO_LARGE

    def __init__(self, path: str, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"File too large ({size} bytes > {limit} bytes): {path}", path=path
        )


class EditConflictError(ToolError):
    """Raised when a file changed on disk since it was last read."""

    code = ErrorCode.EDIT_CONFLICT

    def __init__(self, path: str):
        super().__init__(
            f"Edit conflict: file was modified since last read: {path}", path=path
        )


class SnippetNotFoundError(ToolError):
    """Raised when an edit's ``before`` text does not occur in the file."""

    code = ErrorCode.SNIPPET_NOT_FOUND

    def __init__(self, path: str, snippet: str, operation_index: int):
        self.snippet = snippet
        self.operation_index = operation_index
        super().__init__(
            f"Operation {operation_index}: snippet not found in {path}: {snippet!r}",
            path=path,
        )


class ReplacementCountMismatchError(ToolError):
    """Raised when the occurrence count differs from the expected count."""

    code = ErrorCode.REPLACEMENT_COUNT_MISMATCH

    def __init__(self, path: str, expected: int, actual: int, operation_index: int):
        self.expected = expected
        self.actual = actual
        self.operation_index = operation_index
        super().__init__(
            f"Operation {operation_index}: expected {expected} replacement(s) "
            f"in {path}, found {actual}",
            path=path,
        )


class FileOperationError(ToolError):
    """Wraps an OS-level failure (stat, read, write, mkdir) with its path."""

    code = ErrorCode.IO_ERROR

    def __init__(self, operation: str, path: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation} {path}: {cause}", path=path)


# Search


class SearchError(ToolError):
    """Raised when a find or search operation fails."""

    code = ErrorCode.SEARCH_FAILED


# Command execution


class EnvFileError(ToolError):
    """Raised when an env file cannot be read or parsed."""

    code = ErrorCode.ENV_FILE

    def __init__(self, path: str, reason: str):
        self.reason = reason
        super().__init__(f"Invalid env file {path}: {reason}", path=path)


class CommandStartError(ToolError):
    """Raised when a child process cannot be spawned."""

    code = ErrorCode.COMMAND_START

    def __init__(self, command: str, cause: BaseException):
        self.command = command
        self.cause = cause
        super().__init__(f"Failed to start command {command!r}: {cause}")


class CommandTimeoutError(ToolError):
    """Raised when a command exceeded its timeout. Carries the partial result."""

    code = ErrorCode.COMMAND_TIMEOUT

    def __init__(self, command: str, timeout: float, result: Any = None):
        self.command = command
        self.timeout = timeout
        self.result = result
        super().__init__(f"Command {command!r} timed out after {timeout:g}s")


class ContainerRuntimeError(ToolError):
    """Raised when the container runtime never became ready."""

    code = ErrorCode.CONTAINER_RUNTIME

    def __init__(self, message: str, *, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(message)
