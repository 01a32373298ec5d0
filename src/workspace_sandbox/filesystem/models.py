"""
Request and result types for the filesystem tools.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field


class EditOperation(BaseModel):
    """
    A single search-and-replace step of an edit.

    An empty ``before`` appends ``after`` to the end of the file.
    ``expected_replacements`` defaults to 1 when unset or non-positive.
    """

    before: str = Field(default="", description="Literal text to replace")
    after: str = Field(default="", description="Replacement text")
    expected_replacements: Optional[int] = Field(
        default=None,
        description="Exact number of occurrences of 'before' that must exist",
    )


class _ResultMixin:
    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ReadResult(_ResultMixin):
    content: str
    size: int
    truncated: bool
    offset: int
    relative_path: str
    absolute_path: str


@dataclass
class WriteResult(_ResultMixin):
    bytes_written: int
    mode: int
    relative_path: str
    absolute_path: str


@dataclass
class EditResult(_ResultMixin):
    operations_applied: int
    file_size: int
    diff: str
    added_lines: int
    removed_lines: int
    relative_path: str
    absolute_path: str


@dataclass
class DirectoryEntry(_ResultMixin):
    relative_path: str
    is_dir: bool


@dataclass
class ListResult(_ResultMixin):
    """Outcome of a directory listing."""

    directory_path: str
    entries: list[DirectoryEntry] = field(default_factory=list)
    total_count: int = 0
    truncated: bool = False
    truncation_reason: Optional[str] = None
    offset: int = 0
    limit: int = 0


@dataclass
class FindResult(_ResultMixin):
    matches: list[str] = field(default_factory=list)
    total_count: int = 0
    truncated: bool = False
    offset: int = 0
    limit: int = 0


@dataclass
class SearchMatch(_ResultMixin):
    file: str
    line_number: int
    line_content: str

    def __repr__(self) -> str:
        return f"{self.file}:{self.line_number}: {self.line_content}"


@dataclass
class SearchResult(_ResultMixin):
    matches: list[SearchMatch] = field(default_factory=list)
    total_count: int = 0
    truncated: bool = False
    offset: int = 0
    limit: int = 0
