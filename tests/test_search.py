"""
Tests for directory listing, file finding and content search.
"""

import asyncio
import os
import stat
import tempfile
import threading
from pathlib import Path

import pytest

from workspace_sandbox.exceptions import (
    FileMissingError,
    InvalidInputError,
    NotDirectoryError,
    OperationCancelledError,
    OutsideWorkspaceError,
    SearchError,
    ToolError,
)
from workspace_sandbox.filesystem import (
    IgnoreMatcher,
    NoOpIgnoreMatcher,
    PathResolver,
    WorkspaceSearchTools,
    canonicalise_root,
)
from workspace_sandbox.filesystem.pagination import normalize_limit, paginate
from workspace_sandbox.settings import ToolsConfig

FAKE_FD = """#!/bin/sh
if [ -n "$FAKE_FD_LOG" ]; then
  printf '%s\\n' "$@" > "$FAKE_FD_LOG"
fi
pattern="$2"
dir="$3"
shift 3
depth=""
while [ $# -gt 0 ]; do
  case "$1" in
    --max-depth) depth="$2"; shift 2 ;;
    *) shift ;;
  esac
done
if [ -n "$depth" ]; then
  find "$dir" -mindepth 1 -maxdepth "$depth" -name "$pattern"
else
  find "$dir" -mindepth 1 -name "$pattern"
fi
"""


def _write_script(path: Path, body: str) -> str:
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(canonicalise_root(tmpdir))


@pytest.fixture
def root(temp_dir):
    """
    Populate a workspace:

        .gitignore          (build/, *.log)
        README.md
        debug.log           (ignored)
        build/out.txt       (ignored)
        src/main.py
        src/util/helpers.py
    """
    workspace = temp_dir / "workspace"
    (workspace / "src" / "util").mkdir(parents=True)
    (workspace / "build").mkdir()
    (workspace / ".gitignore").write_text("build/\n*.log\n")
    (workspace / "README.md").write_text("# Demo\n")
    (workspace / "debug.log").write_text("hello from log\n")
    (workspace / "build" / "out.txt").write_text("artifact\n")
    (workspace / "src" / "main.py").write_text("def main():\n    print('hello')\n")
    (workspace / "src" / "util" / "helpers.py").write_text(
        "def helper():\n    return 'Hello'\n"
    )
    return workspace


@pytest.fixture
def config():
    """Create a test tools configuration."""
    return ToolsConfig()


def make_tools(root: Path, config: ToolsConfig) -> WorkspaceSearchTools:
    resolver = PathResolver(str(root))
    return WorkspaceSearchTools(resolver, config, IgnoreMatcher.from_workspace(str(root)))


@pytest.fixture
def search(root, config):
    """Create a WorkspaceSearchTools instance honouring .gitignore."""
    return make_tools(root, config)


def paths(result):
    return [e.relative_path for e in result.entries]


class TestPagination:
    """Test pagination helpers."""

    def test_paginate(self):
        page, total, has_more = paginate(list(range(10)), 2, 3)
        assert page == [2, 3, 4]
        assert total == 10
        assert has_more is True

    def test_last_page(self):
        page, total, has_more = paginate(list(range(10)), 8, 5)
        assert page == [8, 9]
        assert has_more is False

    def test_offset_past_end(self):
        assert paginate([1, 2], 5, 10) == ([], 2, False)

    def test_negative_offset(self):
        with pytest.raises(InvalidInputError):
            paginate([1], -1, 10)

    def test_normalize_limit(self):
        assert normalize_limit(0, 100, 1000) == 100
        assert normalize_limit(50, 100, 1000) == 50
        with pytest.raises(InvalidInputError):
            normalize_limit(1001, 100, 1000)
        with pytest.raises(InvalidInputError):
            normalize_limit(-1, 100, 1000)


class TestIgnoreMatcher:
    """Test gitignore matching."""

    def test_patterns(self):
        matcher = IgnoreMatcher.from_lines(["build/", "*.log", "!keep.log"])
        assert matcher.should_ignore("build", is_dir=True)
        assert matcher.should_ignore("build/out.txt")
        assert matcher.should_ignore("logs/debug.log")
        assert not matcher.should_ignore("keep.log")
        assert not matcher.should_ignore("src/main.py")
        assert not matcher.should_ignore("")

    def test_directory_pattern_does_not_match_file(self):
        matcher = IgnoreMatcher.from_lines(["build/"])
        assert not matcher.should_ignore("build", is_dir=False)

    def test_missing_gitignore(self, temp_dir):
        assert isinstance(IgnoreMatcher.from_workspace(str(temp_dir)), NoOpIgnoreMatcher)


class TestListDirectory:
    """Test WorkspaceSearchTools.list_directory."""

    def test_current_level_only(self, search):
        result = search.list_directory("")
        assert paths(result) == ["src", ".gitignore", "README.md"]
        assert result.entries[0].is_dir is True
        assert result.truncated is False
        assert result.truncation_reason is None
        assert result.limit == 1000

    def test_unlimited_depth(self, search):
        result = search.list_directory("", max_depth=-1)
        assert paths(result) == [
            "src",
            "src/util",
            ".gitignore",
            "README.md",
            "src/main.py",
            "src/util/helpers.py",
        ]

    def test_depth_one(self, search):
        result = search.list_directory("", max_depth=1)
        assert "src/main.py" in paths(result)
        assert "src/util" in paths(result)
        assert "src/util/helpers.py" not in paths(result)

    def test_subdirectory(self, search):
        result = search.list_directory("src")
        assert result.directory_path == "src"
        assert paths(result) == ["src/util", "src/main.py"]

    def test_include_ignored(self, search):
        result = search.list_directory("", max_depth=-1, include_ignored=True)
        assert "build" in paths(result)
        assert "build/out.txt" in paths(result)
        assert "debug.log" in paths(result)

    def test_symlink_cycle(self, root, search):
        """A link back to an ancestor does not cause infinite recursion."""
        (root / "src" / "loop").symlink_to(root)
        result = search.list_directory("", max_depth=-1)
        assert "src/loop" in paths(result)
        assert not any(p.startswith("src/loop/") for p in paths(result))

    def test_symlink_to_directory_is_directory(self, root, search):
        (root / "lib").symlink_to(root / "src" / "util")
        result = search.list_directory("")
        entry = next(e for e in result.entries if e.relative_path == "lib")
        assert entry.is_dir is True

    def test_symlink_outside_not_descended(self, temp_dir, root, search):
        outside = temp_dir / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("secret")
        (root / "ext").symlink_to(outside)

        result = search.list_directory("", max_depth=-1)
        assert "ext" in paths(result)
        assert "ext/secret.txt" not in paths(result)

    def test_max_results_cap(self, root):
        tools = make_tools(root, ToolsConfig(max_list_directory_results=3))
        result = tools.list_directory("", max_depth=-1)
        assert result.total_count == 3
        assert result.truncated is True
        assert result.truncation_reason == "max_results"

    def test_pagination(self, search):
        first = search.list_directory("", max_depth=-1, limit=2)
        assert paths(first) == ["src", "src/util"]
        assert first.total_count == 6
        assert first.truncated is True
        assert first.truncation_reason == "pagination"

        last = search.list_directory("", max_depth=-1, offset=4, limit=2)
        assert paths(last) == ["src/main.py", "src/util/helpers.py"]
        assert last.truncated is False

    def test_limit_above_max(self, search):
        with pytest.raises(InvalidInputError):
            search.list_directory("", limit=10_001)

    def test_cancelled(self, search):
        event = threading.Event()
        event.set()
        with pytest.raises(OperationCancelledError):
            search.list_directory("", max_depth=-1, cancel_event=event)

    def test_cancellation_is_not_tool_error(self):
        assert not issubclass(OperationCancelledError, ToolError)

    def test_not_directory(self, search):
        with pytest.raises(NotDirectoryError):
            search.list_directory("README.md")

    def test_missing_directory(self, search):
        with pytest.raises(FileMissingError):
            search.list_directory("nope")

    def test_outside_workspace(self, search):
        with pytest.raises(OutsideWorkspaceError):
            search.list_directory("..")


class TestFindFiles:
    """Test WorkspaceSearchTools.find_files with a fake fd."""

    @pytest.fixture
    def fd_config(self, temp_dir):
        fd = _write_script(temp_dir / "fake-fd", FAKE_FD)
        return ToolsConfig(find_command=fd)

    @pytest.mark.asyncio
    async def test_find_python_files(self, root, fd_config):
        tools = make_tools(root, fd_config)
        result = await tools.find_files("*.py")
        assert result.matches == ["src/main.py", "src/util/helpers.py"]
        assert result.total_count == 2
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_command_line(self, root, temp_dir, fd_config, monkeypatch):
        """The pattern is one argv element and flags follow the directory."""
        log = temp_dir / "fd-args.txt"
        monkeypatch.setenv("FAKE_FD_LOG", str(log))
        tools = make_tools(root, fd_config)

        await tools.find_files("*.py", search_path="src", max_depth=2, include_ignored=True)

        args = log.read_text().splitlines()
        assert args == [
            "--glob",
            "*.py",
            str(root / "src"),
            "--no-ignore",
            "--hidden",
            "--max-depth",
            "2",
        ]

    @pytest.mark.asyncio
    async def test_pattern_not_interpreted_by_shell(self, root, fd_config):
        tools = make_tools(root, fd_config)
        result = await tools.find_files("*.py; touch pwned")
        assert result.matches == []
        assert not (root / "pwned").exists()

    @pytest.mark.asyncio
    async def test_pagination(self, root, fd_config):
        tools = make_tools(root, fd_config)
        result = await tools.find_files("*.py", limit=1)
        assert result.matches == ["src/main.py"]
        assert result.total_count == 2
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_results_outside_workspace_dropped(self, root, temp_dir):
        fd = _write_script(
            temp_dir / "leaky-fd",
            '#!/bin/sh\necho /etc/passwd\necho "$3/README.md"\n',
        )
        tools = make_tools(root, ToolsConfig(find_command=fd))
        result = await tools.find_files("*")
        assert result.matches == ["README.md"]

    @pytest.mark.asyncio
    async def test_cancel_kills_find_command(self, root, temp_dir):
        """Cancelling the awaiting task kills and reaps the find process."""
        pid_file = temp_dir / "fd.pid"
        fd = _write_script(
            temp_dir / "slow-fd",
            f"#!/bin/sh\necho $$ > {pid_file}\nexec sleep 30\n",
        )
        tools = make_tools(root, ToolsConfig(find_command=fd))

        task = asyncio.create_task(tools.find_files("*.py"))
        for _ in range(100):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.05)
        pid = int(pid_file.read_text())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    @pytest.mark.asyncio
    async def test_result_cap(self, root, fd_config):
        tools = make_tools(
            root, fd_config.model_copy(update={"max_find_file_results": 1})
        )
        result = await tools.find_files("*.py")
        assert result.total_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pattern", ["", "/etc/*", "../*.py", "src/../../x"])
    async def test_invalid_patterns(self, search, pattern):
        with pytest.raises(InvalidInputError):
            await search.find_files(pattern)

    @pytest.mark.asyncio
    async def test_missing_command(self, root):
        tools = make_tools(root, ToolsConfig(find_command="/nonexistent/fd"))
        with pytest.raises(SearchError):
            await tools.find_files("*.py")

    @pytest.mark.asyncio
    async def test_failing_command(self, root, temp_dir):
        fd = _write_script(temp_dir / "bad-fd", "#!/bin/sh\necho boom >&2\nexit 2\n")
        tools = make_tools(root, ToolsConfig(find_command=fd))
        with pytest.raises(SearchError, match="boom"):
            await tools.find_files("*.py")

    @pytest.mark.asyncio
    async def test_search_path_must_be_directory(self, root, fd_config):
        tools = make_tools(root, fd_config)
        with pytest.raises(NotDirectoryError):
            await tools.find_files("*.py", search_path="README.md")


class TestSearchContent:
    """Test WorkspaceSearchTools.search_content."""

    def test_case_sensitive(self, search):
        result = search.search_content("hello")
        assert [(m.file, m.line_number) for m in result.matches] == [("src/main.py", 2)]
        assert result.matches[0].line_content == "print('hello')"

    def test_case_insensitive(self, search):
        result = search.search_content("hello", case_sensitive=False)
        assert [(m.file, m.line_number) for m in result.matches] == [
            ("src/main.py", 2),
            ("src/util/helpers.py", 2),
        ]

    def test_ignored_files_skipped_unless_requested(self, search):
        assert "debug.log" not in [m.file for m in search.search_content("hello").matches]
        result = search.search_content("hello", include_ignored=True)
        assert result.matches[0].file == "debug.log"

    def test_sorted_by_file_then_line(self, root, search):
        (root / "a.txt").write_text("x1\nnothing\nx2\n")
        result = search.search_content(r"^x\d")
        assert [(m.file, m.line_number) for m in result.matches] == [
            ("a.txt", 1),
            ("a.txt", 3),
        ]

    def test_regex(self, search):
        result = search.search_content(r"def \w+\(\)")
        assert result.total_count == 2

    def test_invalid_regex(self, search):
        with pytest.raises(InvalidInputError):
            search.search_content("(unclosed")

    def test_binary_files_skipped(self, root, search):
        (root / "blob.bin").write_bytes(b"hello\x00world")
        result = search.search_content("hello")
        assert "blob.bin" not in [m.file for m in result.matches]

    def test_long_lines_truncated(self, root):
        (root / "long.txt").write_text("x" * 50 + "needle\n")
        tools = make_tools(root, ToolsConfig(max_line_length=10))
        result = tools.search_content("needle")
        assert result.matches[0].line_content == "x" * 10 + "...[truncated]"

    def test_result_cap_and_pagination(self, root):
        (root / "many.txt").write_text("hit\n" * 20)
        tools = make_tools(root, ToolsConfig(max_search_content_results=5))
        result = tools.search_content("hit", limit=2)
        assert result.total_count == 5
        assert len(result.matches) == 2
        assert result.truncated is True

    def test_cancelled(self, search):
        event = threading.Event()
        event.set()
        with pytest.raises(OperationCancelledError):
            search.search_content("hello", cancel_event=event)
