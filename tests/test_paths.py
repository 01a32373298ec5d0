"""
Tests for workspace path resolution.
"""

import os
import tempfile
from pathlib import Path

import pytest

from workspace_sandbox.exceptions import (
    OutsideWorkspaceError,
    SymlinkChainTooLongError,
    SymlinkLoopError,
    WorkspaceRootError,
    WorkspaceRootNotSetError,
)
from workspace_sandbox.filesystem.paths import PathResolver, canonicalise_root


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def root(temp_dir):
    """Canonical workspace root inside the temp directory."""
    workspace = temp_dir / "workspace"
    workspace.mkdir()
    return canonicalise_root(workspace)


@pytest.fixture
def outside(temp_dir):
    """A directory next to the workspace, outside of it."""
    path = temp_dir / "outside"
    path.mkdir()
    (path / "secret.txt").write_text("secret")
    return Path(os.path.realpath(path))


@pytest.fixture
def resolver(root):
    """Create a PathResolver for the workspace."""
    return PathResolver(root)


class TestCanonicaliseRoot:
    """Test workspace root canonicalisation."""

    def test_resolves_symlinked_root(self, temp_dir):
        """A root given through a symlink is stored in canonical form."""
        real = temp_dir / "real"
        real.mkdir()
        link = temp_dir / "link"
        link.symlink_to(real)

        assert canonicalise_root(link) == os.path.realpath(real)

    def test_missing_root(self, temp_dir):
        """A missing root is fatal."""
        with pytest.raises(WorkspaceRootError, match="does not exist"):
            canonicalise_root(temp_dir / "missing")

    def test_file_root(self, temp_dir):
        """A file is not a valid root."""
        f = temp_dir / "file.txt"
        f.write_text("x")
        with pytest.raises(WorkspaceRootError, match="not a directory"):
            canonicalise_root(f)


class TestPathResolver:
    """Test PathResolver boundary checks."""

    def test_root_aliases(self, resolver, root):
        """Empty string and '.' both mean the root, with an empty relative path."""
        for raw in ("", "."):
            resolved = resolver.resolve(raw)
            assert resolved.absolute == root
            assert resolved.relative == ""
            assert resolved.is_root

    def test_relative_path(self, resolver, root):
        """Relative paths are joined to the root."""
        resolved = resolver.resolve("src/main.py")
        assert resolved.absolute == os.path.join(root, "src", "main.py")
        assert resolved.relative == "src/main.py"

    def test_absolute_path_inside(self, resolver, root):
        """Absolute paths inside the root are accepted."""
        resolved = resolver.resolve(os.path.join(root, "a.txt"))
        assert resolved.relative == "a.txt"

    def test_absolute_path_outside(self, resolver, outside):
        """Absolute paths outside the root are rejected."""
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve(str(outside / "secret.txt"))

    def test_parent_traversal(self, resolver):
        """'..' that climbs above the root is rejected."""
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve("../outside/secret.txt")

    def test_parent_traversal_staying_inside(self, resolver):
        """'..' that stays inside the root is fine."""
        assert resolver.resolve("a/../b.txt").relative == "b.txt"

    def test_dotdot_inside_names(self, resolver, root):
        """Names that merely contain '..' are ordinary names."""
        assert resolver.resolve("..foo").relative == "..foo"
        assert resolver.resolve("a..b/c").relative == "a..b/c"

    def test_sibling_prefix_is_outside(self, resolver, root):
        """A sibling whose name extends the root name is outside."""
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve(root + "-evil/file.txt")

    def test_missing_components_allowed(self, resolver):
        """Paths that do not exist yet resolve."""
        assert resolver.resolve("new/dir/file.txt").relative == "new/dir/file.txt"

    def test_tilde_outside_workspace(self, resolver, monkeypatch, outside):
        """'~' expands to the home directory and is boundary checked."""
        monkeypatch.setenv("HOME", str(outside))
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve("~/secret.txt")

    def test_tilde_inside_workspace(self, resolver, monkeypatch, root):
        """A home directory inside the workspace resolves normally."""
        monkeypatch.setenv("HOME", root)
        assert resolver.resolve("~/notes.md").relative == "notes.md"
        assert resolver.resolve("~").relative == ""

    def test_root_not_set(self):
        """A resolver without root refuses to resolve."""
        with pytest.raises(WorkspaceRootNotSetError):
            PathResolver(None).resolve("a.txt")

    def test_relative_helper(self, resolver, root):
        """relative() converts absolute in-workspace paths."""
        assert resolver.relative(root) == ""
        assert resolver.relative(os.path.join(root, "x", "y")) == "x/y"
        with pytest.raises(OutsideWorkspaceError):
            resolver.relative("/")


class TestSymlinks:
    """Test symlink handling in PathResolver."""

    def test_symlink_inside(self, resolver, root):
        """A link to a file inside the workspace resolves to the target."""
        Path(root, "real.txt").write_text("x")
        Path(root, "link.txt").symlink_to("real.txt")

        resolved = resolver.resolve("link.txt")
        assert resolved.relative == "real.txt"

    def test_symlink_outside(self, resolver, root, outside):
        """A link pointing outside is rejected."""
        Path(root, "escape").symlink_to(outside / "secret.txt")
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve("escape")

    def test_symlinked_directory_outside(self, resolver, root, outside):
        """A path through a directory link to the outside is rejected."""
        Path(root, "dir").symlink_to(outside)
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve("dir/secret.txt")
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve("dir/new-file.txt")

    def test_dangling_symlink_inside(self, resolver, root):
        """A dangling link whose target is inside resolves."""
        Path(root, "dangling").symlink_to("not-yet.txt")
        assert resolver.resolve("dangling").relative == "not-yet.txt"

    def test_dangling_symlink_through_escaping_parent(self, resolver, root, outside):
        """A dangling target reached through an escaping directory link is rejected."""
        Path(root, "out").symlink_to(outside)
        Path(root, "trap").symlink_to("out/created-later.txt")
        with pytest.raises(OutsideWorkspaceError):
            resolver.resolve("trap")

    def test_symlink_loop(self, resolver, root):
        """A cycle of links is detected."""
        Path(root, "a").symlink_to("b")
        Path(root, "b").symlink_to("a")
        with pytest.raises(SymlinkLoopError):
            resolver.resolve("a")

    def _make_chain(self, root, length):
        Path(root, "target.txt").write_text("x")
        previous = "target.txt"
        for i in range(length):
            name = f"link{i}"
            Path(root, name).symlink_to(previous)
            previous = name
        return previous

    def test_chain_at_limit(self, root):
        """A chain of exactly max hops resolves."""
        resolver = PathResolver(root, max_symlink_hops=5)
        head = self._make_chain(root, 5)
        assert resolver.resolve(head).relative == "target.txt"

    def test_chain_over_limit(self, root):
        """One hop more than the maximum fails."""
        resolver = PathResolver(root, max_symlink_hops=5)
        head = self._make_chain(root, 6)
        with pytest.raises(SymlinkChainTooLongError):
            resolver.resolve(head)

    def test_default_limit_is_64(self, resolver, root):
        """The default limit accepts a 64-link chain and rejects 65."""
        head = self._make_chain(root, 65)
        with pytest.raises(SymlinkChainTooLongError):
            resolver.resolve(head)
        assert resolver.resolve("link63").relative == "target.txt"
