"""Tests for PathSandbox - containment and hidden-segment checks."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from treeward.errors import (
    HiddenSegmentError,
    InvalidArgumentsError,
    NotDirectoryError,
    PathEscapeError,
    PathNotFoundError,
)
from treeward.sandbox import PathSandbox, Require, ResolvedPath


class TestResolveInsideRoot:
    """Inputs that must resolve successfully."""

    def test_root_itself(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should accept the root as an absolute path."""
        resolved = sandbox.resolve(str(project_root))
        assert resolved.path == project_root.resolve()
        assert resolved.relative == "."

    def test_empty_means_root(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should treat an empty path as the root."""
        assert sandbox.resolve("").path == project_root.resolve()
        assert sandbox.resolve("   ").path == project_root.resolve()

    def test_relative_is_joined_to_root(
        self, sandbox: PathSandbox, project_root: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Should resolve relative input against the root, not the working directory."""
        monkeypatch.chdir(tmp_path)
        resolved = sandbox.resolve("src", require=Require.DIRECTORY)
        assert resolved.path == (project_root / "src").resolve()

    def test_dot_segments_are_collapsed(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should allow '..' that stays inside the root."""
        resolved = sandbox.resolve("src/pkg/../main.py", require=Require.FILE)
        assert resolved.path == (project_root / "src" / "main.py").resolve()

    def test_absolute_descendant(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should accept an absolute path below the root."""
        target = project_root / "README.md"
        assert sandbox.resolve(str(target), require=Require.FILE).path == target.resolve()

    def test_symlink_inside_root(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should follow a symlink whose target stays inside the root."""
        (project_root / "link").symlink_to(project_root / "src")
        resolved = sandbox.resolve("link/main.py", require=Require.FILE)
        assert resolved.path == (project_root / "src" / "main.py").resolve()

    def test_missing_path_allowed_for_write(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should accept a non-existent path when the caller may create it."""
        resolved = sandbox.resolve("new/dir/file.txt", require=Require.ANY)
        assert resolved.path == (project_root / "new" / "dir" / "file.txt").resolve()

    def test_root_with_hidden_ancestor(self, tmp_path: Path) -> None:
        """Should only check segments below the root, not the root's own ancestors."""
        root = tmp_path / ".config" / "proj"
        root.mkdir(parents=True)
        (root / "a.txt").write_text("a", encoding="utf-8")
        assert PathSandbox(root).resolve("a.txt", require=Require.FILE).relative == "a.txt"


class TestPathEscape:
    """Inputs that leave the root."""

    def test_dotdot_traversal(self, sandbox: PathSandbox) -> None:
        """Should reject '..' escapes."""
        with pytest.raises(PathEscapeError):
            sandbox.resolve("../outside.txt")

    def test_deep_dotdot_traversal(self, sandbox: PathSandbox) -> None:
        """Should reject escapes hidden behind legitimate segments."""
        with pytest.raises(PathEscapeError):
            sandbox.resolve("src/../../outside.txt", require=Require.ANY)

    def test_absolute_outside(self, sandbox: PathSandbox) -> None:
        """Should reject absolute paths outside the root."""
        with pytest.raises(PathEscapeError):
            sandbox.resolve("/etc/passwd")

    def test_filesystem_root(self, sandbox: PathSandbox) -> None:
        """Should reject the filesystem root."""
        with pytest.raises(PathEscapeError):
            sandbox.resolve(os.sep, require=Require.ANY)

    def test_sibling_with_common_prefix(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should reject a sibling directory whose name starts with the root's name."""
        sibling = project_root.parent / (project_root.name + "-other")
        sibling.mkdir()
        with pytest.raises(PathEscapeError):
            sandbox.resolve(str(sibling))

    def test_symlink_jump(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should reject paths that escape via symlink resolution."""
        (project_root / "escape_link").symlink_to(project_root.parent)
        with pytest.raises(PathEscapeError):
            sandbox.resolve("escape_link/outside.txt")

    def test_escape_wins_over_hidden(self, sandbox: PathSandbox, tmp_path: Path) -> None:
        """Should report escape for a path outside the root even if it is hidden."""
        hidden_outside = tmp_path / ".secret"
        hidden_outside.mkdir()
        with pytest.raises(PathEscapeError):
            sandbox.resolve(str(hidden_outside))


class TestHiddenSegments:
    """Inputs crossing dot-prefixed names below the root."""

    def test_hidden_directory(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should reject listing .git."""
        with pytest.raises(HiddenSegmentError):
            sandbox.resolve(str(project_root / ".git"), require=Require.DIRECTORY)

    def test_hidden_leaf_file(self, sandbox: PathSandbox) -> None:
        """Should reject a dot file."""
        with pytest.raises(HiddenSegmentError):
            sandbox.resolve(".env", require=Require.FILE)

    def test_through_hidden_ancestor(self, sandbox: PathSandbox) -> None:
        """Should reject a visible file inside a hidden directory."""
        with pytest.raises(HiddenSegmentError):
            sandbox.resolve(".git/config", require=Require.FILE)

    def test_hidden_for_new_file(self, sandbox: PathSandbox) -> None:
        """Should reject creating files in hidden directories."""
        with pytest.raises(HiddenSegmentError):
            sandbox.resolve(".git/hooks/pre-commit", require=Require.ANY)

    def test_symlink_into_hidden(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should reject a visible symlink that resolves into a hidden directory."""
        (project_root / "gitdir").symlink_to(project_root / ".git")
        with pytest.raises(HiddenSegmentError):
            sandbox.resolve("gitdir/config", require=Require.FILE)


class TestExistence:
    """Existence requirements per operation."""

    def test_missing_file(self, sandbox: PathSandbox) -> None:
        """Should raise not-found for a missing path."""
        with pytest.raises(PathNotFoundError):
            sandbox.resolve("nope.txt", require=Require.FILE)

    def test_file_where_directory_required(self, sandbox: PathSandbox) -> None:
        """Should raise not-a-directory when listing a file."""
        with pytest.raises(NotDirectoryError):
            sandbox.resolve("README.md", require=Require.DIRECTORY)

    def test_directory_where_file_required(self, sandbox: PathSandbox) -> None:
        """Should raise not-found when reading a directory."""
        with pytest.raises(PathNotFoundError, match="directory"):
            sandbox.resolve("src", require=Require.FILE)


class TestResolvedPath:
    """ResolvedPath can only come from the sandbox."""

    def test_cannot_construct_directly(self, project_root: Path) -> None:
        """Should refuse construction outside the sandbox."""
        with pytest.raises(TypeError):
            ResolvedPath(project_root, project_root)

    def test_equality_and_fspath(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should compare by path and work with os functions."""
        a = sandbox.resolve("README.md")
        b = sandbox.resolve(str(project_root / "README.md"))
        assert a == b
        assert os.fspath(a) == str((project_root / "README.md").resolve())


class TestMalformedInput:
    """Inputs that cannot name a file at all."""

    def test_nul_byte(self, sandbox: PathSandbox) -> None:
        """Should reject a NUL byte as a tool error instead of crashing."""
        with pytest.raises(InvalidArgumentsError):
            sandbox.resolve("a\x00b", require=Require.ANY)

    def test_surrounding_whitespace_is_kept(self, sandbox: PathSandbox, project_root: Path) -> None:
        """Should use names with surrounding spaces verbatim, not trim them."""
        (project_root / " notes.txt").write_text("spaced", encoding="utf-8")
        assert sandbox.resolve(" notes.txt", require=Require.FILE).path.name == " notes.txt"
        with pytest.raises(PathNotFoundError):
            sandbox.resolve("README.md ", require=Require.FILE)
