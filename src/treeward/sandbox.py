"""Path sandbox: restrict file tools to a fixed root directory.

Every path the model supplies goes through ``PathSandbox.resolve`` before any
filesystem access. Containment is verified structurally by walking the
canonical path's ancestor chain up to the root, so ``..`` segments and
symlink jumps cannot slip past a textual prefix test. Segments below the root
whose names start with a dot (``.git`` and friends) are off limits.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from .errors import (
    HiddenSegmentError,
    InvalidArgumentsError,
    NotDirectoryError,
    PathEscapeError,
    PathNotFoundError,
)

logger = logging.getLogger(__name__)

_SANDBOX_TOKEN = object()


class Require(Enum):
    """What must exist at a path for an operation to proceed."""

    ANY = "any"  # may be created (write)
    EXISTS = "exists"  # file or directory
    FILE = "file"  # read, edit
    DIRECTORY = "directory"  # list


class ResolvedPath:
    """A canonical path proven to be inside the sandbox root.

    Only ``PathSandbox.resolve`` produces these.
    """

    __slots__ = ("path", "root")

    def __init__(self, path: Path, root: Path, *, _token: object = None) -> None:
        if _token is not _SANDBOX_TOKEN:
            raise TypeError("ResolvedPath is only produced by PathSandbox.resolve")
        self.path = path
        self.root = root

    @property
    def relative(self) -> str:
        """Path relative to the root, using forward slashes ("." for the root)."""
        rel = self.path.relative_to(self.root).as_posix()
        return rel or "."

    def __fspath__(self) -> str:
        return str(self.path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedPath):
            return NotImplemented
        return self.path == other.path and self.root == other.root

    def __hash__(self) -> int:
        return hash((self.path, self.root))

    def __repr__(self) -> str:
        return f"ResolvedPath({str(self.path)!r})"


class PathSandbox:
    """Resolves untrusted path strings against a fixed root.

    Example:
        sandbox = PathSandbox(Path("/proj"))
        sandbox.resolve("src", require=Require.DIRECTORY)   # /proj/src
        sandbox.resolve("../outside.txt")                    # PathEscapeError
        sandbox.resolve(".git/config")                       # HiddenSegmentError
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize sandbox with its root.

        Args:
            root: Directory the sandbox is confined to. Canonicalized here;
                startup validation (existence) happens in ``validate_root``.
        """
        self._root = Path(os.path.realpath(root))

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, raw: str, *, require: Require = Require.EXISTS) -> ResolvedPath:
        """Validate a model-supplied path.

        Args:
            raw: Absolute path, or a path relative to the root. Empty or
                whitespace-only means the root itself; anything else is used
                as given, surrounding whitespace included.
            require: Existence requirement of the calling operation.

        Returns:
            ResolvedPath equal to, or a descendant of, the root.

        Raises:
            PathEscapeError: Canonical path is outside the root.
            HiddenSegmentError: A segment below the root starts with a dot.
            PathNotFoundError: Nothing (suitable) exists at the path.
            NotDirectoryError: A directory was required but a file was found.
            InvalidArgumentsError: The path contains a NUL byte or cannot be
                canonicalized.
        """
        if "\x00" in raw:
            logger.warning("Rejected path with NUL byte: %r", raw)
            raise InvalidArgumentsError("Path must not contain a NUL character.", path=raw)

        # Whitespace-only means the root; any other input is taken verbatim
        candidate = Path(raw) if raw.strip() else Path(".")
        if not candidate.is_absolute():
            candidate = self._root / candidate

        # realpath collapses "." and ".." and follows symlinks of existing parts
        try:
            resolved = Path(os.path.realpath(candidate))
        except (OSError, ValueError) as e:
            raise InvalidArgumentsError(f"Path '{raw}' cannot be resolved: {e}", path=raw) from e

        segments = self._segments_below_root(resolved)
        if segments is None:
            logger.warning("Rejected path outside root: %r -> %s", raw, resolved)
            raise PathEscapeError(
                f"Path '{raw}' is not contained in the root directory '{self._root}'.",
                path=raw,
            )

        hidden = [name for name in segments if name.startswith(".")]
        if hidden:
            logger.warning("Rejected path through hidden segment %r: %r", hidden[0], raw)
            raise HiddenSegmentError(
                f"Path '{raw}' contains a file or directory whose name starts with a dot: '{hidden[0]}'.",
                path=raw,
            )

        self._check_existence(resolved, raw, require)
        return ResolvedPath(resolved, self._root, _token=_SANDBOX_TOKEN)

    def _segments_below_root(self, resolved: Path) -> list[str] | None:
        """Walk from the leaf up; names strictly below the root, or None if the root is never met."""
        names: list[str] = []
        node = resolved
        while node != self._root:
            parent = node.parent
            if parent == node:
                return None
            names.append(node.name)
            node = parent
        return names

    @staticmethod
    def _check_existence(resolved: Path, raw: str, require: Require) -> None:
        if require is Require.ANY:
            return
        if not resolved.exists():
            raise PathNotFoundError(f"Path does not point to anything: '{raw}'.", path=raw)
        if require is Require.DIRECTORY and not resolved.is_dir():
            raise NotDirectoryError(f"Path is a file, not a directory: '{raw}'.", path=raw)
        if require is Require.FILE and not resolved.is_file():
            raise PathNotFoundError(f"Path is a directory, not a file: '{raw}'.", path=raw)


__all__ = ["PathSandbox", "Require", "ResolvedPath"]
