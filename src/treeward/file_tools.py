"""File tools exposed to the model: list, read, write and edit.

Every operation resolves its path through ``PathSandbox`` first and works only
on the returned ``ResolvedPath``. Operations return ``Result`` values rather
than raising; ``FileTools.invoke`` turns a model tool call into a
``ToolResultContent`` fragment, reporting failures as error payloads.

Encoding policy: files are read and written as strict UTF-8 bytes with no
newline translation, so an edit changes exactly the replaced text.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from .config import LIMITS
from .conversation import ToolCallContent, ToolResultContent
from .errors import (
    DecodeError,
    InvalidArgumentsError,
    NoMatchError,
    Result,
    StorageError,
    ToolError,
    UnknownToolError,
)
from .sandbox import PathSandbox, Require, ResolvedPath

logger = logging.getLogger(__name__)

OK = "OK"


# =============================================================================
# Tool Descriptors
# =============================================================================


@dataclass(frozen=True)
class ToolParameter:
    """One named parameter of a tool."""

    name: str
    type: str
    description: str


@dataclass(frozen=True)
class ToolDescriptor:
    """Metadata the backend hands to the model so it can call a tool."""

    name: str
    description: str
    parameters: tuple[ToolParameter, ...]

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments object."""
        return {
            "type": "object",
            "properties": {
                p.name: {"type": p.type, "description": p.description} for p in self.parameters
            },
            "required": [p.name for p in self.parameters],
        }


_PATH = ToolParameter(
    "path",
    "string",
    "Path of the file or directory, relative to the project root or absolute inside it.",
)

TOOL_DESCRIPTORS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="list_files",
        description="List the files and directories in a directory. Directory names end with a separator.",
        parameters=(_PATH,),
    ),
    ToolDescriptor(
        name="read_file",
        description="Reads the contents of a file.",
        parameters=(_PATH,),
    ),
    ToolDescriptor(
        name="write_file",
        description="Writes content to a file, creating it or replacing its contents.",
        parameters=(
            _PATH,
            ToolParameter("contents", "string", "The complete new contents of the file."),
        ),
    ),
    ToolDescriptor(
        name="edit_file",
        description=(
            "Replaces every occurrence of oldStr with newStr in a file. "
            "Fails without changing the file if oldStr does not occur."
        ),
        parameters=(
            _PATH,
            ToolParameter("oldStr", "string", "Exact text to find (not a regex)."),
            ToolParameter("newStr", "string", "Replacement text."),
        ),
    ),
)


# =============================================================================
# File Tools
# =============================================================================


@dataclass
class _PathLock:
    """A per-path lock and the number of callers holding or awaiting it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class FileTools:
    """The four file operations, confined to a sandbox root.

    Write and edit hold a per-path lock, so concurrent dispatch never
    interleaves two read-modify-write cycles on the same file.

    Example:
        tools = FileTools(PathSandbox(root))
        tools.write_file("new.txt", "hi").unwrap()          # "OK"
        tools.edit_file("new.txt", "hi", "bye").unwrap()    # "OK"
        tools.edit_file("new.txt", "xyz", "q").kind         # "no_match"
    """

    def __init__(self, sandbox: PathSandbox) -> None:
        self._sandbox = sandbox
        self._locks: dict[Path, _PathLock] = {}
        self._locks_guard = threading.Lock()
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Result[str]]] = {
            "list_files": lambda args: self.list_files(_arg(args, "path")),
            "read_file": lambda args: self.read_file(_arg(args, "path")),
            "write_file": lambda args: self.write_file(_arg(args, "path"), _arg(args, "contents")),
            "edit_file": lambda args: self.edit_file(
                _arg(args, "path"), _arg(args, "oldStr"), _arg(args, "newStr")
            ),
        }

    @property
    def sandbox(self) -> PathSandbox:
        return self._sandbox

    @property
    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        return TOOL_DESCRIPTORS

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def list_entries(self, path: str) -> Result[list[str]]:
        """Entry names in enumeration order; directories carry a trailing separator."""
        try:
            resolved = self._sandbox.resolve(path, require=Require.DIRECTORY)
            return Result.ok(_list(resolved))
        except ToolError as e:
            return Result.fail(e)

    def list_files(self, path: str) -> Result[str]:
        """Newline-joined listing of a directory."""
        entries = self.list_entries(path)
        if not entries.success:
            return Result.fail(entries.error)  # type: ignore[arg-type]
        return Result.ok("\n".join(entries.value or []))

    def read_file(self, path: str) -> Result[str]:
        """Full contents of a file, decoded as UTF-8."""
        try:
            resolved = self._sandbox.resolve(path, require=Require.FILE)
            return Result.ok(_read(resolved))
        except ToolError as e:
            return Result.fail(e)

    def write_file(self, path: str, contents: str) -> Result[str]:
        """Create or fully replace a file."""
        try:
            resolved = self._sandbox.resolve(path, require=Require.ANY)
            with self._path_lock(resolved):
                _write(resolved, contents)
            return Result.ok(OK)
        except ToolError as e:
            return Result.fail(e)

    def edit_file(self, path: str, old_text: str, new_text: str) -> Result[str]:
        """Replace every literal occurrence of old_text; never a silent no-op."""
        try:
            resolved = self._sandbox.resolve(path, require=Require.FILE)
            if not old_text:
                raise NoMatchError("oldStr must not be empty.", path=path)
            with self._path_lock(resolved):
                original = _read(resolved)
                count = original.count(old_text)
                if count == 0:
                    raise NoMatchError(f"Text not found in '{path}': {_preview(old_text)}", path=path)
                _write(resolved, original.replace(old_text, new_text))
            logger.debug("Replaced %d occurrence(s) in %s", count, resolved.relative)
            return Result.ok(OK)
        except ToolError as e:
            return Result.fail(e)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def invoke(self, call: ToolCallContent) -> ToolResultContent:
        """Run a model tool call and wrap the outcome as a result fragment."""
        handler = self._handlers.get(call.name)
        try:
            if handler is None:
                raise UnknownToolError(f"Unknown tool: '{call.name}'.")
            result = handler(call.arguments)
        except ToolError as e:
            result = Result.fail(e)

        if result.success:
            logger.info("Tool %s(%s) ok", call.name, _preview_args(call.arguments))
            return ToolResultContent(call_id=call.call_id, result=result.value or "")

        error = result.error or ToolError(f"Tool '{call.name}' failed without an error.")
        logger.info("Tool %s(%s) failed: %s", call.name, _preview_args(call.arguments), error.to_dict())
        return ToolResultContent(call_id=call.call_id, result=error.to_payload(), is_error=True)

    @contextmanager
    def _path_lock(self, resolved: ResolvedPath) -> Iterator[None]:
        key = resolved.path
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _PathLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            # Drop the entry once nobody holds or waits for it
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]


# =============================================================================
# Filesystem helpers (ResolvedPath only)
# =============================================================================


def _list(resolved: ResolvedPath) -> list[str]:
    names: list[str] = []
    try:
        with os.scandir(resolved.path) as it:
            for entry in it:
                names.append(entry.name + os.sep if entry.is_dir() else entry.name)
    except OSError as e:
        raise StorageError(f"Cannot list '{resolved.relative}': {e.strerror or e}", path=resolved.relative) from e
    return names


def _read(resolved: ResolvedPath) -> str:
    try:
        data = resolved.path.read_bytes()
    except OSError as e:
        raise StorageError(f"Cannot read '{resolved.relative}': {e.strerror or e}", path=resolved.relative) from e
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(
            f"File '{resolved.relative}' is not valid UTF-8 (byte {e.start}).",
            path=resolved.relative,
        ) from e


def _write(resolved: ResolvedPath, contents: str) -> None:
    try:
        # Parents lie between the root and a validated leaf, so they are inside the sandbox
        resolved.path.parent.mkdir(parents=True, exist_ok=True)
        resolved.path.write_bytes(contents.encode("utf-8"))
    except OSError as e:
        raise StorageError(f"Cannot write '{resolved.relative}': {e.strerror or e}", path=resolved.relative) from e


def _arg(arguments: Mapping[str, Any], name: str) -> str:
    value = arguments.get(name)
    if not isinstance(value, str):
        raise InvalidArgumentsError(f"Argument '{name}' is required and must be a string.")
    return value


def _preview(text: str) -> str:
    limit = LIMITS.MAX_PREVIEW_CHARS
    return repr(text if len(text) <= limit else text[:limit] + "...")


def _preview_args(arguments: Mapping[str, Any]) -> str:
    return ", ".join(f"{k}={_preview(str(v))}" for k, v in arguments.items())


__all__ = ["FileTools", "OK", "TOOL_DESCRIPTORS", "ToolDescriptor", "ToolParameter"]
