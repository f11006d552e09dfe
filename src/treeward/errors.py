"""Treeward Error Hierarchy.

Provides a structured error hierarchy for all domain operations:
- TreewardError: Base exception for all application errors
- ToolError: Failures local to a single file tool call (sandbox, I/O, edits)
- LLMError: Chat transport failures
- ConfigurationError: Startup misconfiguration
- TurnCancelledError: A streaming turn was cancelled

Each error type includes:
- Descriptive message
- A stable ``kind`` used in tool-result payloads
- Recoverable flag for retry logic
- Optional context for logging

Usage:
    from treeward.errors import PathEscapeError, Result

    def read(path: str) -> Result[str]:
        try:
            return Result.ok(do_read(path))
        except ToolError as e:
            return Result.fail(e)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from .conversation import Turn

T = TypeVar("T")


# =============================================================================
# Result Type for Explicit Success/Failure
# =============================================================================


@dataclass(frozen=True)
class Result(Generic[T]):
    """Structured result that makes success/failure explicit.

    File tools return these instead of raising, so a failing tool call can be
    reported back to the model without unwinding the stream loop.
    """

    success: bool
    value: T | None = None
    error: "ToolError | None" = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        """Create a successful result."""
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: "ToolError") -> "Result[T]":
        """Create a failed result."""
        return cls(success=False, error=error)

    @property
    def kind(self) -> str | None:
        """Error kind, or None for a successful result."""
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Get value or raise the error.

        Raises:
            ToolError: If this is a failed result.
        """
        if self.success:
            return self.value  # type: ignore
        if self.error:
            raise self.error
        raise ToolError("Result failed with no error")


# =============================================================================
# Error Base Classes
# =============================================================================


class TreewardError(Exception):
    """Base exception for all Treeward application errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a structured dictionary for logs."""
        return {
            "type": self.kind,
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


# =============================================================================
# Tool Errors
# =============================================================================


class ToolError(TreewardError):
    """A single tool call failed.

    Tool errors never abort the session. They are rendered into the
    tool-result payload so the model can react (e.g. re-read before editing).
    """

    kind = "tool_error"

    def __init__(self, message: str, *, path: str | None = None, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        if path is not None:
            context["path"] = _truncate(path, 200)
        # The model can always retry a tool call with different arguments
        super().__init__(message, recoverable=True, context=context)
        self.path = path

    def to_payload(self) -> str:
        """Format as a tool-result payload for the model."""
        return f"Error [{self.kind}]: {self.message}"


class PathEscapeError(ToolError):
    """Resolved path is neither the root nor one of its descendants."""

    kind = "path_escape"


class HiddenSegmentError(ToolError):
    """Resolved path crosses a dot-prefixed segment below the root."""

    kind = "hidden_segment"


class PathNotFoundError(ToolError):
    """Path refers to nothing usable (missing, or a directory where a file is needed)."""

    kind = "not_found"


class NotDirectoryError(ToolError):
    """Path refers to a file where a directory is required."""

    kind = "not_a_directory"


class NoMatchError(ToolError):
    """Edit target text does not occur in the file."""

    kind = "no_match"


class DecodeError(ToolError):
    """File contents are not valid UTF-8."""

    kind = "decode"


class StorageError(ToolError):
    """The underlying filesystem operation failed."""

    kind = "storage"


class InvalidArgumentsError(ToolError):
    """Tool call arguments are missing or have the wrong type."""

    kind = "invalid_arguments"


class UnknownToolError(ToolError):
    """The model asked for a tool that does not exist."""

    kind = "unknown_tool"


class NotExecutedError(ToolError):
    """A requested tool call was never run (turn stopped or round limit hit)."""

    kind = "not_executed"


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TreewardError):
    """Startup configuration is unusable. Fatal before any turn begins."""

    kind = "configuration"

    def __init__(self, message: str, *, setting: str | None = None) -> None:
        super().__init__(message, recoverable=False, context={"setting": setting})
        self.setting = setting


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(TreewardError):
    """Chat transport operation failed.

    Base class for all backend-related errors.
    """

    kind = "llm"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        recoverable: bool = False,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if provider:
            context["provider"] = provider
        if model:
            context["model"] = model
        super().__init__(message, recoverable=recoverable, context=context)
        self.provider = provider
        self.model = model


class LLMConnectionError(LLMError):
    """Cannot connect to the backend."""

    kind = "llm_connection"

    def __init__(self, message: str, *, provider: str | None = None, url: str | None = None) -> None:
        super().__init__(
            message,
            provider=provider,
            recoverable=True,
            context={"url": url},
        )


class LLMTimeoutError(LLMError):
    """Backend request timed out."""

    kind = "llm_timeout"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message,
            provider=provider,
            recoverable=True,
            context={"timeout_seconds": timeout_seconds},
        )


class LLMModelError(LLMError):
    """Model-specific error (not found, rejected request, etc)."""

    kind = "llm_model"

    def __init__(self, message: str, *, model: str | None = None, provider: str | None = None) -> None:
        super().__init__(message, provider=provider, model=model, recoverable=False)


# =============================================================================
# Turn Interruptions
# =============================================================================


class StreamInterruptedError(TreewardError):
    """The update stream failed mid-turn.

    The partial turn has already been sealed and committed; ``turns`` holds
    everything committed during the interrupted stream.
    """

    kind = "stream_interrupted"

    def __init__(self, message: str, *, turns: Sequence["Turn"] = ()) -> None:
        super().__init__(message, recoverable=True)
        self.turns = tuple(turns)


class TurnCancelledError(asyncio.CancelledError):
    """A streaming turn was cancelled while awaiting the next update.

    Subclasses CancelledError so asyncio cancellation keeps propagating;
    ``turns`` holds the turns committed before and at cancellation.
    """

    kind = "cancelled"

    def __init__(self, message: str = "Turn cancelled", *, turns: Sequence["Turn"] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.turns = tuple(turns)


# =============================================================================
# Helpers
# =============================================================================


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


__all__ = [
    "ConfigurationError",
    "DecodeError",
    "HiddenSegmentError",
    "InvalidArgumentsError",
    "LLMConnectionError",
    "LLMError",
    "LLMModelError",
    "LLMTimeoutError",
    "NoMatchError",
    "NotDirectoryError",
    "NotExecutedError",
    "PathEscapeError",
    "PathNotFoundError",
    "Result",
    "StorageError",
    "StreamInterruptedError",
    "ToolError",
    "TreewardError",
    "TurnCancelledError",
    "UnknownToolError",
]
