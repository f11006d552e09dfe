"""Conversation data model: roles, content fragments, turns and the store.

Fragments and turns are frozen once produced. The store is append-only within
a session; ``reset`` is the only way to shrink it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a programmer who edits code files based on instructions. "
    "Before editing a file, read its contents to figure out what needs to be replaced."
)


class Role(Enum):
    """Who produced a turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


# =============================================================================
# Content Fragments
# =============================================================================


@dataclass(frozen=True)
class TextContent:
    """A run of text exactly as streamed."""

    text: str


@dataclass(frozen=True)
class ToolCallContent:
    """A request from the model to invoke a tool."""

    call_id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", _freeze(self.arguments))


@dataclass(frozen=True)
class ToolResultContent:
    """The outcome of a tool call, matched to its request by ``call_id``."""

    call_id: str
    result: str
    is_error: bool = False


@dataclass(frozen=True)
class UsageContent:
    """Token accounting reported by the backend. Telemetry only."""

    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", _freeze(self.details))


Content = Union[TextContent, ToolCallContent, ToolResultContent, UsageContent]


# =============================================================================
# Updates and Turns
# =============================================================================


@dataclass(frozen=True)
class ChatUpdate:
    """One partial update from a streaming transport.

    ``role`` may be None when the transport does not repeat it; the update
    then belongs to whichever role is currently open.
    """

    role: Role | None
    contents: tuple[Content, ...] = ()

    @classmethod
    def of(cls, role: Role | None, *contents: Content) -> "ChatUpdate":
        return cls(role=role, contents=tuple(contents))

    @property
    def text(self) -> str:
        return "".join(c.text for c in self.contents if isinstance(c, TextContent))


@dataclass(frozen=True)
class Turn:
    """A sealed, role-tagged unit of conversation."""

    role: Role
    fragments: tuple[Content, ...]

    @classmethod
    def text_turn(cls, role: Role, text: str) -> "Turn":
        return cls(role=role, fragments=(TextContent(text),))

    @property
    def text(self) -> str:
        """All text fragments joined in order."""
        return "".join(f.text for f in self.fragments if isinstance(f, TextContent))

    @property
    def tool_calls(self) -> list[ToolCallContent]:
        return [f for f in self.fragments if isinstance(f, ToolCallContent)]

    @property
    def tool_results(self) -> list[ToolResultContent]:
        return [f for f in self.fragments if isinstance(f, ToolResultContent)]


# =============================================================================
# Conversation Store
# =============================================================================


class ConversationStore:
    """Ordered, append-only sequence of committed turns.

    Example:
        store = ConversationStore()
        store.add_user("Rename foo to bar in main.py")
        store.append(assistant_turn)
        store.reset()        # back to the single seed System turn
    """

    def __init__(self, system_prompt: str = SYSTEM_PROMPT) -> None:
        self._system_prompt = system_prompt
        self._turns: list[Turn] = []
        self.reset()

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Snapshot of the committed turns."""
        return tuple(self._turns)

    def reset(self) -> None:
        """Drop every turn and reseed the System turn."""
        self._turns = [Turn.text_turn(Role.SYSTEM, self._system_prompt)]
        logger.debug("Conversation reset")

    def add_user(self, prompt: str) -> Turn:
        """Append the operator's prompt as a User turn."""
        turn = Turn.text_turn(Role.USER, prompt)
        self.append(turn)
        return turn

    def append(self, turn: Turn) -> None:
        if not turn.fragments:
            raise ValueError("Refusing to commit a turn without fragments")
        self._turns.append(turn)

    def extend(self, turns: Sequence[Turn]) -> None:
        for turn in turns:
            self.append(turn)

    def pending_tool_calls(self) -> list[ToolCallContent]:
        """Tool calls that no committed Tool turn has answered yet."""
        answered = {r.call_id for turn in self._turns for r in turn.tool_results}
        return [c for turn in self._turns for c in turn.tool_calls if c.call_id not in answered]

    def close_pending_calls(self, payload: str) -> Turn | None:
        """Answer every pending tool call with an error result.

        A history holding a tool call without a matching result is rejected
        by backends on the next request.

        Returns:
            The committed Tool turn, or None when nothing was pending.
        """
        pending = self.pending_tool_calls()
        if not pending:
            return None
        turn = Turn(
            role=Role.TOOL,
            fragments=tuple(ToolResultContent(c.call_id, payload, is_error=True) for c in pending),
        )
        self.append(turn)
        logger.info("Closed %d unanswered tool call(s)", len(pending))
        return turn

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))


__all__ = [
    "ChatUpdate",
    "Content",
    "ConversationStore",
    "Role",
    "SYSTEM_PROMPT",
    "TextContent",
    "ToolCallContent",
    "ToolResultContent",
    "Turn",
    "UsageContent",
]
