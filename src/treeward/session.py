"""Chat session: the conversation store driven by one transport.

A session owns the ConversationStore and the aggregator. Each submitted
prompt becomes a User turn followed by whatever turns the streamed response
commits. Transport failures and cancellation are turn-local: the partial turn
is kept and reported in the returned ``TurnOutcome``; the session stays
usable for the next prompt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .aggregator import ConversationAggregator, UpdateObserver
from .conversation import SYSTEM_PROMPT, ConversationStore, Turn
from .errors import NotExecutedError, StreamInterruptedError, TurnCancelledError
from .file_tools import ToolDescriptor
from .providers.base import ChatTransport

logger = logging.getLogger(__name__)


class Command(Enum):
    """Session commands typed in place of a prompt."""

    CLEAR = "/clear"
    EXIT = "/exit"


def parse_command(prompt: str) -> Command | None:
    """Recognize a command; anything else is a prompt."""
    text = prompt.strip()
    for command in Command:
        if text == command.value:
            return command
    return None


def read_prompt(lines: Iterable[str]) -> str | None:
    """Accumulate lines until a blank one.

    Returns:
        The multi-line prompt (stripped), or None at end of input. A partial
        prompt cut off by end of input is discarded.
    """
    buffer: list[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            return "\n".join(buffer).strip()
        buffer.append(line)
    return None


@dataclass(frozen=True)
class TurnOutcome:
    """What one prompt produced."""

    turns: tuple[Turn, ...] = ()
    cancelled: bool = False
    error: str | None = None

    @property
    def interrupted(self) -> bool:
        return self.cancelled or self.error is not None


class ChatSession:
    """One operator's conversation with the model.

    Example:
        session = ChatSession(transport, TOOL_DESCRIPTORS, observer=renderer.on_update)
        outcome = await session.submit("Add a docstring to main.py")
        session.reset()
    """

    def __init__(
        self,
        transport: ChatTransport,
        tools: Sequence[ToolDescriptor],
        *,
        system_prompt: str = SYSTEM_PROMPT,
        observer: UpdateObserver | None = None,
    ) -> None:
        self._transport = transport
        self._tools = tuple(tools)
        self.store = ConversationStore(system_prompt)
        self.aggregator = ConversationAggregator(self.store, observer=observer)

    @property
    def transport(self) -> ChatTransport:
        return self._transport

    def reset(self) -> None:
        """Forget the conversation; keeps only the seed System turn."""
        self.store.reset()
        logger.info("Conversation cleared")

    async def submit(self, prompt: str) -> TurnOutcome:
        """Append the prompt as a User turn and stream the model's response."""
        self.store.add_user(prompt)
        logger.info("Submitting prompt (%d chars, %d turns in context)", len(prompt), len(self.store))
        try:
            turns = await self.aggregator.consume(
                self._transport.stream_chat(self.store.turns, self._tools)
            )
        except TurnCancelledError as e:
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            return TurnOutcome(turns=self._close_pending(e.turns, "turn was cancelled"), cancelled=True)
        except StreamInterruptedError as e:
            return TurnOutcome(turns=self._close_pending(e.turns, e.message), error=e.message)
        return TurnOutcome(turns=self._close_pending(turns, "the turn ended before it ran"))

    def _close_pending(self, turns: Sequence[Turn], reason: str) -> tuple[Turn, ...]:
        """Answer tool calls the turn left unanswered; returns the turns plus any closing Tool turn."""
        payload = NotExecutedError(f"Tool call was not executed: {reason}.").to_payload()
        closing = self.store.close_pending_calls(payload)
        return (*turns, closing) if closing is not None else tuple(turns)
