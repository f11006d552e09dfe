"""Tool-invocation loop layered over any ChatTransport.

The backend only *requests* tool calls. This wrapper passes the backend's
updates through unchanged, runs the requested tools once the backend's
response ends, yields a single Tool-role update carrying the results, and asks
the backend again with the extended history. The loop ends when a response
requests no tools. Past the round limit the backend is asked once more with
tool calls disallowed; any call it still requests is answered with a
``not_executed`` error so the history never holds an unanswered call.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import AsyncIterator, Callable, Sequence

from treeward.config import LIMITS
from treeward.conversation import (
    ChatUpdate,
    Content,
    Role,
    ToolCallContent,
    ToolResultContent,
    Turn,
)
from treeward.errors import NotExecutedError
from treeward.file_tools import ToolDescriptor

from .base import ChatTransport

logger = logging.getLogger(__name__)

ToolInvoker = Callable[[ToolCallContent], ToolResultContent]


class FunctionInvokingTransport:
    """Wraps a backend so tool calls are executed and fed back automatically.

    Example:
        transport = FunctionInvokingTransport(OllamaTransport(url=...), file_tools.invoke)
        async for update in transport.stream_chat(store.turns, TOOL_DESCRIPTORS):
            ...
    """

    def __init__(
        self,
        inner: ChatTransport,
        invoker: ToolInvoker,
        *,
        max_rounds: int = LIMITS.MAX_TOOL_ROUNDS,
    ) -> None:
        self._inner = inner
        self._invoker = invoker
        self._max_rounds = max_rounds

    @property
    def provider_type(self) -> str:
        return self._inner.provider_type

    @property
    def inner(self) -> ChatTransport:
        return self._inner

    async def stream_chat(
        self,
        turns: Sequence[Turn],
        tools: Sequence[ToolDescriptor],
        *,
        allow_tool_calls: bool = True,
    ) -> AsyncIterator[ChatUpdate]:
        history = list(turns)
        allowed = allow_tool_calls and bool(tools)

        for round_number in itertools.count(1):
            if round_number > self._max_rounds and allowed:
                # One final text-only round so the model can wrap up
                logger.warning("Tool round limit (%d) reached; disallowing tool calls", self._max_rounds)
                allowed = False

            fragments: list[Content] = []
            async for update in self._inner.stream_chat(history, tools, allow_tool_calls=allowed):
                fragments.extend(update.contents)
                yield update

            calls = [f for f in fragments if isinstance(f, ToolCallContent)]
            if not calls:
                return

            if not allowed:
                logger.warning("Refusing %d tool call(s) requested after tools were disallowed", len(calls))
                payload = NotExecutedError("Tool calls are not allowed in this round.").to_payload()
                yield ChatUpdate(
                    role=Role.TOOL,
                    contents=tuple(ToolResultContent(c.call_id, payload, is_error=True) for c in calls),
                )
                return

            logger.debug("Round %d requested %d tool call(s)", round_number, len(calls))
            results = tuple(self._invoker(call) for call in calls)
            yield ChatUpdate(role=Role.TOOL, contents=results)

            history.append(Turn(role=Role.ASSISTANT, fragments=tuple(fragments)))
            history.append(Turn(role=Role.TOOL, fragments=results))
