"""In-memory transports used across the test suite."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

from treeward.conversation import ChatUpdate, Turn
from treeward.file_tools import ToolDescriptor


class ScriptedTransport:
    """Replays one scripted list of updates per ``stream_chat`` call.

    ``fail_with`` is raised after the script of the last call is exhausted;
    ``hang`` makes the last call wait forever after its script (for
    cancellation), ``hang_on`` does the same for one call by index.
    """

    def __init__(
        self,
        *scripts: Sequence[ChatUpdate],
        fail_with: BaseException | None = None,
        hang: bool = False,
        hang_on: int | None = None,
    ) -> None:
        self._scripts = [list(s) for s in scripts]
        self._fail_with = fail_with
        self._hang = hang
        self._hang_on = hang_on
        self.calls: list[tuple[tuple[Turn, ...], tuple[ToolDescriptor, ...]]] = []
        self.allowed: list[bool] = []

    @property
    def provider_type(self) -> str:
        return "scripted"

    async def stream_chat(
        self,
        turns: Sequence[Turn],
        tools: Sequence[ToolDescriptor],
        *,
        allow_tool_calls: bool = True,
    ) -> AsyncIterator[ChatUpdate]:
        index = len(self.calls)
        self.calls.append((tuple(turns), tuple(tools)))
        self.allowed.append(allow_tool_calls)
        script = self._scripts[index] if index < len(self._scripts) else []
        for update in script:
            await asyncio.sleep(0)
            yield update
        last_call = index >= len(self._scripts) - 1
        if last_call and self._fail_with is not None:
            raise self._fail_with
        if (last_call and self._hang) or index == self._hang_on:
            await asyncio.Event().wait()


async def collect(stream: AsyncIterator[ChatUpdate]) -> list[ChatUpdate]:
    return [update async for update in stream]
