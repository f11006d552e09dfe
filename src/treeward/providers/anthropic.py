"""Anthropic Provider - Messages API over server-sent events.

Implements the ChatTransport protocol by streaming ``/v1/messages``:
- Text deltas become Assistant text updates as they arrive
- ``tool_use`` blocks are accumulated from ``input_json_delta`` events and
  emitted as one ToolCall fragment when the block stops
- Usage from ``message_start`` and ``message_delta`` becomes Usage fragments
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from treeward.config import TIMEOUTS
from treeward.conversation import (
    ChatUpdate,
    Role,
    TextContent,
    ToolCallContent,
    ToolResultContent,
    Turn,
    UsageContent,
)
from treeward.errors import (
    LLMConnectionError,
    LLMError,
    LLMModelError,
    LLMTimeoutError,
)
from treeward.file_tools import ToolDescriptor

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-20250514"


# =============================================================================
# Message Conversion
# =============================================================================


def to_anthropic_request(turns: Sequence[Turn]) -> tuple[str, list[dict[str, Any]]]:
    """Split turns into the ``system`` string and alternating messages.

    Tool results travel as ``tool_result`` blocks inside a user message, and
    adjacent messages with the same role are merged, as the API requires.
    """
    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []

    for turn in turns:
        if turn.role is Role.SYSTEM:
            if turn.text:
                system_parts.append(turn.text)
            continue

        blocks: list[dict[str, Any]] = []
        for fragment in turn.fragments:
            if isinstance(fragment, TextContent):
                if blocks and blocks[-1]["type"] == "text":
                    blocks[-1]["text"] += fragment.text
                elif fragment.text:
                    blocks.append({"type": "text", "text": fragment.text})
            elif isinstance(fragment, ToolCallContent):
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": fragment.call_id,
                        "name": fragment.name,
                        "input": dict(fragment.arguments),
                    }
                )
            elif isinstance(fragment, ToolResultContent):
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": fragment.call_id,
                        "content": fragment.result,
                        "is_error": fragment.is_error,
                    }
                )
        # Whitespace-only text blocks are rejected by the API
        blocks = [b for b in blocks if b["type"] != "text" or b["text"].strip()]
        if not blocks:
            continue

        role = "assistant" if turn.role is Role.ASSISTANT else "user"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})

    return "\n\n".join(system_parts), messages


def to_anthropic_tools(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    return [
        {"name": t.name, "description": t.description, "input_schema": t.input_schema()}
        for t in tools
    ]


@dataclass
class _ToolUseBlock:
    call_id: str
    name: str
    partial_json: list[str] = field(default_factory=list)

    def finish(self) -> ToolCallContent:
        raw = "".join(self.partial_json)
        try:
            arguments = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            arguments = {"raw": raw}
        if not isinstance(arguments, dict):
            arguments = {"raw": arguments}
        return ToolCallContent(call_id=self.call_id, name=self.name, arguments=arguments)


class SseDecoder:
    """Turns Messages API stream events into updates.

    One decoder per response; it tracks open ``tool_use`` blocks by index.
    """

    def __init__(self) -> None:
        self._tool_blocks: dict[int, _ToolUseBlock] = {}
        self.stopped = False

    def feed(self, event: dict[str, Any]) -> ChatUpdate | None:
        etype = event.get("type")

        if etype == "message_start":
            usage = (event.get("message") or {}).get("usage")
            return _usage_update(usage)

        if etype == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                self._tool_blocks[event.get("index", 0)] = _ToolUseBlock(
                    call_id=block.get("id", ""), name=block.get("name", "")
                )
            elif block.get("type") == "text" and block.get("text"):
                return ChatUpdate.of(Role.ASSISTANT, TextContent(block["text"]))
            return None

        if etype == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta":
                return ChatUpdate.of(Role.ASSISTANT, TextContent(delta.get("text", "")))
            if delta.get("type") == "input_json_delta":
                block = self._tool_blocks.get(event.get("index", 0))
                if block is not None:
                    block.partial_json.append(delta.get("partial_json", ""))
            return None

        if etype == "content_block_stop":
            block = self._tool_blocks.pop(event.get("index", 0), None)
            if block is not None:
                return ChatUpdate.of(Role.ASSISTANT, block.finish())
            return None

        if etype == "message_delta":
            return _usage_update(event.get("usage"))

        if etype == "message_stop":
            self.stopped = True
            return None

        if etype == "error":
            error = event.get("error") or {}
            raise LLMError(
                f"Anthropic stream error ({error.get('type', 'unknown')}): {error.get('message', '')}",
                provider="anthropic",
                recoverable=error.get("type") == "overloaded_error",
            )

        # ping and unknown event types
        return None


def _usage_update(usage: Any) -> ChatUpdate | None:
    if not isinstance(usage, dict) or not usage:
        return None
    return ChatUpdate.of(Role.ASSISTANT, UsageContent(usage))


# =============================================================================
# Anthropic Transport
# =============================================================================


class AnthropicTransport:
    """ChatTransport implementation for the Anthropic Messages API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str | None = None,
        url: str = "https://api.anthropic.com",
        max_output_tokens: int = 4000,
        timeout_seconds: float = TIMEOUTS.LLM_STREAM,
    ) -> None:
        self._api_key = api_key
        self._model = model or DEFAULT_MODEL
        self._url = url.rstrip("/")
        self._max_tokens = max_output_tokens
        self._timeout = timeout_seconds

    @property
    def provider_type(self) -> str:
        return "anthropic"

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def build_payload(
        self,
        turns: Sequence[Turn],
        tools: Sequence[ToolDescriptor],
        *,
        allow_tool_calls: bool = True,
    ) -> dict[str, Any]:
        system, messages = to_anthropic_request(turns)
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": messages,
            "stream": True,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = to_anthropic_tools(tools)
            if not allow_tool_calls:
                # Tools stay declared for the tool blocks already in the history
                payload["tool_choice"] = {"type": "none"}
        return payload

    async def stream_chat(
        self,
        turns: Sequence[Turn],
        tools: Sequence[ToolDescriptor],
        *,
        allow_tool_calls: bool = True,
    ) -> AsyncIterator[ChatUpdate]:
        """Stream one assistant response from the Messages API."""
        payload = self.build_payload(turns, tools, allow_tool_calls=allow_tool_calls)
        url = f"{self._url}/v1/messages"
        decoder = SseDecoder()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", url, json=payload, headers=self._headers()) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        self._raise_for_status(response)
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        try:
                            event = json.loads(line[len("data:"):].strip())
                        except json.JSONDecodeError:
                            logger.debug("Skipping malformed SSE data: %r", line[:200])
                            continue
                        update = decoder.feed(event)
                        if update is not None:
                            yield update
                        if decoder.stopped:
                            break

        except httpx.ConnectError as e:
            raise LLMConnectionError(
                f"Cannot connect to Anthropic at {self._url}", provider="anthropic", url=self._url
            ) from e

        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Anthropic streaming request timed out after {self._timeout}s",
                provider="anthropic",
                timeout_seconds=self._timeout,
            ) from e

        except httpx.HTTPError as e:
            raise LLMError(f"Streaming request failed: {e}", provider="anthropic", model=self._model) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        try:
            data = response.json()
        except ValueError:
            data = {}
        error = data.get("error") if isinstance(data, dict) else None
        if not isinstance(error, dict):
            error = {}
        message = error.get("message") or response.text[:500]
        status = response.status_code
        if status == 404:
            raise LLMModelError(f"Model '{self._model}' not found: {message}", model=self._model, provider="anthropic")
        if status in (401, 403):
            raise LLMError(f"Anthropic rejected the API key: {message}", provider="anthropic")
        raise LLMError(
            f"Anthropic HTTP {status}: {message}",
            provider="anthropic",
            model=self._model,
            recoverable=status in (429, 529) or status >= 500,
        )

