"""Ollama Provider - Local LLM inference via Ollama.

Implements the ChatTransport protocol with:
- Streaming ``/api/chat`` with native tool calling
- Retry with exponential backoff for model discovery
- Helpful error messages when Ollama is unavailable

Streaming requests are NOT retried (streaming is not idempotent).
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import tenacity

from treeward.config import TIMEOUTS
from treeward.conversation import (
    ChatUpdate,
    Content,
    Role,
    TextContent,
    ToolCallContent,
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

from .base import ModelInfo

logger = logging.getLogger(__name__)

_USAGE_KEYS = ("prompt_eval_count", "eval_count", "total_duration", "eval_duration")

# Prefer models that are known to follow tool-calling instructions well
PREFERRED_MODEL_PATTERNS = ("qwen", "llama3", "mistral", "gemma", "phi")


# =============================================================================
# Retry Configuration
# =============================================================================


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    return isinstance(exc, (httpx.TimeoutException, httpx.ConnectError))


_retry_transient = tenacity.retry(
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=1, min=1, max=4),
    retry=tenacity.retry_if_exception(_is_retryable),
    before_sleep=lambda rs: logger.debug(
        "Retrying Ollama request (attempt %d)", rs.attempt_number + 1
    ),
    reraise=True,
)


# =============================================================================
# Message Conversion
# =============================================================================


def to_ollama_messages(turns: Sequence[Turn]) -> list[dict[str, Any]]:
    """Convert committed turns into Ollama chat messages.

    Tool turns become one ``tool`` message per result; usage fragments are
    telemetry and are dropped.
    """
    tool_names: dict[str, str] = {}
    messages: list[dict[str, Any]] = []

    for turn in turns:
        if turn.role is Role.TOOL:
            for result in turn.tool_results:
                messages.append(
                    {
                        "role": "tool",
                        "content": result.result,
                        "tool_name": tool_names.get(result.call_id, ""),
                    }
                )
            continue

        message: dict[str, Any] = {"role": turn.role.value, "content": turn.text}
        calls = turn.tool_calls
        if calls:
            message["tool_calls"] = [
                {"function": {"name": c.name, "arguments": dict(c.arguments)}} for c in calls
            ]
            tool_names.update((c.call_id, c.name) for c in calls)
        elif not message["content"]:
            continue
        messages.append(message)

    return messages


def to_ollama_tools(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema(),
            },
        }
        for t in tools
    ]


def parse_chunk(data: dict[str, Any]) -> ChatUpdate:
    """Turn one NDJSON chunk of a streaming chat into an update."""
    message = data.get("message") or {}
    contents: list[Content] = []

    text = message.get("content")
    if isinstance(text, str) and text:
        contents.append(TextContent(text))

    for raw in message.get("tool_calls") or []:
        function = raw.get("function") or {}
        arguments = function.get("arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {"raw": arguments}
        if not isinstance(arguments, dict):
            arguments = {"raw": arguments}
        contents.append(
            ToolCallContent(
                call_id=raw.get("id") or f"call_{uuid.uuid4().hex[:8]}",
                name=str(function.get("name", "")),
                arguments=arguments,
            )
        )

    if data.get("done"):
        usage = {k: data[k] for k in _USAGE_KEYS if k in data}
        if usage:
            contents.append(UsageContent(usage))

    role = message.get("role")
    return ChatUpdate(
        role=Role(role) if role in {r.value for r in Role} else None,
        contents=tuple(contents),
    )


# =============================================================================
# Ollama Transport
# =============================================================================


class OllamaTransport:
    """ChatTransport implementation for Ollama.

    Example:
        transport = OllamaTransport(url="http://localhost:11434", model="qwen2.5-coder")
        async for update in transport.stream_chat(turns, TOOL_DESCRIPTORS):
            ...
    """

    def __init__(
        self,
        *,
        url: str,
        model: str | None = None,
        timeout_seconds: float = TIMEOUTS.LLM_STREAM,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._timeout = timeout_seconds

    @property
    def provider_type(self) -> str:
        """Provider identifier."""
        return "ollama"

    @property
    def model(self) -> str | None:
        return self._model

    async def stream_chat(
        self,
        turns: Sequence[Turn],
        tools: Sequence[ToolDescriptor],
        *,
        allow_tool_calls: bool = True,
    ) -> AsyncIterator[ChatUpdate]:
        """Stream one assistant response, including any tool calls it requests.

        Ollama has no tool-choice switch; a text-only round simply omits
        ``tools`` (prior tool messages are accepted without them).
        """
        model = self._model or self.default_model()
        payload: dict[str, Any] = {
            "model": model,
            "stream": True,
            "messages": to_ollama_messages(turns),
        }
        if tools and allow_tool_calls:
            payload["tools"] = to_ollama_tools(tools)

        url = f"{self._url}/api/chat"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", url, json=payload) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        self._raise_for_status(response, model)
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.debug("Skipping malformed Ollama chunk: %r", line[:200])
                            continue
                        if data.get("error"):
                            raise LLMError(f"Ollama error: {data['error']}", provider="ollama", model=model)
                        yield parse_chunk(data)
                        if data.get("done", False):
                            break

        except httpx.ConnectError as e:
            raise LLMConnectionError(
                f"Cannot connect to Ollama at {self._url}. Is 'ollama serve' running?",
                provider="ollama",
                url=self._url,
            ) from e

        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Ollama streaming request timed out after {self._timeout}s",
                provider="ollama",
                timeout_seconds=self._timeout,
            ) from e

        except httpx.HTTPError as e:
            raise LLMError(f"Streaming request failed: {e}", provider="ollama", model=model) from e

    def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        detail = _error_detail(response)
        if response.status_code == 404:
            raise LLMModelError(
                f"Model '{model}' not found. Run 'ollama pull {model}' to download it.",
                model=model,
                provider="ollama",
            )
        if response.status_code == 400 and "does not support tools" in detail:
            raise LLMModelError(f"Model '{model}' does not support tool calling.", model=model, provider="ollama")
        raise LLMError(f"Ollama HTTP {response.status_code}: {detail}", provider="ollama", model=model)

    # -------------------------------------------------------------------------
    # Model discovery
    # -------------------------------------------------------------------------

    def list_models(self) -> list[ModelInfo]:
        """List available Ollama models (empty on failure)."""
        try:
            data = self._get_tags(TIMEOUTS.LIST_MODELS)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to list Ollama models: %s", e)
            return []

        models = []
        for m in data.get("models", []):
            if not (isinstance(m, dict) and isinstance(m.get("name"), str)):
                continue
            details = m.get("details") or {}
            size_bytes = m.get("size", 0)
            size_gb = size_bytes / (1024**3) if size_bytes else None
            capabilities = [c for c in m.get("capabilities", []) if isinstance(c, str)]
            models.append(
                ModelInfo(
                    name=m["name"],
                    size_gb=round(size_gb, 1) if size_gb else None,
                    capabilities=capabilities,
                    description=details.get("family"),
                )
            )
        return models

    def default_model(self) -> str:
        """Pick the configured model, else the first preferred installed model.

        Raises:
            LLMError: If no model is configured or installed.
        """
        if self._model:
            return self._model

        names = [m.name for m in self.list_models()]
        for pattern in PREFERRED_MODEL_PATTERNS:
            for name in names:
                if pattern in name.lower():
                    logger.info("Auto-selected model: %s (preferred pattern: %s)", name, pattern)
                    self._model = name
                    return name
        if names:
            logger.info("Auto-selected first available model: %s", names[0])
            self._model = names[0]
            return names[0]

        raise LLMError(
            "No Ollama model configured. Set TREEWARD_MODEL or pull a model.",
            provider="ollama",
        )

    @_retry_transient
    def _get_tags(self, timeout_seconds: float) -> dict[str, Any]:
        with httpx.Client(timeout=timeout_seconds) as client:
            res = client.get(f"{self._url}/api/tags")
            res.raise_for_status()
            return res.json()


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return response.text[:500]

