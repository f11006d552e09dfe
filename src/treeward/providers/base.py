"""Base Chat Transport Protocol - Abstract interface for model backends.

All backends (Ollama, Anthropic) implement this protocol so the session and
aggregator depend only on ``stream_chat``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from treeward.conversation import ChatUpdate, Turn
from treeward.file_tools import ToolDescriptor


@dataclass
class ModelInfo:
    """Information about an available model.

    Attributes:
        name: Model identifier (e.g., "llama3.2:3b").
        size_gb: Model size in gigabytes (for local models).
        capabilities: List of capabilities (e.g., ["tools"]).
        description: Human-readable description.
    """

    name: str
    size_gb: float | None = None
    capabilities: list[str] = field(default_factory=list)
    description: str | None = None


@runtime_checkable
class ChatTransport(Protocol):
    """Streaming chat capability.

    Example:
        async for update in transport.stream_chat(store.turns, TOOL_DESCRIPTORS):
            ...
    """

    @property
    def provider_type(self) -> str:
        """Backend identifier (e.g., "ollama")."""
        ...

    def stream_chat(
        self,
        turns: Sequence[Turn],
        tools: Sequence[ToolDescriptor],
        *,
        allow_tool_calls: bool = True,
    ) -> AsyncIterator[ChatUpdate]:
        """Stream partial updates for the next model response.

        Args:
            turns: Full conversation so far, oldest first.
            tools: Tools the conversation refers to.
            allow_tool_calls: When False the model must answer in text only;
                backends that can still declare ``tools`` do so.

        Yields:
            ChatUpdate values in production order.

        Raises:
            LLMError: On any transport failure.
        """
        ...
