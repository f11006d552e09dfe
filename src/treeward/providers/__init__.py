"""Chat Providers - Pluggable backends for streaming chat with tools.

This package provides a unified interface for model backends:
- Ollama: Local inference, runs on your machine
- Anthropic: Claude models over the Messages API

Usage:
    from treeward.providers import create_transport

    transport = create_transport(settings, file_tools.invoke)
    async for update in transport.stream_chat(store.turns, TOOL_DESCRIPTORS):
        ...
"""

from __future__ import annotations

# Base types
from treeward.providers.base import ChatTransport, ModelInfo

# Provider implementations
from treeward.providers.anthropic import AnthropicTransport
from treeward.providers.ollama import OllamaTransport

# Tool loop
from treeward.providers.function_invocation import FunctionInvokingTransport, ToolInvoker

# Factory functions
from treeward.providers.factory import (
    AVAILABLE_PROVIDERS,
    ProviderInfo,
    create_backend,
    create_transport,
    get_provider_info,
)

__all__ = [
    # Base types
    "ChatTransport",
    "ModelInfo",
    # Providers
    "AnthropicTransport",
    "OllamaTransport",
    # Tool loop
    "FunctionInvokingTransport",
    "ToolInvoker",
    # Factory
    "AVAILABLE_PROVIDERS",
    "ProviderInfo",
    "create_backend",
    "create_transport",
    "get_provider_info",
]
