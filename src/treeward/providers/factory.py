"""Provider Factory - Create chat transports based on configuration.

The backend selector from settings picks a ChatTransport implementation;
the result is always wrapped in the tool-invocation loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from treeward.errors import ConfigurationError, LLMError
from treeward.settings import Settings

from .base import ChatTransport
from .function_invocation import FunctionInvokingTransport, ToolInvoker

logger = logging.getLogger(__name__)


# =============================================================================
# Provider Information
# =============================================================================


@dataclass(frozen=True)
class ProviderInfo:
    """A selectable backend.

    Attributes:
        id: Value of the backend setting (e.g., "ollama").
        name: Human-readable name for help text and logs.
    """

    id: str
    name: str


AVAILABLE_PROVIDERS: list[ProviderInfo] = [
    ProviderInfo(id="ollama", name="Ollama (local)"),
    ProviderInfo(id="anthropic", name="Anthropic Messages API"),
]


def get_provider_info(provider_id: str) -> ProviderInfo | None:
    """Get information about a specific provider, or None if unknown."""
    for p in AVAILABLE_PROVIDERS:
        if p.id == provider_id:
            return p
    return None


# =============================================================================
# Transport Factory
# =============================================================================


def create_backend(settings: Settings) -> ChatTransport:
    """Create the raw backend transport selected by ``settings.backend``.

    Raises:
        ConfigurationError: Unknown backend, missing API key, or no usable model.
    """
    info = get_provider_info(settings.backend)
    if info is None:
        known = ", ".join(p.id for p in AVAILABLE_PROVIDERS)
        raise ConfigurationError(
            f"Unknown backend '{settings.backend}'. Choose one of: {known}.", setting="backend"
        )

    logger.info("Using %s backend", info.name)
    if info.id == "anthropic":
        return _create_anthropic(settings)
    return _create_ollama(settings)


def create_transport(settings: Settings, invoker: ToolInvoker) -> FunctionInvokingTransport:
    """Create the configured backend wrapped in the tool-invocation loop."""
    return FunctionInvokingTransport(create_backend(settings), invoker)


# =============================================================================
# Provider Creation
# =============================================================================


def _create_ollama(settings: Settings) -> ChatTransport:
    from .ollama import OllamaTransport

    transport = OllamaTransport(url=settings.ollama_url, model=settings.model)
    try:
        transport.default_model()
    except LLMError as e:
        raise ConfigurationError(str(e), setting="model") from e
    return transport


def _create_anthropic(settings: Settings) -> ChatTransport:
    from .anthropic import AnthropicTransport

    if not settings.anthropic_api_key:
        raise ConfigurationError(
            "The anthropic backend requires ANTHROPIC_API_KEY to be set.", setting="anthropic_api_key"
        )
    return AnthropicTransport(
        api_key=settings.anthropic_api_key,
        model=settings.model,
        url=settings.anthropic_url,
        max_output_tokens=settings.max_output_tokens,
    )
