"""Tests for backend selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from treeward.errors import ConfigurationError
from treeward.providers import factory
from treeward.providers.anthropic import AnthropicTransport
from treeward.providers.base import ChatTransport
from treeward.providers.function_invocation import FunctionInvokingTransport
from treeward.providers.ollama import OllamaTransport
from treeward.settings import Settings


def _settings(tmp_path: Path, **overrides) -> Settings:  # noqa: ANN003
    return Settings(root=tmp_path, data_dir=tmp_path / "data", **overrides)


class TestProviderInfo:
    def test_lists_both_backends(self) -> None:
        """Should know about ollama and anthropic."""
        assert [p.id for p in factory.AVAILABLE_PROVIDERS] == ["ollama", "anthropic"]
        assert factory.get_provider_info("anthropic").name == "Anthropic Messages API"  # type: ignore[union-attr]

    def test_unknown_provider(self) -> None:
        """Should return None for an unknown id."""
        assert factory.get_provider_info("nope") is None


class TestCreateBackend:
    def test_unknown_backend(self, tmp_path: Path) -> None:
        """Should fail with a configuration error naming the choices."""
        with pytest.raises(ConfigurationError, match="ollama, anthropic"):
            factory.create_backend(_settings(tmp_path, backend="gpt"))

    def test_ollama_with_model(self, tmp_path: Path) -> None:
        """Should create an Ollama transport without probing when a model is set."""
        backend = factory.create_backend(_settings(tmp_path, model="llama3"))
        assert isinstance(backend, OllamaTransport)
        assert isinstance(backend, ChatTransport)
        assert backend.model == "llama3"

    def test_ollama_without_any_model(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should turn a failed model auto-selection into a configuration error."""
        monkeypatch.setattr(OllamaTransport, "list_models", lambda self: [])
        with pytest.raises(ConfigurationError) as excinfo:
            factory.create_backend(_settings(tmp_path))
        assert excinfo.value.setting == "model"

    def test_anthropic_requires_key(self, tmp_path: Path) -> None:
        """Should refuse the anthropic backend without an API key."""
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            factory.create_backend(_settings(tmp_path, backend="anthropic"))

    def test_anthropic(self, tmp_path: Path) -> None:
        """Should pass model and limits through."""
        backend = factory.create_backend(
            _settings(tmp_path, backend="anthropic", anthropic_api_key="k", max_output_tokens=99)
        )
        assert isinstance(backend, AnthropicTransport)
        assert backend.build_payload([], ())["max_tokens"] == 99


class TestCreateTransport:
    def test_wraps_in_tool_loop(self, tmp_path: Path) -> None:
        """Should wrap the backend in the tool-invocation loop."""
        transport = factory.create_transport(_settings(tmp_path, model="m"), lambda call: None)  # type: ignore[arg-type,return-value]
        assert isinstance(transport, FunctionInvokingTransport)
        assert transport.provider_type == "ollama"
