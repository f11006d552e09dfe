from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError

DEFAULT_DATA_DIR = Path.home() / ".treeward"


@dataclass(frozen=True)
class Settings:
    """Static settings for one agent process.

    Root is the only trust anchor for file tools; everything else selects and
    tunes the chat backend or the log file.
    """

    root: Path = field(default_factory=Path.cwd)
    backend: str = "ollama"
    model: str | None = None
    ollama_url: str = "http://127.0.0.1:11434"
    anthropic_url: str = "https://api.anthropic.com"
    anthropic_api_key: str | None = None
    max_output_tokens: int = 4000
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    log_max_bytes: int = 1_000_000
    log_backup_count: int = 3

    @property
    def log_path(self) -> Path:
        return self.data_dir / "treeward.log"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Unset variables keep the dataclass defaults.
    """
    env = os.environ if environ is None else environ
    defaults = Settings()
    return Settings(
        root=Path(env["TREEWARD_ROOT"]) if env.get("TREEWARD_ROOT") else defaults.root,
        backend=env.get("TREEWARD_BACKEND", defaults.backend).strip().lower(),
        model=env.get("TREEWARD_MODEL") or None,
        ollama_url=env.get("TREEWARD_OLLAMA_URL", defaults.ollama_url),
        anthropic_url=env.get("TREEWARD_ANTHROPIC_URL", defaults.anthropic_url),
        anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
        max_output_tokens=int(env.get("TREEWARD_MAX_OUTPUT_TOKENS", str(defaults.max_output_tokens))),
        data_dir=Path(env["TREEWARD_DATA_DIR"]) if env.get("TREEWARD_DATA_DIR") else defaults.data_dir,
        log_level=env.get("TREEWARD_LOG_LEVEL", defaults.log_level),
        log_max_bytes=int(env.get("TREEWARD_LOG_MAX_BYTES", str(defaults.log_max_bytes))),
        log_backup_count=int(env.get("TREEWARD_LOG_BACKUP_COUNT", str(defaults.log_backup_count))),
    )


def validate_root(root: Path | str) -> Path:
    """Canonicalize the root directory, failing fast if it is unusable.

    Raises:
        ConfigurationError: If the path is missing or not a directory.
    """
    resolved = Path(root).expanduser().resolve()
    if not resolved.exists():
        raise ConfigurationError(f"Directory does not exist: {resolved}", setting="root")
    if not resolved.is_dir():
        raise ConfigurationError(f"Root is not a directory: {resolved}", setting="root")
    return resolved
