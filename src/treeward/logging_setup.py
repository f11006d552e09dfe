"""Logging configuration.

Conversation output owns stdout, so log records go to a rotating file and,
when asked for, to stderr.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from .settings import Settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(settings: Settings, *, verbose: bool = False) -> None:
    """Install the rotating file handler (and optionally stderr) once per process."""
    global _configured
    if _configured:
        return

    root_logger = logging.getLogger("treeward")
    root_logger.setLevel(settings.log_level.upper())
    formatter = logging.Formatter(_FORMAT)

    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        # Fall back to stderr only; logging must never stop the agent
        print(f"Cannot open log file {settings.log_path}: {e}", file=sys.stderr)
        verbose = True
    else:
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if verbose:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    _configured = True
