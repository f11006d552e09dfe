"""Centralized configuration constants for Treeward.

This module provides a single source of truth for:
- Timeouts (streaming chat, model listing)
- Tool loop limits
- Output truncation limits

Constants can be overridden via environment variables where noted.
Limit values have hard minimums that cannot be bypassed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


# =============================================================================
# Helper functions
# =============================================================================


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    val = int(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


def _env_float(name: str, default: float, min_val: float | None = None) -> float:
    """Get float from environment with optional minimum enforcement."""
    val = float(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


# =============================================================================
# Timeouts (in seconds)
# =============================================================================


@dataclass(frozen=True)
class Timeouts:
    """Timeout values for backend operations."""

    # A streaming call may sit idle while the model thinks or loads
    LLM_STREAM: float = _env_float("TREEWARD_LLM_TIMEOUT", 300.0, min_val=10.0)
    LIST_MODELS: float = 5.0


TIMEOUTS = Timeouts()


# =============================================================================
# Tool Loop Limits
# =============================================================================


@dataclass(frozen=True)
class ToolLimits:
    """Limits for the tool-invocation loop of a single prompt."""

    # Backend round trips per prompt before tool calls stop being honored
    MAX_TOOL_ROUNDS: int = _env_int("TREEWARD_MAX_TOOL_ROUNDS", 25, min_val=1)

    # Truncation for tool arguments/results echoed into logs and the console
    MAX_PREVIEW_CHARS: int = 200


LIMITS = ToolLimits()
