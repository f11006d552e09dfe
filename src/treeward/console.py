"""Console presentation for the interactive session.

Rendering state (which role header was printed last) lives in an explicit
``RenderContext`` owned by the renderer; the conversation core never writes
to the terminal.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TextIO

from .config import LIMITS
from .conversation import (
    ChatUpdate,
    Role,
    TextContent,
    ToolCallContent,
    ToolResultContent,
    UsageContent,
)

_COLORS = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "blue": "\033[34m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "reset": "\033[0m",
}

_ROLE_COLORS = {
    Role.ASSISTANT: "red",
    Role.TOOL: "blue",
}


def colorize(text: str, color: str, stream: TextIO | None = None) -> str:
    """Apply ANSI color codes if the stream is a TTY."""
    stream = stream or sys.stdout
    isatty = getattr(stream, "isatty", None)
    if not (isatty and isatty()):
        return text
    return f"{_COLORS.get(color, '')}{text}{_COLORS['reset']}"


@dataclass
class RenderContext:
    """Mutable rendering state for one console."""

    current_role: Role | None = None
    show_usage: bool = False


class ConsoleRenderer:
    """Prints streamed updates as they are accepted by the aggregator.

    Example:
        renderer = ConsoleRenderer()
        aggregator = ConversationAggregator(store, observer=renderer.on_update)
    """

    def __init__(self, out: TextIO | None = None, *, context: RenderContext | None = None) -> None:
        self._out = out or sys.stdout
        self.context = context or RenderContext()

    def _write(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def _line(self, text: str = "") -> None:
        self._write(text + "\n")

    def banner(self, root: str, backend: str) -> None:
        self._line(f"Treeward, running in: {root} ({backend})")

    def prompt_hint(self) -> None:
        self._line()
        self._line(colorize("Please enter your prompt. Enter a blank line to finish the prompt.", "green", self._out))

    def notice(self, text: str, color: str = "dim") -> None:
        self._line(colorize(text, color, self._out))

    def on_update(self, role: Role, update: ChatUpdate) -> None:
        """Observer hook for ``ConversationAggregator``."""
        if role != self.context.current_role:
            self._line()
            self._write(colorize(f"{role.value}: ", _ROLE_COLORS.get(role, "bold"), self._out))
            self.context.current_role = role

        for content in update.contents:
            if isinstance(content, TextContent):
                self._write(content.text)
            elif isinstance(content, ToolCallContent):
                self._line()
                self._line(colorize(f"<function-call name='{content.name}' id='{content.call_id}' />", "dim", self._out))
            elif isinstance(content, ToolResultContent):
                body = content.result
                if len(body) > LIMITS.MAX_PREVIEW_CHARS:
                    body = body[: LIMITS.MAX_PREVIEW_CHARS] + "..."
                status = " error='true'" if content.is_error else ""
                self._line()
                self._line(
                    colorize(f"<function-result id='{content.call_id}'{status}>{body}</function-result>", "dim", self._out)
                )
            elif isinstance(content, UsageContent) and self.context.show_usage:
                usage = ", ".join(f"{k}={v}" for k, v in content.details.items())
                self._line()
                self._line(colorize(f"[usage] {usage}", "dim", self._out))

    def end_turn(self) -> None:
        """Close the current output line after a response finishes."""
        if self.context.current_role is not None:
            self._line()
        self.context.current_role = None
