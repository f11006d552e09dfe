"""Treeward CLI - Interactive coding agent confined to one directory.

Usage:
    treeward                         Work on the current directory
    treeward --root ~/src/project    Work on another directory
    treeward --backend anthropic     Use the Anthropic Messages API

Session protocol:
    Type a prompt over one or more lines and finish it with a blank line.
    /clear   Forget the conversation
    /exit    Quit (end of input also quits)

Press Ctrl-C while the model is answering to cancel that answer.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import NoReturn

from . import __version__
from .console import ConsoleRenderer
from .errors import ConfigurationError
from .file_tools import FileTools
from .logging_setup import configure_logging
from .providers import AVAILABLE_PROVIDERS, create_transport
from .sandbox import PathSandbox
from .session import ChatSession, Command, TurnOutcome, parse_command, read_prompt
from .settings import Settings, load_settings, validate_root

logger = logging.getLogger(__name__)

EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treeward",
        description="Chat with a model that can list, read, write and edit files under one directory.",
        epilog="""
Environment Variables:
  TREEWARD_ROOT         Root directory (default: current directory)
  TREEWARD_BACKEND      ollama or anthropic (default: ollama)
  TREEWARD_MODEL        Model identifier
  TREEWARD_OLLAMA_URL   Ollama API URL (default: http://127.0.0.1:11434)
  ANTHROPIC_API_KEY     Required for the anthropic backend
  TREEWARD_LOG_LEVEL    Logging level (default: INFO)
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--root", "-r", help="Directory the agent may work in")
    parser.add_argument(
        "--backend",
        "-b",
        help="Model backend: " + ", ".join(f"{p.id} ({p.name})" for p in AVAILABLE_PROVIDERS),
    )
    parser.add_argument("--model", "-m", help="Model identifier")
    parser.add_argument("--ollama-url", help="Ollama API URL")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Also log to stderr and show token usage",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    """Command-line flags win over environment settings."""
    overrides: dict[str, object] = {}
    if args.root:
        overrides["root"] = Path(args.root)
    if args.backend:
        overrides["backend"] = args.backend.strip().lower()
    if args.model:
        overrides["model"] = args.model
    if args.ollama_url:
        overrides["ollama_url"] = args.ollama_url
    return dataclasses.replace(settings, **overrides)


def stdin_lines() -> Iterator[str]:
    """Yield operator input lines until end of input."""
    while True:
        try:
            yield input()
        except EOFError:
            return


async def _submit_interruptibly(session: ChatSession, prompt: str) -> TurnOutcome:
    """Run one prompt; SIGINT cancels only the in-flight answer."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    handler_installed = False
    if task is not None:
        try:
            loop.add_signal_handler(signal.SIGINT, task.cancel)
            handler_installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler unavailable; Ctrl-C will end the session")
    try:
        return await session.submit(prompt)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def run_loop(session: ChatSession, lines: Iterable[str], renderer: ConsoleRenderer) -> int:
    """Read prompts and stream answers until /exit or end of input."""
    lines = iter(lines)
    while True:
        renderer.prompt_hint()
        prompt = read_prompt(lines)
        if prompt is None:
            renderer.notice("Exiting.")
            return 0

        command = parse_command(prompt)
        if command is Command.CLEAR:
            renderer.notice("Cleaning context.")
            session.reset()
            continue
        if command is Command.EXIT:
            renderer.notice("Exiting.")
            return 0
        if not prompt:
            continue

        outcome = asyncio.run(_submit_interruptibly(session, prompt))
        renderer.end_turn()
        if outcome.cancelled:
            renderer.notice("Answer cancelled. The partial answer was kept.", "yellow")
        elif outcome.error:
            renderer.notice(f"Answer interrupted: {outcome.error}", "yellow")


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the treeward CLI."""
    args = build_parser().parse_args(argv)
    renderer = ConsoleRenderer()
    renderer.context.show_usage = args.verbose

    try:
        settings = apply_args(load_settings(), args)
        configure_logging(settings, verbose=args.verbose)
        root = validate_root(settings.root)
        settings = dataclasses.replace(settings, root=root)
        tools = FileTools(PathSandbox(root))
        transport = create_transport(settings, tools.invoke)
    except (ConfigurationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    session = ChatSession(transport, tools.descriptors, observer=renderer.on_update)
    renderer.banner(str(root), transport.provider_type)
    logger.info("Session started in %s", root)

    try:
        sys.exit(run_loop(session, stdin_lines(), renderer))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
