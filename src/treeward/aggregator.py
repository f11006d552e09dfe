"""Fold a streaming update sequence into committed conversation turns.

The aggregator keeps at most one open role and a buffer of its fragments.
When an update arrives for a different role, the buffer is sealed into a
``Turn`` and committed to the store before the new role's first fragment is
accepted, so the store never holds a half-filled turn and tool-call and
tool-result turns land in production order. Stream end, cancellation and
transport failure all seal through the same ``_seal`` path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Callable

from .conversation import ChatUpdate, Content, ConversationStore, Role, Turn
from .errors import LLMError, StreamInterruptedError, TurnCancelledError

logger = logging.getLogger(__name__)

UpdateObserver = Callable[[Role, ChatUpdate], None]


class ConversationAggregator:
    """Commits turns from one update stream at a time.

    Example:
        aggregator = ConversationAggregator(store, observer=renderer.on_update)
        turns = await aggregator.consume(transport.stream_chat(store.turns, tools))
    """

    def __init__(self, store: ConversationStore, *, observer: UpdateObserver | None = None) -> None:
        self._store = store
        self._observer = observer
        self._role: Role | None = None
        self._buffer: list[Content] = []
        self._committed: list[Turn] = []
        self._active = False

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def open_role(self) -> Role | None:
        """Role currently being filled, None when idle."""
        return self._role

    async def consume(self, updates: AsyncIterable[ChatUpdate]) -> list[Turn]:
        """Drain an update stream, committing turns as roles change.

        Returns:
            Turns committed during this stream, in order.

        Raises:
            TurnCancelledError: Cancelled while awaiting an update. The open
                buffer has been committed.
            StreamInterruptedError: The transport failed mid-stream. The open
                buffer has been committed.
        """
        if self._active:
            raise RuntimeError("ConversationAggregator is already consuming a stream")
        self._active = True
        self._role = None
        self._buffer = []
        self._committed = []

        try:
            async for update in updates:
                self._accept(update)
        except asyncio.CancelledError:
            self._seal()
            logger.info("Stream cancelled after %d committed turn(s)", len(self._committed))
            raise TurnCancelledError(turns=self._committed) from None
        except LLMError as e:
            self._seal()
            logger.warning("Stream interrupted: %s", e)
            raise StreamInterruptedError(str(e), turns=self._committed) from e
        except BaseException:
            self._seal()
            raise
        else:
            self._seal()
        finally:
            self._active = False

        return list(self._committed)

    def _accept(self, update: ChatUpdate) -> None:
        if not update.contents:
            # Heartbeat/noise from the transport
            return

        role = update.role or self._role or Role.ASSISTANT
        if self._role is not None and role != self._role:
            self._seal()
        self._role = role

        if self._observer is not None:
            self._observer(role, update)
        self._buffer.extend(update.contents)

    def _seal(self) -> None:
        """Commit the open buffer as a turn. The only place turns are produced."""
        if self._role is not None and self._buffer:
            turn = Turn(role=self._role, fragments=tuple(self._buffer))
            self._store.append(turn)
            self._committed.append(turn)
            logger.debug("Committed %s turn with %d fragment(s)", turn.role.value, len(turn.fragments))
        self._role = None
        self._buffer = []


__all__ = ["ConversationAggregator", "UpdateObserver"]
