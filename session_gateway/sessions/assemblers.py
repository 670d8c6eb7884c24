"""
Per-session assembler ownership.

SessionAssemblers is the single owner of the map from session id to
EventAssembler. Request handlers go through it instead of touching
assemblers directly: events for one session are applied under that
session's lock and in arrival order, while different sessions never
wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from ..blocks.assembler import EventAssembler
from ..blocks.events import SessionEvent
from ..blocks.types import Message
from ..id_utils import validate_session_id

logger = logging.getLogger(__name__)

MessageClosedCallback = Callable[[str, Message], Awaitable[None]]


class SessionAssemblers:
    """Owns one EventAssembler per session.

    Args:
        on_message_closed: Awaited with (session_id, message) each time a
            turn finishes; typically TranscriptStore.append. Failures are
            logged and do not affect assembly.
    """

    def __init__(self, on_message_closed: MessageClosedCallback | None = None) -> None:
        self._assemblers: dict[str, EventAssembler] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._on_message_closed = on_message_closed

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._assemblers

    def __len__(self) -> int:
        return len(self._assemblers)

    def session_ids(self) -> list[str]:
        return list(self._assemblers)

    def get(self, session_id: str) -> EventAssembler:
        """Return the session's assembler, creating it on first use."""
        session_id = validate_session_id(session_id, field="session_id")
        assembler = self._assemblers.get(session_id)
        if assembler is None:
            assembler = EventAssembler(session_id)
            self._assemblers[session_id] = assembler
            self._locks[session_id] = asyncio.Lock()
        return assembler

    async def apply(self, session_id: str, event: SessionEvent) -> Message | None:
        """Apply one event to a session, in order with its other events."""
        return (await self.apply_many(session_id, [event]))[0]

    async def apply_many(
        self, session_id: str, events: Iterable[SessionEvent]
    ) -> list[Message | None]:
        """Apply a batch of events to a session under a single lock hold."""
        assembler = self.get(session_id)
        results: list[Message | None] = []
        async with self._locks[assembler.session_id]:
            start = len(assembler.completed)
            for event in events:
                results.append(assembler.apply(event))
            closed = assembler.completed[start:]

        for message in closed:
            await self._hand_off(assembler.session_id, message)
        return results

    async def begin_turn(self, session_id: str, message_id: str | None = None) -> Message:
        """Open an assistant turn before the backend starts streaming it."""
        assembler = self.get(session_id)
        async with self._locks[assembler.session_id]:
            start = len(assembler.completed)
            message = assembler.begin_turn(message_id)
            closed = assembler.completed[start:]
        for previous in closed:
            await self._hand_off(assembler.session_id, previous)
        return message

    async def close_turn(self, session_id: str, reason: str | None = None) -> Message | None:
        """Close a session's open turn after the stream ended without ``done``.

        Args:
            reason: Error text to record; None records a client-side cancel
        """
        if session_id not in self._assemblers:
            return None
        assembler = self._assemblers[session_id]
        async with self._locks[session_id]:
            message = assembler.fail(reason) if reason is not None else assembler.abort()
        if message is not None:
            await self._hand_off(session_id, message)
        return message

    def discard(self, session_id: str) -> EventAssembler | None:
        """Forget a session's assembler (e.g. after the session was killed)."""
        self._locks.pop(session_id, None)
        return self._assemblers.pop(session_id, None)

    async def _hand_off(self, session_id: str, message: Message) -> None:
        if self._on_message_closed is None:
            return
        try:
            await self._on_message_closed(session_id, message)
        except Exception:
            logger.exception(f"Failed to hand off message {message.message_id} for {session_id}")
