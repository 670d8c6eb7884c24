"""
Incremental message assembly from session stream events.

The assembler is a single-session, single-writer state machine:

    Idle --message_start--> Streaming --done--> Idle

While Streaming, text and thinking fragments coalesce into the
trailing block of the same kind; every other event kind starts a
new block. Protocol violations (orphaned tool output, a second
message_start, events outside a turn) are logged and absorbed so
that one bad event never makes the session unusable.

The assembler performs no I/O apart from logging.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

from ..id_utils import new_message_id
from ..logging_utils import SessionLoggerAdapter
from .events import (
    DoneEvent,
    ErrorEvent,
    MessageStartEvent,
    SessionEvent,
    TextEvent,
    ThinkingEvent,
    ToolUseEndEvent,
    ToolUseOutputEvent,
    ToolUseStartEvent,
    UnknownEvent,
)
from .types import (
    SESSION_ENDED_UNEXPECTEDLY,
    ErrorBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolStatus,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

CANCELLED_TEXT = "(Cancelled)"


class AssemblerState(Enum):
    """Turn state of an assembler."""

    IDLE = "idle"
    STREAMING = "streaming"


class EventAssembler:
    """Builds messages for one session from its ordered event stream.

    Example:
        >>> assembler = EventAssembler("session-1")
        >>> assembler.apply(MessageStartEvent("m1"))
        >>> assembler.apply(TextEvent("Hello "))
        >>> assembler.apply(TextEvent("world"))
        >>> assembler.apply(DoneEvent())
        >>> assembler.completed[-1].text()
        'Hello world'
    """

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id
        self.current: Message | None = None
        self.completed: list[Message] = []
        self.dropped_events = 0
        self._preopened = False
        self._log = SessionLoggerAdapter(logger, session_id=session_id)

    @property
    def state(self) -> AssemblerState:
        return AssemblerState.IDLE if self.current is None else AssemblerState.STREAMING

    @property
    def messages(self) -> list[Message]:
        """Completed messages followed by the open one, if any."""
        if self.current is None:
            return list(self.completed)
        return [*self.completed, self.current]

    def apply(self, event: SessionEvent) -> Message | None:
        """Apply one event.

        Args:
            event: Next event in stream order

        Returns:
            The message the event landed in, or None if it was dropped
        """
        if isinstance(event, UnknownEvent):
            self._log.info(f"Ignoring unknown event type: {event.type}")
            self.dropped_events += 1
            return None

        if isinstance(event, MessageStartEvent):
            return self._on_message_start(event)

        if self.current is None:
            self._drop(f"'{event.event_type.value}' outside of an open message")
            return None

        if isinstance(event, TextEvent):
            self._coalesce(TextBlock, event.content)
        elif isinstance(event, ThinkingEvent):
            self._coalesce(ThinkingBlock, event.content)
        elif isinstance(event, ToolUseStartEvent):
            self.current.append_block(
                ToolUseBlock(tool_use_id=event.tool_use_id, tool=event.tool, input=event.input)
            )
        elif isinstance(event, ToolUseOutputEvent):
            return self._on_tool_output(event)
        elif isinstance(event, ToolUseEndEvent):
            return self._on_tool_end(event)
        elif isinstance(event, ErrorEvent):
            self.current.append_block(ErrorBlock(content=event.content, code=event.code))
        elif isinstance(event, DoneEvent):
            return self._close()

        return self.current

    def feed(self, events: Iterable[SessionEvent]) -> list[Message]:
        """Apply events in order and return the messages closed along the way."""
        start = len(self.completed)
        for event in events:
            self.apply(event)
        return self.completed[start:]

    def begin_turn(self, message_id: str | None = None) -> Message:
        """Open an assistant message before the backend announces one.

        The next message_start adopts this message (keeping its id)
        instead of treating it as an unfinished turn.
        """
        if self.current is not None:
            self._log.warning(f"Opening a new turn while {self.current.message_id} is streaming")
            self._close()
        self.current = Message(message_id=message_id or new_message_id(), role="assistant")
        self._preopened = True
        return self.current

    def abort(self) -> Message | None:
        """Close the open message after a client-side cancel."""
        if self.current is None:
            return None
        if not self.current.blocks:
            self.current.append_block(TextBlock(content=CANCELLED_TEXT))
        return self._close()

    def fail(self, reason: str, code: str | None = None) -> Message | None:
        """Close the open message after the stream itself failed."""
        if self.current is None:
            return None
        self.current.append_block(ErrorBlock(content=reason, code=code))
        return self._close(reason)

    def _on_message_start(self, event: MessageStartEvent) -> Message:
        if self.current is not None and self._preopened:
            self._preopened = False
            return self.current

        if self.current is not None:
            self._log.warning(
                f"message_start({event.message_id}) while {self.current.message_id} "
                "is still streaming; force-closing it"
            )
            self._close()

        self.current = Message(message_id=event.message_id, role="assistant")
        return self.current

    def _coalesce(self, block_cls: type[TextBlock] | type[ThinkingBlock], fragment: str) -> None:
        assert self.current is not None
        last = self.current.last_block
        if type(last) is block_cls:
            last.append(fragment)
        else:
            self.current.append_block(block_cls(content=fragment))

    def _on_tool_output(self, event: ToolUseOutputEvent) -> Message | None:
        assert self.current is not None
        block = self.current.find_tool_use(event.tool_use_id)
        if block is None:
            self._drop(f"tool_use_output for unknown tool {event.tool_use_id}")
            return None
        if not block.append_output(event.output):
            self._drop(f"tool_use_output for finished tool {event.tool_use_id}")
            return None
        return self.current

    def _on_tool_end(self, event: ToolUseEndEvent) -> Message | None:
        assert self.current is not None
        block = self.current.find_tool_use(event.tool_use_id)
        if block is None:
            self._drop(f"tool_use_end for unknown tool {event.tool_use_id}")
            return None
        if not block.finish(event.status, event.error):
            self._drop(f"tool_use_end for finished tool {event.tool_use_id}")
            return None
        return self.current

    def _close(self, reason: str = SESSION_ENDED_UNEXPECTEDLY) -> Message:
        assert self.current is not None
        message = self.current
        for tool in message.running_tools():
            self._log.bind(message_id=message.message_id, tool_use_id=tool.tool_use_id).warning(
                f"Tool {tool.tool} still running at end of turn"
            )
            tool.finish(ToolStatus.ERROR, reason)
        message.finish()
        self.completed.append(message)
        self.current = None
        self._preopened = False
        return message

    def _drop(self, reason: str) -> None:
        self.dropped_events += 1
        self._log.warning(f"Dropped event: {reason}")

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the assembler for diagnostics."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "messages": [m.to_dict() for m in self.messages],
            "dropped_events": self.dropped_events,
        }


def assemble(events: Iterable[SessionEvent], session_id: str | None = None) -> list[Message]:
    """Run a one-shot event sequence through a fresh assembler.

    Returns:
        Completed messages followed by the still-open message, if any
    """
    assembler = EventAssembler(session_id)
    for event in events:
        assembler.apply(event)
    return assembler.messages
