"""
Session stream events.

Events are the wire-level unit delivered from a backend to the
client, one per SSE ``data:`` frame. The set of event types is
closed; anything else decodes to UnknownEvent so newer backends
never crash older assemblers.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..exceptions import EventParseError
from .types import ToolStatus

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of session stream events."""

    MESSAGE_START = "message_start"
    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE_START = "tool_use_start"
    TOOL_USE_OUTPUT = "tool_use_output"
    TOOL_USE_END = "tool_use_end"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class MessageStartEvent:
    message_id: str

    event_type = EventType.MESSAGE_START

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type.value, "id": self.message_id}


@dataclass(frozen=True)
class TextEvent:
    content: str

    event_type = EventType.TEXT

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type.value, "content": self.content}


@dataclass(frozen=True)
class ThinkingEvent:
    content: str

    event_type = EventType.THINKING

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type.value, "content": self.content}


@dataclass(frozen=True)
class ToolUseStartEvent:
    tool_use_id: str
    tool: str
    input: dict[str, Any] = field(default_factory=dict)

    event_type = EventType.TOOL_USE_START

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "id": self.tool_use_id,
            "tool": self.tool,
            "input": dict(self.input),
        }


@dataclass(frozen=True)
class ToolUseOutputEvent:
    tool_use_id: str
    output: str

    event_type = EventType.TOOL_USE_OUTPUT

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type.value, "id": self.tool_use_id, "output": self.output}


@dataclass(frozen=True)
class ToolUseEndEvent:
    tool_use_id: str
    status: ToolStatus
    error: str | None = None

    event_type = EventType.TOOL_USE_END

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.event_type.value,
            "id": self.tool_use_id,
            "status": self.status.value,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class ErrorEvent:
    content: str
    code: str | None = None

    event_type = EventType.ERROR

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.event_type.value, "content": self.content}
        if self.code is not None:
            result["code"] = self.code
        return result


@dataclass(frozen=True)
class DoneEvent:
    event_type = EventType.DONE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type.value}


@dataclass(frozen=True)
class UnknownEvent:
    """An event whose type this version does not understand."""

    type: str
    raw: dict[str, Any] = field(default_factory=dict)

    event_type = None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.raw)


SessionEvent = (
    MessageStartEvent
    | TextEvent
    | ThinkingEvent
    | ToolUseStartEvent
    | ToolUseOutputEvent
    | ToolUseEndEvent
    | ErrorEvent
    | DoneEvent
    | UnknownEvent
)


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise EventParseError(f"'{data.get('type')}' requires string field '{key}'", data)
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise EventParseError(f"'{data.get('type')}' field '{key}' must be a string", data)
    return value


def parse_event(data: dict[str, Any]) -> SessionEvent:
    """Decode an event dictionary.

    Args:
        data: Dictionary with a ``type`` discriminator

    Returns:
        The typed event, or UnknownEvent for unrecognised types

    Raises:
        EventParseError: If a known event is missing required fields
    """
    if not isinstance(data, dict):
        raise EventParseError("event must be a JSON object", data)

    type_str = data.get("type")
    if not isinstance(type_str, str):
        raise EventParseError("missing 'type' discriminator", data)

    try:
        event_type = EventType(type_str)
    except ValueError:
        return UnknownEvent(type=type_str, raw=dict(data))

    if event_type is EventType.MESSAGE_START:
        return MessageStartEvent(message_id=_require_str(data, "id"))

    if event_type is EventType.TEXT:
        return TextEvent(content=_require_str(data, "content"))

    if event_type is EventType.THINKING:
        return ThinkingEvent(content=_require_str(data, "content"))

    if event_type is EventType.TOOL_USE_START:
        tool_input = data.get("input") or {}
        if not isinstance(tool_input, dict):
            raise EventParseError("'tool_use_start' input must be an object", data)
        return ToolUseStartEvent(
            tool_use_id=_require_str(data, "id"),
            tool=_require_str(data, "tool"),
            input=tool_input,
        )

    if event_type is EventType.TOOL_USE_OUTPUT:
        return ToolUseOutputEvent(
            tool_use_id=_require_str(data, "id"),
            output=_require_str(data, "output"),
        )

    if event_type is EventType.TOOL_USE_END:
        status_str = _require_str(data, "status")
        if status_str not in (ToolStatus.SUCCESS.value, ToolStatus.ERROR.value):
            raise EventParseError(f"invalid tool status '{status_str}'", data)
        return ToolUseEndEvent(
            tool_use_id=_require_str(data, "id"),
            status=ToolStatus(status_str),
            error=_optional_str(data, "error"),
        )

    if event_type is EventType.ERROR:
        return ErrorEvent(
            content=_require_str(data, "content"),
            code=_optional_str(data, "code"),
        )

    return DoneEvent()


def encode_sse(event: SessionEvent) -> bytes:
    """Render an event as one SSE frame."""
    return f"data: {json.dumps(event.to_dict())}\n\n".encode()


def _parse_sse_frame(frame: str) -> SessionEvent | None:
    """Parse a single SSE frame; malformed frames are logged and skipped."""
    data_lines = [line[5:].lstrip() for line in frame.split("\n") if line.startswith("data:")]
    if not data_lines:
        return None

    payload = "\n".join(data_lines).strip()
    if not payload:
        return None

    try:
        return parse_event(json.loads(payload))
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse SSE data: {payload[:200]}")
    except EventParseError as e:
        logger.warning(f"Skipping malformed event: {e.reason}")
    return None


async def iter_sse_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[SessionEvent]:
    """Decode an incremental SSE byte stream into events.

    Events are yielded as soon as their frame is complete; the
    stream is never buffered as a whole.

    Args:
        chunks: Async iterable of raw byte chunks (e.g. response.content.iter_any())

    Yields:
        Parsed events in stream order
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk).replace("\r\n", "\n")

        while "\n\n" in buffer:
            frame, buffer = buffer.split("\n\n", 1)
            event = _parse_sse_frame(frame)
            if event is not None:
                yield event

    if buffer.strip():
        event = _parse_sse_frame(buffer)
        if event is not None:
            yield event
