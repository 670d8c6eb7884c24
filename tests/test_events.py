"""Tests for session event decoding and SSE framing."""

from __future__ import annotations

import json

import pytest

from session_gateway.blocks import (
    DoneEvent,
    ErrorEvent,
    EventType,
    MessageStartEvent,
    TextEvent,
    ThinkingEvent,
    ToolStatus,
    ToolUseEndEvent,
    ToolUseOutputEvent,
    ToolUseStartEvent,
    UnknownEvent,
    encode_sse,
    iter_sse_events,
    parse_event,
)
from session_gateway.exceptions import EventParseError


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


async def _collect(*parts: bytes) -> list:
    return [event async for event in iter_sse_events(_chunks(*parts))]


class TestParseEvent:
    """Tests for parse_event."""

    def test_known_event_types(self) -> None:
        """Each wire type decodes to its own class."""
        assert parse_event({"type": "message_start", "id": "m1"}) == MessageStartEvent("m1")
        assert parse_event({"type": "text", "content": "hi"}) == TextEvent("hi")
        assert parse_event({"type": "thinking", "content": "hmm"}) == ThinkingEvent("hmm")
        assert parse_event(
            {"type": "tool_use_start", "id": "t1", "tool": "bash", "input": {"command": "ls"}}
        ) == ToolUseStartEvent("t1", "bash", {"command": "ls"})
        assert parse_event(
            {"type": "tool_use_output", "id": "t1", "output": "a"}
        ) == ToolUseOutputEvent("t1", "a")
        assert parse_event(
            {"type": "tool_use_end", "id": "t1", "status": "error", "error": "timeout"}
        ) == ToolUseEndEvent("t1", ToolStatus.ERROR, "timeout")
        assert parse_event({"type": "error", "content": "bad", "code": "E1"}) == ErrorEvent(
            "bad", "E1"
        )
        assert parse_event({"type": "done"}) == DoneEvent()

    def test_tool_input_defaults_to_empty(self) -> None:
        """A tool_use_start without input carries an empty dict."""
        event = parse_event({"type": "tool_use_start", "id": "t1", "tool": "search"})
        assert event.input == {}

    def test_unknown_type_is_preserved(self) -> None:
        """Unrecognised types decode to UnknownEvent with the raw payload."""
        payload = {"type": "progress", "percent": 50}
        event = parse_event(payload)
        assert isinstance(event, UnknownEvent)
        assert event.type == "progress"
        assert event.event_type is None
        assert event.to_dict() == payload

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"content": "no type"},
            {"type": "message_start"},
            {"type": "text", "content": 5},
            {"type": "tool_use_start", "id": "t1"},
            {"type": "tool_use_start", "id": "t1", "tool": "bash", "input": "ls"},
            {"type": "tool_use_end", "id": "t1", "status": "running"},
            {"type": "tool_use_end", "id": "t1", "status": "success", "error": 3},
        ],
    )
    def test_malformed_events_rejected(self, payload) -> None:
        """Known types with missing or mistyped fields raise EventParseError."""
        with pytest.raises(EventParseError):
            parse_event(payload)

    def test_to_dict_matches_wire_format(self) -> None:
        """Encoding produces the same dictionary that was decoded."""
        payload = {"type": "tool_use_end", "id": "t1", "status": "success"}
        assert parse_event(payload).to_dict() == payload
        assert ToolUseEndEvent("t1", ToolStatus.SUCCESS).event_type == EventType.TOOL_USE_END


class TestSseFraming:
    """Tests for encode_sse and iter_sse_events."""

    def test_encode_sse(self) -> None:
        """One event is one data frame."""
        frame = encode_sse(TextEvent("hi"))
        assert frame.startswith(b"data: ")
        assert frame.endswith(b"\n\n")
        assert json.loads(frame[len(b"data: ") :]) == {"type": "text", "content": "hi"}

    @pytest.mark.asyncio
    async def test_frames_split_across_chunks(self) -> None:
        """Frames are reassembled regardless of chunk boundaries."""
        body = encode_sse(MessageStartEvent("m1")) + encode_sse(TextEvent("hello"))
        events = await _collect(body[:7], body[7:30], body[30:])
        assert events == [MessageStartEvent("m1"), TextEvent("hello")]

    @pytest.mark.asyncio
    async def test_multibyte_character_split(self) -> None:
        """A UTF-8 character split between chunks decodes intact."""
        raw = 'data: {"type": "text", "content": "café ☃"}\n\n'.encode()
        split = raw.index("☃".encode()) + 1
        events = await _collect(raw[:split], raw[split:])
        assert events == [TextEvent("café ☃")]

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self) -> None:
        """CRLF-delimited frames are accepted."""
        events = await _collect(b'data: {"type": "done"}\r\n\r\n')
        assert events == [DoneEvent()]

    @pytest.mark.asyncio
    async def test_malformed_frames_skipped(self) -> None:
        """Bad JSON and invalid events are skipped; the stream continues."""
        body = (
            b"data: {not json}\n\n"
            b'data: {"type": "text"}\n\n'
            b": keep-alive comment\n\n"
            + encode_sse(TextEvent("ok"))
        )
        assert await _collect(body) == [TextEvent("ok")]

    @pytest.mark.asyncio
    async def test_trailing_frame_without_separator(self) -> None:
        """A final frame is parsed even without the blank line."""
        events = await _collect(b'data: {"type": "done"}')
        assert events == [DoneEvent()]

    @pytest.mark.asyncio
    async def test_multiline_data(self) -> None:
        """Multiple data lines of one frame are joined."""
        events = await _collect(b'data: {"type": "text",\ndata:  "content": "x"}\n\n')
        assert events == [TextEvent("x")]
