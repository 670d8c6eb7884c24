"""Tests for the local transcript store."""

from __future__ import annotations

import pytest

from session_gateway.blocks import Message, TextBlock, ToolStatus, ToolUseBlock
from session_gateway.exceptions import SessionValidationError
from session_gateway.local import TRANSCRIPT_FILENAME, TranscriptStore
from session_gateway.local.file_ops import append_jsonl, read_jsonl


def finished_message(message_id: str, text: str = "hello") -> Message:
    message = Message(message_id=message_id)
    message.append_block(TextBlock(content=text))
    tool = message.append_block(ToolUseBlock(tool_use_id="t1", tool="bash", input={"cmd": "ls"}))
    tool.finish(ToolStatus.SUCCESS)
    message.finish()
    return message


class TestTranscriptStore:
    """Tests for TranscriptStore."""

    @pytest.fixture
    def store(self, tmp_path):
        return TranscriptStore(tmp_path / "transcripts")

    @pytest.mark.asyncio
    async def test_append_and_load(self, store) -> None:
        """Messages come back in the order they were stored."""
        await store.append("s1", finished_message("m1", "first"))
        await store.append("s1", finished_message("m2", "second"))

        messages = await store.load("s1")
        assert [m.message_id for m in messages] == ["m1", "m2"]
        assert messages[0].text() == "first"
        assert messages[0].is_streaming is False
        assert messages[0].blocks[1].status == ToolStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_records_carry_session_and_time(self, store) -> None:
        await store.append("s1", finished_message("m1"))
        records = await read_jsonl(store.transcript_path("s1"))
        assert records[0]["session_id"] == "s1"
        assert "stored_at" in records[0]
        assert records[0]["id"] == "m1"

    @pytest.mark.asyncio
    async def test_streaming_message_rejected(self, store) -> None:
        """Only finished messages are persisted."""
        with pytest.raises(ValueError):
            await store.append("s1", Message(message_id="m1"))

    @pytest.mark.asyncio
    async def test_missing_session_loads_empty(self, store) -> None:
        assert await store.load("never-seen") == []

    @pytest.mark.asyncio
    async def test_sessions_and_delete(self, store) -> None:
        await store.append("b-session", finished_message("m1"))
        await store.append("a-session", finished_message("m2"))
        assert await store.sessions() == ["a-session", "b-session"]

        assert await store.delete("a-session") is True
        assert await store.delete("a-session") is False
        assert await store.sessions() == ["b-session"]

    @pytest.mark.asyncio
    async def test_torn_final_line_skipped(self, store) -> None:
        """A partial last line from a crash does not hide earlier messages."""
        await store.append("s1", finished_message("m1"))
        path = store.transcript_path("s1")
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"id": "m2", "rol')

        messages = await store.load("s1")
        assert [m.message_id for m in messages] == ["m1"]

    @pytest.mark.asyncio
    async def test_unsafe_session_id_rejected(self, store) -> None:
        with pytest.raises(SessionValidationError):
            store.transcript_path("../escape")

    def test_transcript_path_layout(self, store, tmp_path) -> None:
        assert store.transcript_path("s1") == tmp_path / "transcripts" / "s1" / TRANSCRIPT_FILENAME


class TestFileOps:
    """Tests for the JSONL helpers."""

    @pytest.mark.asyncio
    async def test_append_creates_parents(self, tmp_path) -> None:
        path = tmp_path / "a" / "b" / "log.jsonl"
        await append_jsonl(path, {"n": 1})
        await append_jsonl(path, {"n": 2})
        assert await read_jsonl(path) == [{"n": 1}, {"n": 2}]
