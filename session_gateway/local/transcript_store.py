"""
Local transcript store for finished messages.

Once a turn finishes, the assembler hands the immutable message to
storage. The store keeps one append-only JSONL file per session:

    <base_dir>/<session_id>/transcript.jsonl

Each line is a message in the client's wire format plus the session
id and the time it was stored.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

from ..blocks.types import Message
from ..exceptions import SessionValidationError, TranscriptIOError
from ..id_utils import is_safe_path_segment, validate_session_id
from .file_ops import append_jsonl, iter_jsonl, list_directories, remove_directory

logger = logging.getLogger(__name__)

TRANSCRIPT_FILENAME = "transcript.jsonl"


class TranscriptStore:
    """Append-only, per-session store of finished messages.

    Example:
        >>> store = TranscriptStore(Path("~/.session-gateway/transcripts").expanduser())
        >>> await store.append("session-1", message)
        >>> [m.message_id for m in await store.load("session-1")]
        ['m1']
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def transcript_path(self, session_id: str) -> Path:
        """Path of a session's transcript file.

        Raises:
            SessionValidationError: If the id is missing or not a safe path segment
        """
        session_id = validate_session_id(session_id, field="session_id")
        if not is_safe_path_segment(session_id):
            raise SessionValidationError(
                f"Session ID cannot be used as a path: {session_id!r}", field="session_id"
            )
        return self.base_dir / session_id / TRANSCRIPT_FILENAME

    async def append(self, session_id: str, message: Message) -> None:
        """Persist a finished message.

        Raises:
            ValueError: If the message is still streaming
        """
        if message.is_streaming:
            raise ValueError(f"Message {message.message_id} is still streaming")

        record = message.to_dict()
        record["session_id"] = session_id
        record["stored_at"] = datetime.now(UTC).isoformat()
        await append_jsonl(self.transcript_path(session_id), record)
        logger.debug(f"Stored message {message.message_id} for session {session_id}")

    async def iter_messages(self, session_id: str) -> AsyncIterator[Message]:
        """Yield a session's stored messages in the order they finished."""
        async for record in iter_jsonl(self.transcript_path(session_id)):
            try:
                yield Message.from_dict(record)
            except (KeyError, ValueError) as e:
                raise TranscriptIOError("decode_message", str(self.transcript_path(session_id)), e) from e

    async def load(self, session_id: str) -> list[Message]:
        return [message async for message in self.iter_messages(session_id)]

    async def sessions(self) -> list[str]:
        """Ids of sessions that have a transcript."""
        return [
            name
            for name in await list_directories(self.base_dir)
            if (self.base_dir / name / TRANSCRIPT_FILENAME).exists()
        ]

    async def delete(self, session_id: str) -> bool:
        """Remove a session's transcript. Returns False if there was none."""
        return await remove_directory(self.transcript_path(session_id).parent)
