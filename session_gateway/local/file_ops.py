"""
JSONL file operations for the local transcript store.

Appends are flushed and fsynced line by line, so a gateway crash
loses at most the message being written. Reads stream the file
instead of loading it whole.
"""

import json
import logging
import os
import shutil
from collections.abc import AsyncIterator
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import TranscriptIOError

logger = logging.getLogger(__name__)


async def ensure_directory(path: Path) -> None:
    """Create a directory (and parents) if it does not exist."""
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise TranscriptIOError("create_directory", str(path), e) from e


async def append_jsonl(path: Path, record: dict[str, Any]) -> None:
    """Append one JSON object as a line, creating the file if needed."""
    await ensure_directory(path.parent)

    line = json.dumps(record, default=_json_serializer) + "\n"
    try:
        async with aiofiles.open(path, "a", encoding="utf-8") as f:
            await f.write(line)
            await f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise TranscriptIOError("append_jsonl", str(path), e) from e


async def iter_jsonl(path: Path) -> AsyncIterator[dict[str, Any]]:
    """Yield the objects of a JSONL file one at a time.

    A missing file yields nothing. A torn final line (from a crash
    mid-append) is skipped; corruption anywhere else is an error.
    """
    if not await aiofiles.os.path.exists(path):
        return

    pending: str | None = None
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                if pending is not None:
                    yield json.loads(pending)
                pending = line
    except json.JSONDecodeError as e:
        raise TranscriptIOError("parse_jsonl", str(path), e) from e
    except OSError as e:
        raise TranscriptIOError("read_jsonl", str(path), e) from e

    if pending is not None:
        try:
            yield json.loads(pending)
        except json.JSONDecodeError:
            logger.warning(f"Skipping torn final line in {path}")


async def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read every object of a JSONL file."""
    return [record async for record in iter_jsonl(path)]


async def list_directories(path: Path) -> list[str]:
    """List the names of subdirectories, sorted."""
    try:
        if not await aiofiles.os.path.exists(path):
            return []
        names = []
        for entry in await aiofiles.os.listdir(path):
            if await aiofiles.os.path.isdir(path / entry):
                names.append(entry)
        return sorted(names)
    except OSError as e:
        raise TranscriptIOError("list_directories", str(path), e) from e


async def remove_directory(path: Path) -> bool:
    """Remove a directory tree.

    Returns:
        True if removed, False if it did not exist
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return False
        await aiofiles.os.wrap(shutil.rmtree)(path)
        return True
    except OSError as e:
        raise TranscriptIOError("remove_directory", str(path), e) from e


def _json_serializer(obj: Any) -> Any:
    """Serialize the few non-JSON types that appear in transcript records."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
