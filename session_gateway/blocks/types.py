"""
Content block model for assembled session messages.

A message is an ordered sequence of independently-typed content
blocks. Each block kind is a separate class, so a block can never
change kind after creation. Fields that the protocol never mutates
are write-once: reassigning them raises BlockMutationError.

Field names in to_dict()/from_dict() follow the browser client's
wire representation (camelCase where the client uses it).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Literal

from ..exceptions import BlockMutationError, MessageClosedError

SESSION_ENDED_UNEXPECTEDLY = "Session ended unexpectedly"


class BlockType(Enum):
    """Kinds of content blocks in a message."""

    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    ERROR = "error"


class ToolStatus(Enum):
    """Lifecycle of a tool invocation."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


def _read_only(value: Any) -> Any:
    """Copy a JSON-like value into read-only containers."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _read_only(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_read_only(v) for v in value)
    return value


def _writable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _writable(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_writable(v) for v in value]
    return value


class _GuardedBlock:
    """Base for blocks whose non-mutable fields are write-once.

    Subclasses list the fields that may change after creation in
    ``_mutable_fields``. Once the owning message finishes, the block
    is frozen and only ``_display_fields`` may still change.
    """

    block_type: ClassVar[BlockType]
    _mutable_fields: ClassVar[frozenset[str]] = frozenset()
    _display_fields: ClassVar[frozenset[str]] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "_sealed", True)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_sealed", False):
            allowed = self._display_fields
            if not getattr(self, "_frozen", False):
                allowed = allowed | self._mutable_fields
            if name not in allowed:
                raise BlockMutationError(self.block_type.value, name)
        object.__setattr__(self, name, value)

    def __delattr__(self, name: str) -> None:
        raise BlockMutationError(self.block_type.value, name)

    @property
    def frozen(self) -> bool:
        """Whether the owning message has finished."""
        return getattr(self, "_frozen", False)

    def freeze(self) -> None:
        """Make every non-display field immutable."""
        object.__setattr__(self, "_frozen", True)


@dataclass
class TextBlock(_GuardedBlock):
    """Accumulated plain text."""

    content: str = ""

    block_type: ClassVar[BlockType] = BlockType.TEXT
    _mutable_fields: ClassVar[frozenset[str]] = frozenset({"content"})

    def append(self, fragment: str) -> None:
        self.content = self.content + fragment

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.block_type.value, "content": self.content}


@dataclass
class ThinkingBlock(_GuardedBlock):
    """Accumulated reasoning content.

    ``collapsed`` is a display flag for the renderer and stays
    writable after the message finishes.
    """

    content: str = ""
    collapsed: bool = True

    block_type: ClassVar[BlockType] = BlockType.THINKING
    _mutable_fields: ClassVar[frozenset[str]] = frozenset({"content"})
    _display_fields: ClassVar[frozenset[str]] = frozenset({"collapsed"})

    def append(self, fragment: str) -> None:
        self.content = self.content + fragment

    def toggle(self) -> None:
        self.collapsed = not self.collapsed

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.block_type.value,
            "content": self.content,
            "collapsed": self.collapsed,
        }


@dataclass
class ToolUseBlock(_GuardedBlock):
    """A tool invocation.

    The identity, tool name and input are fixed at creation. Status
    moves from RUNNING to SUCCESS or ERROR exactly once; after that
    the block refuses further output.

    Attributes:
        tool_use_id: Backend-assigned invocation id
        tool: Tool name
        input: Structured input payload, copied into read-only containers
        status: Current status
        output: Accumulated output text, if any
        error: Error text when status is ERROR
    """

    tool_use_id: str
    tool: str
    input: Mapping[str, Any] = field(default_factory=dict)
    status: ToolStatus = ToolStatus.RUNNING
    output: str | None = None
    error: str | None = None

    block_type: ClassVar[BlockType] = BlockType.TOOL_USE
    _mutable_fields: ClassVar[frozenset[str]] = frozenset({"status", "output", "error"})

    def __post_init__(self) -> None:
        self.input = _read_only(self.input)
        super().__post_init__()

    @property
    def is_running(self) -> bool:
        return self.status is ToolStatus.RUNNING

    def append_output(self, fragment: str) -> bool:
        """Append an output fragment.

        Returns:
            False if the tool is no longer running (fragment ignored)
        """
        if not self.is_running:
            return False
        self.output = (self.output or "") + fragment
        return True

    def finish(self, status: ToolStatus, error: str | None = None) -> bool:
        """Move the tool to a terminal status.

        Args:
            status: SUCCESS or ERROR
            error: Error text, recorded only when status is ERROR

        Returns:
            False if the tool had already finished
        """
        if status is ToolStatus.RUNNING:
            raise ValueError("A tool can only finish with success or error")
        if not self.is_running:
            return False
        if status is ToolStatus.ERROR:
            self.error = error
        self.status = status
        return True

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.block_type.value,
            "id": self.tool_use_id,
            "tool": self.tool,
            "input": _writable(self.input),
            "status": self.status.value,
        }
        if self.output is not None:
            result["output"] = self.output
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ToolResultBlock(_GuardedBlock):
    """Result of a tool invocation. Never mutated after creation.

    ``tool_use_id`` refers back to a ToolUseBlock by id only.
    """

    tool_use_id: str
    content: str
    is_error: bool = False

    block_type: ClassVar[BlockType] = BlockType.TOOL_RESULT

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.block_type.value,
            "toolUseId": self.tool_use_id,
            "content": self.content,
            "isError": self.is_error,
        }


@dataclass
class ErrorBlock(_GuardedBlock):
    """An error reported inside a turn. Never mutated after creation."""

    content: str
    code: str | None = None

    block_type: ClassVar[BlockType] = BlockType.ERROR

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.block_type.value, "content": self.content}
        if self.code is not None:
            result["code"] = self.code
        return result


ContentBlock = TextBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock | ErrorBlock


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Deserialize a content block from its wire dictionary."""
    block_type = BlockType(data["type"])

    if block_type is BlockType.TEXT:
        return TextBlock(content=data.get("content", ""))
    if block_type is BlockType.THINKING:
        return ThinkingBlock(
            content=data.get("content", ""),
            collapsed=data.get("collapsed", True),
        )
    if block_type is BlockType.TOOL_USE:
        return ToolUseBlock(
            tool_use_id=data["id"],
            tool=data["tool"],
            input=data.get("input") or {},
            status=ToolStatus(data.get("status", "running")),
            output=data.get("output"),
            error=data.get("error"),
        )
    if block_type is BlockType.TOOL_RESULT:
        return ToolResultBlock(
            tool_use_id=data["toolUseId"],
            content=data.get("content", ""),
            is_error=data.get("isError", False),
        )
    return ErrorBlock(content=data.get("content", ""), code=data.get("code"))


@dataclass
class Message:
    """One conversational turn.

    Blocks are appended and mutated in place while ``is_streaming``
    is true. finish() freezes every block and turns ``blocks`` into a
    tuple; from then on the message is immutable.

    Attributes:
        message_id: Message identifier
        role: "user" or "assistant"
        timestamp: When the turn started
        blocks: Ordered content blocks
        is_streaming: Whether blocks may still change
    """

    message_id: str
    role: Literal["user", "assistant"] = "assistant"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    blocks: list[ContentBlock] = field(default_factory=list)
    is_streaming: bool = True

    def __post_init__(self) -> None:
        if not self.is_streaming:
            self._freeze()

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_closed", False):
            raise MessageClosedError(self.message_id)
        object.__setattr__(self, name, value)

    @property
    def last_block(self) -> ContentBlock | None:
        return self.blocks[-1] if self.blocks else None

    def append_block(self, block: ContentBlock) -> ContentBlock:
        """Append a block to a streaming message."""
        if not self.is_streaming:
            raise MessageClosedError(self.message_id)
        self.blocks.append(block)
        return block

    def find_tool_use(self, tool_use_id: str) -> ToolUseBlock | None:
        """Find a tool use block by id, searching from the most recent."""
        for block in reversed(self.blocks):
            if isinstance(block, ToolUseBlock) and block.tool_use_id == tool_use_id:
                return block
        return None

    def running_tools(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock) and b.is_running]

    def finish(self) -> None:
        """Close the turn. Idempotent."""
        if not self.is_streaming:
            return
        self.is_streaming = False
        self._freeze()

    def _freeze(self) -> None:
        for block in self.blocks:
            block.freeze()
        object.__setattr__(self, "blocks", tuple(self.blocks))
        object.__setattr__(self, "_closed", True)

    def text(self) -> str:
        """Join the message's text blocks, one per line."""
        return "\n".join(b.content for b in self.blocks if isinstance(b, TextBlock))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the client's message dictionary."""
        return {
            "id": self.message_id,
            "role": self.role,
            "timestamp": self.timestamp.isoformat(),
            "content": [block.to_dict() for block in self.blocks],
            "isStreaming": self.is_streaming,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Deserialize from dictionary."""
        timestamp = data.get("timestamp")
        return cls(
            message_id=data["id"],
            role=data.get("role", "assistant"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
            blocks=[block_from_dict(b) for b in data.get("content", [])],
            is_streaming=data.get("isStreaming", False),
        )
