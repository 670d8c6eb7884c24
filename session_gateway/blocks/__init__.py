"""
Session event protocol and message assembly.

Backends emit small typed events; the assembler folds them into
messages made of ordered, independently-typed content blocks.
"""

from .assembler import AssemblerState, EventAssembler, assemble
from .events import (
    DoneEvent,
    ErrorEvent,
    EventType,
    MessageStartEvent,
    SessionEvent,
    TextEvent,
    ThinkingEvent,
    ToolUseEndEvent,
    ToolUseOutputEvent,
    ToolUseStartEvent,
    UnknownEvent,
    encode_sse,
    iter_sse_events,
    parse_event,
)
from .types import (
    SESSION_ENDED_UNEXPECTEDLY,
    BlockType,
    ContentBlock,
    ErrorBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolStatus,
    ToolUseBlock,
    block_from_dict,
)

__all__ = [
    # Block model
    "BlockType",
    "ToolStatus",
    "ContentBlock",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ErrorBlock",
    "Message",
    "block_from_dict",
    "SESSION_ENDED_UNEXPECTEDLY",
    # Events
    "EventType",
    "SessionEvent",
    "MessageStartEvent",
    "TextEvent",
    "ThinkingEvent",
    "ToolUseStartEvent",
    "ToolUseOutputEvent",
    "ToolUseEndEvent",
    "ErrorEvent",
    "DoneEvent",
    "UnknownEvent",
    "parse_event",
    "encode_sse",
    "iter_sse_events",
    # Assembly
    "AssemblerState",
    "EventAssembler",
    "assemble",
]
