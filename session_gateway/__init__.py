"""
Session Gateway

Streams assistant turns from local chat and terminal backends to the
browser and assembles them into structured messages.

Provides:
- A typed session event protocol and its SSE codec
- Incremental message assembly into ordered content blocks
- Session discovery that degrades instead of failing
- An HTTP gateway with uniform failure reporting and fire-and-forget capture

Usage:

    >>> from session_gateway import EventAssembler, parse_event
    >>> assembler = EventAssembler("session-1")
    >>> for payload in payloads:
    ...     assembler.apply(parse_event(payload))
    >>> assembler.completed[-1].to_dict()

Serving:

    from session_gateway import load_config
    from session_gateway.gateway.server import run_gateway

    run_gateway(load_config())
"""

# Event protocol and assembly
from .blocks import (
    BlockType,
    ContentBlock,
    DoneEvent,
    ErrorBlock,
    ErrorEvent,
    EventAssembler,
    EventType,
    Message,
    MessageStartEvent,
    SessionEvent,
    TextBlock,
    TextEvent,
    ThinkingBlock,
    ThinkingEvent,
    ToolResultBlock,
    ToolStatus,
    ToolUseBlock,
    ToolUseEndEvent,
    ToolUseOutputEvent,
    ToolUseStartEvent,
    UnknownEvent,
    assemble,
    parse_event,
)

# Configuration
from .config import BackendConfig, GatewayConfig, load_config

# Exceptions
from .exceptions import (
    BackendRejectedError,
    BackendUnavailableError,
    BlockMutationError,
    ConfigurationError,
    EventParseError,
    MessageClosedError,
    SessionGatewayError,
    SessionValidationError,
    TranscriptIOError,
)

# Backends and sessions
from .gateway import BackendClient, CaptureAck, CaptureService
from .local import TranscriptStore
from .sessions import SessionAssemblers, SessionInfo, SessionListing, SessionRegistry

__all__ = [
    # Blocks
    "BlockType",
    "ToolStatus",
    "ContentBlock",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ErrorBlock",
    "Message",
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
    # Assembly
    "EventAssembler",
    "assemble",
    "SessionAssemblers",
    # Sessions
    "SessionInfo",
    "SessionListing",
    "SessionRegistry",
    # Gateway
    "BackendClient",
    "CaptureAck",
    "CaptureService",
    "TranscriptStore",
    # Configuration
    "BackendConfig",
    "GatewayConfig",
    "load_config",
    # Exceptions
    "SessionGatewayError",
    "SessionValidationError",
    "BackendUnavailableError",
    "BackendRejectedError",
    "EventParseError",
    "BlockMutationError",
    "MessageClosedError",
    "ConfigurationError",
    "TranscriptIOError",
]

__version__ = "0.1.0"
