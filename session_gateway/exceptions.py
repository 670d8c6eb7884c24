"""
Custom exceptions for the session gateway.

Gateway components raise these exceptions so the HTTP layer can
map each failure class to a distinct client-visible status.
"""


class SessionGatewayError(Exception):
    """Base exception for all session gateway errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SessionValidationError(SessionGatewayError):
    """Raised when a local request is malformed (e.g., missing session_id).

    Always raised before any backend is contacted.
    """

    def __init__(self, message: str, field: str | None = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class BackendUnavailableError(SessionGatewayError):
    """Raised when a backend cannot be reached (refused, DNS, timeout)."""

    def __init__(self, backend: str, endpoint: str, cause: Exception | None = None):
        details = {"backend": backend, "endpoint": endpoint}
        if cause:
            details["cause"] = str(cause) or type(cause).__name__
        super().__init__(f"{backend.capitalize()} server unavailable: {endpoint}", details)
        self.backend = backend
        self.endpoint = endpoint
        self.cause = cause


class BackendRejectedError(SessionGatewayError):
    """Raised when a backend answers with its own error response.

    The original status and body are kept verbatim so the caller
    sees the backend's diagnostic unchanged.
    """

    def __init__(
        self,
        backend: str,
        status: int,
        body: bytes,
        content_type: str | None = None,
    ):
        details = {"backend": backend, "status": status}
        super().__init__(f"{backend.capitalize()} server rejected request: HTTP {status}", details)
        self.backend = backend
        self.status = status
        self.body = body
        self.content_type = content_type


class EventParseError(SessionGatewayError):
    """Raised when a known event type is missing required fields."""

    def __init__(self, reason: str, payload: object | None = None):
        details: dict = {"reason": reason}
        if payload is not None:
            details["payload"] = repr(payload)[:200]
        super().__init__(f"Malformed event: {reason}", details)
        self.reason = reason
        self.payload = payload


class BlockMutationError(SessionGatewayError):
    """Raised when a write-once block field is reassigned."""

    def __init__(self, block_type: str, field: str):
        super().__init__(
            f"Field '{field}' of {block_type} block is write-once",
            {"block_type": block_type, "field": field},
        )
        self.block_type = block_type
        self.field = field


class MessageClosedError(SessionGatewayError):
    """Raised when a finished message is modified."""

    def __init__(self, message_id: str):
        super().__init__(f"Message is no longer streaming: {message_id}", {"message_id": message_id})
        self.message_id = message_id


class ConfigurationError(SessionGatewayError):
    """Raised when a configuration value is present but invalid."""

    def __init__(self, key: str, reason: str, value: str | None = None):
        details = {"key": key, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Invalid configuration for {key}: {reason}", details)
        self.key = key
        self.reason = reason
        self.value = value


class TranscriptIOError(SessionGatewayError):
    """Raised when a transcript read or write fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Transcript I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause
