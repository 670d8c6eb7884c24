"""ID validation and generation utilities for the session gateway.

Session ids are opaque strings assigned by the backends. The gateway
never parses them; it only checks that one is present and, where an
id becomes part of a filesystem path, that it is a single safe path
segment.
"""

from __future__ import annotations

import re
import uuid

from .exceptions import SessionValidationError

_SAFE_SEGMENT = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.:-]{0,254}")


def validate_session_id(session_id: object, field: str = "sessionId") -> str:
    """Return the stripped session id.

    Raises:
        SessionValidationError: If the id is missing, not a string, or blank
    """
    if not isinstance(session_id, str) or not session_id.strip():
        raise SessionValidationError("Session ID required", field=field)
    return session_id.strip()


def is_safe_path_segment(session_id: str) -> bool:
    """Whether an id can be used as a directory name without escaping its parent."""
    return bool(_SAFE_SEGMENT.fullmatch(session_id)) and ".." not in session_id


def new_message_id() -> str:
    """Generate a client-side message id."""
    return str(uuid.uuid4())
