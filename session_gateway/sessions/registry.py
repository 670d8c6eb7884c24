"""
Session registry.

Answers "which sessions exist" independently of any open stream.
Listing is advisory: when a backend cannot be asked, the registry
returns an empty, degraded listing instead of raising, so a session
picker can still render.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import BackendRejectedError, BackendUnavailableError, SessionValidationError
from ..gateway.client import BackendClient
from ..id_utils import validate_session_id

logger = logging.getLogger(__name__)

_KNOWN_FIELDS = {
    "session_id",
    "isLive",
    "project_path",
    "created_at",
    "last_activity_at",
}


@dataclass
class SessionInfo:
    """A session as reported by its backend.

    Attributes:
        session_id: Opaque, backend-assigned identifier
        backend: Which backend owns the session ("chat" or "terminal")
        is_live: Whether the backend has a live process attached
        project_path: Working directory of the session, if reported
        created_at: Creation time as reported by the backend
        last_activity_at: Last activity time as reported by the backend
        extra: Any other fields the backend reported, untouched
    """

    session_id: str
    backend: str
    is_live: bool = False
    project_path: str | None = None
    created_at: str | None = None
    last_activity_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the backend's own field naming, plus ``backend``."""
        result: dict[str, Any] = dict(self.extra)
        result.update(
            {
                "session_id": self.session_id,
                "backend": self.backend,
                "isLive": self.is_live,
                "project_path": self.project_path,
                "created_at": self.created_at,
                "last_activity_at": self.last_activity_at,
            }
        )
        return result

    @classmethod
    def from_backend(cls, backend: str, data: dict[str, Any]) -> SessionInfo:
        """Build from one entry of a backend's ``/sessions`` response."""
        return cls(
            session_id=str(data["session_id"]),
            backend=backend,
            is_live=bool(data.get("isLive", False)),
            project_path=data.get("project_path"),
            created_at=data.get("created_at"),
            last_activity_at=data.get("last_activity_at"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )


@dataclass
class SessionListing:
    """Result of a session listing.

    An empty listing with ``available=True`` means "no sessions";
    with ``available=False`` it means "could not ask".
    """

    sessions: list[SessionInfo] = field(default_factory=list)
    available: bool = True
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return not self.available

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sessions": [s.to_dict() for s in self.sessions],
            "available": self.available,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class SessionLookup:
    """Result of looking up a single session."""

    valid: bool
    session: SessionInfo | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"valid": self.valid}
        if self.session is not None:
            result["session"] = self.session.to_dict()
        if self.error:
            result["error"] = self.error
        return result


class SessionRegistry:
    """Lists sessions across backends without ever raising for outages.

    Example:
        >>> registry = SessionRegistry({"chat": chat_client, "terminal": terminal_client})
        >>> listing = await registry.list_sessions()
        >>> listing.degraded
        False
    """

    def __init__(self, clients: Mapping[str, BackendClient]) -> None:
        self._clients = dict(clients)

    @property
    def backends(self) -> list[str]:
        return list(self._clients)

    async def list_sessions(self, backend: str | None = None) -> SessionListing:
        """List sessions from one backend, or from all of them concurrently.

        Args:
            backend: Backend name; None queries every backend

        Returns:
            The combined listing; degraded if any backend could not be asked

        Raises:
            SessionValidationError: If ``backend`` names no known backend
        """
        if backend is not None:
            if backend not in self._clients:
                raise SessionValidationError(f"Unknown backend: {backend}", field="backend")
            names = [backend]
        else:
            names = list(self._clients)

        results = await asyncio.gather(*(self._list_one(name) for name in names))

        listing = SessionListing()
        errors: list[str] = []
        for result in results:
            listing.sessions.extend(result.sessions)
            if result.degraded:
                listing.available = False
                if result.error:
                    errors.append(result.error)
        if errors:
            listing.error = "; ".join(errors)
        return listing

    async def _list_one(self, name: str) -> SessionListing:
        client = self._clients[name]
        try:
            raw_sessions = await client.list_sessions()
        except BackendUnavailableError:
            logger.warning(f"{name} backend unavailable; returning empty session list")
            return SessionListing(available=False, error=f"{name.capitalize()} server not available")
        except BackendRejectedError as e:
            logger.warning(f"{name} backend refused session listing: HTTP {e.status}")
            return SessionListing(
                available=False,
                error=f"Failed to fetch sessions from {name} server",
            )

        sessions = []
        for entry in raw_sessions:
            if "session_id" not in entry:
                logger.debug(f"Skipping {name} session entry without session_id")
                continue
            sessions.append(SessionInfo.from_backend(name, entry))
        return SessionListing(sessions=sessions)

    async def find_session(self, backend: str, session_id: object) -> SessionLookup:
        """Check whether a session exists on a backend.

        Raises:
            SessionValidationError: If the session id is missing or the backend unknown
        """
        session_id = validate_session_id(session_id, field="session_id")
        listing = await self.list_sessions(backend)
        if listing.degraded:
            return SessionLookup(valid=False, error=listing.error)

        for session in listing.sessions:
            if session.session_id == session_id:
                return SessionLookup(valid=True, session=session)
        return SessionLookup(valid=False, error="Session not found")
