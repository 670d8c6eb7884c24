"""
Best-effort session capture.

A capture asks a backend to durably save a session's current output,
usually from a page-unload handler that will never read the answer.
The caller is acknowledged at once; the forward to the backend runs
as a background task whose failure is only logged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ..exceptions import BackendRejectedError, BackendUnavailableError, SessionValidationError
from ..id_utils import validate_session_id
from ..logging_utils import SessionLoggerAdapter
from .client import BackendClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureAck:
    """Acknowledgment returned to the capture caller."""

    session_id: str
    backend: str
    accepted: bool = True

    def to_dict(self) -> dict[str, object]:
        return {"success": self.accepted, "sessionId": self.session_id, "backend": self.backend}


class CaptureService:
    """Acknowledges capture requests and forwards them in the background.

    Example:
        >>> service = CaptureService({"chat": chat_client})
        >>> ack = service.request_capture("chat", "session-123")
        >>> ack.accepted
        True
        >>> await service.drain()
    """

    def __init__(self, clients: Mapping[str, BackendClient]) -> None:
        self._clients = dict(clients)
        self._tasks: set[asyncio.Task[bool]] = set()
        self.succeeded = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Number of forwards still in flight."""
        return len(self._tasks)

    def request_capture(self, backend: str, session_id: object) -> CaptureAck:
        """Acknowledge a capture and schedule the backend forward.

        Must be called from a running event loop. The returned ack
        never depends on whether the backend is reachable.

        Raises:
            SessionValidationError: If the session id is missing or blank,
                or the backend name is unknown
        """
        session_id = validate_session_id(session_id)
        client = self._clients.get(backend)
        if client is None:
            raise SessionValidationError(f"Unknown backend: {backend}", field="backend")

        ack = CaptureAck(session_id=session_id, backend=backend)

        task = asyncio.get_running_loop().create_task(
            self._forward(client, session_id), name=f"capture:{backend}:{session_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return ack

    async def _forward(self, client: BackendClient, session_id: str) -> bool:
        log = SessionLoggerAdapter(logger, session_id=session_id, backend=client.name)
        try:
            await client.capture(session_id)
        except BackendUnavailableError as e:
            self.failed += 1
            log.warning(f"Capture not delivered, backend unreachable: {e.message}")
            return False
        except BackendRejectedError as e:
            self.failed += 1
            log.warning(f"Capture rejected by backend: HTTP {e.status}")
            return False
        except Exception:
            self.failed += 1
            log.exception("Capture forward failed unexpectedly")
            return False

        self.succeeded += 1
        log.info("Capture forwarded")
        return True

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for outstanding forwards to finish.

        Args:
            timeout: Give up waiting after this many seconds (None waits forever)
        """
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} capture forwards still pending after drain timeout")
