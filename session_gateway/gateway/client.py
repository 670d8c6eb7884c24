"""
HTTP client for the chat and terminal backends.

Every call either returns a successful BackendResponse or raises one
of two typed errors:

- BackendUnavailableError: the backend could not be reached at all
- BackendRejectedError: the backend answered with a non-2xx status

The client never retries; retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..blocks.events import SessionEvent, iter_sse_events
from ..config import BackendConfig
from ..exceptions import BackendRejectedError, BackendUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class BackendResponse:
    """A successful backend response."""

    status: int
    body: bytes
    content_type: str | None = None

    def json(self) -> Any:
        """Decode the body as JSON; empty bodies decode to an empty dict."""
        if not self.body.strip():
            return {}
        return json.loads(self.body)


class BackendClient:
    """Client for one backend.

    Example:
        >>> async with BackendClient(config.chat) as chat:
        ...     sessions = await chat.list_sessions()
    """

    def __init__(
        self,
        config: BackendConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Backend location and endpoint conventions
            session: Optional shared aiohttp session (created lazily if None)
        """
        self.config = config
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        return self.config.name

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def url(self, path: str) -> str:
        return f"{self.config.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: Any | None = None,
    ) -> BackendResponse:
        """Send a request and read the full response.

        Raises:
            BackendUnavailableError: On connection failure or timeout
            BackendRejectedError: On a non-2xx response
        """
        url = self.url(path)
        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Accept": "application/json"},
            ) as response:
                body = await response.read()
                content_type = response.headers.get("Content-Type")
                if response.status >= 400:
                    logger.info(f"{self.name} backend rejected {method} {path}: {response.status}")
                    raise BackendRejectedError(self.name, response.status, body, content_type)
                return BackendResponse(response.status, body, content_type)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            logger.error(f"{self.name} backend unreachable at {url}: {e!r}")
            raise BackendUnavailableError(self.name, url, e) from e

    async def list_sessions(self) -> list[dict[str, Any]]:
        """Fetch the backend's raw session list."""
        response = await self.request("GET", "/sessions")
        try:
            data = response.json()
        except ValueError as e:
            raise BackendRejectedError(
                self.name, 502, response.body, response.content_type
            ) from e
        sessions = data.get("sessions", []) if isinstance(data, dict) else data
        if not isinstance(sessions, list):
            logger.warning(f"{self.name} backend sent an unusable session list")
            raise BackendRejectedError(self.name, 502, response.body, response.content_type)
        return [s for s in sessions if isinstance(s, dict)]

    async def capture(self, session_id: str) -> BackendResponse:
        """Ask the backend to persist the session's current output."""
        return await self.request(
            self.config.capture_method, "/save-output", params={"session": session_id}
        )

    async def kill_session(self, session_id: str) -> BackendResponse:
        return await self.request(
            self.config.kill_method, "/kill-session", params={"session": session_id}
        )

    async def get_output(self, session_id: str) -> BackendResponse:
        return await self.request("GET", "/output", params={"session": session_id})

    async def health(self) -> bool:
        """Whether the backend answers its health endpoint."""
        try:
            await self.request("GET", "/health")
        except (BackendUnavailableError, BackendRejectedError):
            return False
        return True

    async def open_stream(self, path: str, payload: Any) -> aiohttp.ClientResponse:
        """POST and return the response once its headers have arrived.

        The caller must release the response. The total timeout does
        not apply to streams, since a turn may run indefinitely.

        Raises:
            BackendUnavailableError: On connection failure or connect timeout
            BackendRejectedError: On a non-2xx response
        """
        url = self.url(path)
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.config.timeout)
        try:
            response = await self._get_session().post(
                url,
                json=payload,
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            )
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            logger.error(f"{self.name} backend unreachable at {url}: {e!r}")
            raise BackendUnavailableError(self.name, url, e) from e

        if response.status >= 400:
            async with response:
                body = await response.read()
            raise BackendRejectedError(
                self.name, response.status, body, response.headers.get("Content-Type")
            )
        return response

    async def stream_raw(self, path: str, payload: Any) -> AsyncIterator[bytes]:
        """POST and yield the response body chunk by chunk as it arrives."""
        response = await self.open_stream(path, payload)
        async with response:
            async for chunk in self.iter_chunks(response):
                yield chunk

    async def iter_chunks(self, response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
        """Yield an open stream's body as it arrives.

        Raises:
            BackendUnavailableError: If the stream breaks off mid-body
        """
        try:
            async for chunk in response.content.iter_any():
                yield chunk
        except aiohttp.ClientError as e:
            logger.error(f"{self.name} stream from {response.url} broke off: {e!r}")
            raise BackendUnavailableError(self.name, str(response.url), e) from e

    async def stream_events(self, path: str, payload: Any) -> AsyncIterator[SessionEvent]:
        """POST and yield parsed session events incrementally."""
        async for event in iter_sse_events(self.stream_raw(path, payload)):
            yield event
