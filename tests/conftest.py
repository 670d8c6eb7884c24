"""
Shared test configuration and fixtures.

Provides fake chat and terminal backends served by aiohttp test
servers, so gateway code is exercised over real HTTP without the
actual backend processes. UNREACHABLE_URL points at a port nothing
listens on, for outage scenarios.
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from session_gateway.blocks.events import encode_sse
from session_gateway.config import (
    CHAT_BACKEND,
    TERMINAL_BACKEND,
    GatewayConfig,
    default_chat_backend,
    default_terminal_backend,
)

UNREACHABLE_URL = "http://127.0.0.1:1"


class FakeBackend:
    """
    In-process stand-in for a chat or terminal backend.

    Records every call it receives. Tests configure what it returns
    by editing the public attributes before making requests.
    """

    def __init__(self, name: str):
        self.name = name
        self.url = UNREACHABLE_URL
        self.sessions: list[dict] = []
        self.outputs: dict[str, str] = {}
        self.stream_events: list = []
        self.split_frames = False
        self.listing_status = 200
        self.listing_body: bytes | None = None
        self.captures: list[tuple[str, str | None]] = []
        self.kills: list[tuple[str, str | None]] = []
        self.stream_requests: list[dict] = []

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.health)
        app.router.add_get("/sessions", self.list_sessions)
        app.router.add_route("*", "/save-output", self.save_output)
        app.router.add_route("*", "/kill-session", self.kill_session)
        app.router.add_get("/output", self.output)
        app.router.add_post("/stream", self.stream)
        return app

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def list_sessions(self, request: web.Request) -> web.Response:
        if self.listing_status != 200:
            return web.json_response({"error": "listing failed"}, status=self.listing_status)
        if self.listing_body is not None:
            return web.Response(body=self.listing_body, content_type="application/json")
        return web.json_response({"sessions": self.sessions})

    async def save_output(self, request: web.Request) -> web.Response:
        self.captures.append((request.method, request.query.get("session")))
        return web.json_response({"success": True})

    async def kill_session(self, request: web.Request) -> web.Response:
        self.kills.append((request.method, request.query.get("session")))
        return web.json_response({"success": True, "killed": request.query.get("session")})

    async def output(self, request: web.Request) -> web.Response:
        session_id = request.query.get("session")
        if session_id not in self.outputs:
            return web.json_response({"error": "Session not found"}, status=404)
        return web.json_response({"output": self.outputs[session_id]})

    async def stream(self, request: web.Request) -> web.StreamResponse:
        self.stream_requests.append(await request.json())
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for event in self.stream_events:
            frame = event if isinstance(event, bytes) else encode_sse(event)
            if self.split_frames:
                middle = len(frame) // 2
                await response.write(frame[:middle])
                await response.write(frame[middle:])
            else:
                await response.write(frame)
        await response.write_eof()
        return response


async def _serve(backend: FakeBackend):
    server = TestServer(backend.make_app())
    await server.start_server()
    backend.url = f"http://{server.host}:{server.port}"
    return server


@pytest.fixture
async def chat_backend():
    """A running fake chat backend."""
    backend = FakeBackend(CHAT_BACKEND)
    server = await _serve(backend)
    yield backend
    await server.close()


@pytest.fixture
async def terminal_backend():
    """A running fake terminal backend."""
    backend = FakeBackend(TERMINAL_BACKEND)
    server = await _serve(backend)
    yield backend
    await server.close()


@pytest.fixture
def gateway_config(chat_backend, terminal_backend, tmp_path):
    """Gateway config pointing at both fake backends."""
    return GatewayConfig(
        chat=default_chat_backend(chat_backend.url, timeout=2.0),
        terminal=default_terminal_backend(terminal_backend.url, timeout=2.0),
        request_timeout=2.0,
        transcript_dir=tmp_path / "transcripts",
    )


@pytest.fixture
def outage_config(chat_backend, tmp_path):
    """Gateway config with a live chat backend and an unreachable terminal backend."""
    return GatewayConfig(
        chat=default_chat_backend(chat_backend.url, timeout=2.0),
        terminal=default_terminal_backend(UNREACHABLE_URL, timeout=2.0),
        request_timeout=2.0,
        transcript_dir=tmp_path / "transcripts",
    )


@pytest.fixture
def unreachable_url():
    """A backend URL nothing listens on."""
    return UNREACHABLE_URL
