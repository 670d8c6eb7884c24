"""
HTTP gateway between the browser and the chat/terminal backends.

The gateway exposes one uniform API per backend and normalizes
backend failures:

- an unreachable backend becomes 503 with a JSON error
- a backend error response is passed through with its status and body
- a malformed local request is rejected with 400 before any backend call

Session listings never fail (they degrade instead), and capture
requests are acknowledged before the backend is contacted.

Example:
    >>> app = create_app(load_config())
    >>> aiohttp.web.run_app(app, host="127.0.0.1", port=3001)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from aiohttp import web

from ..blocks.events import DoneEvent, ErrorEvent, SessionEvent, encode_sse, iter_sse_events
from ..blocks.types import SESSION_ENDED_UNEXPECTEDLY
from ..config import CHAT_BACKEND, GatewayConfig
from ..exceptions import BackendRejectedError, BackendUnavailableError, SessionValidationError
from ..id_utils import validate_session_id
from ..local.transcript_store import TranscriptStore
from ..logging_utils import SessionLoggerAdapter
from ..sessions.assemblers import SessionAssemblers
from ..sessions.registry import SessionRegistry
from .capture import CaptureService
from .client import BackendClient

logger = logging.getLogger(__name__)

STREAM_INTERRUPTED = "STREAM_INTERRUPTED"
CAPTURE_DRAIN_TIMEOUT = 5.0

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class SessionGateway:
    """Request handlers plus the components they share.

    Args:
        config: Gateway configuration
        clients: Backend clients by name (built from config if None)
        transcripts: Where finished messages go (built from
            ``config.transcript_dir`` if None; disabled if that is unset)
    """

    def __init__(
        self,
        config: GatewayConfig,
        clients: dict[str, BackendClient] | None = None,
        transcripts: TranscriptStore | None = None,
    ) -> None:
        self.config = config
        self.clients = clients or {
            name: BackendClient(backend) for name, backend in config.backends.items()
        }
        self.registry = SessionRegistry(self.clients)
        self.capture = CaptureService(self.clients)

        if transcripts is None and config.transcript_dir is not None:
            transcripts = TranscriptStore(config.transcript_dir)
        self.transcripts = transcripts
        self.assemblers = SessionAssemblers(
            on_message_closed=transcripts.append if transcripts is not None else None
        )

    def client_for(self, backend: str) -> BackendClient:
        client = self.clients.get(backend)
        if client is None:
            raise web.HTTPNotFound(
                text=json.dumps({"error": f"Unknown backend: {backend}"}),
                content_type="application/json",
            )
        return client

    async def close(self) -> None:
        """Let in-flight captures finish, then close backend connections."""
        await self.capture.drain(timeout=CAPTURE_DRAIN_TIMEOUT)
        for client in self.clients.values():
            await client.close()

    # Routes

    async def health(self, request: web.Request) -> web.Response:
        names = list(self.clients)
        reachable = await asyncio.gather(*(self.clients[name].health() for name in names))
        return web.json_response(
            {"status": "ok", "backends": dict(zip(names, reachable, strict=True))}
        )

    async def list_sessions(self, request: web.Request) -> web.Response:
        backend = request.match_info["backend"]
        self.client_for(backend)
        listing = await self.registry.list_sessions(backend)
        return web.json_response(listing.to_dict())

    async def get_session(self, request: web.Request) -> web.Response:
        backend = request.match_info["backend"]
        self.client_for(backend)
        lookup = await self.registry.find_session(backend, request.match_info["session_id"])
        return web.json_response(lookup.to_dict())

    async def delete_session(self, request: web.Request) -> web.Response:
        client = self.client_for(request.match_info["backend"])
        session_id = validate_session_id(request.match_info["session_id"], field="session_id")
        response = await client.kill_session(session_id)
        self.assemblers.discard(session_id)
        return _passthrough(response.status, response.body, response.content_type)

    async def get_output(self, request: web.Request) -> web.Response:
        client = self.client_for(request.match_info["backend"])
        session_id = validate_session_id(request.query.get("session"), field="session")
        response = await client.get_output(session_id)
        return _passthrough(response.status, response.body, response.content_type)

    async def get_messages(self, request: web.Request) -> web.Response:
        """Stored messages of a session followed by its open turn, if any."""
        self.client_for(request.match_info["backend"])
        session_id = validate_session_id(request.match_info["session_id"], field="session_id")

        messages = []
        if self.transcripts is not None:
            messages.extend(m.to_dict() for m in await self.transcripts.load(session_id))
        if session_id in self.assemblers:
            current = self.assemblers.get(session_id).current
            if current is not None:
                messages.append(current.to_dict())
        return web.json_response({"sessionId": session_id, "messages": messages})

    async def save_output(self, request: web.Request) -> web.Response:
        backend = request.match_info["backend"]
        self.client_for(backend)
        session_id = await _read_capture_session_id(request)
        ack = self.capture.request_capture(backend, session_id)
        return web.json_response(ack.to_dict())

    async def save_output_preflight(self, request: web.Request) -> web.Response:
        self.client_for(request.match_info["backend"])
        return web.Response(
            status=204,
            headers={**CORS_HEADERS, "Access-Control-Allow-Methods": "POST, OPTIONS"},
        )

    async def chat_stream(self, request: web.Request) -> web.StreamResponse:
        """Relay a chat turn from the backend to the client as SSE.

        Events are forwarded one by one as they arrive. When the request
        names a ``sessionId`` the events are also assembled server-side
        so the finished message reaches the transcript store.
        """
        payload = await _read_json_object(request)
        message = payload.get("message")
        if not isinstance(message, str) or not message.strip():
            raise SessionValidationError("Message is required", field="message")

        session_id = payload.get("sessionId")
        if session_id is not None:
            session_id = validate_session_id(session_id)
        log = SessionLoggerAdapter(logger, session_id=session_id, backend=CHAT_BACKEND)

        client = self.client_for(CHAT_BACKEND)
        upstream = await client.open_stream(client.config.stream_path, payload)

        async with upstream:
            response = web.StreamResponse(headers={**SSE_HEADERS, **CORS_HEADERS})
            await response.prepare(request)
            turn_open = False
            if session_id is not None:
                await self.assemblers.begin_turn(session_id)
                turn_open = True

            try:
                async for event in iter_sse_events(client.iter_chunks(upstream)):
                    await self._record(session_id, event)
                    if isinstance(event, DoneEvent):
                        turn_open = False
                    await response.write(encode_sse(event))
            except BackendUnavailableError as e:
                log.error(f"Chat stream interrupted: {e.message}")
                error = ErrorEvent(
                    content=f"Stream interrupted: {e.message}", code=STREAM_INTERRUPTED
                )
                if turn_open:
                    turn_open = False
                    await self.assemblers.close_turn(session_id, reason=error.content)
                try:
                    await response.write(encode_sse(error))
                    await response.write(encode_sse(DoneEvent()))
                except ConnectionResetError:
                    log.info("Client already gone; interruption not delivered")
                    return response
            except ConnectionResetError:
                log.info("Client disconnected mid-stream")
                return response
            else:
                if turn_open:
                    turn_open = False
                    await self.assemblers.close_turn(session_id, reason=SESSION_ENDED_UNEXPECTEDLY)
            finally:
                # Client gone or handler cancelled: the turn counts as cancelled.
                if turn_open:
                    await self.assemblers.close_turn(session_id)

        await response.write_eof()
        return response

    async def _record(self, session_id: str | None, event: SessionEvent) -> None:
        if session_id is not None:
            await self.assemblers.apply(session_id, event)


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Map gateway errors to HTTP responses and add CORS headers."""
    try:
        response = await handler(request)
    except SessionValidationError as e:
        body: dict[str, Any] = {"error": e.message}
        if e.field:
            body["field"] = e.field
        response = web.json_response(body, status=400)
    except BackendUnavailableError as e:
        response = web.json_response(
            {"error": f"{e.backend.capitalize()} server unavailable"}, status=503
        )
    except BackendRejectedError as e:
        response = _passthrough(e.status, e.body, e.content_type)

    if not response.prepared:
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
    return response


def _passthrough(status: int, body: bytes, content_type: str | None) -> web.Response:
    headers = {"Content-Type": content_type} if content_type else None
    return web.Response(status=status, body=body, headers=headers)


async def _read_text(request: web.Request) -> str:
    body = await request.read()
    try:
        return body.decode(request.charset or "utf-8")
    except (UnicodeDecodeError, LookupError):
        raise SessionValidationError("Request body must be UTF-8 text", field="body") from None


async def _read_json_object(request: web.Request) -> dict[str, Any]:
    try:
        data = json.loads(await _read_text(request))
    except json.JSONDecodeError:
        raise SessionValidationError("Request body must be valid JSON", field="body") from None
    if not isinstance(data, dict):
        raise SessionValidationError("Request body must be a JSON object", field="body")
    return data


async def _read_capture_session_id(request: web.Request) -> object:
    """Find the session id wherever a capture caller put it.

    Page-unload beacons arrive as text/plain JSON, forms as form
    data, and scripted callers as JSON or a ``session`` query parameter.
    A body that cannot be decoded falls back to the query parameter.
    """
    session_id: object = request.query.get("session")
    if not request.body_exists:
        return session_id

    if request.content_type in _FORM_TYPES:
        try:
            form = await request.post()
        except (UnicodeDecodeError, LookupError):
            logger.info("Undecodable capture form; using the query parameter")
            return session_id
        return form.get("sessionId", session_id)

    try:
        text = await _read_text(request)
    except SessionValidationError:
        logger.info("Undecodable capture body; using the query parameter")
        return session_id
    if not text.strip():
        return session_id
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        raise SessionValidationError("Request body must be valid JSON", field="body") from None
    if isinstance(data, dict) and data.get("sessionId") is not None:
        return data["sessionId"]
    return session_id


GATEWAY_KEY = web.AppKey("gateway", SessionGateway)


def create_app(
    config: GatewayConfig | None = None,
    gateway: SessionGateway | None = None,
) -> web.Application:
    """Build the gateway application.

    Args:
        config: Gateway configuration (defaults if None)
        gateway: Pre-built handlers, e.g. with custom clients in tests
    """
    gateway = gateway or SessionGateway(config or GatewayConfig())

    app = web.Application(middlewares=[error_middleware])
    app[GATEWAY_KEY] = gateway

    router = app.router
    router.add_get("/api/health", gateway.health)
    router.add_post("/api/chat/stream", gateway.chat_stream)
    router.add_get("/api/{backend}/sessions", gateway.list_sessions)
    router.add_get("/api/{backend}/sessions/{session_id}", gateway.get_session)
    router.add_delete("/api/{backend}/sessions/{session_id}", gateway.delete_session)
    router.add_get("/api/{backend}/sessions/{session_id}/messages", gateway.get_messages)
    router.add_get("/api/{backend}/output", gateway.get_output)
    router.add_post("/api/{backend}/save-output", gateway.save_output)
    router.add_route("OPTIONS", "/api/{backend}/save-output", gateway.save_output_preflight)

    async def on_cleanup(app: web.Application) -> None:
        await app[GATEWAY_KEY].close()

    app.on_cleanup.append(on_cleanup)
    return app


def run_gateway(config: GatewayConfig) -> None:
    """Serve the gateway until interrupted."""
    logger.info(
        f"Starting session gateway on {config.host}:{config.port} "
        f"(chat={config.chat.base_url}, terminal={config.terminal.base_url})"
    )
    web.run_app(create_app(config), host=config.host, port=config.port, print=None)
