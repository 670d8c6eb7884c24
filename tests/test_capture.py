"""Tests for best-effort session capture."""

from __future__ import annotations

import pytest

from session_gateway.config import default_chat_backend, default_terminal_backend
from session_gateway.exceptions import SessionValidationError
from session_gateway.gateway import BackendClient, CaptureAck, CaptureService


@pytest.fixture
async def service(chat_backend, unreachable_url):
    clients = {
        "chat": BackendClient(default_chat_backend(chat_backend.url, timeout=2.0)),
        "terminal": BackendClient(default_terminal_backend(unreachable_url, timeout=2.0)),
    }
    yield CaptureService(clients)
    for client in clients.values():
        await client.close()


class TestCaptureService:
    """Tests for CaptureService."""

    @pytest.mark.asyncio
    async def test_ack_is_immediate(self, service, chat_backend) -> None:
        """The ack is returned before the backend has been contacted."""
        ack = service.request_capture("chat", "s1")

        assert ack == CaptureAck(session_id="s1", backend="chat")
        assert ack.to_dict() == {"success": True, "sessionId": "s1", "backend": "chat"}
        assert service.pending == 1
        assert chat_backend.captures == []

        await service.drain()
        assert service.pending == 0
        assert chat_backend.captures == [("GET", "s1")]
        assert service.succeeded == 1

    @pytest.mark.asyncio
    async def test_unreachable_backend_still_acknowledged(self, service) -> None:
        """Capture reports success even when the forward fails."""
        ack = service.request_capture("terminal", "t1")
        assert ack.accepted is True

        await service.drain()
        assert service.failed == 1
        assert service.succeeded == 0

    @pytest.mark.asyncio
    async def test_forward_failure_is_logged(self, service, caplog) -> None:
        service.request_capture("terminal", "t1")
        await service.drain()
        assert "Capture not delivered" in caplog.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", [None, "", "  "])
    async def test_missing_id_rejected(self, service, session_id) -> None:
        """Validation happens before anything is scheduled."""
        with pytest.raises(SessionValidationError):
            service.request_capture("chat", session_id)
        assert service.pending == 0

    @pytest.mark.asyncio
    async def test_unknown_backend_rejected(self, service) -> None:
        with pytest.raises(SessionValidationError):
            service.request_capture("ssh", "s1")

    @pytest.mark.asyncio
    async def test_drain_without_pending(self, service) -> None:
        await service.drain(timeout=0.1)
        assert service.pending == 0
