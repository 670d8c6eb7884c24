"""
Command-line entry point.

Usage:
    session-gateway serve --config ~/.session-gateway/config.yaml
    session-gateway sessions --backend terminal
    session-gateway capture chat 5f0c2a8e-session

Backend locations come from CHAT_SERVER_URL / TERMINAL_SERVER_URL
(or the config file); see ``session_gateway.config``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .config import GatewayConfig, load_config
from .exceptions import ConfigurationError, SessionGatewayError
from .gateway.capture import CaptureService
from .gateway.client import BackendClient
from .gateway.server import run_gateway
from .logging_utils import configure_logging
from .sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="session-gateway",
        description="Gateway between the browser and local chat/terminal session backends",
    )
    parser.add_argument("--config", type=Path, help="YAML settings file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP gateway")
    serve.add_argument("--host", help="Interface to listen on")
    serve.add_argument("--port", type=int, help="Port to listen on")

    sessions = subparsers.add_parser("sessions", help="List sessions as JSON")
    sessions.add_argument("--backend", choices=["chat", "terminal"], help="Only this backend")

    capture = subparsers.add_parser("capture", help="Ask a backend to save a session's output")
    capture.add_argument("backend", choices=["chat", "terminal"])
    capture.add_argument("session_id")

    return parser


def _clients(config: GatewayConfig) -> dict[str, BackendClient]:
    return {name: BackendClient(backend) for name, backend in config.backends.items()}


async def list_sessions(config: GatewayConfig, backend: str | None) -> dict:
    clients = _clients(config)
    try:
        listing = await SessionRegistry(clients).list_sessions(backend)
    finally:
        for client in clients.values():
            await client.close()
    return listing.to_dict()


async def capture_session(config: GatewayConfig, backend: str, session_id: str) -> bool:
    """Issue a capture and wait for the forward; True if the backend accepted it."""
    clients = _clients(config)
    service = CaptureService(clients)
    try:
        service.request_capture(backend, session_id)
        await service.drain()
    finally:
        for client in clients.values():
            await client.close()
    return service.succeeded == 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e.message}", file=sys.stderr)
        return 2

    if args.command == "serve":
        config = replace(
            config,
            host=args.host or config.host,
            port=args.port or config.port,
        )

    configure_logging(config.log_level, json_format=config.json_logs)

    try:
        if args.command == "serve":
            run_gateway(config)
            return 0

        if args.command == "sessions":
            listing = asyncio.run(list_sessions(config, args.backend))
            print(json.dumps(listing, indent=2))
            return 0 if listing["available"] else 1

        if args.command == "capture":
            delivered = asyncio.run(capture_session(config, args.backend, args.session_id))
            print(json.dumps({"success": True, "delivered": delivered}))
            return 0 if delivered else 1
    except SessionGatewayError as e:
        logger.error(e.message)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
