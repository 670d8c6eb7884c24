"""
Backend access for the gateway: HTTP clients and best-effort capture.

The aiohttp application lives in ``gateway.server``; import it from
there directly.
"""

from .capture import CaptureAck, CaptureService
from .client import BackendClient, BackendResponse

__all__ = [
    "BackendClient",
    "BackendResponse",
    "CaptureAck",
    "CaptureService",
]
