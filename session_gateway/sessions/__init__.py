"""
Session discovery and per-session assembly state.
"""

from .assemblers import SessionAssemblers
from .registry import SessionInfo, SessionListing, SessionLookup, SessionRegistry

__all__ = [
    "SessionAssemblers",
    "SessionInfo",
    "SessionListing",
    "SessionLookup",
    "SessionRegistry",
]
