"""
Local, file-based persistence for finished messages.
"""

from .transcript_store import TRANSCRIPT_FILENAME, TranscriptStore

__all__ = ["TRANSCRIPT_FILENAME", "TranscriptStore"]
