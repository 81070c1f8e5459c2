"""Utility functions"""
from .chunking import chunk_reply, MIN_CHUNK_CHARS, MAX_CHUNK_CHARS
from .background import spawn_detached, pending_background_tasks

__all__ = [
    "chunk_reply",
    "MIN_CHUNK_CHARS",
    "MAX_CHUNK_CHARS",
    "spawn_detached",
    "pending_background_tasks",
]
