"""Data models for gralph state."""

from gralph.models.base import SerializableMixin
from gralph.models.session import (
    DEFAULT_COMPLETION_MARKER,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TASK_FILE,
    SessionRecord,
    SessionStatus,
)

__all__ = [
    "DEFAULT_COMPLETION_MARKER",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_TASK_FILE",
    "SerializableMixin",
    "SessionRecord",
    "SessionStatus",
]
