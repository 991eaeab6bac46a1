"""Agent CLI backends and the name registry."""

from __future__ import annotations

from gralph.backends.base import Backend
from gralph.backends.claude import ClaudeBackend
from gralph.backends.codex import CodexBackend
from gralph.backends.gemini import GeminiBackend
from gralph.backends.opencode import OpenCodeBackend
from gralph.errors import BackendNotFoundError

DEFAULT_BACKEND = "claude"

_REGISTRY: dict[str, type[Backend]] = {
    cls.name: cls
    for cls in (ClaudeBackend, CodexBackend, GeminiBackend, OpenCodeBackend)
}


def backend_names() -> list[str]:
    return sorted(_REGISTRY)


def get_backend(name: str = "") -> Backend:
    """Instantiate the backend registered as *name* (default: claude)."""
    key = (name or DEFAULT_BACKEND).strip().lower()
    try:
        return _REGISTRY[key]()
    except KeyError:
        raise BackendNotFoundError(key, backend_names()) from None


__all__ = [
    "DEFAULT_BACKEND",
    "Backend",
    "ClaudeBackend",
    "CodexBackend",
    "GeminiBackend",
    "OpenCodeBackend",
    "backend_names",
    "get_backend",
]
