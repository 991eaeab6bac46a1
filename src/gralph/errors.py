"""Custom exceptions for gralph."""

from __future__ import annotations

import pathlib


class GralphError(Exception):
    """Base exception for gralph errors."""


class PreconditionError(GralphError):
    """A loop or session precondition does not hold."""


class ConfigError(GralphError):
    """A configuration file could not be parsed."""

    def __init__(self, path: pathlib.Path, message: str) -> None:
        self.path = path
        super().__init__(f"Invalid config {path}: {message}")


class LockTimeoutError(GralphError):
    """The state lock could not be acquired before the deadline."""

    def __init__(self, lock_path: pathlib.Path, timeout: float) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for state lock {lock_path}"
        )


class SessionNotFoundError(GralphError):
    """No record exists under the given session name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Session not found: {name}")


class SessionAlreadyRunningError(GralphError):
    """A live process already owns the session."""

    def __init__(self, name: str, pid: int) -> None:
        self.name = name
        self.pid = pid
        super().__init__(f"Session '{name}' is already running (PID: {pid})")


class SessionNotResumableError(GralphError):
    """A named resume target could not be resumed."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Session '{name}' was not resumed: {reason}")


class BackendNotFoundError(GralphError):
    """No backend is registered under the requested name."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        super().__init__(
            f"Unknown backend '{name}' (available: {', '.join(available)})"
        )


class BackendNotInstalledError(GralphError):
    """The backend's CLI executable is not on PATH."""

    def __init__(self, name: str, hint: str) -> None:
        self.name = name
        super().__init__(f"Backend '{name}' is not installed. {hint}")


class LaunchError(GralphError):
    """A background worker could not be started."""


class WebhookError(GralphError):
    """The webhook endpoint rejected or did not receive the payload."""
