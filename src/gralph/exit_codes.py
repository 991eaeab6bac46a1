"""CLI exit codes."""

from __future__ import annotations

from enum import IntEnum


class GralphExitCode(IntEnum):
    """Exit codes for gralph commands."""

    SUCCESS = 0  # Includes a loop that hit max iterations
    ERROR = 1  # Precondition or unexpected error
    INVALID_ARGS = 2
    NOT_FOUND = 3  # Unknown session
    LOCK_UNAVAILABLE = 4  # State lock timed out
    BACKEND_FAILED = 5  # Loop ended with status failed
    ALREADY_RUNNING = 6
