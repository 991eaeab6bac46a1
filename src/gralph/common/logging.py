"""CLI logging with optional color output, plus the per-session log file."""

from __future__ import annotations

import io
import os
import pathlib
import re
import sys
from datetime import datetime, timezone
from typing import TextIO

# Only emitted when stderr is a tty.
_RED = "\033[0;31m"
_GREEN = "\033[0;32m"
_YELLOW = "\033[0;33m"
_BLUE = "\033[0;34m"
_RESET = "\033[0m"

# CSI sequences, OSC sequences terminated by BEL or ST, charset selection.
_ANSI_ESCAPE_PATTERN = re.compile(
    r"\x1b(?:\[[?0-9;]*[A-Za-z]|\].*?(?:\x07|\x1b\\)|[()][0-9AB]|[=>])"
)


def _use_color(stream: TextIO) -> bool:
    try:
        return os.isatty(stream.fileno())
    except (OSError, ValueError, io.UnsupportedOperation):
        return False


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("[%Y-%m-%dT%H:%M:%SZ]")


def _emit(color: str, label: str, message: str) -> None:
    ts = _timestamp()
    if _use_color(sys.stderr):
        line = f"{color}{ts} [{label}]{_RESET} {message}"
    else:
        line = f"{ts} [{label}] {message}"
    print(line, file=sys.stderr, flush=True)


def log_info(message: str) -> None:
    """Log an informational message to stderr."""
    _emit(_BLUE, "INFO", message)


def log_warning(message: str) -> None:
    """Log a warning message to stderr."""
    _emit(_YELLOW, "WARN", message)


def log_error(message: str) -> None:
    """Log an error message to stderr."""
    _emit(_RED, "ERROR", message)


def log_success(message: str) -> None:
    """Log a success message to stderr."""
    _emit(_GREEN, "OK", message)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from backend output.

    Example:
        >>> strip_ansi("\\x1b[31mred text\\x1b[0m")
        'red text'
    """
    return _ANSI_ESCAPE_PATTERN.sub("", text)


def _stream_writes_to(stream: TextIO, path: pathlib.Path | None) -> bool:
    """Whether *stream* is backed by the file at *path*."""
    if path is None:
        return False
    try:
        stream_stat = os.fstat(stream.fileno())
        path_stat = os.stat(path)
    except (OSError, ValueError, io.UnsupportedOperation, AttributeError):
        return False
    return (stream_stat.st_dev, stream_stat.st_ino) == (path_stat.st_dev, path_stat.st_ino)


class SessionLog:
    """Append-only log of one loop session, mirrored to stdout.

    The file is reopened in append mode on every write. Mirroring is
    skipped when stdout already is the log file (a detached worker).
    """

    def __init__(self, path: pathlib.Path | None, echo: bool = True) -> None:
        self.path = path
        self.echo = echo and not _stream_writes_to(sys.stdout, path)

    def write(self, message: str = "") -> None:
        if self.echo:
            print(message, flush=True)
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(strip_ansi(message) + "\n")
