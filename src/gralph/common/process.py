"""Process liveness probing and termination by pid."""

from __future__ import annotations

import os
import signal
import time
from typing import Any

# Poll interval while waiting for a terminated process to exit.
_TERMINATE_POLL = 0.1


def parse_pid(value: Any) -> int:
    """Convert a stored pid (int, numeric str, None) to an int, 0 if invalid."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def is_process_alive(pid: Any) -> bool:
    """Check whether a process with *pid* exists.

    Signal 0 probes existence without delivering anything. A process owned
    by another user raises ``PermissionError`` and is reported alive.
    Non-positive or invalid pids are never alive. Never raises.
    """
    pid = parse_pid(pid)
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def terminate_process(pid: Any, timeout: float = 5.0) -> bool:
    """Send SIGTERM to *pid* and wait up to *timeout* seconds for it to exit.

    Returns True once the process is gone (including when it was already
    gone), False if it is still alive at the deadline.
    """
    pid = parse_pid(pid)
    if pid <= 0:
        return True
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return True
    except PermissionError:
        return False

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_process_alive(pid):
            return True
        _reap(pid)
        time.sleep(_TERMINATE_POLL)
    return not is_process_alive(pid)


def _reap(pid: int) -> None:
    """Collect *pid* if it is our own exited child."""
    try:
        os.waitpid(pid, os.WNOHANG)
    except OSError:
        # ChildProcessError: not our child.
        pass
