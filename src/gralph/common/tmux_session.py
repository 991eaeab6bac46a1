"""tmux session management for background gralph workers.

Each background loop runs in its own detached session named
``gralph-<session>`` on a dedicated tmux server socket.
"""

from __future__ import annotations

import shlex
import shutil
import subprocess
from typing import Sequence


TMUX_SOCKET = "gralph"
SESSION_PREFIX = "gralph-"


def tmux_available() -> bool:
    """Return True if a tmux binary is on PATH."""
    return shutil.which("tmux") is not None


def session_name_for(name: str) -> str:
    """tmux session name used for the gralph session *name*."""
    return f"{SESSION_PREFIX}{name}"


class TmuxSession:
    """A single tmux session on the gralph server."""

    def __init__(self, name: str, server_name: str = TMUX_SOCKET) -> None:
        self.name = name
        self.server_name = server_name

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Run a tmux command on this session's server."""
        return subprocess.run(
            ["tmux", "-L", self.server_name, *args],
            capture_output=True,
            text=True,
            check=False,
        )

    def exists(self) -> bool:
        """Check if this tmux session exists."""
        try:
            result = self._run("has-session", "-t", self.name)
            return result.returncode == 0
        except OSError:
            return False

    def create(self, command: Sequence[str], cwd: str) -> bool:
        """Start a detached session running *command* in a login shell.

        Returns True if tmux accepted the new session.
        """
        script = shlex.join(list(command))
        try:
            result = self._run(
                "new-session", "-d", "-s", self.name, "-c", cwd,
                "bash", "-lc", script,
            )
        except OSError:
            return False
        return result.returncode == 0

    def kill(self) -> bool:
        """Kill this tmux session. Returns False if tmux reported an error."""
        try:
            result = self._run("kill-session", "-t", self.name)
        except OSError:
            return False
        return result.returncode == 0

    def get_pane_pid(self) -> int:
        """Get the pid of the process in this session's first pane.

        Returns 0 if the session doesn't exist or the pid can't be determined.
        """
        try:
            result = self._run("list-panes", "-t", self.name, "-F", "#{pane_pid}")
        except OSError:
            return 0
        if result.returncode != 0 or not result.stdout.strip():
            return 0
        first = result.stdout.strip().splitlines()[0].strip()
        try:
            return int(first)
        except ValueError:
            return 0
