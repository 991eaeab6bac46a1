"""Session record model persisted in the state document."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gralph.models.base import SerializableMixin

DEFAULT_TASK_FILE = "PRD.md"
DEFAULT_COMPLETION_MARKER = "COMPLETE"
DEFAULT_MAX_ITERATIONS = 30


class SessionStatus(str, Enum):
    """Lifecycle status of a session record."""

    RUNNING = "running"
    STALE = "stale"
    STOPPED = "stopped"
    COMPLETE = "complete"
    FAILED = "failed"
    MAX_ITERATIONS = "max_iterations"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SessionStatus.COMPLETE,
            SessionStatus.FAILED,
            SessionStatus.MAX_ITERATIONS,
        )


@dataclass
class SessionRecord(SerializableMixin):
    """One named loop session.

    ``pid`` is 0 and ``tmux_session`` empty when no process owns the
    session. ``last_task_count`` is -1 when unknown.
    """

    name: str = ""
    dir: str = ""
    task_file: str = DEFAULT_TASK_FILE
    pid: int = 0
    tmux_session: str = ""
    started_at: str = ""
    iteration: int = 0
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    status: str = ""
    last_task_count: int = -1
    completion_marker: str = DEFAULT_COMPLETION_MARKER
    log_file: str = ""
    backend: str = ""
    model: str = ""
    variant: str = ""
    webhook: str = ""

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING.value
