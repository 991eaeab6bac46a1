"""Inputs, progress updates and results of a loop run."""

from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from typing import Callable

from gralph.models import (
    DEFAULT_COMPLETION_MARKER,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TASK_FILE,
    SessionStatus,
)

DEFAULT_SLEEP_SECONDS = 2.0
DEFAULT_RETAIN_DAYS = 7


@dataclass
class LoopOptions:
    """Everything one loop run needs. Paths are resolved by the caller."""

    project_dir: pathlib.Path
    task_file: str = DEFAULT_TASK_FILE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    start_iteration: int = 1
    completion_marker: str = DEFAULT_COMPLETION_MARKER
    session_name: str = ""
    model: str = ""
    variant: str = ""
    prompt_template: str = ""
    context_files: list[str] = field(default_factory=list)
    log_file: pathlib.Path | None = None
    sleep_seconds: float = DEFAULT_SLEEP_SECONDS
    retain_days: int = DEFAULT_RETAIN_DAYS

    @property
    def task_path(self) -> pathlib.Path:
        return self.project_dir / self.task_file

    @property
    def raw_log_file(self) -> pathlib.Path | None:
        """``<name>.raw.log`` beside the session log."""
        if self.log_file is None:
            return None
        name = self.log_file.name
        if name.endswith(".log"):
            name = name[: -len(".log")]
        return self.log_file.with_name(name + ".raw.log")


@dataclass
class LoopUpdate:
    """Progress reported to the loop callback."""

    session: str
    iteration: int
    status: SessionStatus
    remaining: int


LoopCallback = Callable[[LoopUpdate], None]


@dataclass
class LoopResult:
    """Outcome of a loop run. ``status`` is always terminal."""

    status: SessionStatus
    iterations: int = 0
    remaining: int = -1
    duration: float = 0.0
    exit_code: int = 0
    error: str = ""

    @property
    def completed(self) -> bool:
        return self.status is SessionStatus.COMPLETE
