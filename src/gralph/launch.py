"""Starting loop workers in the background.

A worker is this same CLI re-invoked as ``gralph start <dir> --worker``.
It runs inside a detached tmux session when tmux is available (and not
disabled with ``GRALPH_NO_TMUX``), otherwise as a plain child process in
its own session with output appended to the session log.
"""

from __future__ import annotations

import os
import pathlib
import subprocess
import sys
from dataclasses import dataclass

from gralph.common.config import env_bool
from gralph.common.logging import log_info, log_warning
from gralph.common.tmux_session import TmuxSession, session_name_for, tmux_available
from gralph.errors import LaunchError


@dataclass
class WorkerSpec:
    """Arguments a background worker is started with."""

    project_dir: pathlib.Path
    name: str
    task_file: str
    max_iterations: int
    completion_marker: str
    backend: str
    model: str = ""
    variant: str = ""
    webhook: str = ""


@dataclass
class LaunchHandle:
    pid: int
    tmux_session: str = ""


def worker_command(spec: WorkerSpec) -> list[str]:
    cmd = [
        sys.executable, "-m", "gralph.cli", "start", str(spec.project_dir),
        "--worker",
        "--name", spec.name,
        "--task-file", spec.task_file,
        "--max-iterations", str(spec.max_iterations),
        "--completion-marker", spec.completion_marker,
        "--backend", spec.backend,
    ]
    if spec.model:
        cmd += ["--model", spec.model]
    if spec.variant:
        cmd += ["--variant", spec.variant]
    if spec.webhook:
        cmd += ["--webhook", spec.webhook]
    return cmd


def _with_gralph_env(cmd: list[str]) -> list[str]:
    """Prefix *cmd* with ``env`` carrying our GRALPH_* variables.

    A running tmux server starts new sessions with its own environment,
    not the client's.
    """
    assignments = [f"{k}={v}" for k, v in sorted(os.environ.items()) if k.startswith("GRALPH_")]
    if not assignments:
        return cmd
    return ["env", *assignments, *cmd]


def use_tmux() -> bool:
    return tmux_available() and not env_bool("GRALPH_NO_TMUX")


def launch_tmux(spec: WorkerSpec) -> LaunchHandle:
    session = TmuxSession(session_name_for(spec.name))
    if session.exists():
        log_warning(f"Replacing existing tmux session {session.name}")
        session.kill()
    if not session.create(_with_gralph_env(worker_command(spec)), cwd=str(spec.project_dir)):
        raise LaunchError(f"Failed to create tmux session {session.name}")
    pid = session.get_pane_pid()
    if pid <= 0:
        raise LaunchError(f"Could not determine pid of tmux session {session.name}")
    log_info(f"Started tmux session {session.name} (PID: {pid})")
    return LaunchHandle(pid=pid, tmux_session=session.name)


def launch_detached(spec: WorkerSpec, log_file: pathlib.Path) -> LaunchHandle:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(log_file, "a", encoding="utf-8") as out:
            proc = subprocess.Popen(
                worker_command(spec),
                cwd=str(spec.project_dir),
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
    except OSError as exc:
        raise LaunchError(f"Failed to start background worker: {exc}") from exc
    log_info(f"Started background worker (PID: {proc.pid})")
    return LaunchHandle(pid=proc.pid)


def launch_worker(spec: WorkerSpec, log_file: pathlib.Path) -> LaunchHandle:
    """Start a background worker for *spec*.

    Raises:
        LaunchError: The worker could not be started.
    """
    if use_tmux():
        return launch_tmux(spec)
    return launch_detached(spec, log_file)
