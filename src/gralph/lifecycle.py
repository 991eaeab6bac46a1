"""Session lifecycle: start, resume, stop and status.

State transitions::

    start/resume ──> running ──> complete | failed | max_iterations
                        │
                        ├──> stopped   (stop)
                        └──> stale     (owning process found dead)

stale and stopped sessions (and running ones whose process died) are
resumable; terminal sessions are only replaced by a fresh start.
"""

from __future__ import annotations

import os
import pathlib
import re
import shutil
from dataclasses import dataclass, replace
from typing import Any

from gralph.backends import Backend, get_backend
from gralph.common.logging import log_error, log_info, log_success, log_warning
from gralph.common.process import is_process_alive, terminate_process
from gralph.common.time_utils import now_iso
from gralph.common.tmux_session import TmuxSession
from gralph.config import Config
from gralph.errors import (
    BackendNotInstalledError,
    PreconditionError,
    SessionAlreadyRunningError,
    SessionNotFoundError,
    SessionNotResumableError,
)
from gralph.launch import LaunchHandle, WorkerSpec, launch_worker
from gralph.loop import LoopOptions, LoopResult, LoopUpdate, run_loop
from gralph.models import (
    DEFAULT_COMPLETION_MARKER,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TASK_FILE,
    SessionRecord,
    SessionStatus,
)
from gralph.notify import notify_complete, notify_failed
from gralph.prd import MarkdownPrd
from gralph.prompt import PROMPT_TEMPLATE_FILE
from gralph.store import CleanupMode, StateStore

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_session_name(name: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("-", name.strip())


def gralph_dir(project_dir: pathlib.Path) -> pathlib.Path:
    return project_dir / ".gralph"


def log_file_for(project_dir: pathlib.Path, name: str) -> pathlib.Path:
    return gralph_dir(project_dir) / f"{name}.log"


@dataclass
class StartSettings:
    """Resolved arguments of a start (or a worker re-invocation)."""

    project_dir: pathlib.Path
    name: str = ""
    task_file: str = ""
    max_iterations: int | None = None
    completion_marker: str = ""
    backend: str = ""
    model: str = ""
    variant: str = ""
    webhook: str = ""
    prompt_template_file: str = ""

    def with_defaults(self, config: Config) -> StartSettings:
        """Fill unset fields: explicit value, then config, then built-in default."""
        project_dir = self.project_dir.expanduser().resolve()
        backend = self.backend or config.get("defaults.backend", "claude")
        max_iterations = self.max_iterations
        if max_iterations is None:
            max_iterations = config.get_int("defaults.max_iterations", DEFAULT_MAX_ITERATIONS)
        return replace(
            self,
            project_dir=project_dir,
            name=sanitize_session_name(self.name or project_dir.name),
            task_file=self.task_file or config.get("defaults.task_file", DEFAULT_TASK_FILE),
            max_iterations=max_iterations,
            completion_marker=self.completion_marker
            or config.get("defaults.completion_marker", DEFAULT_COMPLETION_MARKER),
            backend=backend,
            model=self.model
            or config.get(f"{backend}.default_model")
            or config.get("defaults.model"),
        )

    @property
    def task_path(self) -> pathlib.Path:
        return self.project_dir / self.task_file

    @property
    def log_file(self) -> pathlib.Path:
        return log_file_for(self.project_dir, self.name)

    def worker_spec(self) -> WorkerSpec:
        return WorkerSpec(
            project_dir=self.project_dir,
            name=self.name,
            task_file=self.task_file,
            max_iterations=self.max_iterations or DEFAULT_MAX_ITERATIONS,
            completion_marker=self.completion_marker,
            backend=self.backend,
            model=self.model,
            variant=self.variant,
            webhook=self.webhook,
        )


def validate_start(settings: StartSettings) -> Backend:
    """Check start preconditions and return the backend to use.

    Raises:
        PreconditionError: Bad directory, task file, name or budget.
        BackendNotFoundError: Unknown backend name.
        BackendNotInstalledError: Backend CLI missing from PATH.
    """
    if not settings.project_dir.is_dir():
        raise PreconditionError(f"Directory does not exist: {settings.project_dir}")
    if not settings.name:
        raise PreconditionError("Session name is empty")
    if not settings.max_iterations or settings.max_iterations <= 0:
        raise PreconditionError(
            f"max-iterations must be a positive integer, got {settings.max_iterations}"
        )
    if not settings.task_path.is_file():
        raise PreconditionError(f"Task file does not exist: {settings.task_path}")
    if settings.prompt_template_file and not pathlib.Path(settings.prompt_template_file).is_file():
        raise PreconditionError(f"Prompt template not found: {settings.prompt_template_file}")
    backend = get_backend(settings.backend)
    if not backend.is_installed():
        raise BackendNotInstalledError(backend.name, backend.install_hint)
    return backend


def ensure_session_available(store: StateStore, name: str) -> None:
    """Refuse to start over a session whose process is still alive.

    Raises:
        SessionAlreadyRunningError: The record is running with a live pid.
    """
    record = store.get(name)
    if record is None or not record.is_running:
        return
    if record.pid > 0 and is_process_alive(record.pid):
        raise SessionAlreadyRunningError(name, record.pid)
    log_warning(
        f"Session '{name}' was marked running but its process "
        f"(PID: {record.pid}) is gone; replacing it"
    )


def _install_prompt_template(settings: StartSettings) -> None:
    if not settings.prompt_template_file:
        return
    target = gralph_dir(settings.project_dir) / PROMPT_TEMPLATE_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(settings.prompt_template_file, target)


def _fresh_record_fields(settings: StartSettings, pid: int, remaining: int) -> dict[str, Any]:
    return {
        "dir": str(settings.project_dir),
        "task_file": settings.task_file,
        "pid": pid,
        "tmux_session": "",
        "started_at": now_iso(),
        "iteration": 1,
        "max_iterations": settings.max_iterations,
        "status": SessionStatus.RUNNING,
        "last_task_count": remaining,
        "completion_marker": settings.completion_marker,
        "log_file": str(settings.log_file),
        "backend": settings.backend,
        "model": settings.model,
        "variant": settings.variant,
        "webhook": settings.webhook,
    }


def start_session(store: StateStore, settings: StartSettings) -> SessionRecord:
    """Start a loop in the background and record it as running.

    The record is written before the worker is launched so the worker's
    own updates always merge into it.

    Raises:
        SessionAlreadyRunningError, PreconditionError, LaunchError, and the
        backend errors of :func:`validate_start`.
    """
    validate_start(settings)
    ensure_session_available(store, settings.name)
    _install_prompt_template(settings)
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)

    remaining = MarkdownPrd().count_remaining_tasks(settings.task_path)
    store.set(settings.name, **_fresh_record_fields(settings, pid=0, remaining=remaining))
    try:
        handle = launch_worker(settings.worker_spec(), settings.log_file)
    except Exception:
        store.set(settings.name, status=SessionStatus.FAILED)
        raise
    return store.set(settings.name, pid=handle.pid, tmux_session=handle.tmux_session)


def _persist_update(store: StateStore, update: LoopUpdate) -> None:
    store.set(
        update.session,
        iteration=update.iteration,
        status=update.status,
        last_task_count=update.remaining,
    )


def _send_notification(settings: StartSettings, result: LoopResult) -> None:
    if not settings.webhook:
        return
    if result.status is SessionStatus.COMPLETE:
        notify_complete(
            settings.webhook, settings.name, str(settings.project_dir),
            result.iterations, result.duration,
        )
        return
    reason = "max_iterations" if result.status is SessionStatus.MAX_ITERATIONS else "error"
    notify_failed(
        settings.webhook, settings.name, reason, str(settings.project_dir),
        result.iterations, settings.max_iterations or 0, result.remaining, result.duration,
    )


def run_session(
    store: StateStore,
    settings: StartSettings,
    *,
    worker: bool = False,
    backend: Backend | None = None,
    config: Config | None = None,
    sleep_seconds: float | None = None,
) -> LoopResult:
    """Run a loop in this process, persisting its progress.

    In the foreground a fresh record is written first. A *worker* was
    launched by :func:`start_session` or :func:`resume_sessions`, which
    already wrote the record; it only claims it with its own pid.
    """
    if backend is None:
        backend = validate_start(settings)
    if worker:
        store.set(settings.name, pid=os.getpid(), status=SessionStatus.RUNNING)
    else:
        ensure_session_available(store, settings.name)
        _install_prompt_template(settings)
        remaining = MarkdownPrd().count_remaining_tasks(settings.task_path)
        store.set(settings.name, **_fresh_record_fields(settings, os.getpid(), remaining))

    config = config or Config()
    options = LoopOptions(
        project_dir=settings.project_dir,
        task_file=settings.task_file,
        max_iterations=settings.max_iterations or DEFAULT_MAX_ITERATIONS,
        completion_marker=settings.completion_marker,
        session_name=settings.name,
        model=settings.model,
        variant=settings.variant,
        context_files=config.get_list("defaults.context_files"),
        log_file=settings.log_file,
        retain_days=config.get_int("logging.retain_days", 7),
    )
    if sleep_seconds is not None:
        options.sleep_seconds = sleep_seconds

    try:
        result = run_loop(options, backend, callback=lambda u: _persist_update(store, u))
    except PreconditionError:
        store.set(settings.name, status=SessionStatus.FAILED, pid=0)
        raise
    except KeyboardInterrupt:
        store.set(settings.name, status=SessionStatus.STOPPED, pid=0, tmux_session="")
        raise

    if result.status is SessionStatus.COMPLETE:
        log_success(f"Session '{settings.name}' complete after {result.iterations} iteration(s)")
    elif result.status is SessionStatus.MAX_ITERATIONS:
        log_warning(
            f"Session '{settings.name}' hit max iterations ({result.iterations}) "
            f"with {result.remaining} task(s) remaining"
        )
    else:
        log_error(f"Session '{settings.name}' failed: {result.error}")
    _send_notification(settings, result)
    return result


# -- resume -----------------------------------------------------------------


def should_resume(record: SessionRecord) -> tuple[bool, str]:
    """Whether *record* may be relaunched, and why."""
    status = record.status
    if status == SessionStatus.RUNNING.value:
        if record.pid <= 0:
            return True, "missing pid"
        if not is_process_alive(record.pid):
            return True, "stale pid"
        return False, "already running"
    if status in (SessionStatus.STALE.value, SessionStatus.STOPPED.value):
        return True, status
    if not status:
        return True, "unknown status"
    return False, status


def _settings_from_record(record: SessionRecord) -> StartSettings:
    return StartSettings(
        project_dir=pathlib.Path(record.dir),
        name=record.name,
        task_file=record.task_file or DEFAULT_TASK_FILE,
        max_iterations=record.max_iterations if record.max_iterations > 0 else DEFAULT_MAX_ITERATIONS,
        completion_marker=record.completion_marker or DEFAULT_COMPLETION_MARKER,
        backend=record.backend or "claude",
        model=record.model,
        variant=record.variant,
        webhook=record.webhook,
    )


def resume_sessions(store: StateStore, name: str = "") -> list[str]:
    """Relaunch interrupted sessions (all, or just *name*).

    Sessions whose directory or task file vanished are skipped with a
    warning and the batch continues.

    Raises:
        SessionNotFoundError: *name* has no record.
        SessionNotResumableError: *name* exists but was not resumed.
    """
    if name:
        record = store.get(name)
        if record is None:
            raise SessionNotFoundError(name)
        records = [record]
    else:
        records = store.list()

    prd = MarkdownPrd()
    resumed: list[str] = []
    for record in records:
        ok, reason = should_resume(record)
        if not ok:
            if name:
                raise SessionNotResumableError(record.name, reason)
            continue

        if not record.dir or not pathlib.Path(record.dir).is_dir():
            log_warning(f"Skipping '{record.name}' (directory missing: {record.dir or '-'})")
            continue
        settings = _settings_from_record(record)
        if not settings.task_path.is_file():
            log_warning(f"Skipping '{record.name}' (task file missing: {settings.task_path})")
            continue

        handle: LaunchHandle = launch_worker(settings.worker_spec(), settings.log_file)
        store.set(
            record.name,
            pid=handle.pid,
            tmux_session=handle.tmux_session,
            status=SessionStatus.RUNNING,
            last_task_count=prd.count_remaining_tasks(settings.task_path),
        )
        log_success(f"Resumed session '{record.name}' ({reason})")
        resumed.append(record.name)

    if name and not resumed:
        raise SessionNotResumableError(name, "directory or task file missing")
    return resumed


# -- stop -------------------------------------------------------------------


def stop_session(store: StateStore, name: str) -> SessionRecord:
    """Stop a session's process and mark it stopped. Idempotent.

    Raises:
        SessionNotFoundError: No record named *name*.
    """
    record = store.get(name)
    if record is None:
        raise SessionNotFoundError(name)

    if record.tmux_session:
        if not TmuxSession(record.tmux_session).kill():
            log_warning(f"Could not kill tmux session {record.tmux_session}")
    if record.pid > 0 and is_process_alive(record.pid):
        if not terminate_process(record.pid):
            log_warning(f"Process {record.pid} did not exit after SIGTERM")

    log_info(f"Stopped session '{name}'")
    return store.set(name, status=SessionStatus.STOPPED, pid=0, tmux_session="")


def stop_all_sessions(store: StateStore) -> list[str]:
    """Stop every running session. Returns the names stopped."""
    stopped = []
    for record in store.list():
        if record.is_running:
            stop_session(store, record.name)
            stopped.append(record.name)
    return stopped


# -- status -----------------------------------------------------------------


def enrich_session(record: SessionRecord, prd: MarkdownPrd | None = None) -> dict[str, Any]:
    """Record fields plus live ``current_remaining`` and ``is_alive``.

    A running session whose pid is dead is reported as ``stale``.
    """
    prd = prd or MarkdownPrd()
    fields = record.to_dict()

    remaining = -1
    if record.dir:
        task_path = pathlib.Path(record.dir) / (record.task_file or DEFAULT_TASK_FILE)
        if task_path.is_file():
            remaining = prd.count_remaining_tasks(task_path)
    if remaining < 0:
        remaining = record.last_task_count

    is_alive = False
    if record.is_running and record.pid > 0:
        if is_process_alive(record.pid):
            is_alive = True
        else:
            fields["status"] = SessionStatus.STALE.value

    fields["current_remaining"] = remaining
    fields["is_alive"] = is_alive
    return fields


def collect_status(store: StateStore) -> list[dict[str, Any]]:
    """Mark dead running sessions stale, then return every session enriched."""
    store.cleanup_stale(CleanupMode.MARK)
    prd = MarkdownPrd()
    return [enrich_session(record, prd) for record in store.list()]


def get_session_status(store: StateStore, name: str) -> dict[str, Any]:
    """Enriched view of one session.

    Raises:
        SessionNotFoundError: No record named *name*.
    """
    record = store.get(name)
    if record is None:
        raise SessionNotFoundError(name)
    return enrich_session(record)
