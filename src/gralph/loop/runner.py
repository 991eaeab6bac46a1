"""The iteration state machine.

Each iteration renders a prompt for the next unchecked task, runs the
backend once, re-counts the task file and checks for the completion
promise. The run ends as ``complete``, ``failed`` or ``max_iterations``.
Progress is reported through a callback; the runner itself has no
knowledge of the state store.
"""

from __future__ import annotations

import os
import pathlib
import tempfile
import time

from gralph.backends import Backend
from gralph.common.logging import SessionLog, log_warning
from gralph.common.time_utils import now_iso
from gralph.errors import GralphError, PreconditionError
from gralph.loop.completion import is_complete
from gralph.loop.context import LoopCallback, LoopOptions, LoopResult, LoopUpdate
from gralph.models import SessionStatus
from gralph.prd import MarkdownPrd, PrdService
from gralph.prompt import render_prompt, resolve_prompt_template


def check_preconditions(options: LoopOptions) -> None:
    """Raise PreconditionError unless the loop can start."""
    if not options.project_dir.is_dir():
        raise PreconditionError(f"Project directory does not exist: {options.project_dir}")
    if not options.task_path.is_file():
        raise PreconditionError(f"Task file does not exist: {options.task_path}")
    if options.max_iterations <= 0:
        raise PreconditionError(
            f"max_iterations must be a positive integer, got {options.max_iterations}"
        )


def cleanup_old_logs(log_dir: pathlib.Path, retain_days: int) -> list[pathlib.Path]:
    """Delete ``*.log`` files in *log_dir* last modified over *retain_days* ago."""
    if retain_days <= 0 or not log_dir.is_dir():
        return []
    cutoff = time.time() - retain_days * 86400
    removed = []
    for path in log_dir.glob("*.log"):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path)
        except OSError as exc:
            log_warning(f"Could not remove old log {path}: {exc}")
    return removed


def _notify(callback: LoopCallback | None, update: LoopUpdate) -> None:
    if callback is None:
        return
    try:
        callback(update)
    except GralphError as exc:
        # A failed state write never aborts the loop.
        log_warning(f"State update for iteration {update.iteration} failed: {exc}")


def _run_backend(
    options: LoopOptions,
    backend: Backend,
    prompt: str,
) -> tuple[int, str]:
    """Run one backend iteration. Returns (exit code, parsed output)."""
    fd, tmp = tempfile.mkstemp(prefix="gralph-iteration-", suffix=".out")
    os.close(fd)
    output_file = pathlib.Path(tmp)
    try:
        exit_code = backend.run_iteration(
            prompt,
            output_file,
            model=options.model,
            variant=options.variant,
            cwd=options.project_dir,
            raw_output_file=options.raw_log_file,
        )
        return exit_code, backend.parse_text(output_file)
    finally:
        output_file.unlink(missing_ok=True)


def run_loop(
    options: LoopOptions,
    backend: Backend,
    prd: PrdService | None = None,
    callback: LoopCallback | None = None,
) -> LoopResult:
    """Run iterations until complete, failed, or out of budget.

    Raises:
        PreconditionError: Project dir or task file missing, or a
            non-positive budget. Nothing has run yet in that case.
    """
    check_preconditions(options)
    prd = prd or MarkdownPrd()
    task_path = options.task_path
    session = options.session_name
    log = SessionLog(options.log_file)

    if options.log_file is not None:
        cleanup_old_logs(options.log_file.parent, options.retain_days)

    template = resolve_prompt_template(options.project_dir, options.prompt_template)
    start = time.monotonic()

    log.write(f"Starting gralph loop in {options.project_dir}")
    log.write(f"Task file: {options.task_file}")
    log.write(f"Max iterations: {options.max_iterations}")
    log.write(f"Completion marker: {options.completion_marker}")
    log.write(f"Backend: {backend.name}")
    if options.model:
        log.write(f"Model: {options.model}")
    log.write(f"Started at: {now_iso()}")
    log.write(f"Initial remaining tasks: {prd.count_remaining_tasks(task_path)}")

    def finish(
        status: SessionStatus, iteration: int, remaining: int, error: str = "", exit_code: int = 0
    ) -> LoopResult:
        duration = time.monotonic() - start
        log.write(f"Duration: {int(duration)}s")
        log.write(f"FINISHED: {now_iso()}")
        _notify(callback, LoopUpdate(session, iteration, status, remaining))
        return LoopResult(
            status=status,
            iterations=iteration,
            remaining=remaining,
            duration=duration,
            exit_code=exit_code,
            error=error,
        )

    for iteration in range(max(1, options.start_iteration), options.max_iterations + 1):
        remaining_before = prd.count_remaining_tasks(task_path)
        log.write("")
        log.write(
            f"=== Iteration {iteration}/{options.max_iterations} "
            f"(Remaining: {remaining_before}) ==="
        )
        _notify(callback, LoopUpdate(session, iteration, SessionStatus.RUNNING, remaining_before))

        prompt = render_prompt(
            template,
            task_file=options.task_file,
            completion_marker=options.completion_marker,
            iteration=iteration,
            max_iterations=options.max_iterations,
            task_block=prd.current_task(task_path),
            context_files=options.context_files,
        )

        try:
            exit_code, output = _run_backend(options, backend, prompt)
        except OSError as exc:
            exit_code, output = -1, ""
            error = f"{backend.name} could not be started: {exc}"
        else:
            error = ""
            if exit_code != 0:
                error = f"{backend.name} exited with code {exit_code}"
            elif not output.strip():
                error = f"{backend.name} produced no output"

        if error:
            log.write("")
            log.write(f"Iteration {iteration} failed: {error}")
            if options.raw_log_file is not None:
                log.write(f"Raw output: {options.raw_log_file}")
            return finish(
                SessionStatus.FAILED,
                iteration,
                prd.count_remaining_tasks(task_path),
                error,
                exit_code=exit_code,
            )

        remaining = prd.count_remaining_tasks(task_path)
        if is_complete(remaining, output, options.completion_marker):
            log.write("")
            log.write(f"Gralph complete after {iteration} iterations.")
            return finish(SessionStatus.COMPLETE, iteration, 0)

        log.write(f"Tasks remaining after iteration: {remaining}")
        _notify(callback, LoopUpdate(session, iteration, SessionStatus.RUNNING, remaining))

        if iteration < options.max_iterations and options.sleep_seconds > 0:
            time.sleep(options.sleep_seconds)

    remaining = prd.count_remaining_tasks(task_path)
    log.write("")
    log.write(f"Hit max iterations ({options.max_iterations})")
    log.write(f"Remaining tasks: {remaining}")
    return finish(SessionStatus.MAX_ITERATIONS, options.max_iterations, remaining)
