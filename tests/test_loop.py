"""Tests for gralph.loop.runner."""

from __future__ import annotations

import os
import pathlib
import sys
import time
from typing import IO, Callable

import pytest

from gralph.backends.base import Backend
from gralph.errors import GralphError, PreconditionError
from gralph.loop import LoopOptions, LoopUpdate, cleanup_old_logs, run_loop
from gralph.models import SessionStatus

Step = Callable[[pathlib.Path, str], "tuple[int, str]"]


class ScriptedBackend(Backend):
    """Plays one scripted step per iteration instead of running a CLI."""

    name = "scripted"
    executable = "true"

    def __init__(self, steps: list[Step]) -> None:
        self.steps = list(steps)
        self.prompts: list[str] = []

    def build_command(self, prompt: str, model: str = "", variant: str = "") -> list[str]:
        return ["true"]

    def run_iteration(
        self,
        prompt: str,
        output_file: pathlib.Path,
        *,
        model: str = "",
        variant: str = "",
        cwd: pathlib.Path | None = None,
        raw_output_file: pathlib.Path | None = None,
        echo: IO[str] | None = None,
    ) -> int:
        self.prompts.append(prompt)
        assert cwd is not None
        code, output = self.steps.pop(0)(cwd, prompt)
        output_file.write_text(output)
        return code


def check_one(project: pathlib.Path, prompt: str) -> tuple[int, str]:
    path = project / "PRD.md"
    path.write_text(path.read_text().replace("- [ ]", "- [x]", 1))
    return 0, "Checked a task off."


def promise(project: pathlib.Path, prompt: str) -> tuple[int, str]:
    return 0, "All done.\n<promise>COMPLETE</promise>"


def check_one_and_promise(project: pathlib.Path, prompt: str) -> tuple[int, str]:
    check_one(project, prompt)
    return promise(project, prompt)


def idle(project: pathlib.Path, prompt: str) -> tuple[int, str]:
    return 0, "Thinking about it."


def crash(project: pathlib.Path, prompt: str) -> tuple[int, str]:
    return 1, "boom"


def silent(project: pathlib.Path, prompt: str) -> tuple[int, str]:
    return 0, "   \n"


class FixedPrd:
    """Task queries answered from memory instead of the task file."""

    def __init__(self, remaining: int) -> None:
        self.remaining = remaining

    def count_remaining_tasks(self, path: pathlib.Path) -> int:
        return self.remaining

    def get_task_blocks(self, path: pathlib.Path) -> list[str]:
        return ["### Task F-1\n- [ ] from memory"]

    def current_task(self, path: pathlib.Path) -> str:
        return self.get_task_blocks(path)[0]


def _options(project: pathlib.Path, **kwargs: object) -> LoopOptions:
    params: dict = {
        "project_dir": project,
        "session_name": "myproject",
        "max_iterations": 5,
        "sleep_seconds": 0,
        "log_file": project / ".gralph" / "myproject.log",
    }
    params.update(kwargs)
    return LoopOptions(**params)


class TestPreconditions:
    def test_missing_dir(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(PreconditionError, match="does not exist"):
            run_loop(_options(tmp_path / "nope"), ScriptedBackend([]))

    def test_missing_task_file(self, project: pathlib.Path) -> None:
        with pytest.raises(PreconditionError, match="Task file"):
            run_loop(_options(project, task_file="TODO.md"), ScriptedBackend([]))

    def test_bad_budget(self, project: pathlib.Path) -> None:
        with pytest.raises(PreconditionError, match="max_iterations"):
            run_loop(_options(project, max_iterations=0), ScriptedBackend([]))


class TestRunLoop:
    def test_completes(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([check_one, check_one_and_promise])
        updates: list[LoopUpdate] = []

        result = run_loop(_options(project), backend, callback=updates.append)

        assert result.status is SessionStatus.COMPLETE
        assert result.completed
        assert result.iterations == 2
        assert result.remaining == 0
        assert updates[-1] == LoopUpdate("myproject", 2, SessionStatus.COMPLETE, 0)
        assert [u.status for u in updates[:-1]] == [SessionStatus.RUNNING] * 3
        assert updates[0] == LoopUpdate("myproject", 1, SessionStatus.RUNNING, 2)
        assert updates[1] == LoopUpdate("myproject", 1, SessionStatus.RUNNING, 1)

    def test_promise_with_tasks_left_keeps_going(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([promise, check_one, check_one_and_promise])
        result = run_loop(_options(project), backend)
        assert result.status is SessionStatus.COMPLETE
        assert result.iterations == 3

    def test_no_promise_is_not_complete(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([check_one, check_one, idle])
        result = run_loop(_options(project, max_iterations=3), backend)
        assert result.status is SessionStatus.MAX_ITERATIONS
        assert result.iterations == 3
        assert result.remaining == 0

    def test_max_iterations(self, project: pathlib.Path) -> None:
        updates: list[LoopUpdate] = []
        result = run_loop(
            _options(project, max_iterations=2), ScriptedBackend([idle, idle]), callback=updates.append
        )
        assert result.status is SessionStatus.MAX_ITERATIONS
        assert result.iterations == 2
        assert result.remaining == 2
        assert updates[-1] == LoopUpdate("myproject", 2, SessionStatus.MAX_ITERATIONS, 2)

    def test_backend_failure(self, project: pathlib.Path) -> None:
        updates: list[LoopUpdate] = []
        result = run_loop(_options(project), ScriptedBackend([check_one, crash]), callback=updates.append)
        assert result.status is SessionStatus.FAILED
        assert result.iterations == 2
        assert result.remaining == 1
        assert "exited with code 1" in result.error
        assert result.exit_code == 1
        assert updates[-1].status is SessionStatus.FAILED

    def test_start_iteration(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([idle, idle])
        result = run_loop(_options(project, max_iterations=5, start_iteration=4), backend)
        assert result.status is SessionStatus.MAX_ITERATIONS
        assert result.iterations == 5
        assert "Iteration: 4/5" in backend.prompts[0]

    def test_empty_output_fails(self, project: pathlib.Path) -> None:
        result = run_loop(_options(project), ScriptedBackend([silent]))
        assert result.status is SessionStatus.FAILED
        assert "no output" in result.error

    def test_backend_cannot_start(self, project: pathlib.Path) -> None:
        def missing(project: pathlib.Path, prompt: str) -> tuple[int, str]:
            raise FileNotFoundError("no such executable")

        result = run_loop(_options(project), ScriptedBackend([missing]))
        assert result.status is SessionStatus.FAILED
        assert "could not be started" in result.error

    def test_prompt_carries_task_and_iteration(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([check_one, idle])
        run_loop(_options(project, max_iterations=2), backend)
        assert "### Task P-1" in backend.prompts[0]
        assert "Iteration: 1/2" in backend.prompts[0]
        assert "### Task P-2" in backend.prompts[1]
        assert "Iteration: 2/2" in backend.prompts[1]

    def test_custom_template_and_context(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([idle])
        run_loop(
            _options(
                project,
                max_iterations=1,
                prompt_template="{iteration}|{context_files}",
                context_files=["ARCH.md"],
            ),
            backend,
        )
        assert backend.prompts == ["1|ARCH.md"]

    def test_session_log_written(self, project: pathlib.Path) -> None:
        run_loop(_options(project), ScriptedBackend([check_one, check_one_and_promise]))
        log = (project / ".gralph" / "myproject.log").read_text()
        assert "Starting gralph loop in" in log
        assert "=== Iteration 1/5 (Remaining: 2) ===" in log
        assert "Gralph complete after 2 iterations." in log
        assert "FINISHED:" in log

    def test_any_prd_service(self, project: pathlib.Path) -> None:
        backend = ScriptedBackend([promise])
        result = run_loop(_options(project), backend, prd=FixedPrd(remaining=0))
        assert result.status is SessionStatus.COMPLETE
        assert result.iterations == 1
        assert "### Task F-1" in backend.prompts[0]

    def test_detached_worker_log_has_no_duplicates(
        self, project: pathlib.Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        log_file = project / ".gralph" / "myproject.log"
        log_file.parent.mkdir()
        with open(log_file, "a", encoding="utf-8") as out:
            monkeypatch.setattr(sys, "stdout", out)
            run_loop(_options(project, max_iterations=1), ScriptedBackend([idle]))
        log = log_file.read_text()
        assert log.count("Task file: PRD.md") == 1
        assert log.count("=== Iteration 1/1") == 1
        assert log.count("FINISHED:") == 1

    def test_callback_error_does_not_abort(self, project: pathlib.Path) -> None:
        def flaky(update: LoopUpdate) -> None:
            raise GralphError("state lock busy")

        result = run_loop(_options(project), ScriptedBackend([check_one, check_one_and_promise]), callback=flaky)
        assert result.status is SessionStatus.COMPLETE

    def test_sleeps_between_iterations(self, project: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
        sleeps: list[float] = []
        monkeypatch.setattr("gralph.loop.runner.time.sleep", sleeps.append)
        run_loop(_options(project, max_iterations=3, sleep_seconds=2.0), ScriptedBackend([idle, idle, idle]))
        assert sleeps == [2.0, 2.0]


class TestCleanupOldLogs:
    def test_removes_only_old_logs(self, tmp_path: pathlib.Path) -> None:
        old = tmp_path / "old.log"
        new = tmp_path / "new.log"
        other = tmp_path / "old.txt"
        for path in (old, new, other):
            path.write_text("x")
        stamp = time.time() - 10 * 86400
        os.utime(old, (stamp, stamp))
        os.utime(other, (stamp, stamp))

        assert cleanup_old_logs(tmp_path, 7) == [old]
        assert not old.exists()
        assert new.exists()
        assert other.exists()

    def test_disabled(self, tmp_path: pathlib.Path) -> None:
        old = tmp_path / "old.log"
        old.write_text("x")
        stamp = time.time() - 10 * 86400
        os.utime(old, (stamp, stamp))
        assert cleanup_old_logs(tmp_path, 0) == []
        assert old.exists()

    def test_missing_dir(self, tmp_path: pathlib.Path) -> None:
        assert cleanup_old_logs(tmp_path / "nope", 7) == []
