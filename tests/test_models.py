"""Tests for gralph.models."""

from __future__ import annotations

from gralph.models import SessionRecord, SessionStatus


class TestSessionStatus:
    def test_values(self) -> None:
        assert [s.value for s in SessionStatus] == [
            "running", "stale", "stopped", "complete", "failed", "max_iterations",
        ]

    def test_terminal(self) -> None:
        assert SessionStatus.COMPLETE.is_terminal
        assert SessionStatus.FAILED.is_terminal
        assert SessionStatus.MAX_ITERATIONS.is_terminal
        assert not SessionStatus.RUNNING.is_terminal
        assert not SessionStatus.STALE.is_terminal
        assert not SessionStatus.STOPPED.is_terminal

    def test_compares_to_plain_string(self) -> None:
        assert SessionStatus.RUNNING == "running"


class TestSessionRecord:
    def test_defaults(self) -> None:
        record = SessionRecord.from_dict({"name": "a"})
        assert record.task_file == "PRD.md"
        assert record.completion_marker == "COMPLETE"
        assert record.max_iterations == 30
        assert record.pid == 0
        assert record.last_task_count == -1
        assert record.status == ""

    def test_full_record(self) -> None:
        data = {
            "name": "proj",
            "dir": "/home/u/proj",
            "task_file": "TODO.md",
            "pid": 4242,
            "tmux_session": "gralph-proj",
            "started_at": "2026-01-23T10:00:00Z",
            "iteration": 3,
            "max_iterations": 10,
            "status": "running",
            "last_task_count": 5,
            "completion_marker": "DONE",
            "log_file": "/home/u/proj/.gralph/proj.log",
            "backend": "opencode",
            "model": "anthropic/claude-opus-4-5",
            "variant": "high",
            "webhook": "https://example.invalid/hook",
        }
        record = SessionRecord.from_dict(data)
        assert record.to_dict() == data
        assert record.is_running

    def test_lenient_numbers(self) -> None:
        record = SessionRecord.from_dict(
            {"pid": "77", "iteration": 2.0, "max_iterations": "lots", "last_task_count": True}
        )
        assert record.pid == 77
        assert record.iteration == 2
        assert record.max_iterations == 30
        assert record.last_task_count == -1

    def test_null_strings_become_defaults(self) -> None:
        record = SessionRecord.from_dict({"task_file": None, "model": None})
        assert record.task_file == "PRD.md"
        assert record.model == ""

    def test_unknown_keys_ignored(self) -> None:
        record = SessionRecord.from_dict({"name": "a", "future_field": 1})
        assert "future_field" not in record.to_dict()

    def test_not_running(self) -> None:
        assert not SessionRecord(status="stale").is_running
