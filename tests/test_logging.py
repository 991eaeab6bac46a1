"""Tests for gralph.common.logging."""

from __future__ import annotations

import pathlib
import subprocess
import sys

import pytest

from gralph.common.logging import SessionLog, log_error, log_info, strip_ansi


def test_log_output_visible_non_interactively() -> None:
    """Log lines reach a piped stderr without PYTHONUNBUFFERED."""
    script = (
        "from gralph.common.logging import log_info, log_warning, log_error, log_success\n"
        "log_info('test info')\n"
        "log_warning('test warning')\n"
        "log_error('test error')\n"
        "log_success('test success')\n"
    )
    result = subprocess.run([sys.executable, "-c", script], capture_output=True, text=True)
    assert "[INFO] test info" in result.stderr
    assert "[WARN] test warning" in result.stderr
    assert "[ERROR] test error" in result.stderr
    assert "[OK] test success" in result.stderr
    assert result.stdout == ""


def test_no_color_when_not_a_tty(capsys: pytest.CaptureFixture[str]) -> None:
    log_info("plain")
    log_error("also plain")
    err = capsys.readouterr().err
    assert "\033[" not in err
    assert "[INFO] plain" in err


# ---------------------------------------------------------------------------
# Tests for strip_ansi
# ---------------------------------------------------------------------------


def test_strip_ansi_no_sequences() -> None:
    assert strip_ansi("Hello, world!") == "Hello, world!"


def test_strip_ansi_color_codes() -> None:
    assert strip_ansi("\x1b[31mred\x1b[0m and \x1b[1;32mgreen\x1b[0m") == "red and green"


def test_strip_ansi_cursor_and_private_modes() -> None:
    assert strip_ansi("\x1b[2K\x1b[?25lspinner\x1b[?25h") == "spinner"


def test_strip_ansi_osc_title() -> None:
    assert strip_ansi("\x1b]0;window title\x07text") == "text"


def test_strip_ansi_charset_selection() -> None:
    assert strip_ansi("\x1b(Bplain") == "plain"


# ---------------------------------------------------------------------------
# Tests for SessionLog
# ---------------------------------------------------------------------------


def test_session_log_appends_stripped(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / ".gralph" / "proj.log"
    log = SessionLog(path)
    log.write("\x1b[32mfirst\x1b[0m")
    log.write()
    log.write("second")
    assert path.read_text() == "first\n\nsecond\n"
    assert "\x1b[32mfirst" in capsys.readouterr().out


def test_session_log_without_file(capsys: pytest.CaptureFixture[str]) -> None:
    SessionLog(None).write("only stdout")
    assert capsys.readouterr().out == "only stdout\n"


def test_session_log_no_echo(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "quiet.log"
    SessionLog(path, echo=False).write("hidden")
    assert capsys.readouterr().out == ""
    assert path.read_text() == "hidden\n"


def test_session_log_stdout_is_log_file(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "worker.log"
    with open(path, "a", encoding="utf-8") as out:
        monkeypatch.setattr(sys, "stdout", out)
        log = SessionLog(path)
        log.write("once")
    assert log.echo is False
    assert path.read_text() == "once\n"
