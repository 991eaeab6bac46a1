"""Common interface for agent CLI backends."""

from __future__ import annotations

import os
import pathlib
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from contextlib import ExitStack
from typing import IO


class Backend(ABC):
    """One agent CLI the loop can drive.

    Subclasses describe how to build the command line and, optionally,
    how to turn streamed output into display text and a final result.
    """

    name: str = ""
    executable: str = ""
    install_hint: str = ""
    models: tuple[str, ...] = ()

    # When False, stderr goes only to the raw output file.
    merge_stderr: bool = True

    def is_installed(self) -> bool:
        return shutil.which(self.executable) is not None

    @abstractmethod
    def build_command(self, prompt: str, model: str = "", variant: str = "") -> list[str]:
        """Argument vector for one iteration."""

    def command_env(self) -> dict[str, str] | None:
        """Environment for the child process, or None to inherit ours."""
        return None

    def display_text(self, line: str) -> str:
        """Human-readable text to echo for one line of output."""
        return line

    def parse_text(self, output_file: pathlib.Path) -> str:
        """Final response text of an iteration."""
        try:
            return output_file.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return ""

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
        """Run one iteration and return the CLI's exit code.

        Output lines are written to *output_file* (and appended to
        *raw_output_file* when given) while display text is echoed.

        Raises:
            ValueError: *prompt* is empty.
            OSError: The executable could not be started.
        """
        if not prompt.strip():
            raise ValueError("prompt is required")
        echo = echo or sys.stdout
        cmd = self.build_command(prompt, model=model, variant=variant)

        output_file.parent.mkdir(parents=True, exist_ok=True)
        with ExitStack() as stack:
            out = stack.enter_context(open(output_file, "w", encoding="utf-8"))
            raw = None
            if raw_output_file is not None:
                raw_output_file.parent.mkdir(parents=True, exist_ok=True)
                raw = stack.enter_context(open(raw_output_file, "a", encoding="utf-8"))

            if self.merge_stderr:
                stderr: int | IO[str] = subprocess.STDOUT
            else:
                stderr = raw if raw is not None else subprocess.DEVNULL

            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd else None,
                env=self.command_env(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr,
                text=True,
                errors="replace",
            )
            assert proc.stdout is not None
            with proc.stdout:
                for line in proc.stdout:
                    out.write(line)
                    if raw is not None:
                        raw.write(line)
                    text = self.display_text(line)
                    if text:
                        echo.write(text if text.endswith("\n") else text + "\n")
                        echo.flush()
            return proc.wait()


def inherited_env(**extra: str) -> dict[str, str]:
    """Copy of the current environment with *extra* variables set."""
    env = dict(os.environ)
    env.update(extra)
    return env
