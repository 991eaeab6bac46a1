"""Markdown task-file (PRD) parsing.

A task file lists work as markdown checkboxes. Tasks may be grouped into
blocks, each starting at a ``### Task ...`` header and ending at a ``---``
rule, a ``## `` heading, or the next task header::

    ### Task P-1
    - [x] done
    - [ ] still to do
    ---
"""

from __future__ import annotations

import pathlib
import re
from typing import Protocol

TASK_HEADER_RE = re.compile(r"^\s*###\s+Task\s+")
TASK_END_RE = re.compile(r"^\s*(---|##\s+)")
UNCHECKED_RE = re.compile(r"^\s*- \[ \]")


def _read_lines(path: pathlib.Path) -> list[str] | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return None


def _count_unchecked(lines: list[str]) -> int:
    return sum(1 for line in lines if UNCHECKED_RE.match(line))


class PrdService(Protocol):
    """Task-file queries the loop depends on.

    Implemented by:
    - MarkdownPrd: markdown checkbox task files
    """

    def count_remaining_tasks(self, path: pathlib.Path) -> int:
        """Number of unchecked tasks; 0 for a missing file."""
        ...

    def get_task_blocks(self, path: pathlib.Path) -> list[str]:
        """Each task block as text."""
        ...

    def current_task(self, path: pathlib.Path) -> str:
        """Task text to hand the agent for the next iteration."""
        ...


class MarkdownPrd:
    """Task-file queries used by the loop, lifecycle and status server."""

    def get_task_blocks(self, path: pathlib.Path) -> list[str]:
        """Return each ``### Task`` block as text, header line included."""
        lines = _read_lines(path)
        if not lines:
            return []

        blocks: list[str] = []
        current: list[str] | None = None
        for line in lines:
            if TASK_HEADER_RE.match(line):
                if current is not None:
                    blocks.append("\n".join(current))
                current = [line]
                continue
            if current is not None and TASK_END_RE.match(line):
                blocks.append("\n".join(current))
                current = None
                continue
            if current is not None:
                current.append(line)
        if current is not None:
            blocks.append("\n".join(current))
        return blocks

    def count_remaining_tasks(self, path: pathlib.Path) -> int:
        """Count unchecked tasks.

        When the file has task blocks only lines inside blocks count;
        otherwise every unchecked line in the file counts. A missing file
        has zero remaining tasks.
        """
        blocks = self.get_task_blocks(path)
        if blocks:
            return sum(_count_unchecked(block.splitlines()) for block in blocks)
        lines = _read_lines(path)
        if lines is None:
            return 0
        return _count_unchecked(lines)

    def next_unchecked_block(self, path: pathlib.Path) -> str:
        """First task block that still has an unchecked line, or ""."""
        for block in self.get_task_blocks(path):
            if _count_unchecked(block.splitlines()):
                return block
        return ""

    def first_unchecked_line(self, path: pathlib.Path) -> str:
        for line in _read_lines(path) or []:
            if UNCHECKED_RE.match(line):
                return line
        return ""

    def current_task(self, path: pathlib.Path) -> str:
        """Text to hand the agent for this iteration.

        The next unchecked block, else the first unchecked line anywhere
        in the file, else "".
        """
        block = self.next_unchecked_block(path)
        if block.strip():
            return block
        return self.first_unchecked_line(path)
