"""Tests for gralph.prd."""

from __future__ import annotations

import pathlib

import pytest

from gralph.prd import MarkdownPrd

BLOCKS = """\
# Project

## Tasks

### Task P-1
- [x] scaffold
- [ ] wire config
---

### Task P-2
- [ ] add tests
- [ ] write docs

## Notes
- [ ] not a task, outside any block
"""


@pytest.fixture
def prd() -> MarkdownPrd:
    return MarkdownPrd()


def _write(tmp_path: pathlib.Path, text: str) -> pathlib.Path:
    path = tmp_path / "PRD.md"
    path.write_text(text)
    return path


class TestTaskBlocks:
    def test_blocks_end_at_rule_and_heading(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        blocks = prd.get_task_blocks(_write(tmp_path, BLOCKS))
        assert blocks == [
            "### Task P-1\n- [x] scaffold\n- [ ] wire config",
            "### Task P-2\n- [ ] add tests\n- [ ] write docs\n",
        ]

    def test_next_header_ends_block(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "### Task A\n- [ ] a\n### Task B\n- [ ] b\n")
        assert prd.get_task_blocks(path) == ["### Task A\n- [ ] a", "### Task B\n- [ ] b"]

    def test_missing_file(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        assert prd.get_task_blocks(tmp_path / "nope.md") == []


class TestCountRemaining:
    def test_only_blocks_count(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        assert prd.count_remaining_tasks(_write(tmp_path, BLOCKS)) == 3

    def test_flat_checklist(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "- [ ] one\n- [x] two\n  - [ ] nested\n- [] malformed\n")
        assert prd.count_remaining_tasks(path) == 2

    def test_all_done(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        assert prd.count_remaining_tasks(_write(tmp_path, "### Task A\n- [x] a\n")) == 0

    def test_missing_file_is_zero(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        assert prd.count_remaining_tasks(tmp_path / "nope.md") == 0


class TestCurrentTask:
    def test_first_unfinished_block(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, BLOCKS.replace("- [ ] wire config", "- [x] wire config"))
        assert prd.current_task(path).startswith("### Task P-2")

    def test_falls_back_to_first_unchecked_line(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "# Todo\n- [x] done\n- [ ] next thing\n- [ ] later\n")
        assert prd.current_task(path) == "- [ ] next thing"

    def test_nothing_left(self, prd: MarkdownPrd, tmp_path: pathlib.Path) -> None:
        assert prd.current_task(_write(tmp_path, "- [x] done\n")) == ""
