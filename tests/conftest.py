"""Shared fixtures for gralph tests."""

from __future__ import annotations

import os
import pathlib

import pytest

from gralph.store import StateStore, StoreConfig


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's GRALPH_* settings and config files out of tests."""
    for key in list(os.environ):
        if key.startswith("GRALPH_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GRALPH_GLOBAL_CONFIG", str(tmp_path / "no-global-config.yaml"))
    monkeypatch.setenv("GRALPH_STATE_DIR", str(tmp_path / "state"))


@pytest.fixture
def store(tmp_path: pathlib.Path) -> StateStore:
    s = StateStore(StoreConfig.for_dir(tmp_path / "state", lock_timeout=2.0))
    s.init()
    return s


@pytest.fixture
def project(tmp_path: pathlib.Path) -> pathlib.Path:
    """A project directory with a two-task PRD.md."""
    d = tmp_path / "myproject"
    d.mkdir()
    (d / "PRD.md").write_text(
        "# PRD\n\n"
        "### Task P-1\n"
        "- [ ] first\n"
        "---\n\n"
        "### Task P-2\n"
        "- [ ] second\n"
        "---\n"
    )
    return d
