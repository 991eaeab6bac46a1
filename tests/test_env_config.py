"""Tests for gralph.common.config environment helpers."""

from __future__ import annotations

import pathlib

import pytest

from gralph.common.config import env_bool, env_float, env_int, env_path, env_str


class TestEnvStr:
    def test_unset(self) -> None:
        assert env_str("GRALPH_TEST_VALUE", "dflt") == "dflt"

    def test_blank_is_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRALPH_TEST_VALUE", "   ")
        assert env_str("GRALPH_TEST_VALUE", "dflt") == "dflt"

    def test_set(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRALPH_TEST_VALUE", "codex")
        assert env_str("GRALPH_TEST_VALUE") == "codex"


class TestEnvBool:
    @pytest.mark.parametrize("value", ["true", "1", "YES", "on"])
    def test_true(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("GRALPH_TEST_FLAG", value)
        assert env_bool("GRALPH_TEST_FLAG") is True

    @pytest.mark.parametrize("value", ["false", "0", "No", "off"])
    def test_false(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("GRALPH_TEST_FLAG", value)
        assert env_bool("GRALPH_TEST_FLAG", default=True) is False

    def test_invalid_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRALPH_TEST_FLAG", "maybe")
        assert env_bool("GRALPH_TEST_FLAG", default=True) is True


class TestEnvNumbers:
    def test_int(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRALPH_TEST_INT", " 12 ")
        assert env_int("GRALPH_TEST_INT") == 12

    def test_int_invalid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRALPH_TEST_INT", "twelve")
        assert env_int("GRALPH_TEST_INT", 5) == 5

    def test_float(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRALPH_TEST_FLOAT", "0.5")
        assert env_float("GRALPH_TEST_FLOAT") == 0.5

    def test_float_unset(self) -> None:
        assert env_float("GRALPH_TEST_FLOAT", 10.0) == 10.0


class TestEnvPath:
    def test_default_expanded(self, monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        assert env_path("GRALPH_TEST_PATH", pathlib.Path("~/x")) == tmp_path / "x"

    def test_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> None:
        monkeypatch.setenv("GRALPH_TEST_PATH", str(tmp_path / "y"))
        assert env_path("GRALPH_TEST_PATH", pathlib.Path("/nope")) == tmp_path / "y"
