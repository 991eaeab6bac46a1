"""Tests for gralph.common.time_utils."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from unittest.mock import patch

from gralph.common.time_utils import (
    elapsed_seconds,
    format_duration,
    now_iso,
    parse_iso_timestamp,
)


def test_parse_iso_timestamp_z() -> None:
    dt = parse_iso_timestamp("2026-01-23T10:00:00Z")
    assert dt == datetime(2026, 1, 23, 10, 0, 0, tzinfo=timezone.utc)


def test_now_iso_format() -> None:
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", now_iso())


def test_elapsed_seconds() -> None:
    fixed_now = datetime(2026, 1, 23, 10, 1, 30, tzinfo=timezone.utc)
    with patch("gralph.common.time_utils.now_utc", return_value=fixed_now):
        assert elapsed_seconds("2026-01-23T10:00:00Z") == 90


def test_elapsed_seconds_unparseable() -> None:
    assert elapsed_seconds("yesterday") == -1


def test_elapsed_seconds_naive_timestamp_is_utc() -> None:
    fixed_now = datetime(2026, 1, 23, 10, 0, 5, tzinfo=timezone.utc)
    with patch("gralph.common.time_utils.now_utc", return_value=fixed_now):
        assert elapsed_seconds("2026-01-23T10:00:00") == 5


def test_format_duration_seconds_only() -> None:
    assert format_duration(5) == "5s"


def test_format_duration_minutes_seconds() -> None:
    assert format_duration(90) == "1m 30s"


def test_format_duration_hours_minutes_seconds() -> None:
    assert format_duration(3661) == "1h 1m 1s"


def test_format_duration_unknown() -> None:
    assert format_duration(0) == "unknown"
    assert format_duration(-3) == "unknown"
