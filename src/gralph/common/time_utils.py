"""Timestamp helpers for ISO-8601 parsing and human-readable durations."""

from __future__ import annotations

from datetime import datetime, timezone


def parse_iso_timestamp(s: str) -> datetime:
    """Parse an ISO-8601 timestamp like ``2026-01-23T10:00:00Z``."""
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def now_utc() -> datetime:
    """Return the current time in UTC with timezone info."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return now_utc().strftime("%Y-%m-%dT%H:%M:%SZ")


def elapsed_seconds(ts: str) -> int:
    """Seconds elapsed since the ISO-8601 timestamp *ts*, or -1 if unparseable."""
    try:
        dt = parse_iso_timestamp(ts)
    except ValueError:
        return -1
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int((now_utc() - dt).total_seconds())


def format_duration(seconds: float) -> str:
    """Format *seconds* as a human-readable string.

    Examples::

        format_duration(90)   -> "1m 30s"
        format_duration(3661) -> "1h 1m 1s"
        format_duration(0)    -> "unknown"
    """
    total = int(seconds)
    if total <= 0:
        return "unknown"
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
