"""Crash-safe, cross-process store of session records.

The whole store is one JSON document::

    {"sessions": {"<name>": {"name": "<name>", "status": "running", ...}}}

Every operation runs under :class:`~gralph.locking.StoreLock` and every
mutation rewrites the document atomically, so concurrent CLI
invocations, background workers and the status server never observe a
partial write or lose an unrelated field update.
"""

from __future__ import annotations

import pathlib
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gralph.common.config import env_float, env_path
from gralph.common.logging import log_warning
from gralph.common.process import is_process_alive, parse_pid
from gralph.common.state import read_json_file, write_json_file
from gralph.errors import SessionNotFoundError
from gralph.locking import DEFAULT_LOCK_TIMEOUT, StoreLock
from gralph.models import SessionRecord, SessionStatus

DEFAULT_STATE_DIR = pathlib.Path("~/.config/gralph")


class CleanupMode(str, Enum):
    """What cleanup_stale does with a dead running session."""

    MARK = "mark"
    REMOVE = "remove"


@dataclass
class StoreConfig:
    """Locations and lock timeout for the state store.

    Loaded from GRALPH_* environment variables once, then passed down.
    """

    state_dir: pathlib.Path
    state_file: pathlib.Path
    lock_file: pathlib.Path
    lock_dir: pathlib.Path
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    @classmethod
    def for_dir(cls, state_dir: pathlib.Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> StoreConfig:
        lock_file = state_dir / "state.lock"
        return cls(
            state_dir=state_dir,
            state_file=state_dir / "state.json",
            lock_file=lock_file,
            lock_dir=lock_file.with_name(lock_file.name + ".dir"),
            lock_timeout=lock_timeout,
        )

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Create config from environment variables.

        GRALPH_STATE_DIR     state directory (default ~/.config/gralph)
        GRALPH_STATE_FILE    state document (default <dir>/state.json)
        GRALPH_LOCK_FILE     flock target (default <dir>/state.lock)
        GRALPH_LOCK_DIR      directory mutex (default <lock file>.dir)
        GRALPH_LOCK_TIMEOUT  seconds; non-positive or invalid means 10
        """
        state_dir = env_path("GRALPH_STATE_DIR", DEFAULT_STATE_DIR)
        state_file = env_path("GRALPH_STATE_FILE", state_dir / "state.json")
        lock_file = env_path("GRALPH_LOCK_FILE", state_dir / "state.lock")
        lock_dir = env_path("GRALPH_LOCK_DIR", lock_file.with_name(lock_file.name + ".dir"))
        timeout = env_float("GRALPH_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)
        if timeout <= 0:
            timeout = DEFAULT_LOCK_TIMEOUT
        return cls(
            state_dir=state_dir,
            state_file=state_file,
            lock_file=lock_file,
            lock_dir=lock_dir,
            lock_timeout=timeout,
        )


def _validate_name(name: str) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("session name is required")


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class StateStore:
    """Named session records shared by every gralph process on the host."""

    def __init__(self, config: StoreConfig | None = None, use_flock: bool = True) -> None:
        self.config = config or StoreConfig.from_env()
        self.use_flock = use_flock

    def _lock(self) -> StoreLock:
        return StoreLock(
            self.config.lock_file,
            self.config.lock_dir,
            timeout=self.config.lock_timeout,
            use_flock=self.use_flock,
        )

    # -- document I/O (callers hold the lock) -----------------------------

    def _load(self) -> dict[str, dict[str, Any]]:
        path = self.config.state_file
        data = read_json_file(path)
        if isinstance(data, dict) and isinstance(data.get("sessions"), dict):
            return data["sessions"]
        if path.exists():
            log_warning(f"State file {path} is unreadable or corrupt, resetting it")
        write_json_file(path, {"sessions": {}})
        return {}

    def _save(self, sessions: dict[str, dict[str, Any]]) -> None:
        write_json_file(self.config.state_file, {"sessions": sessions})

    # -- public API --------------------------------------------------------

    def init(self) -> None:
        """Create the state directory and an empty document if needed."""
        self.config.state_dir.mkdir(parents=True, exist_ok=True)
        with self._lock():
            self._load()

    def get_fields(self, name: str) -> dict[str, Any] | None:
        """Raw stored fields of *name*, including keys the model ignores."""
        _validate_name(name)
        with self._lock():
            fields = self._load().get(name)
        if not isinstance(fields, dict):
            return None
        return {**fields, "name": name}

    def get(self, name: str) -> SessionRecord | None:
        fields = self.get_fields(name)
        if fields is None:
            return None
        return SessionRecord.from_dict(fields)

    def set(self, name: str, **fields: Any) -> SessionRecord:
        """Merge *fields* into the record for *name*, creating it if absent.

        Keys not supplied keep their stored values. ``name`` always equals
        the key.
        """
        _validate_name(name)
        with self._lock():
            sessions = self._load()
            current = sessions.get(name)
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update({k: _plain(v) for k, v in fields.items()})
            merged["name"] = name
            sessions[name] = merged
            self._save(sessions)
        return SessionRecord.from_dict(merged)

    def list(self) -> list[SessionRecord]:
        """All records, sorted by name."""
        with self._lock():
            sessions = self._load()
        records = []
        for name in sorted(sessions):
            fields = sessions[name]
            if isinstance(fields, dict):
                records.append(SessionRecord.from_dict({**fields, "name": name}))
        return records

    def delete(self, name: str) -> None:
        _validate_name(name)
        with self._lock():
            sessions = self._load()
            if name not in sessions:
                raise SessionNotFoundError(name)
            del sessions[name]
            self._save(sessions)

    def cleanup_stale(self, mode: CleanupMode = CleanupMode.MARK) -> list[str]:
        """Reconcile running records whose owning process has died.

        Only ``running`` records with a recorded pid are inspected; a
        running record without a pid is left untouched. Returns the names
        that were marked stale or removed.
        """
        mode = CleanupMode(mode)
        cleaned: list[str] = []
        with self._lock():
            sessions = self._load()
            for name in sorted(sessions):
                fields = sessions[name]
                if not isinstance(fields, dict):
                    continue
                if fields.get("status") != SessionStatus.RUNNING.value:
                    continue
                pid = parse_pid(fields.get("pid"))
                if pid <= 0 or is_process_alive(pid):
                    continue
                if mode is CleanupMode.REMOVE:
                    del sessions[name]
                else:
                    fields["status"] = SessionStatus.STALE.value
                cleaned.append(name)
            if cleaned:
                self._save(sessions)
        return cleaned
