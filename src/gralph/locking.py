"""Host-wide exclusive lock guarding the state document.

Two strategies, tried in order:

1. ``flock(LOCK_EX | LOCK_NB)`` on the lock file, polled until the deadline.
2. A directory mutex: ``mkdir`` of the lock directory succeeds for exactly
   one contender, which records its pid inside. Used only where the
   filesystem does not support flock. A directory whose recorded owner
   is dead (or never wrote a pid) is reclaimed.

Usage::

    with StoreLock(lock_file, lock_dir, timeout=10.0):
        ...read-modify-write the state file...
"""

from __future__ import annotations

import errno
import fcntl
import os
import pathlib
import shutil
import time
from types import TracebackType

from gralph.common.logging import log_warning
from gralph.common.process import is_process_alive, parse_pid
from gralph.errors import LockTimeoutError

DEFAULT_LOCK_TIMEOUT = 10.0
POLL_INTERVAL = 0.1

# A lock dir without a pid file younger than this belongs to a holder
# that has not written its pid yet.
OWNERLESS_GRACE = 1.0

_FLOCK_UNSUPPORTED = {
    errno.ENOSYS,
    errno.EOPNOTSUPP,
    getattr(errno, "ENOTSUP", errno.EOPNOTSUPP),
}


class _FlockUnsupported(Exception):
    pass


class StoreLock:
    """Exclusive, bounded-wait lock scoped to one lock file."""

    def __init__(
        self,
        lock_file: pathlib.Path,
        lock_dir: pathlib.Path | None = None,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        use_flock: bool = True,
    ) -> None:
        self.lock_file = lock_file
        self.lock_dir = lock_dir or lock_file.with_name(lock_file.name + ".dir")
        self.timeout = timeout if timeout > 0 else DEFAULT_LOCK_TIMEOUT
        self.use_flock = use_flock
        self._fd: int | None = None
        self._holds_dir = False

    @property
    def locked(self) -> bool:
        return self._fd is not None or self._holds_dir

    def acquire(self) -> None:
        """Block until the lock is held or raise LockTimeoutError."""
        if self.locked:
            raise RuntimeError(f"lock {self.lock_file} is already held")
        deadline = time.monotonic() + self.timeout
        if self.use_flock:
            try:
                self._acquire_flock(deadline)
                return
            except _FlockUnsupported:
                log_warning(
                    f"flock unsupported for {self.lock_file}, "
                    "falling back to directory lock"
                )
        self._acquire_dir(deadline)

    def release(self) -> None:
        if self._fd is not None:
            fd, self._fd = self._fd, None
            try:
                fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
        if self._holds_dir:
            self._holds_dir = False
            shutil.rmtree(self.lock_dir, ignore_errors=True)

    def __enter__(self) -> StoreLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    # -- flock ------------------------------------------------------------

    def _acquire_flock(self, deadline: float) -> None:
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_file, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    self._fd = fd
                    return
                except BlockingIOError:
                    pass
                except OSError as exc:
                    if exc.errno in _FLOCK_UNSUPPORTED:
                        raise _FlockUnsupported() from exc
                    raise
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(self.lock_file, self.timeout)
                time.sleep(POLL_INTERVAL)
        except BaseException:
            if self._fd is None:
                os.close(fd)
            raise

    # -- directory mutex --------------------------------------------------

    def _acquire_dir(self, deadline: float) -> None:
        self.lock_dir.parent.mkdir(parents=True, exist_ok=True)
        while True:
            try:
                self.lock_dir.mkdir()
            except FileExistsError:
                if self._reclaim_if_abandoned():
                    continue
            else:
                (self.lock_dir / "pid").write_text(str(os.getpid()))
                self._holds_dir = True
                return
            if time.monotonic() >= deadline:
                raise LockTimeoutError(self.lock_dir, self.timeout)
            time.sleep(POLL_INTERVAL)

    def _reclaim_if_abandoned(self) -> bool:
        """Remove the lock dir if its owner is gone. Returns True if removed."""
        pid_file = self.lock_dir / "pid"
        try:
            owner = parse_pid(pid_file.read_text())
        except FileNotFoundError:
            owner = 0
            try:
                age = time.time() - self.lock_dir.stat().st_mtime
            except FileNotFoundError:
                # Released between our mkdir and stat.
                return True
            if age < OWNERLESS_GRACE:
                return False
        except OSError:
            owner = 0

        if owner > 0 and is_process_alive(owner):
            return False

        log_warning(f"Removing stale state lock {self.lock_dir} (owner pid {owner})")
        shutil.rmtree(self.lock_dir, ignore_errors=True)
        return True
