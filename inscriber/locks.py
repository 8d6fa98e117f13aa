from __future__ import annotations

from contextlib import contextmanager
import os
from pathlib import Path
from typing import Iterator


class AlreadyRunningError(RuntimeError):
    def __init__(self, owner_pid: int, lock_path: Path) -> None:
        self.owner_pid = owner_pid
        self.lock_path = lock_path
        super().__init__(
            f"Another inscriber instance is already running (PID {owner_pid}).\n"
            f"If this is wrong, remove: {lock_path}"
        )


def process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        # Signal 0 only probes for existence.
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user.
        return True
    except OSError:
        return False
    return True


def read_lock_owner(lock_path: Path) -> int | None:
    try:
        raw = lock_path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class ProcessLock:
    """PID lock file guarding one runtime home.

    Returned by `acquire_process_lock`; `release()` is idempotent so it can sit
    in a `finally` block and in `__exit__` at the same time.
    """

    def __init__(self, lock_path: Path, pid: int) -> None:
        self.lock_path = lock_path
        self.pid = pid
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        # Only remove the file if it is still ours.
        if read_lock_owner(self.lock_path) not in {self.pid, None}:
            return
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            pass

    def __enter__(self) -> "ProcessLock":
        return self

    def __exit__(self, *_exc) -> None:
        self.release()


def acquire_process_lock(lock_path: Path, *, pid: int | None = None) -> ProcessLock:
    """Acquire the lock or raise `AlreadyRunningError`.

    A lock left by a dead process (or holding garbage) is reclaimed silently.
    """

    owner_pid = pid if pid is not None else os.getpid()
    if lock_path.exists():
        recorded = read_lock_owner(lock_path)
        if recorded is not None and recorded != owner_pid and process_alive(recorded):
            raise AlreadyRunningError(recorded, lock_path)
        try:
            lock_path.unlink()
        except FileNotFoundError:
            pass

    lock_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    try:
        fd = os.open(str(lock_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError as exc:
        raise AlreadyRunningError(read_lock_owner(lock_path) or 0, lock_path) from exc
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(str(owner_pid))
    return ProcessLock(lock_path, owner_pid)


@contextmanager
def process_lock(lock_path: Path) -> Iterator[ProcessLock]:
    lock = acquire_process_lock(lock_path)
    try:
        yield lock
    finally:
        lock.release()


def clear_stale_lock(lock_path: Path) -> tuple[bool, str]:
    if not lock_path.exists():
        return False, f"no lock at {lock_path}"
    owner = read_lock_owner(lock_path)
    if owner is not None and process_alive(owner):
        return False, f"lock is held by running process {owner}"
    try:
        lock_path.unlink()
    except OSError as exc:
        return False, f"failed removing {lock_path}: {exc}"
    return True, f"removed stale lock {lock_path}"
