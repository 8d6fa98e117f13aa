from __future__ import annotations

from dataclasses import dataclass
import threading


@dataclass(frozen=True)
class ControlSnapshot:
    paused: bool
    target_id: int


class ControlSurface:
    """Pause/resume/retarget switches shared between the console and the engine.

    The console thread is the only writer; the engine loop is the only reader.
    Every access holds the lock for a single field read or write.
    """

    def __init__(self, target_id: int, *, paused: bool = False) -> None:
        self._lock = threading.Lock()
        self._paused = bool(paused)
        self._target_id = int(target_id)

    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    def current_target(self) -> int:
        with self._lock:
            return self._target_id

    def pause(self) -> None:
        with self._lock:
            self._paused = True

    def resume(self) -> None:
        with self._lock:
            self._paused = False

    def set_target(self, target_id: int) -> None:
        """Takes effect on the next submission cycle."""

        with self._lock:
            self._target_id = int(target_id)

    def snapshot(self) -> ControlSnapshot:
        with self._lock:
            return ControlSnapshot(paused=self._paused, target_id=self._target_id)
