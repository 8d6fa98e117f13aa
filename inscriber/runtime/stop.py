from __future__ import annotations

import asyncio
import threading


class StopSignal:
    """Cancellation token threaded through every engine wait.

    `request_stop()` is safe from any thread (console, signal handler); waits
    return as soon as it fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._requested = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        if self._requested.is_set():
            self._event.set()

    def request_stop(self) -> None:
        self._requested.set()
        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    def is_set(self) -> bool:
        return self._requested.is_set()

    async def wait(self, seconds: float) -> bool:
        """Sleep `seconds`. Returns True if the full wait elapsed, False if stopped."""

        if self._loop is None:
            self.bind(asyncio.get_running_loop())
        if self.is_set():
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return not self.is_set()
        return False
