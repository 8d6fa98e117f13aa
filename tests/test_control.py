from __future__ import annotations

import asyncio
import threading
import time
import unittest

from inscriber.control import ControlSnapshot, ControlSurface
from inscriber.runtime.stop import StopSignal


class TestControlSurface(unittest.TestCase):
    def test_pause_resume_and_retarget(self) -> None:
        control = ControlSurface(42)
        self.assertFalse(control.is_paused())
        self.assertEqual(42, control.current_target())

        control.pause()
        control.set_target(7)
        self.assertEqual(ControlSnapshot(paused=True, target_id=7), control.snapshot())

        control.resume()
        self.assertFalse(control.is_paused())

    def test_writes_from_another_thread_are_visible(self) -> None:
        control = ControlSurface(1)
        writer = threading.Thread(target=lambda: [control.set_target(n) for n in range(2, 500)])
        writer.start()
        writer.join()

        self.assertEqual(499, control.current_target())


class TestStopSignal(unittest.TestCase):
    def test_wait_elapses_without_stop(self) -> None:
        stop = StopSignal()
        self.assertTrue(asyncio.run(stop.wait(0.01)))
        self.assertTrue(asyncio.run(stop.wait(0)))

    def test_wait_returns_false_once_stopped(self) -> None:
        stop = StopSignal()
        stop.request_stop()

        self.assertTrue(stop.is_set())
        self.assertFalse(asyncio.run(stop.wait(30)))

    def test_stop_from_another_thread_interrupts_a_long_wait(self) -> None:
        stop = StopSignal()

        async def scenario() -> tuple[bool, float]:
            stop.bind(asyncio.get_running_loop())
            timer = threading.Timer(0.05, stop.request_stop)
            timer.start()
            started = time.monotonic()
            try:
                completed = await stop.wait(30)
            finally:
                timer.cancel()
            return completed, time.monotonic() - started

        completed, elapsed = asyncio.run(scenario())

        self.assertFalse(completed)
        self.assertLess(elapsed, 5.0)


if __name__ == "__main__":
    unittest.main()
