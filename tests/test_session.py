from __future__ import annotations

import asyncio
from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from inscriber.errors import FatalEngineError
from inscriber.outcomes import Fatal, RateLimited, ServerNotice, SessionStarted, UnhandledServerError
from inscriber.session import SessionManager
from inscriber.state import EngineState, StateStore

from tests.helpers import EventRecorder, ScriptedClient, challenge


def _manager(root: Path, client: ScriptedClient, **kwargs) -> tuple[SessionManager, EngineState, StateStore, EventRecorder]:
    state = EngineState()
    store = StateStore(root / "state.json")
    events = EventRecorder()
    manager = SessionManager(client, state=state, store=store, emit=events, **kwargs)
    return manager, state, store, events


class TestSessionManager(unittest.TestCase):
    def test_start_records_session_and_challenge(self) -> None:
        with TemporaryDirectory() as tmp:
            client = ScriptedClient(
                session=SessionStarted(
                    session_id="sess-abcdef123",
                    verified=True,
                    challenge=challenge(1),
                    notice=ServerNotice(skill_version="2"),
                )
            )
            manager, state, store, events = _manager(Path(tmp), client)

            session = asyncio.run(manager.start(42))

            self.assertEqual("sess-abcdef123", session.id)
            self.assertTrue(session.active)
            self.assertTrue(session.verified)
            self.assertEqual([42], client.session_targets)
            self.assertEqual(challenge(1), state.last_challenge)
            self.assertEqual(challenge(1), store.load().last_challenge)
            self.assertEqual("2", manager.last_notice.skill_version)
            self.assertEqual(["session"], events.kinds())

    def test_fatal_start_raises(self) -> None:
        with TemporaryDirectory() as tmp:
            client = ScriptedClient(session=Fatal(code="UPGRADE_REQUIRED", notice=ServerNotice(min_client_version="2.0.0")))
            manager, _state, _store, _events = _manager(Path(tmp), client)

            with self.assertRaises(FatalEngineError) as ctx:
                asyncio.run(manager.start(42))

            self.assertEqual("UPGRADE_REQUIRED", ctx.exception.code)
            self.assertIn("Minimum required: 2.0.0", ctx.exception.remediation)

    def test_non_fatal_failure_continues_without_session(self) -> None:
        with TemporaryDirectory() as tmp:
            client = ScriptedClient(session=UnhandledServerError(code="MAINTENANCE"))
            manager, state, _store, events = _manager(Path(tmp), client)

            session = asyncio.run(manager.start(42))

            self.assertFalse(session.active)
            self.assertIsNone(state.last_challenge)
            self.assertEqual([], events.kinds())

    def test_rate_limited_start_continues_without_session(self) -> None:
        with TemporaryDirectory() as tmp:
            client = ScriptedClient(session=RateLimited(retry_after_seconds=60))
            manager, state, _store, events = _manager(Path(tmp), client)

            session = asyncio.run(manager.start(42))

            self.assertFalse(session.active)
            self.assertIsNone(state.last_challenge)
            self.assertEqual([], events.kinds())

    def test_start_exception_is_not_fatal(self) -> None:
        class ExplodingClient(ScriptedClient):
            async def start_session(self, target_id: int):
                raise ConnectionResetError("reset by peer")

        with TemporaryDirectory() as tmp:
            manager, _state, _store, _events = _manager(Path(tmp), ExplodingClient())

            session = asyncio.run(manager.start(42))

            self.assertFalse(session.active)

    def test_end_is_noop_without_session(self) -> None:
        with TemporaryDirectory() as tmp:
            client = ScriptedClient()
            manager, _state, _store, _events = _manager(Path(tmp), client)

            asyncio.run(manager.end())

            self.assertEqual([], client.ended)

    def test_end_closes_session_once(self) -> None:
        with TemporaryDirectory() as tmp:
            client = ScriptedClient()
            manager, _state, _store, _events = _manager(Path(tmp), client)

            async def scenario() -> None:
                await manager.start(42)
                await manager.end()
                await manager.end()

            asyncio.run(scenario())

            self.assertEqual(["sess-0001-abcdef"], client.ended)
            self.assertFalse(manager.session.active)

    def test_end_swallows_errors_and_timeouts(self) -> None:
        class SlowClient(ScriptedClient):
            async def end_session(self, session_id: str) -> None:
                await asyncio.sleep(10)

        class BrokenClient(ScriptedClient):
            async def end_session(self, session_id: str) -> None:
                raise OSError("gone")

        with TemporaryDirectory() as tmp:
            for client in (SlowClient(), BrokenClient()):
                with self.subTest(client=type(client).__name__):
                    manager, _state, _store, _events = _manager(Path(tmp), client, end_timeout_s=0.1)

                    async def scenario() -> None:
                        await manager.start(42)
                        await manager.end()

                    asyncio.run(scenario())
                    self.assertFalse(manager.session.active)


if __name__ == "__main__":
    unittest.main()
