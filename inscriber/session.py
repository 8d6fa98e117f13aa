from __future__ import annotations

import asyncio
from typing import Any, Callable

from .display import format_session
from .errors import FatalEngineError
from .interfaces import EventSink, InscriptionClient
from .logs import RuntimeLogger, null_logger
from .models import Session, short_id
from .outcomes import Fatal, ServerNotice, SessionStarted, TransportError, UnhandledServerError
from .state import EngineState, StateStore

END_SESSION_TIMEOUT_S = 5.0


class SessionManager:
    """Opens and closes the server-side session bracketing one engine run.

    Fatal responses raise `FatalEngineError`; every other failure degrades to
    sessionless mining.
    """

    def __init__(
        self,
        client: InscriptionClient,
        *,
        state: EngineState,
        store: StateStore,
        emit: EventSink | None = None,
        write: Callable[[str], None] | None = None,
        logger: RuntimeLogger | None = None,
        end_timeout_s: float = END_SESSION_TIMEOUT_S,
    ) -> None:
        self.client = client
        self.state = state
        self.store = store
        self.emit = emit
        self.write = write
        self.logger = logger or null_logger()
        self.end_timeout_s = max(0.1, float(end_timeout_s))
        self.session = Session()
        self.last_notice = ServerNotice()

    async def start(self, target_id: int) -> Session:
        try:
            outcome = await self.client.start_session(target_id)
        except Exception as exc:  # noqa: BLE001
            outcome = TransportError(exc)

        if isinstance(outcome, Fatal):
            raise FatalEngineError.from_code(outcome.code, outcome.message, notice=outcome.notice)
        if not isinstance(outcome, SessionStarted):
            self.logger.warn("session start failed, continuing without session", error=_describe(outcome))
            self.session = Session()
            return self.session

        self.last_notice = outcome.notice
        if outcome.session_id:
            self.session = Session(id=outcome.session_id, verified=outcome.verified)
            self.logger.info("session started", session=short_id(outcome.session_id), verified=outcome.verified)
            if self.write is not None:
                self.write(format_session(outcome.session_id, outcome.verified))
            self._emit("session", f"Session started: {short_id(outcome.session_id)}", {"verified": outcome.verified})
        else:
            self.session = Session()
            self.logger.info("server issued no session, continuing without session")

        if outcome.challenge is not None:
            self.state.last_challenge = outcome.challenge
            try:
                self.store.save(self.state)
            except OSError as exc:
                self.logger.warn("state save failed", error=exc)
        return self.session

    async def end(self) -> None:
        session_id = self.session.id
        if not session_id:
            return
        self.session = Session()
        try:
            # Independent timeout: the caller may already be unwinding a cancellation.
            await asyncio.wait_for(self.client.end_session(session_id), timeout=self.end_timeout_s)
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("session end failed", error=exc)
            return
        self.logger.info("session ended", session=short_id(session_id))

    def _emit(self, kind: str, message: str, data: Any = None) -> None:
        if self.emit is None:
            return
        try:
            self.emit(kind, message, data)
        except Exception:  # noqa: BLE001
            return


def _describe(outcome: object) -> str:
    if isinstance(outcome, TransportError):
        return outcome.message
    if isinstance(outcome, UnhandledServerError):
        return f"{outcome.code} {outcome.message}".strip()
    return type(outcome).__name__
