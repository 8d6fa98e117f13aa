from __future__ import annotations

import time
from typing import Any, Awaitable, Callable

from .display import format_answer, format_challenge, preview_prompt
from .interfaces import EventSink, Provider
from .logs import RuntimeLogger, null_logger
from .models import Challenge, short_id

DEFAULT_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_S = 2.0

Sleeper = Callable[[float], Awaitable[bool]]


class SolverError(RuntimeError):
    pass


class SolveCancelled(SolverError):
    pass


class ChallengeSolver:
    """Turns a challenge prompt into an answer with a few local retries."""

    def __init__(
        self,
        provider: Provider,
        *,
        sleep: Sleeper,
        attempts: int = DEFAULT_ATTEMPTS,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
        emit: EventSink | None = None,
        write: Callable[[str], None] | None = None,
        logger: RuntimeLogger | None = None,
    ) -> None:
        self.provider = provider
        self.sleep = sleep
        self.attempts = max(1, int(attempts))
        self.retry_delay_s = max(0.0, float(retry_delay_s))
        self.emit = emit
        self.write = write
        self.logger = logger or null_logger()

    async def solve(self, challenge: Challenge) -> str:
        if self.write is not None:
            self.write(format_challenge(challenge.prompt))
        self._emit("challenge", preview_prompt(challenge.prompt), {"challenge_id": challenge.id})

        last_error: BaseException | None = None
        for attempt in range(1, self.attempts + 1):
            if attempt > 1:
                self.logger.debug("answer retry", attempt=attempt, challenge=short_id(challenge.id))
                if not await self.sleep(self.retry_delay_s):
                    raise SolveCancelled("cancelled while waiting to retry the answer")

            started = time.monotonic()
            try:
                answer = await self.provider.answer(challenge.prompt)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                self.logger.warn("answer backend call failed", attempt=attempt, error=exc)
                continue
            elapsed = time.monotonic() - started

            cleaned = (answer or "").strip()
            if not cleaned:
                last_error = SolverError("answer backend returned an empty answer")
                self.logger.warn("answer backend returned empty answer", attempt=attempt, elapsed=f"{elapsed:.1f}s")
                continue

            if self.write is not None:
                self.write(format_answer(elapsed))
            self._emit("answer", f"Answered ({elapsed:.1f}s)", {"elapsed_s": round(elapsed, 3)})
            self.logger.info("answer produced", chars=len(cleaned), elapsed=f"{elapsed:.1f}s")
            self.logger.debug("answer content", answer=cleaned)
            return cleaned

        raise SolverError(f"answer backend failed after {self.attempts} attempts: {last_error}") from last_error

    def _emit(self, kind: str, message: str, data: Any = None) -> None:
        if self.emit is None:
            return
        try:
            self.emit(kind, message, data)
        except Exception:  # noqa: BLE001
            return
