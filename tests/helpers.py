from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from inscriber.config import EngineConfig, SolverConfig
from inscriber.control import ControlSurface
from inscriber.models import Challenge, InscriptionRequest
from inscriber.outcomes import Fatal, InscriptionOutcome, SessionOutcome, SessionStarted
from inscriber.paths import RuntimePaths, runtime_paths
from inscriber.runtime.engine import InscriptionEngine
from inscriber.runtime.stop import StopSignal

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class StaticProvider:
    name = "static"

    def __init__(self, answers: list[Any] | str = "a short answer about the ocean") -> None:
        self._answers = answers
        self.prompts: list[str] = []

    async def answer(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self._answers, str):
            return self._answers
        item = self._answers[min(len(self.prompts), len(self._answers)) - 1]
        if isinstance(item, BaseException):
            raise item
        return item


class ScriptedClient:
    """Replays `submit` outcomes in order; the last one repeats when the script runs out."""

    def __init__(
        self,
        outcomes: list[InscriptionOutcome] | None = None,
        *,
        session: SessionOutcome | None = None,
        factory: Callable[[int, InscriptionRequest], InscriptionOutcome] | None = None,
    ) -> None:
        self._outcomes = list(outcomes or [])
        self._factory = factory
        self._session = session if session is not None else SessionStarted(session_id="sess-0001-abcdef")
        self.requests: list[InscriptionRequest] = []
        self.session_targets: list[int] = []
        self.ended: list[str] = []

    async def start_session(self, target_id: int) -> SessionOutcome:
        self.session_targets.append(target_id)
        return self._session

    async def submit(self, request: InscriptionRequest) -> InscriptionOutcome:
        self.requests.append(request)
        if self._factory is not None:
            return self._factory(len(self.requests), request)
        index = min(len(self.requests), len(self._outcomes)) - 1
        return self._outcomes[index]

    async def end_session(self, session_id: str) -> None:
        self.ended.append(session_id)


@dataclass
class RecordingSleeper:
    """Stands in for real waits. Returns False (stopped) once `stop_after` calls were made."""

    stop_after: int = 1
    stop: StopSignal | None = None
    on_sleep: Callable[[int, float], None] | None = None
    calls: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> bool:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.calls), seconds)
        if len(self.calls) >= self.stop_after:
            if self.stop is not None:
                self.stop.request_stop()
            return False
        return True


@dataclass
class EventRecorder:
    events: list[tuple[str, str, Any]] = field(default_factory=list)

    def __call__(self, kind: str, message: str, data: Any = None) -> None:
        self.events.append((kind, message, data))

    def kinds(self) -> list[str]:
        return [kind for kind, _message, _data in self.events]

    def of(self, kind: str) -> list[tuple[str, str, Any]]:
        return [event for event in self.events if event[0] == kind]


def challenge(n: int) -> Challenge:
    return Challenge(id=f"ch-{n:04d}-xyz", prompt=f"Describe wave number {n} in one sentence.", expires_in=300)


def make_engine(
    root: Path,
    client: ScriptedClient,
    *,
    provider: StaticProvider | None = None,
    sleeper: RecordingSleeper | None = None,
    control: ControlSurface | None = None,
    target_id: int = 42,
    settings: EngineConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> tuple[InscriptionEngine, RecordingSleeper, EventRecorder, list[str]]:
    paths: RuntimePaths = runtime_paths(root)
    stop = StopSignal()
    sleeper = sleeper or RecordingSleeper()
    if sleeper.stop is None:
        sleeper.stop = stop
    events = EventRecorder()
    printed: list[str] = []
    engine = InscriptionEngine(
        client=client,
        provider=provider or StaticProvider(),
        paths=paths,
        target_id=target_id,
        settings=settings,
        solver_settings=SolverConfig(attempts=3, retry_delay_s=2.0),
        control=control,
        emit=events,
        stop=stop,
        sleep=sleeper,
        clock=clock or (lambda: FIXED_NOW),
        write=printed.append,
    )
    return engine, sleeper, events, printed


def static_provider_factory(_cfg: Any) -> StaticProvider:
    return StaticProvider()


def revoked_key_client_factory(_cfg: Any) -> ScriptedClient:
    return ScriptedClient([Fatal(code="INVALID_API_KEY", message="key revoked")])


def not_a_client_factory(_cfg: Any) -> object:
    return object()
