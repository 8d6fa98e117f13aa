from __future__ import annotations

from typing import Any, Callable, Protocol

from .models import InscriptionRequest
from .outcomes import InscriptionOutcome, SessionOutcome


class Provider(Protocol):
    """Text-answering backend. Errors and empty strings both count as failed attempts."""

    name: str

    async def answer(self, prompt: str) -> str:
        ...


class InscriptionClient(Protocol):
    """Remote service client. Transport failures come back as `TransportError`, not exceptions."""

    async def start_session(self, target_id: int) -> SessionOutcome:
        ...

    async def submit(self, request: InscriptionRequest) -> InscriptionOutcome:
        ...

    async def end_session(self, session_id: str) -> None:
        ...


class Control(Protocol):
    def is_paused(self) -> bool:
        ...

    def current_target(self) -> int:
        ...


EventSink = Callable[[str, str, Any], Any]
