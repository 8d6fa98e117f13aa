from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Challenge:
    id: str
    prompt: str
    expires_in: int = 0

    def to_json(self) -> dict[str, object]:
        return {"id": self.id, "prompt": self.prompt, "expires_in": int(self.expires_in)}

    @classmethod
    def from_json(cls, payload: Any) -> "Challenge | None":
        if not isinstance(payload, dict):
            return None
        challenge_id = str(payload.get("id") or "").strip()
        prompt = str(payload.get("prompt") or "")
        if not challenge_id or not prompt.strip():
            return None
        try:
            expires_in = int(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return cls(id=challenge_id, prompt=prompt, expires_in=max(0, expires_in))


@dataclass(frozen=True)
class InscriptionRequest:
    target_id: int
    challenge_id: str = ""
    answer: str = ""
    session_id: str = ""
    session_start: bool = False
    session_end: bool = False

    def with_answer(self, challenge: Challenge, answer: str) -> "InscriptionRequest":
        return InscriptionRequest(
            target_id=self.target_id,
            challenge_id=challenge.id,
            answer=answer,
            session_id=self.session_id,
        )

    def to_json(self) -> dict[str, object]:
        """Request body; empty optional fields are omitted."""

        payload: dict[str, object] = {"token_id": self.target_id}
        if self.challenge_id:
            payload["challenge_id"] = self.challenge_id
            payload["challenge_answer"] = self.answer
        if self.session_id:
            payload["session_id"] = self.session_id
        if self.session_start:
            payload["session_start"] = True
        if self.session_end:
            payload["session_end"] = True
        return payload


@dataclass(frozen=True)
class Session:
    id: str = ""
    verified: bool = False

    @property
    def active(self) -> bool:
        return bool(self.id)


def short_id(value: str) -> str:
    if not value:
        return "(empty)"
    if len(value) > 8:
        return value[:8] + "..."
    return value
