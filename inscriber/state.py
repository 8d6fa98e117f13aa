from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import tempfile
from typing import Any

from .models import Challenge
from .outcomes import Success


@dataclass
class EngineState:
    last_challenge: Challenge | None = None
    total_submissions: int = 0
    total_reward: int = 0
    total_hits: int = 0
    challenges_passed: int = 0
    challenges_failed: int = 0
    last_trust_score: int = 0
    last_submit_at: datetime | None = None

    def record_success(self, outcome: Success, *, now: datetime | None = None) -> None:
        self.total_submissions += 1
        self.total_reward += int(outcome.reward)
        if outcome.hit:
            self.total_hits += 1
        self.challenges_passed += 1
        self.last_trust_score = int(outcome.trust_score)
        self.last_submit_at = now or datetime.now(tz=timezone.utc)
        # Keep the cached challenge unless the server handed us a new one.
        if outcome.next_challenge is not None:
            self.last_challenge = outcome.next_challenge

    def record_challenge_failure(self) -> None:
        self.challenges_failed += 1

    def seconds_since_submit(self, *, now: datetime | None = None) -> float | None:
        if self.last_submit_at is None:
            return None
        current = now or datetime.now(tz=timezone.utc)
        return (current - self.last_submit_at).total_seconds()

    def to_json(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "total_submissions": int(self.total_submissions),
            "total_reward": int(self.total_reward),
            "total_hits": int(self.total_hits),
            "challenges_passed": int(self.challenges_passed),
            "challenges_failed": int(self.challenges_failed),
            "last_trust_score": int(self.last_trust_score),
        }
        if self.last_challenge is not None:
            payload["last_challenge"] = self.last_challenge.to_json()
        if self.last_submit_at is not None:
            payload["last_submit_at"] = self.last_submit_at.isoformat()
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "EngineState":
        return cls(
            last_challenge=Challenge.from_json(payload.get("last_challenge")),
            total_submissions=_as_count(payload.get("total_submissions")),
            total_reward=_as_count(payload.get("total_reward"), allow_negative=True),
            total_hits=_as_count(payload.get("total_hits")),
            challenges_passed=_as_count(payload.get("challenges_passed")),
            challenges_failed=_as_count(payload.get("challenges_failed")),
            last_trust_score=_as_count(payload.get("last_trust_score"), allow_negative=True),
            last_submit_at=_parse_timestamp(payload.get("last_submit_at")),
        )


class StateStore:
    """Single JSON file holding `EngineState` across restarts."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> EngineState:
        # Missing or corrupt state means a fresh start, never an error.
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception:  # noqa: BLE001
            return EngineState()
        if not isinstance(payload, dict):
            return EngineState()
        return EngineState.from_json(payload)

    def save(self, state: EngineState) -> None:
        body = json.dumps(state.to_json(), indent=2, sort_keys=True, ensure_ascii=True) + "\n"
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp.write(body)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        try:
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


def _as_count(value: Any, *, allow_negative: bool = False) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    if number < 0 and not allow_negative:
        return 0
    return number


def _parse_timestamp(value: Any) -> datetime | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    # Year-1 timestamps are the "never" sentinel.
    if parsed.year <= 1:
        return None
    return parsed
