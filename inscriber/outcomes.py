from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .models import Challenge


class ChallengeKind(str, Enum):
    REQUIRED = "CHALLENGE_REQUIRED"
    FAILED = "CHALLENGE_FAILED"
    EXPIRED = "CHALLENGE_EXPIRED"
    INVALID = "CHALLENGE_INVALID"
    USED = "CHALLENGE_USED"
    UNAVAILABLE = "CHALLENGE_UNAVAILABLE"


FATAL_CODES = frozenset(
    {
        "NOT_CLAIMED",
        "WALLET_REQUIRED",
        "AGENT_BANNED",
        "INVALID_API_KEY",
        "REGISTRATION_DISABLED",
        "ALREADY_MINING",
        "UPGRADE_REQUIRED",
    }
)
FATAL_SESSION_CODES = frozenset({"ALREADY_MINING", "UPGRADE_REQUIRED"})
RATE_LIMIT_CODE = "RATE_LIMITED"
DAILY_CAP_CODE = "DAILY_LIMIT_REACHED"
TARGET_TAKEN_CODE = "TARGET_TAKEN"
RETRYABLE_HTTP_STATUSES = frozenset({429, 503})


@dataclass(frozen=True)
class ServerNotice:
    """Version and rule metadata the service piggybacks on responses."""

    min_client_version: str = ""
    latest_client_version: str = ""
    upgrade_url: str = ""
    skill_version: str = ""
    skill_doc_hash: str = ""


@dataclass(frozen=True)
class Success:
    reward: int
    trust_score: int
    remaining_count: int
    hit: bool = False
    next_challenge: Challenge | None = None
    target_id: int = 0
    hash: str = ""
    image: str = ""
    ip_multiplier: int = 0
    agents_on_ip: int = 0
    notice: ServerNotice = field(default_factory=ServerNotice)


@dataclass(frozen=True)
class ChallengeError:
    kind: ChallengeKind
    new_challenge: Challenge | None = None
    message: str = ""
    hint: str = ""

    @property
    def is_penalty(self) -> bool:
        return self.kind is ChallengeKind.FAILED


@dataclass(frozen=True)
class RateLimited:
    retry_after_seconds: int = 0
    is_daily_cap: bool = False
    message: str = ""


@dataclass(frozen=True)
class Fatal:
    code: str
    message: str = ""
    notice: ServerNotice = field(default_factory=ServerNotice)


@dataclass(frozen=True)
class TargetTaken:
    target_id: int = 0


@dataclass(frozen=True)
class UnhandledServerError:
    code: str
    message: str = ""


@dataclass(frozen=True)
class TransportError:
    cause: BaseException

    @property
    def message(self) -> str:
        text = str(self.cause).strip()
        return text or self.cause.__class__.__name__


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    verified: bool = False
    challenge: Challenge | None = None
    notice: ServerNotice = field(default_factory=ServerNotice)


InscriptionOutcome = (
    Success | ChallengeError | RateLimited | Fatal | TargetTaken | UnhandledServerError | TransportError
)
SessionOutcome = SessionStarted | Fatal | UnhandledServerError | TransportError


FATAL_REMEDIATIONS: dict[str, str] = {
    "NOT_CLAIMED": (
        "Your agent has not been claimed by an owner yet.\n"
        "Your owner must claim it from the agent page on the service before mining can start."
    ),
    "WALLET_REQUIRED": (
        "No wallet address is bound to your agent.\n"
        "Your owner must bind a wallet from the agent page on the service."
    ),
    "AGENT_BANNED": "Your agent has been banned.",
    "INVALID_API_KEY": "Invalid API key. Check your credentials and configuration.",
    "REGISTRATION_DISABLED": "Agent registration is currently disabled by the service.",
    "ALREADY_MINING": (
        "This agent already has an active session.\n"
        "Stop the other instance first, or wait for its session to expire (~1 hour)."
    ),
    "UPGRADE_REQUIRED": "This client version is no longer supported. Update to continue.",
    TARGET_TAKEN_CODE: (
        "The target has been taken by another agent.\n"
        "Choose a different target id and restart (inscriber run --target-id <id>)."
    ),
}


def fatal_remediation(code: str, *, message: str = "", notice: ServerNotice | None = None) -> str:
    text = FATAL_REMEDIATIONS.get(code)
    if text is None:
        detail = f" - {message}" if message else ""
        return f"Fatal error from service: {code}{detail}"
    if code == "UPGRADE_REQUIRED" and notice is not None:
        lines = [text]
        if notice.min_client_version:
            lines.append(f"Minimum required: {notice.min_client_version}")
        if notice.upgrade_url:
            lines.append(f"Download: {notice.upgrade_url}")
        return "\n".join(lines)
    return text


def _as_int(value: Any, *, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clean(value: Any) -> str:
    return " ".join(str(value or "").split()).strip()


def _notice_from(payload: dict[str, Any]) -> ServerNotice:
    return ServerNotice(
        min_client_version=_clean(payload.get("min_client_version")),
        latest_client_version=_clean(payload.get("latest_client_version")),
        upgrade_url=_clean(payload.get("upgrade_url")),
        skill_version=_clean(payload.get("skill_version")),
        skill_doc_hash=_clean(payload.get("skill_doc_hash")),
    )


def _challenge_from(payload: dict[str, Any]) -> Challenge | None:
    return Challenge.from_json(payload.get("challenge")) or Challenge.from_json(payload.get("next_challenge"))


def _challenge_kind(code: str) -> ChallengeKind | None:
    try:
        return ChallengeKind(code)
    except ValueError:
        return None


def classify_response(payload: Any, *, status_code: int = 200) -> InscriptionOutcome:
    """Map one decoded inscribe response onto exactly one outcome variant.

    A response with a non-empty `error` field never becomes `Success`.
    """

    if not isinstance(payload, dict):
        return TransportError(ValueError(f"malformed response body (HTTP {status_code})"))

    code = _clean(payload.get("error")).upper()
    message = _clean(payload.get("message"))

    kind = _challenge_kind(code)
    if kind is not None:
        return ChallengeError(
            kind=kind,
            new_challenge=_challenge_from(payload),
            message=message,
            hint=_clean(payload.get("hint")),
        )
    if code in FATAL_CODES:
        return Fatal(code=code, message=message, notice=_notice_from(payload))
    if code in {RATE_LIMIT_CODE, DAILY_CAP_CODE}:
        return RateLimited(
            retry_after_seconds=max(0, _as_int(payload.get("retry_after"))),
            is_daily_cap=code == DAILY_CAP_CODE,
            message=message,
        )
    if _clean(payload.get("id_status")).lower() == "taken" or code == TARGET_TAKEN_CODE:
        return TargetTaken(target_id=_as_int(payload.get("token_id")))
    if code:
        return UnhandledServerError(code=code, message=message)
    if status_code in RETRYABLE_HTTP_STATUSES:
        return RateLimited(retry_after_seconds=max(0, _as_int(payload.get("retry_after"))), message=message)
    if status_code >= 400:
        return UnhandledServerError(code=f"HTTP_{status_code}", message=message)

    nft = payload.get("genesis_nft") if isinstance(payload.get("genesis_nft"), dict) else {}
    penalty = payload.get("ip_penalty") if isinstance(payload.get("ip_penalty"), dict) else {}
    return Success(
        reward=_as_int(payload.get("cw_earned")),
        trust_score=_as_int(payload.get("trust_score")),
        remaining_count=_as_int(payload.get("nfts_remaining")),
        hit=bool(payload.get("hit")) or _clean(payload.get("id_status")).lower() == "hit",
        next_challenge=Challenge.from_json(payload.get("next_challenge")),
        target_id=_as_int(payload.get("token_id")),
        hash=_clean(payload.get("hash")),
        image=_clean(nft.get("image")),
        ip_multiplier=_as_int(penalty.get("ip_multiplier")),
        agents_on_ip=_as_int(penalty.get("agents_on_ip")),
        notice=_notice_from(payload),
    )


def classify_session_response(payload: Any, *, status_code: int = 200) -> SessionOutcome:
    """Map a session-start response. Anything that is not a session or fatal is unhandled."""

    if not isinstance(payload, dict):
        return TransportError(ValueError(f"malformed session response (HTTP {status_code})"))
    code = _clean(payload.get("error")).upper()
    if code in FATAL_CODES:
        return Fatal(code=code, message=_clean(payload.get("message")), notice=_notice_from(payload))
    if code:
        return UnhandledServerError(code=code, message=_clean(payload.get("message")))
    session_id = _clean(payload.get("session_id"))
    if not session_id and status_code >= 400:
        return UnhandledServerError(code=f"HTTP_{status_code}", message=_clean(payload.get("message")))
    return SessionStarted(
        session_id=session_id,
        verified=bool(payload.get("client_verified")),
        challenge=_challenge_from(payload),
        notice=_notice_from(payload),
    )
