from __future__ import annotations

from datetime import datetime

from .models import short_id
from .outcomes import Success
from .state import EngineState

PROMPT_PREVIEW_CHARS = 80


def _stamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%H:%M:%S")


def format_amount(amount: int) -> str:
    """Thousands separators: 1234567 -> 1,234,567."""

    return f"{int(amount):,}"


def shorten_hash(value: str) -> str:
    if len(value) < 12:
        return value
    return f"{value[:6]}...{value[-4:]}"


def preview_prompt(prompt: str, limit: int = PROMPT_PREVIEW_CHARS) -> str:
    if len(prompt) > limit:
        return prompt[: limit - 3] + "..."
    return prompt


def format_duration(seconds: float) -> str:
    total = max(0, int(seconds))
    return f"{total // 60}m{total % 60:02d}s"


def format_trust(trust_score: int, previous: int) -> str:
    if previous <= 0 or trust_score == previous:
        return str(trust_score)
    delta = trust_score - previous
    return f"{trust_score} ({delta:+d})"


def format_session(session_id: str, verified: bool) -> str:
    suffix = " (verified client)" if verified else ""
    return f"Session: {short_id(session_id)}{suffix}"


def format_result(outcome: Success, previous_trust: int, *, now: datetime | None = None) -> list[str]:
    ts = _stamp(now)
    if outcome.hit:
        lines = [
            "",
            f"[{ts}] *** HIT! #{outcome.target_id} is yours! ***",
            f"[{ts}] Tell your owner to verify the win from the agent page.",
        ]
        if outcome.image:
            lines.append(f"[{ts}] Image: {outcome.image}")
        lines.append("")
        return lines

    lines = [
        f"[{ts}] Inscribed | Hash: {shorten_hash(outcome.hash)} | Reward: {format_amount(outcome.reward)} | "
        f"Trust: {format_trust(outcome.trust_score, previous_trust)} | Remaining: {outcome.remaining_count}"
    ]
    if outcome.ip_multiplier > 1:
        lines.append(
            f"[{ts}]   IP penalty active (multiplier: {outcome.ip_multiplier}x, {outcome.agents_on_ip} agents on IP)"
        )
    return lines


def format_challenge(prompt: str, *, now: datetime | None = None) -> str:
    return f"[{_stamp(now)}] Challenge: {preview_prompt(prompt)!r}"


def format_answer(elapsed_s: float, *, now: datetime | None = None) -> str:
    return f"[{_stamp(now)}] Answered ({elapsed_s:.1f}s)"


def format_cooldown(seconds: float, *, now: datetime | None = None) -> str:
    return f"[{_stamp(now)}] Next inscription in {format_duration(seconds)} (Ctrl+C to stop)"


def format_error(message: str, *, now: datetime | None = None) -> str:
    return f"[{_stamp(now)}] Error: {message}"


def format_penalty(hint: str, *, now: datetime | None = None) -> list[str]:
    ts = _stamp(now)
    lines = [f"[{ts}]   Penalty: trust score or staked reward may be deducted"]
    if hint:
        lines.append(f"[{ts}]   Hint: {hint}")
    return lines


def format_stats(state: EngineState) -> list[str]:
    return [
        "",
        "--- Session Stats ---",
        f"Inscriptions: {state.total_submissions}",
        f"Reward:       {format_amount(state.total_reward)}",
        f"Hits:         {state.total_hits}",
        f"Challenges:   {state.challenges_passed} passed / {state.challenges_failed} failed",
        f"Trust score:  {state.last_trust_score}",
        "",
    ]


def stats_summary(state: EngineState) -> str:
    return f"Session ended: {state.total_submissions} inscriptions, {format_amount(state.total_reward)} reward"
